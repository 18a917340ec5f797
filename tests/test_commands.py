"""Tests for the command operations against faked az/gcloud and API."""

import json
import os

import pytest
import yaml

from anthos_azure import commands
from anthos_azure.errors import ExternalCommandError, MissingResourceError

from conftest import (APPLICATION_ID, PROJECT_NUMBER, RG_ID, SUBNET_ID,
                      SUBSCRIPTION_ID, TENANT_ID, VNET_ID)

CA_PEM = "-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"


def _api_get_router(api, responses):
    api.get.side_effect = lambda path, params=None: responses[path]


###########
# Network #
###########

def test_create_network_runs_az_in_order(cfg, fake_cli):
    result = commands.create_network()

    mutating = [call[:4] for call in fake_cli.calls
                if "create" in call or "update" in call]
    assert mutating == [
        ["az", "group", "create", "--name"],
        ["az", "network", "vnet", "create"],
        ["az", "network", "vnet", "subnet"],
        ["az", "network", "public-ip", "create"],
        ["az", "network", "nat", "gateway"],
        ["az", "network", "vnet", "subnet"],
    ]
    vnet_create = fake_cli.called("az", "network", "vnet", "create")[0]
    assert cfg.VNET_ADDRESS_PREFIX in vnet_create
    assert result == {"virtualNetworkId": VNET_ID, "subnetId": SUBNET_ID}


def test_create_network_stops_on_first_failure(cfg, fake_cli):
    fake_cli.add(["az", "network", "vnet", "create"], fail=True)

    with pytest.raises(ExternalCommandError):
        commands.create_network()

    assert fake_cli.called("az", "network", "vnet", "subnet") == []


def test_delete_network_deletes_vnet_resource_group(cfg, fake_cli):
    result = commands.delete_network()

    deletes = fake_cli.called("az", "group", "delete")
    assert len(deletes) == 1
    assert "vnet-rg" in deletes[0]
    assert "--yes" in deletes[0]
    assert result == {"deletedResourceGroup": "vnet-rg"}


##########
# Secret #
##########

def test_create_secret_reuses_application(cfg, fake_cli):
    result = commands.create_secret()

    assert fake_cli.called("az", "ad", "app", "create") == []
    assignments = fake_cli.called("az", "role", "assignment", "create")
    assert [call[call.index("--role") + 1] for call in assignments] == [
        "Contributor", "User Access Administrator", "Key Vault Administrator"]
    assert all(f"/subscriptions/{SUBSCRIPTION_ID}" in call
               for call in assignments)

    federated = fake_cli.called(
        "az", "ad", "app", "federated-credential", "create")[0]
    parameters = json.loads(federated[federated.index("--parameters") + 1])
    assert parameters["subject"] == (
        f"service-{PROJECT_NUMBER}@gcp-sa-gkemulticloud.iam.gserviceaccount.com")
    assert parameters["audiences"] == ["api://AzureADTokenExchange"]
    assert result["applicationId"] == APPLICATION_ID
    assert result["tenantId"] == TENANT_ID


def test_create_secret_creates_missing_application(cfg, fake_cli):
    fake_cli.add(["az", "ad", "app", "list"], "")
    fake_cli.add(["az", "ad", "app", "create"], "new-app-id")

    result = commands.create_secret()

    assert result["applicationId"] == "new-app-id"
    assert len(fake_cli.called("az", "ad", "app", "create")) == 1


def test_create_secret_rerun_keeps_existing_credential(cfg, fake_cli):
    fake_cli.add(["az", "ad", "app", "federated-credential", "list"],
                 f"gkemulticloud-{PROJECT_NUMBER}")

    result = commands.create_secret()

    assert fake_cli.called(
        "az", "ad", "app", "federated-credential", "create") == []
    assert result["applicationId"] == APPLICATION_ID


def test_delete_secret_removes_roles_then_application(cfg, fake_cli):
    commands.delete_secret()

    assert len(fake_cli.called("az", "role", "assignment", "delete")) == 3
    deletes = fake_cli.called("az", "ad", "app", "delete")
    assert deletes == [["az", "ad", "app", "delete", "--id", APPLICATION_ID]]


def test_delete_secret_without_application_fails(cfg, fake_cli):
    fake_cli.add(["az", "ad", "app", "list"], "")

    with pytest.raises(MissingResourceError):
        commands.delete_secret()


###########
# Cluster #
###########

def test_create_cluster_posts_one_request(cfg, fake_cli, api):
    operation = commands.create_cluster("demo")

    assert operation == {"name": "operations/op-1", "done": False}
    api.post.assert_called_once()
    api.get.assert_not_called()
    api.delete.assert_not_called()

    path, payload = api.post.call_args.args
    assert path == "azureClusters"
    assert api.post.call_args.kwargs["params"] == {"azure_cluster_id": "demo"}

    # The body survives a JSON round trip and carries config values verbatim.
    assert json.loads(json.dumps(payload)) == payload
    assert '"name": "demo"' in json.dumps(payload)
    assert payload["azureRegion"] == "eastus"
    assert payload["resourceGroupId"] == RG_ID
    assert payload["networking"]["virtualNetworkId"] == VNET_ID
    assert payload["controlPlane"]["subnetId"] == SUBNET_ID
    assert payload["controlPlane"]["vmSize"] == cfg.CONTROL_PLANE_VM_SIZE
    assert payload["controlPlane"]["sshConfig"]["authorizedKey"].startswith(
        "ssh-rsa ")
    assert payload["authorization"]["adminUsers"] == [
        {"username": "admin@example.com"}]
    assert payload["fleet"]["project"] == f"projects/{PROJECT_NUMBER}"
    assert payload["azureServicesAuthentication"] == {
        "tenantId": TENANT_ID, "applicationId": APPLICATION_ID}


def test_create_cluster_generates_ssh_key_once(cfg, fake_cli, api):
    private_key = os.path.join(cfg.SSH_KEY_DIR, "demo-ssh-key")

    commands.create_cluster("demo")
    with open(private_key) as f:
        first = f.read()
    first_key = api.post.call_args.args[1]["controlPlane"]["sshConfig"]

    commands.create_cluster("demo")
    with open(private_key) as f:
        second = f.read()
    second_key = api.post.call_args.args[1]["controlPlane"]["sshConfig"]

    assert first == second
    assert first_key == second_key


def test_create_cluster_creates_missing_resource_group(cfg, fake_cli, api):
    fake_cli.add(["az", "group", "exists"], "false")

    commands.create_cluster("demo")

    creates = fake_cli.called("az", "group", "create")
    assert len(creates) == 1
    assert "clusters-rg" in creates[0]


def test_create_cluster_leaves_name_checks_to_api(cfg, fake_cli, api):
    fake_cli.add(["az", "group", "exists"], "false")

    commands.create_cluster("Demo")

    api.post.assert_called_once()
    assert api.post.call_args.args[1]["name"] == "Demo"
    assert api.post.call_args.kwargs["params"] == {"azure_cluster_id": "Demo"}


def test_create_nodepool_leaves_name_checks_to_api(cfg, fake_cli, api):
    commands.create_nodepool("demo", "Pool_1")

    api.post.assert_called_once()
    assert api.post.call_args.args[1]["name"] == "Pool_1"


def test_create_cluster_skips_existing_resource_group(cfg, fake_cli, api):
    commands.create_cluster("demo")

    assert fake_cli.called("az", "group", "create") == []


def test_create_cluster_requires_application(cfg, fake_cli, api):
    fake_cli.add(["az", "ad", "app", "list"], "")

    with pytest.raises(MissingResourceError, match="create-secret"):
        commands.create_cluster("demo")

    api.post.assert_not_called()


def test_create_cluster_uses_gcloud_account_as_default_admin(
        tmp_path, monkeypatch, fake_cli, api):
    from anthos_azure.config import initialize_config
    from conftest import BASE_ENV
    monkeypatch.chdir(tmp_path)
    env = {k: v for k, v in BASE_ENV.items() if k != "ADMIN_USER"}
    initialize_config(environ={**env, "SSH_KEY_DIR": str(tmp_path)})

    commands.create_cluster("demo")

    payload = api.post.call_args.args[1]
    assert payload["authorization"]["adminUsers"] == [
        {"username": "user@example.com"}]


def test_get_cluster(cfg, fake_cli, api):
    api.get.return_value = {"name": "demo"}

    assert commands.get_cluster("demo") == {"name": "demo"}
    api.get.assert_called_once_with("azureClusters/demo")


def test_list_clusters_projects_fields(cfg, fake_cli, api):
    api.get.return_value = {"azureClusters": [{
        "name": "projects/p/locations/us-east4/azureClusters/demo",
        "state": "RUNNING",
        "azureRegion": "eastus",
        "endpoint": "10.0.1.4",
        "controlPlane": {"version": "1.28.3-gke.200",
                         "vmSize": "Standard_DS2_v2"},
        "uid": "ignored",
    }]}

    assert commands.list_clusters() == [{
        "name": "demo",
        "state": "RUNNING",
        "azureRegion": "eastus",
        "version": "1.28.3-gke.200",
        "vmSize": "Standard_DS2_v2",
        "endpoint": "10.0.1.4",
    }]
    api.get.assert_called_once_with("azureClusters")


def test_list_clusters_empty_response(cfg, fake_cli, api):
    api.get.return_value = {}

    assert commands.list_clusters() == []


def test_delete_cluster(cfg, fake_cli, api):
    assert commands.delete_cluster("demo")["name"] == "operations/op-2"
    api.delete.assert_called_once_with("azureClusters/demo")
    api.post.assert_not_called()


#############
# Node pool #
#############

def test_create_nodepool_posts_one_request(cfg, fake_cli, api):
    commands.create_nodepool("demo", "pool-1")

    api.post.assert_called_once()
    path, payload = api.post.call_args.args
    assert path == "azureClusters/demo/azureNodePools"
    assert api.post.call_args.kwargs["params"] == {
        "azure_node_pool_id": "pool-1"}
    assert payload["name"] == "pool-1"
    assert payload["subnetId"] == SUBNET_ID
    assert payload["config"]["vmSize"] == cfg.NODE_VM_SIZE
    assert payload["autoscaling"] == {"minNodeCount": 1, "maxNodeCount": 3}
    assert payload["maxPodsConstraint"] == {"maxPodsPerNode": 110}
    assert os.path.exists(os.path.join(cfg.SSH_KEY_DIR, "demo-ssh-key.pub"))


def test_get_list_delete_nodepool(cfg, fake_cli, api):
    api.get.return_value = {"azureNodePools": [{
        "name": "projects/p/locations/l/azureClusters/demo/azureNodePools/np",
        "state": "RUNNING",
        "version": "1.28.3-gke.200",
        "config": {"vmSize": "Standard_DS2_v2"},
        "autoscaling": {"minNodeCount": 1, "maxNodeCount": 3},
    }]}

    listed = commands.list_nodepools("demo")
    commands.get_nodepool("demo", "np")
    commands.delete_nodepool("demo", "np")

    assert listed[0]["name"] == "np"
    assert listed[0]["maxNodeCount"] == 3
    assert [c.args[0] for c in api.get.call_args_list] == [
        "azureClusters/demo/azureNodePools",
        "azureClusters/demo/azureNodePools/np",
    ]
    api.delete.assert_called_once_with("azureClusters/demo/azureNodePools/np")


##############
# Operations #
##############

def test_get_operation_accepts_full_name(cfg, fake_cli, api):
    commands.get_operation(
        "projects/demo-project/locations/us-east4/operations/op-42")

    api.get.assert_called_once_with("operations/op-42")


def test_list_operations_projects_metadata(cfg, fake_cli, api):
    api.get.return_value = {"operations": [{
        "name": "projects/p/locations/l/operations/op-1",
        "done": True,
        "metadata": {"verb": "create", "target": "azureClusters/demo",
                     "createTime": "2026-01-01T00:00:00Z"},
    }]}

    assert commands.list_operations() == [{
        "name": "op-1",
        "done": True,
        "verb": "create",
        "target": "azureClusters/demo",
        "createTime": "2026-01-01T00:00:00Z",
    }]


def test_get_environment(cfg, fake_cli, api):
    api.get.return_value = {"validVersions": [{"version": "1.28.3-gke.200"}]}

    assert commands.get_environment()["validVersions"]
    api.get.assert_called_once_with("azureServerConfig")


###############
# Credentials #
###############

def test_get_credentials_writes_kubeconfig(cfg, fake_cli, api):
    _api_get_router(api, {
        "azureClusters/demo": {"endpoint": "10.0.1.4",
                               "clusterCaCertificate": CA_PEM},
        "azureClusters/demo:generateAzureAccessToken": {
            "accessToken": "cluster-token"},
    })

    result = commands.get_credentials("demo")

    context = "gke_azure_demo-project_us-east4_demo"
    assert result == {"context": context,
                      "kubeconfig": cfg.KUBECONFIG_PATH,
                      "backup": None}
    with open(cfg.KUBECONFIG_PATH) as f:
        written = yaml.safe_load(f)
    assert written["current-context"] == context
    assert written["clusters"][0]["cluster"]["server"] == "https://10.0.1.4"
    assert written["users"][0]["user"]["token"] == "cluster-token"


def test_get_credentials_backs_up_existing_kubeconfig(cfg, fake_cli, api):
    os.makedirs(os.path.dirname(cfg.KUBECONFIG_PATH))
    with open(cfg.KUBECONFIG_PATH, "w") as f:
        yaml.safe_dump({"apiVersion": "v1", "kind": "Config",
                        "clusters": [], "contexts": [], "users": [],
                        "current-context": "other"}, f)
    _api_get_router(api, {
        "azureClusters/demo": {"endpoint": "10.0.1.4",
                               "clusterCaCertificate": CA_PEM},
        "azureClusters/demo:generateAzureAccessToken": {
            "accessToken": "cluster-token"},
    })

    result = commands.get_credentials("demo")

    backups = [name for name in os.listdir(os.path.dirname(
        cfg.KUBECONFIG_PATH)) if name.endswith(".bak")]
    assert len(backups) == 1
    assert result["backup"].endswith(backups[0])


def test_get_credentials_requires_endpoint(cfg, fake_cli, api):
    api.get.return_value = {"state": "PROVISIONING"}

    with pytest.raises(MissingResourceError, match="PROVISIONING"):
        commands.get_credentials("demo")

    assert not os.path.exists(cfg.KUBECONFIG_PATH)


#########
# Fleet #
#########

def test_register_runs_steps_in_order(cfg, fake_cli):
    result = commands.register("demo")

    steps = [call[1:4] for call in fake_cli.calls if call[0] == "gcloud"]
    assert steps == [
        ["iam", "service-accounts", "create"],
        ["projects", "add-iam-policy-binding", "demo-project"],
        ["iam", "service-accounts", "keys"],
        ["container", "fleet", "memberships"],
    ]
    binding = fake_cli.called("gcloud", "projects", "add-iam-policy-binding")[0]
    condition = binding[binding.index("--condition") + 1]
    assert ("projects/demo-project/locations/global/memberships/demo"
            in condition)
    register_call = fake_cli.called("gcloud", "container", "fleet")[0]
    assert "gke_azure_demo-project_us-east4_demo" in register_call
    assert result["serviceAccount"] == (
        "demo-connect-sa@demo-project.iam.gserviceaccount.com")


def test_register_stops_on_first_failure(cfg, fake_cli):
    fake_cli.add(["gcloud", "projects", "add-iam-policy-binding"], fail=True)

    with pytest.raises(ExternalCommandError):
        commands.register("demo")

    assert fake_cli.called("gcloud", "container", "fleet") == []


def test_unregister_continues_past_failures(cfg, fake_cli):
    fake_cli.add(["gcloud", "container", "fleet", "memberships",
                  "unregister"], fail=True)
    os.makedirs(cfg.SSH_KEY_DIR)
    key_file = os.path.join(cfg.SSH_KEY_DIR, "demo-connect-sa-key.json")
    with open(key_file, "w") as f:
        f.write("{}")

    result = commands.unregister("demo")

    assert result["failed"] == ["unregister_membership"]
    assert result["completed"] == ["remove_iam_binding",
                                   "delete_service_account",
                                   "delete_key_file"]
    assert not os.path.exists(key_file)
    assert len(fake_cli.called("gcloud", "iam", "service-accounts",
                               "delete")) == 1


def test_unregister_tolerates_missing_key_file(cfg, fake_cli):
    result = commands.unregister("demo")

    assert result["failed"] == ["delete_key_file"]
