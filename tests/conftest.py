"""Shared fixtures: configuration, a recording fake for az/gcloud, API mock."""

from unittest.mock import MagicMock

import pytest

from anthos_azure import clients, ssh_keys
from anthos_azure import config as config_module
from anthos_azure.errors import ExternalCommandError

SUBSCRIPTION_ID = "00000000-1111-2222-3333-444444444444"
TENANT_ID = "tenant-5678"
APPLICATION_ID = "app-9012"
PROJECT_NUMBER = "123456789012"
RG_ID = f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/clusters-rg"
VNET_ID = (f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/vnet-rg"
           "/providers/Microsoft.Network/virtualNetworks/anthos-vnet")
SUBNET_ID = f"{VNET_ID}/subnets/default"

BASE_ENV = {
    "GCP_PROJECT": "demo-project",
    "GCP_REGION": "us-east4",
    "AZURE_REGION": "eastus",
    "CLUSTER_RESOURCE_GROUP": "clusters-rg",
    "VNET_RESOURCE_GROUP": "vnet-rg",
    "VNET_NAME": "anthos-vnet",
    "SUBNET_NAME": "default",
    "ADMIN_USER": "admin@example.com",
}


class FakeCli:
    """Stands in for clients.run_command and records every command."""

    def __init__(self):
        self.calls = []
        self._responses = []

    def add(self, prefix, output="", fail=False):
        self._responses.insert(0, (tuple(prefix), output, fail))

    def __call__(self, command):
        self.calls.append(list(command))
        for prefix, output, fail in self._responses:
            if tuple(command[:len(prefix)]) == prefix:
                if fail:
                    raise ExternalCommandError(
                        f"{' '.join(command)} failed", command=command,
                        returncode=1, stderr="boom")
                return output
        return ""

    def called(self, *prefix):
        return [call for call in self.calls
                if tuple(call[:len(prefix)]) == prefix]


@pytest.fixture(autouse=True)
def fresh_config():
    config_module.reset_config()
    yield
    config_module.reset_config()


@pytest.fixture(autouse=True)
def small_ssh_keys(monkeypatch):
    monkeypatch.setattr(ssh_keys, "KEY_SIZE", 2048)


@pytest.fixture
def cfg(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    env = {
        **BASE_ENV,
        "SSH_KEY_DIR": str(tmp_path / "keys"),
        "KUBECONFIG_PATH": str(tmp_path / "kube" / "config"),
    }
    return config_module.initialize_config(environ=env)


@pytest.fixture
def fake_cli(monkeypatch):
    fake = FakeCli()
    fake.add(["az", "account", "show"],
             f'{{"subscriptionId": "{SUBSCRIPTION_ID}", '
             f'"tenantId": "{TENANT_ID}"}}')
    fake.add(["az", "group", "exists"], "true")
    fake.add(["az", "group", "show"], RG_ID)
    fake.add(["az", "network", "vnet", "show"], VNET_ID)
    fake.add(["az", "network", "vnet", "subnet", "show"], SUBNET_ID)
    fake.add(["az", "ad", "app", "list"], APPLICATION_ID)
    fake.add(["az", "ad", "sp", "list"], "sp-3456")
    fake.add(["gcloud", "projects", "describe"], PROJECT_NUMBER)
    fake.add(["gcloud", "auth", "print-access-token"], "token-abc")
    fake.add(["gcloud", "config", "get-value", "account"],
             "user@example.com")
    monkeypatch.setattr(clients, "run_command", fake)
    return fake


@pytest.fixture
def api(monkeypatch):
    client = MagicMock()
    client.get.return_value = {}
    client.post.return_value = {"name": "operations/op-1", "done": False}
    client.delete.return_value = {"name": "operations/op-2", "done": False}
    monkeypatch.setattr("anthos_azure.commands.init_api_client",
                        lambda cfg, project_id, token_provider: client)
    return client
