"""
# Core operations of the Anthos on Azure CLI.

Each public function implements one sub-command. The shape is always the
same: read the configuration, derive identifiers from az and gcloud, build
the request, issue the network operation and return a result for the CLI to
print. The first failure propagates; nothing is rolled back.
"""

import logging
from . import azure, fleet, gcp, kubeconfig, ssh_keys
from .clients import init_api_client
from .config import get_config
from .errors import MissingResourceError
from .helpers import last_segment, project_list
from .models import AzureClusterSpec, AzureNodePoolSpec, DerivedIdentifiers

# Define what this module exposes to other parts of the application
__all__ = [
    "create_network",
    "delete_network",
    "create_secret",
    "delete_secret",
    "create_cluster",
    "get_cluster",
    "list_clusters",
    "delete_cluster",
    "create_nodepool",
    "get_nodepool",
    "list_nodepools",
    "delete_nodepool",
    "get_operation",
    "list_operations",
    "get_environment",
    "get_credentials",
    "register",
    "unregister"
]

_MODULE_LOG_CONTEXT = {
    "context": "ANTHOS-AZURE-COMMANDS"
}

# Field projections for list output
_CLUSTER_FIELDS = {
    "name": "name",
    "state": "state",
    "azureRegion": "azureRegion",
    "version": "controlPlane.version",
    "vmSize": "controlPlane.vmSize",
    "endpoint": "endpoint"
}

_NODE_POOL_FIELDS = {
    "name": "name",
    "state": "state",
    "version": "version",
    "vmSize": "config.vmSize",
    "minNodeCount": "autoscaling.minNodeCount",
    "maxNodeCount": "autoscaling.maxNodeCount"
}

_OPERATION_FIELDS = {
    "name": "name",
    "done": "done",
    "verb": "metadata.verb",
    "target": "metadata.target",
    "createTime": "metadata.createTime"
}

log = logging.getLogger(__name__)


def _api_client(cfg):
    """Returns the API client and the project it is scoped to."""
    project_id = gcp.get_project_id(cfg.GCP_PROJECT)
    return init_api_client(cfg, project_id, gcp.get_access_token), project_id


def _clusters_path(cluster_name=None):
    return f"azureClusters/{cluster_name}" if cluster_name else "azureClusters"


def _node_pools_path(cluster_name, nodepool_name=None):
    path = f"{_clusters_path(cluster_name)}/azureNodePools"
    return f"{path}/{nodepool_name}" if nodepool_name else path


def resolve_identifiers(cfg, project_id):
    """
    Fetches every identifier a cluster request needs. Nothing is cached;
    each invocation asks az and gcloud again.

    Raises:
        MissingResourceError: If the Azure application does not exist yet.
    """

    application_id = azure.find_application_id(cfg.APPLICATION_NAME)
    if not application_id:
        raise MissingResourceError(
            f"Azure application '{cfg.APPLICATION_NAME}' not found. "
            "Run 'create-secret' first."
        )
    account = azure.get_account()
    return DerivedIdentifiers(
        project_id=project_id,
        project_number=gcp.get_project_number(project_id),
        subscription_id=account["subscription_id"],
        tenant_id=account["tenant_id"],
        application_id=application_id,
        resource_group_id=azure.get_resource_group_id(
            cfg.CLUSTER_RESOURCE_GROUP),
        vnet_id=azure.get_vnet_id(cfg.VNET_RESOURCE_GROUP, cfg.VNET_NAME),
        subnet_id=azure.get_subnet_id(cfg.VNET_RESOURCE_GROUP, cfg.VNET_NAME,
                                      cfg.SUBNET_NAME),
        admin_user=cfg.ADMIN_USER or gcp.get_active_account()
    )


###########
# Network #
###########

def create_network():
    return azure.create_network(get_config())


def delete_network():
    cfg = get_config()
    azure.delete_resource_group(cfg.VNET_RESOURCE_GROUP)
    return {"deletedResourceGroup": cfg.VNET_RESOURCE_GROUP}


##########
# Secret #
##########

def create_secret():
    """
    Creates the Azure AD application the API acts as: service principal,
    subscription role assignments, and a federated credential trusting the
    project's GKE Multi-Cloud service agent.
    """

    cfg = get_config()
    project_id = gcp.get_project_id(cfg.GCP_PROJECT)
    project_number = gcp.get_project_number(project_id)
    account = azure.get_account()
    scope = f"/subscriptions/{account['subscription_id']}"

    app_id = azure.find_application_id(cfg.APPLICATION_NAME)
    if app_id:
        log.info(
            "Reusing existing Azure AD application.",
            extra={**_MODULE_LOG_CONTEXT, "application_id": app_id}
        )
    else:
        app_id = azure.create_application(cfg.APPLICATION_NAME)

    azure.ensure_service_principal(app_id)
    for role in azure.SUBSCRIPTION_ROLES:
        azure.assign_role(app_id, role, scope)
    azure.create_federated_credential(
        app_id, f"gkemulticloud-{project_number}", project_number)

    return {
        "applicationName": cfg.APPLICATION_NAME,
        "applicationId": app_id,
        "tenantId": account["tenant_id"],
        "subscriptionId": account["subscription_id"]
    }


def delete_secret():
    cfg = get_config()
    app_id = azure.find_application_id(cfg.APPLICATION_NAME)
    if not app_id:
        raise MissingResourceError(
            f"Azure application '{cfg.APPLICATION_NAME}' not found."
        )
    account = azure.get_account()
    azure.delete_role_assignments(app_id,
                                  f"/subscriptions/{account['subscription_id']}")
    azure.delete_application(app_id)
    return {"deletedApplicationId": app_id}


###########
# Cluster #
###########

def create_cluster(cluster_name):
    cfg = get_config()
    log_extra = {**_MODULE_LOG_CONTEXT, "operation": "create_cluster",
                 "cluster": cluster_name}

    public_key = ssh_keys.get_or_generate_key_pair(cluster_name,
                                                   cfg.SSH_KEY_DIR)
    if not azure.resource_group_exists(cfg.CLUSTER_RESOURCE_GROUP):
        azure.create_resource_group(cfg.CLUSTER_RESOURCE_GROUP,
                                    cfg.AZURE_REGION)

    api, project_id = _api_client(cfg)
    ids = resolve_identifiers(cfg, project_id)
    payload = AzureClusterSpec.from_config(cfg, cluster_name, ids,
                                           public_key).to_payload()

    log.info("Submitting cluster create request.", extra=log_extra)
    return api.post(_clusters_path(), payload,
                    params={"azure_cluster_id": cluster_name})


def get_cluster(cluster_name):
    api, _ = _api_client(get_config())
    return api.get(_clusters_path(cluster_name))


def list_clusters():
    api, _ = _api_client(get_config())
    return project_list(api.get(_clusters_path()), "azureClusters",
                        _CLUSTER_FIELDS)


def delete_cluster(cluster_name):
    api, _ = _api_client(get_config())
    log.info("Submitting cluster delete request.",
             extra={**_MODULE_LOG_CONTEXT, "cluster": cluster_name})
    return api.delete(_clusters_path(cluster_name))


#############
# Node pool #
#############

def create_nodepool(cluster_name, nodepool_name):
    cfg = get_config()
    public_key = ssh_keys.get_or_generate_key_pair(cluster_name,
                                                   cfg.SSH_KEY_DIR)
    api, _ = _api_client(cfg)
    subnet_id = azure.get_subnet_id(cfg.VNET_RESOURCE_GROUP, cfg.VNET_NAME,
                                    cfg.SUBNET_NAME)
    payload = AzureNodePoolSpec.from_config(cfg, cluster_name, nodepool_name,
                                            subnet_id,
                                            public_key).to_payload()

    log.info(
        "Submitting node pool create request.",
        extra={**_MODULE_LOG_CONTEXT, "cluster": cluster_name,
               "nodepool": nodepool_name}
    )
    return api.post(_node_pools_path(cluster_name), payload,
                    params={"azure_node_pool_id": nodepool_name})


def get_nodepool(cluster_name, nodepool_name):
    api, _ = _api_client(get_config())
    return api.get(_node_pools_path(cluster_name, nodepool_name))


def list_nodepools(cluster_name):
    api, _ = _api_client(get_config())
    return project_list(api.get(_node_pools_path(cluster_name)),
                        "azureNodePools", _NODE_POOL_FIELDS)


def delete_nodepool(cluster_name, nodepool_name):
    api, _ = _api_client(get_config())
    log.info(
        "Submitting node pool delete request.",
        extra={**_MODULE_LOG_CONTEXT, "cluster": cluster_name,
               "nodepool": nodepool_name}
    )
    return api.delete(_node_pools_path(cluster_name, nodepool_name))


##############
# Operations #
##############

def get_operation(operation_id):
    api, _ = _api_client(get_config())
    return api.get(f"operations/{last_segment(operation_id)}")


def list_operations():
    api, _ = _api_client(get_config())
    return project_list(api.get("operations"), "operations",
                        _OPERATION_FIELDS)


def get_environment():
    """Supported Kubernetes versions and Azure regions for the location."""
    api, _ = _api_client(get_config())
    return api.get("azureServerConfig")


###############
# Credentials #
###############

def get_credentials(cluster_name):
    """
    Adds the cluster to the shared kubeconfig and makes it the current
    context. The previous kubeconfig is backed up first.
    """

    cfg = get_config()
    api, project_id = _api_client(cfg)

    cluster = api.get(_clusters_path(cluster_name))
    endpoint = cluster.get("endpoint")
    ca_certificate = cluster.get("clusterCaCertificate")
    if not endpoint or not ca_certificate:
        raise MissingResourceError(
            f"Cluster '{cluster_name}' has no endpoint yet "
            f"(state: {cluster.get('state', 'UNKNOWN')})."
        )

    token = api.get(
        f"{_clusters_path(cluster_name)}:generateAzureAccessToken"
    ).get("accessToken")
    if not token:
        raise MissingResourceError(
            f"No access token returned for cluster '{cluster_name}'."
        )

    context = kubeconfig.context_name(project_id, cfg.GCP_REGION,
                                      cluster_name)
    new_config = kubeconfig.build_kubeconfig(
        context, f"https://{endpoint}", ca_certificate, token)
    backup_path = kubeconfig.merge_kubeconfig(new_config,
                                              cfg.KUBECONFIG_PATH)
    return {
        "context": context,
        "kubeconfig": cfg.KUBECONFIG_PATH,
        "backup": backup_path
    }


#########
# Fleet #
#########

def register(cluster_name):
    cfg = get_config()
    project_id = gcp.get_project_id(cfg.GCP_PROJECT)
    context = kubeconfig.context_name(project_id, cfg.GCP_REGION,
                                      cluster_name)
    return fleet.register_cluster(cluster_name, project_id, context,
                                  cfg.KUBECONFIG_PATH, cfg.SSH_KEY_DIR)


def unregister(cluster_name):
    cfg = get_config()
    project_id = gcp.get_project_id(cfg.GCP_PROJECT)
    context = kubeconfig.context_name(project_id, cfg.GCP_REGION,
                                      cluster_name)
    return fleet.unregister_cluster(cluster_name, project_id, context,
                                    cfg.KUBECONFIG_PATH, cfg.SSH_KEY_DIR)
