"""
# Azure CLI operations used by the Anthos on Azure commands.

This module is responsible for:
1.  Looking up the identifiers the API needs (subscription, tenant, resource
    group, virtual network and subnet IDs, application IDs).
2.  Creating and deleting the network resource group, virtual network, subnet
    and NAT gateway.
3.  Creating and deleting the Azure AD application, its service principal,
    role assignments and federated credential used by the API.

Every function issues `az` commands through `clients.run_command` and lets
any failure propagate.
"""

import json
import logging
from . import clients

# Define what this module exposes to other parts of the application
__all__ = [
    "get_account",
    "resource_group_exists",
    "get_resource_group_id",
    "create_resource_group",
    "delete_resource_group",
    "get_vnet_id",
    "get_subnet_id",
    "create_network",
    "find_application_id",
    "create_application",
    "ensure_service_principal",
    "assign_role",
    "delete_role_assignments",
    "create_federated_credential",
    "delete_application",
    "SUBSCRIPTION_ROLES"
]

# A constant, shared context for all logs originating from this module
_MODULE_LOG_CONTEXT = {
    "context": "ANTHOS-AZURE-AZ"
}

# Roles the API application needs on the subscription.
SUBSCRIPTION_ROLES = [
    "Contributor",
    "User Access Administrator",
    "Key Vault Administrator"
]

# Google identity trusted by the federated credential.
_FEDERATION_ISSUER = "https://accounts.google.com"
_FEDERATION_AUDIENCE = "api://AzureADTokenExchange"
_FEDERATION_SUBJECT = (
    "service-{project_number}@gcp-sa-gkemulticloud.iam.gserviceaccount.com"
)

# Setup a module-level logger
log = logging.getLogger(__name__)


def _az(*args):
    return clients.run_command(["az", *args])


##################
# Identifiers    #
##################

def get_account():
    """
    Returns the subscription and tenant of the active Azure login.

    Returns:
        dict: {"subscription_id": str, "tenant_id": str}
    """

    account = clients.run_json_command([
        "az", "account", "show",
        "--query", "{subscriptionId:id, tenantId:tenantId}",
        "--output", "json"
    ]) or {}
    return {
        "subscription_id": account.get("subscriptionId"),
        "tenant_id": account.get("tenantId")
    }


def resource_group_exists(name):
    return _az("group", "exists", "--name", name).lower() == "true"


def get_resource_group_id(name):
    return _az("group", "show", "--name", name,
               "--query", "id", "--output", "tsv")


def get_vnet_id(resource_group, vnet_name):
    return _az("network", "vnet", "show",
               "--resource-group", resource_group,
               "--name", vnet_name,
               "--query", "id", "--output", "tsv")


def get_subnet_id(resource_group, vnet_name, subnet_name):
    return _az("network", "vnet", "subnet", "show",
               "--resource-group", resource_group,
               "--vnet-name", vnet_name,
               "--name", subnet_name,
               "--query", "id", "--output", "tsv")


##################
# Resource groups#
##################

def create_resource_group(name, location):
    log.info(
        "Creating resource group.",
        extra={**_MODULE_LOG_CONTEXT, "resource_group": name,
               "location": location}
    )
    return _az("group", "create", "--name", name, "--location", location,
               "--output", "none")


def delete_resource_group(name):
    """Deletes a resource group and everything in it, without prompting."""
    log.info(
        "Deleting resource group.",
        extra={**_MODULE_LOG_CONTEXT, "resource_group": name}
    )
    return _az("group", "delete", "--name", name, "--yes")


##################
# Network        #
##################

def create_network(cfg):
    """
    Creates the VNet resource group, virtual network, subnet and a NAT
    gateway for outbound traffic from the subnet.

    Args:
        cfg: The loaded configuration.

    Returns:
        dict: The resulting virtual network and subnet IDs.
    """

    rg = cfg.VNET_RESOURCE_GROUP
    location = cfg.AZURE_REGION
    log_extra = {
        **_MODULE_LOG_CONTEXT,
        "operation": "create_network",
        "resource_group": rg,
        "vnet": cfg.VNET_NAME
    }

    create_resource_group(rg, location)

    log.info("Creating virtual network.", extra=log_extra)
    _az("network", "vnet", "create",
        "--resource-group", rg,
        "--location", location,
        "--name", cfg.VNET_NAME,
        "--address-prefixes", cfg.VNET_ADDRESS_PREFIX,
        "--output", "none")

    log.info("Creating subnet.", extra=log_extra)
    _az("network", "vnet", "subnet", "create",
        "--resource-group", rg,
        "--vnet-name", cfg.VNET_NAME,
        "--name", cfg.SUBNET_NAME,
        "--address-prefixes", cfg.SUBNET_ADDRESS_PREFIX,
        "--output", "none")

    # NAT gateway for egress from the cluster subnet
    nat_ip_name = f"{cfg.VNET_NAME}-nat-ip"
    nat_gateway_name = f"{cfg.VNET_NAME}-nat-gateway"
    log.info("Creating NAT gateway.", extra=log_extra)
    _az("network", "public-ip", "create",
        "--resource-group", rg,
        "--location", location,
        "--name", nat_ip_name,
        "--sku", "Standard",
        "--output", "none")
    _az("network", "nat", "gateway", "create",
        "--resource-group", rg,
        "--location", location,
        "--name", nat_gateway_name,
        "--public-ip-addresses", nat_ip_name,
        "--output", "none")
    _az("network", "vnet", "subnet", "update",
        "--resource-group", rg,
        "--vnet-name", cfg.VNET_NAME,
        "--name", cfg.SUBNET_NAME,
        "--nat-gateway", nat_gateway_name,
        "--output", "none")

    log.info("Network created.", extra=log_extra)
    return {
        "virtualNetworkId": get_vnet_id(rg, cfg.VNET_NAME),
        "subnetId": get_subnet_id(rg, cfg.VNET_NAME, cfg.SUBNET_NAME)
    }


##################
# Application    #
##################

def find_application_id(display_name):
    """Returns the appId of the named Azure AD application, or None."""
    app_id = _az("ad", "app", "list",
                 "--display-name", display_name,
                 "--query", "[0].appId", "--output", "tsv")
    return app_id or None


def create_application(display_name):
    log.info(
        "Creating Azure AD application.",
        extra={**_MODULE_LOG_CONTEXT, "application": display_name}
    )
    return _az("ad", "app", "create",
               "--display-name", display_name,
               "--query", "appId", "--output", "tsv")


def ensure_service_principal(app_id):
    """Returns the service principal object ID, creating it when absent."""

    sp_id = _az("ad", "sp", "list",
                "--filter", f"appId eq '{app_id}'",
                "--query", "[0].id", "--output", "tsv")
    if sp_id:
        return sp_id
    log.info(
        "Creating service principal.",
        extra={**_MODULE_LOG_CONTEXT, "application_id": app_id}
    )
    return _az("ad", "sp", "create", "--id", app_id,
               "--query", "id", "--output", "tsv")


def assign_role(app_id, role, scope):
    log.info(
        "Assigning role.",
        extra={**_MODULE_LOG_CONTEXT, "application_id": app_id,
               "role": role, "scope": scope}
    )
    return _az("role", "assignment", "create",
               "--assignee", app_id,
               "--role", role,
               "--scope", scope,
               "--output", "none")


def delete_role_assignments(app_id, scope):
    for role in SUBSCRIPTION_ROLES:
        log.info(
            "Removing role assignment.",
            extra={**_MODULE_LOG_CONTEXT, "application_id": app_id,
                   "role": role, "scope": scope}
        )
        _az("role", "assignment", "delete",
            "--assignee", app_id,
            "--role", role,
            "--scope", scope)


def create_federated_credential(app_id, credential_name, project_number):
    """
    Lets the GKE Multi-Cloud service agent of the project exchange Google
    tokens for Azure tokens of this application. A credential with the same
    name is left as it is.
    """

    parameters = {
        "name": credential_name,
        "issuer": _FEDERATION_ISSUER,
        "subject": _FEDERATION_SUBJECT.format(project_number=project_number),
        "audiences": [_FEDERATION_AUDIENCE]
    }
    existing = _az("ad", "app", "federated-credential", "list",
                   "--id", app_id,
                   "--query", f"[?name=='{credential_name}'].name",
                   "--output", "tsv")
    if existing:
        log.info(
            "Reusing existing federated credential.",
            extra={**_MODULE_LOG_CONTEXT, "application_id": app_id,
                   "credential": credential_name}
        )
        return parameters

    log.info(
        "Creating federated credential.",
        extra={**_MODULE_LOG_CONTEXT, "application_id": app_id,
               "credential": credential_name}
    )
    _az("ad", "app", "federated-credential", "create",
        "--id", app_id,
        "--parameters", json.dumps(parameters),
        "--output", "none")
    return parameters


def delete_application(app_id):
    log.info(
        "Deleting Azure AD application.",
        extra={**_MODULE_LOG_CONTEXT, "application_id": app_id}
    )
    return _az("ad", "app", "delete", "--id", app_id)
