"""
# Google Cloud CLI operations used by the Anthos on Azure commands.

This module wraps the `gcloud` calls for:
1.  Project and account lookups (project ID and number, active account).
2.  Short-lived access tokens for the GKE Multi-Cloud API.
3.  Fleet registration: service accounts, conditional IAM bindings, key files
    and fleet memberships.
"""

import logging
from . import clients
from .errors import ConfigLoadError

__all__ = [
    "get_project_id",
    "get_project_number",
    "get_active_account",
    "get_access_token",
    "create_service_account",
    "delete_service_account",
    "add_membership_binding",
    "remove_membership_binding",
    "create_service_account_key",
    "register_membership",
    "unregister_membership",
    "CONNECT_ROLE"
]

_MODULE_LOG_CONTEXT = {
    "context": "ANTHOS-AZURE-GCLOUD"
}

CONNECT_ROLE = "roles/gkehub.connect"

log = logging.getLogger(__name__)


def _gcloud(*args):
    return clients.run_command(["gcloud", *args])


def get_project_id(configured=None):
    """Returns the configured project, falling back to gcloud's default."""

    if configured:
        return configured
    project_id = _gcloud("config", "get-value", "project")
    if not project_id or project_id == "(unset)":
        raise ConfigLoadError(
            "FATAL ERROR: No Google Cloud project. Set GCP_PROJECT or run "
            "'gcloud config set project'."
        )
    return project_id


def get_project_number(project_id):
    return _gcloud("projects", "describe", project_id,
                   "--format", "value(projectNumber)")


def get_active_account():
    return _gcloud("config", "get-value", "account")


def get_access_token():
    log.debug("Requesting access token.", extra=_MODULE_LOG_CONTEXT)
    return _gcloud("auth", "print-access-token")


def service_account_email(account_id, project_id):
    return f"{account_id}@{project_id}.iam.gserviceaccount.com"


def membership_resource(project_id, membership):
    return f"projects/{project_id}/locations/global/memberships/{membership}"


def _membership_condition(project_id, membership):
    resource = membership_resource(project_id, membership)
    return (
        f"expression=resource.name == '{resource}',"
        f"title=bind-{membership}-to-connect-sa"
    )


def create_service_account(account_id, project_id, display_name):
    log.info(
        "Creating service account.",
        extra={**_MODULE_LOG_CONTEXT, "service_account": account_id,
               "project_id": project_id}
    )
    return _gcloud("iam", "service-accounts", "create", account_id,
                   "--project", project_id,
                   "--display-name", display_name)


def delete_service_account(account_id, project_id):
    return _gcloud("iam", "service-accounts", "delete",
                   service_account_email(account_id, project_id),
                   "--project", project_id,
                   "--quiet")


def add_membership_binding(account_id, project_id, membership):
    """Grants the connect role, restricted to a single fleet membership."""
    log.info(
        "Binding connect role to membership.",
        extra={**_MODULE_LOG_CONTEXT, "service_account": account_id,
               "membership": membership, "role": CONNECT_ROLE}
    )
    return _gcloud("projects", "add-iam-policy-binding", project_id,
                   "--member", "serviceAccount:"
                   f"{service_account_email(account_id, project_id)}",
                   "--role", CONNECT_ROLE,
                   "--condition",
                   _membership_condition(project_id, membership),
                   "--format", "none")


def remove_membership_binding(account_id, project_id, membership):
    return _gcloud("projects", "remove-iam-policy-binding", project_id,
                   "--member", "serviceAccount:"
                   f"{service_account_email(account_id, project_id)}",
                   "--role", CONNECT_ROLE,
                   "--condition",
                   _membership_condition(project_id, membership),
                   "--format", "none")


def create_service_account_key(account_id, project_id, key_path):
    log.info(
        "Creating service account key.",
        extra={**_MODULE_LOG_CONTEXT, "service_account": account_id,
               "key_path": key_path}
    )
    return _gcloud("iam", "service-accounts", "keys", "create", key_path,
                   "--iam-account",
                   service_account_email(account_id, project_id),
                   "--project", project_id)


def register_membership(membership, project_id, context, kubeconfig_path,
                        key_path):
    log.info(
        "Registering fleet membership.",
        extra={**_MODULE_LOG_CONTEXT, "membership": membership,
               "kube_context": context}
    )
    return _gcloud("container", "fleet", "memberships", "register",
                   membership,
                   "--project", project_id,
                   "--context", context,
                   "--kubeconfig", kubeconfig_path,
                   "--service-account-key-file", key_path,
                   "--quiet")


def unregister_membership(membership, project_id, context, kubeconfig_path):
    return _gcloud("container", "fleet", "memberships", "unregister",
                   membership,
                   "--project", project_id,
                   "--context", context,
                   "--kubeconfig", kubeconfig_path,
                   "--quiet")
