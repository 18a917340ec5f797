"""
# Fleet registration for Anthos clusters on Azure.

This module is responsible for:
1.  Creating a dedicated Google service account per cluster.
2.  Binding the connect role to it, scoped by an IAM condition to the
    cluster's own fleet membership resource.
3.  Generating a key file for the service account.
4.  Registering the cluster as a fleet membership with that key.

Unregistration reverses these steps best-effort: a failing step is logged
and the remaining steps still run.
"""

import logging
import os
from . import gcp
from .errors import ExternalCommandError
from .helpers import get_error_log_extra

__all__ = ["register_cluster", "unregister_cluster",
           "service_account_id", "key_file_path"]

_MODULE_LOG_CONTEXT = {
    "context": "ANTHOS-AZURE-FLEET"
}

# Service account IDs are limited to 30 characters.
_SA_ID_MAX_LENGTH = 30

log = logging.getLogger(__name__)


def service_account_id(cluster_name):
    """Returns the connect service account ID for a cluster."""
    return f"{cluster_name}-connect-sa"[:_SA_ID_MAX_LENGTH].rstrip('-')


def key_file_path(cluster_name, key_dir):
    return os.path.join(key_dir, f"{cluster_name}-connect-sa-key.json")


def register_cluster(cluster_name, project_id, context, kubeconfig_path,
                     key_dir):
    """
    Registers a cluster with the project's fleet. Fails on the first error.

    Args:
        cluster_name (str): The cluster, also used as the membership name.
        project_id (str): The fleet host project.
        context (str): The kubeconfig context of the cluster.
        kubeconfig_path (str): The kubeconfig file holding the context.
        key_dir (str): Directory for the service account key file.

    Returns:
        dict: Membership, service account and key file details.
    """

    account_id = service_account_id(cluster_name)
    key_path = key_file_path(cluster_name, key_dir)
    log_extra = {
        **_MODULE_LOG_CONTEXT,
        "operation": "register",
        "membership": cluster_name,
        "service_account": account_id
    }
    log.debug("Registering cluster with fleet.", extra=log_extra)

    gcp.create_service_account(account_id, project_id,
                               f"Fleet connect agent for {cluster_name}")
    gcp.add_membership_binding(account_id, project_id, cluster_name)
    gcp.create_service_account_key(account_id, project_id, key_path)
    gcp.register_membership(cluster_name, project_id, context,
                            kubeconfig_path, key_path)

    log.debug("Cluster registered.", extra=log_extra)
    return {
        "membership": gcp.membership_resource(project_id, cluster_name),
        "serviceAccount": gcp.service_account_email(account_id, project_id),
        "keyFile": key_path
    }


def unregister_cluster(cluster_name, project_id, context, kubeconfig_path,
                       key_dir):
    """
    Removes the fleet membership and its service account, best-effort.

    Returns:
        dict: The membership name, completed steps and failed steps.
    """

    account_id = service_account_id(cluster_name)
    key_path = key_file_path(cluster_name, key_dir)
    log_extra = {
        **_MODULE_LOG_CONTEXT,
        "operation": "unregister",
        "membership": cluster_name,
        "service_account": account_id
    }

    steps = [
        ("unregister_membership",
         lambda: gcp.unregister_membership(cluster_name, project_id, context,
                                           kubeconfig_path)),
        ("remove_iam_binding",
         lambda: gcp.remove_membership_binding(account_id, project_id,
                                               cluster_name)),
        ("delete_service_account",
         lambda: gcp.delete_service_account(account_id, project_id)),
        ("delete_key_file",
         lambda: os.remove(key_path))
    ]

    completed, failed = [], []
    for step_name, step in steps:
        try:
            step()
            completed.append(step_name)
        except (ExternalCommandError, OSError) as e:
            log.warning(
                "Unregister step failed, continuing.",
                extra={**get_error_log_extra(e, log_extra),
                       "step": step_name}
            )
            failed.append(step_name)

    return {
        "membership": gcp.membership_resource(project_id, cluster_name),
        "completed": completed,
        "failed": failed
    }
