"""
# Kubeconfig generation and merging for Anthos clusters on Azure.

This module is responsible for:
1.  Building a standalone kubeconfig for one cluster from its endpoint, CA
    certificate and an access token.
2.  Merging it into the shared kubeconfig file. The existing file is always
    copied to a timestamped backup before it is overwritten, and the current
    context is switched to the cluster that was just added.

There is no locking and no atomic replace: a crash between the backup and
the write leaves the backup as the last good copy.
"""

import base64
import functools
import logging
import os
import shutil
import yaml
from .errors import KubeconfigError
from .helpers import backup_timestamp, get_error_log_extra

__all__ = [
    "context_name",
    "build_kubeconfig",
    "merge_kubeconfig"
]

_LOG_CONTEXT = {
    "context": "ANTHOS-AZURE-KUBECONFIG"
}

_NAMED_SECTIONS = ("clusters", "contexts", "users")

log = logging.getLogger(__name__)


def context_name(project_id, region, cluster_name):
    """Kubeconfig context name for a cluster, following gcloud's naming."""
    return f"gke_azure_{project_id}_{region}_{cluster_name}"


def build_kubeconfig(context, server, ca_certificate, token):
    """
    Builds a single-cluster kubeconfig.

    Args:
        context (str): Name used for the cluster, user and context entries.
        server (str): The API server URL.
        ca_certificate (str): The PEM encoded cluster CA certificate.
        token (str): A bearer token for the cluster.

    Returns:
        dict: The kubeconfig structure.
    """

    ca_data = base64.b64encode(ca_certificate.encode("utf-8")).decode("ascii")
    return {
        "apiVersion": "v1",
        "kind": "Config",
        "preferences": {},
        "clusters": [{
            "name": context,
            "cluster": {
                "certificate-authority-data": ca_data,
                "server": server
            }
        }],
        "contexts": [{
            "name": context,
            "context": {
                "cluster": context,
                "user": context
            }
        }],
        "current-context": context,
        "users": [{
            "name": context,
            "user": {
                "token": token
            }
        }]
    }


def _load(path):
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        log.error(
            "Unable to read kubeconfig.",
            extra=get_error_log_extra(e, {**_LOG_CONTEXT, "path": path})
        )
        raise KubeconfigError(f"Unable to read kubeconfig {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise KubeconfigError(f"Kubeconfig {path} is not a mapping.")
    return data


def _merge_named(existing, additions):
    """Replaces entries with the same name and appends new ones."""
    names = {entry.get("name") for entry in additions}
    merged = [entry for entry in (existing or [])
              if entry.get("name") not in names]
    merged.extend(additions)
    return merged


def merge_kubeconfig(new_config, path):
    """
    Merges a kubeconfig into the shared file and activates its context.

    Args:
        new_config (dict): The kubeconfig to add, with 'current-context' set.
        path (str): The shared kubeconfig file.

    Raises:
        KubeconfigError: If the file cannot be read, backed up or written.

    Returns:
        str: The backup file path, or None if there was no file to back up.
    """

    log_extra = {**_LOG_CONTEXT, "path": path,
                 "kube_context": new_config.get("current-context")}
    backup_path = None

    if os.path.exists(path):
        existing = _load(path)
        backup_path = f"{path}.{backup_timestamp()}.bak"
        try:
            shutil.copy2(path, backup_path)
        except OSError as e:
            raise KubeconfigError(
                f"Unable to back up kubeconfig {path}: {e}") from e
        log.info("Kubeconfig backed up.",
                 extra={**log_extra, "backup_path": backup_path})
    else:
        existing = {}

    merged = dict(existing)
    merged.setdefault("apiVersion", "v1")
    merged.setdefault("kind", "Config")
    merged.setdefault("preferences", {})
    for section in _NAMED_SECTIONS:
        merged[section] = _merge_named(existing.get(section),
                                       new_config.get(section, []))
    merged["current-context"] = new_config["current-context"]

    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(
                path,
                "w",
                opener=functools.partial(os.open, mode=0o600),
        ) as f:
            yaml.safe_dump(merged, f, default_flow_style=False)
        # mode only applies on create; tighten files that already existed
        os.chmod(path, 0o600)
    except OSError as e:
        log.error("Unable to write kubeconfig.",
                  extra=get_error_log_extra(e, log_extra))
        raise KubeconfigError(f"Unable to write kubeconfig {path}: {e}") from e

    log.info("Kubeconfig merged and context switched.", extra=log_extra)
    return backup_path
