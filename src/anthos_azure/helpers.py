"""
# Anthos on Azure CLI - Helper Utilities

This module provides common, reusable utility functions that are shared across
the application, such as logging formatters and response projections.
"""

from datetime import datetime


def get_error_log_extra(err, context):
    """
    Creates a standard 'extra' dict for logging exceptions.

    Args:
        err (Exception): The exception that occurred.
        context (dict): The log context (e.g. {'context': 'ANTHOS-AZURE-API'}).

    Returns:
        dict: A dictionary formatted for the JSON logger.
    """
    return {
        **context,
        "error_type": type(err).__name__,
        "error_message": str(err)
    }


def last_segment(resource_name):
    """Returns the short name of a resource ('projects/p/.../demo' -> 'demo')."""
    if not isinstance(resource_name, str):
        return resource_name
    return resource_name.rstrip('/').rsplit('/', 1)[-1]


def get_path(data, path, default=None):
    """
    Reads a dotted path ('controlPlane.version') from nested dictionaries.

    Returns the default if any part of the path is missing.
    """
    cur = data
    for part in path.split('.'):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur


def project_fields(item, fields):
    """
    Projects a single API resource onto a flat dictionary.

    Args:
        item (dict): The resource as returned by the API.
        fields (dict): Output key -> dotted source path. The 'name' key is
                       shortened to the last segment of the resource name.

    Returns:
        dict: The projected resource.
    """
    projected = {}
    for key, path in fields.items():
        value = get_path(item, path)
        if key == 'name':
            value = last_segment(value)
        projected[key] = value
    return projected


def project_list(response, collection_key, fields):
    """Projects every item of a list response; a missing key means no items."""
    items = (response or {}).get(collection_key, [])
    return [project_fields(item, fields) for item in items]


def backup_timestamp(now=None):
    """Returns the timestamp suffix used for kubeconfig backups."""
    now = now or datetime.now()
    return now.strftime('%Y%m%d-%H%M%S-%f')
