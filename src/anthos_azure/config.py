"""
# Configuration loader for the Anthos on Azure CLI

This module is responsible for loading, validating, and providing access to all
configuration parameters required by the commands. It follows a strict,
fail-fast approach:

1.  It reads `KEY=VALUE` settings from a shell-sourceable configuration file
    (`./anthos-azure.env`, or the path in `ANTHOS_AZURE_CONFIG`).
2.  Environment variables with the same names override values from the file.
3.  It performs validation to ensure all required keys are present and that
    numeric values are correctly formatted.
4.  If validation fails, it raises a custom `ConfigLoadError` with a clear
    error message. The CLI entry point reports it and exits with status 1.
5.  It exposes the configuration via a singleton instance, which provides
    read-only properties, preventing accidental modification at runtime.

Classes:
    _Config: The internal class that performs loading and provides properties.

Functions:
    initialize_config: Creates and validates the singleton instance.
    get_config: Returns the singleton, loading it on first use.
"""

import os
import logging
from dotenv import dotenv_values
from .errors import ConfigLoadError

# Define APIs of the module
__all__ = ["initialize_config", "get_config", "reset_config",
           "CONFIG_PATH_ENV", "DEFAULT_CONFIG_PATH"]

# Setup a module-level logger
log = logging.getLogger(__name__)

_LOG_CONTEXT = {
    "context": "ANTHOS-AZURE-CONFIG"
}

CONFIG_PATH_ENV = "ANTHOS_AZURE_CONFIG"
DEFAULT_CONFIG_PATH = "anthos-azure.env"

_REQUIRED_KEYS = [
    "GCP_REGION",
    "AZURE_REGION",
    "CLUSTER_RESOURCE_GROUP",
    "VNET_RESOURCE_GROUP",
    "VNET_NAME",
    "SUBNET_NAME"
]

_DEFAULTS = {
    "APPLICATION_NAME": "anthos-azure-app",
    "VNET_ADDRESS_PREFIX": "10.0.0.0/16",
    "SUBNET_ADDRESS_PREFIX": "10.0.1.0/24",
    "POD_ADDRESS_CIDR": "10.200.0.0/16",
    "SERVICE_ADDRESS_CIDR": "10.32.0.0/24",
    "CLUSTER_VERSION": "1.28.3-gke.200",
    "CONTROL_PLANE_VM_SIZE": "Standard_DS2_v2",
    "NODE_VM_SIZE": "Standard_DS2_v2",
    "NODE_ROOT_VOLUME_GIB": "32",
    "NODE_MIN_COUNT": "1",
    "NODE_MAX_COUNT": "3",
    "MAX_PODS_PER_NODE": "110",
    "NODE_AVAILABILITY_ZONE": "1",
    "API_VERSION": "v1",
    "KUBECONFIG_PATH": os.path.join("~", ".kube", "config"),
    "SSH_KEY_DIR": ".",
    "HTTP_TIMEOUT": "300",
    "LOG_LEVEL": "WARNING"
}

_INTEGER_KEYS = [
    "NODE_ROOT_VOLUME_GIB",
    "NODE_MIN_COUNT",
    "NODE_MAX_COUNT",
    "MAX_PODS_PER_NODE",
    "HTTP_TIMEOUT"
]


class _Config:
    """
    Holds immutable configuration data loaded from the file and environment.
    Exposes settings via read-only properties.
    """

    def __init__(self, path=None, environ=None):
        self._load_and_validate(path, os.environ if environ is None
                                else environ)

    # Public Read-only Properties
    @property
    def CONFIG_PATH(self):
        """The configuration file that was read, or None."""
        return self._CONFIG_PATH

    @property
    def GCP_PROJECT(self):
        """The Google Cloud project; None means ask gcloud."""
        return self._GCP_PROJECT

    @property
    def GCP_REGION(self):
        """The Google Cloud region hosting the GKE Multi-Cloud API."""
        return self._GCP_REGION

    @property
    def AZURE_REGION(self):
        """The Azure region for networks and clusters."""
        return self._AZURE_REGION

    @property
    def CLUSTER_RESOURCE_GROUP(self):
        """The Azure resource group holding cluster resources."""
        return self._CLUSTER_RESOURCE_GROUP

    @property
    def VNET_RESOURCE_GROUP(self):
        """The Azure resource group holding the virtual network."""
        return self._VNET_RESOURCE_GROUP

    @property
    def VNET_NAME(self):
        return self._VNET_NAME

    @property
    def VNET_ADDRESS_PREFIX(self):
        return self._VNET_ADDRESS_PREFIX

    @property
    def SUBNET_NAME(self):
        return self._SUBNET_NAME

    @property
    def SUBNET_ADDRESS_PREFIX(self):
        return self._SUBNET_ADDRESS_PREFIX

    @property
    def APPLICATION_NAME(self):
        """Display name of the Azure AD application used by the API."""
        return self._APPLICATION_NAME

    @property
    def ADMIN_USER(self):
        """Cluster admin; None means the active gcloud account."""
        return self._ADMIN_USER

    @property
    def POD_ADDRESS_CIDR(self):
        return self._POD_ADDRESS_CIDR

    @property
    def SERVICE_ADDRESS_CIDR(self):
        return self._SERVICE_ADDRESS_CIDR

    @property
    def CLUSTER_VERSION(self):
        """Kubernetes version for control plane and node pools."""
        return self._CLUSTER_VERSION

    @property
    def CONTROL_PLANE_VM_SIZE(self):
        return self._CONTROL_PLANE_VM_SIZE

    @property
    def NODE_VM_SIZE(self):
        return self._NODE_VM_SIZE

    @property
    def NODE_ROOT_VOLUME_GIB(self):
        return self._NODE_ROOT_VOLUME_GIB

    @property
    def NODE_MIN_COUNT(self):
        return self._NODE_MIN_COUNT

    @property
    def NODE_MAX_COUNT(self):
        return self._NODE_MAX_COUNT

    @property
    def MAX_PODS_PER_NODE(self):
        return self._MAX_PODS_PER_NODE

    @property
    def NODE_AVAILABILITY_ZONE(self):
        return self._NODE_AVAILABILITY_ZONE

    @property
    def API_VERSION(self):
        """The GKE Multi-Cloud API version segment (e.g. 'v1')."""
        return self._API_VERSION

    @property
    def API_ENDPOINT(self):
        """Base URL of the regional GKE Multi-Cloud API."""
        return self._API_ENDPOINT

    @property
    def KUBECONFIG_PATH(self):
        """The shared kubeconfig file, with '~' expanded."""
        return self._KUBECONFIG_PATH

    @property
    def SSH_KEY_DIR(self):
        """Directory for per-cluster SSH keys and fleet key files."""
        return self._SSH_KEY_DIR

    @property
    def HTTP_TIMEOUT(self):
        """Timeout in seconds for each API request."""
        return self._HTTP_TIMEOUT

    @property
    def LOG_LEVEL(self):
        return self._LOG_LEVEL

    def _read_file(self, path, environ):
        """
        Reads the key/value file. An explicitly configured file must exist;
        the default file is optional.
        """

        explicit_path = path or environ.get(CONFIG_PATH_ENV)
        config_path = explicit_path or DEFAULT_CONFIG_PATH

        if not os.path.isfile(config_path):
            if explicit_path:
                raise ConfigLoadError(
                    f"FATAL ERROR: Configuration file not found: {config_path}"
                )
            log.debug(
                "No configuration file found, using environment only.",
                extra={**_LOG_CONTEXT, "config_path": config_path}
            )
            return None, {}

        try:
            values = dotenv_values(config_path)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigLoadError(
                f"FATAL ERROR: Unable to read configuration file {config_path}"
            ) from e

        log.debug(
            "Configuration file loaded.",
            extra={**_LOG_CONTEXT, "config_path": config_path}
        )
        return config_path, {k: v for k, v in values.items() if v is not None}

    def _load_and_validate(self, path, environ):
        """
        Internal method to load and validate all configuration keys.
        Raises ConfigLoadError if any validation fails.
        """

        config_path, file_values = self._read_file(path, environ)
        self._CONFIG_PATH = config_path

        def lookup(key):
            value = environ.get(key)
            if value:
                return value
            return file_values.get(key) or _DEFAULTS.get(key)

        missing_keys = [key for key in _REQUIRED_KEYS if not lookup(key)]
        if missing_keys:
            error_msg = (
                "FATAL ERROR: Missing required configuration keys: "
                f"{', '.join(missing_keys)}"
            )
            raise ConfigLoadError(error_msg)

        try:
            integers = {key: int(lookup(key)) for key in _INTEGER_KEYS}
        except (ValueError, TypeError) as e:
            error_msg = (
                "FATAL ERROR: Malformed configuration value. "
                f"Ensure {', '.join(_INTEGER_KEYS)} are integers."
            )
            raise ConfigLoadError(error_msg) from e

        if integers["NODE_MIN_COUNT"] > integers["NODE_MAX_COUNT"]:
            raise ConfigLoadError(
                "FATAL ERROR: NODE_MIN_COUNT is greater than NODE_MAX_COUNT."
            )

        # Load all values into private attributes
        self._GCP_PROJECT = lookup("GCP_PROJECT")
        self._GCP_REGION = lookup("GCP_REGION")
        self._AZURE_REGION = lookup("AZURE_REGION")
        self._CLUSTER_RESOURCE_GROUP = lookup("CLUSTER_RESOURCE_GROUP")
        self._VNET_RESOURCE_GROUP = lookup("VNET_RESOURCE_GROUP")
        self._VNET_NAME = lookup("VNET_NAME")
        self._VNET_ADDRESS_PREFIX = lookup("VNET_ADDRESS_PREFIX")
        self._SUBNET_NAME = lookup("SUBNET_NAME")
        self._SUBNET_ADDRESS_PREFIX = lookup("SUBNET_ADDRESS_PREFIX")
        self._APPLICATION_NAME = lookup("APPLICATION_NAME")
        self._ADMIN_USER = lookup("ADMIN_USER")
        self._POD_ADDRESS_CIDR = lookup("POD_ADDRESS_CIDR")
        self._SERVICE_ADDRESS_CIDR = lookup("SERVICE_ADDRESS_CIDR")
        self._CLUSTER_VERSION = lookup("CLUSTER_VERSION")
        self._CONTROL_PLANE_VM_SIZE = lookup("CONTROL_PLANE_VM_SIZE")
        self._NODE_VM_SIZE = lookup("NODE_VM_SIZE")
        self._NODE_ROOT_VOLUME_GIB = integers["NODE_ROOT_VOLUME_GIB"]
        self._NODE_MIN_COUNT = integers["NODE_MIN_COUNT"]
        self._NODE_MAX_COUNT = integers["NODE_MAX_COUNT"]
        self._MAX_PODS_PER_NODE = integers["MAX_PODS_PER_NODE"]
        self._NODE_AVAILABILITY_ZONE = lookup("NODE_AVAILABILITY_ZONE")
        self._API_VERSION = lookup("API_VERSION")
        self._API_ENDPOINT = (
            lookup("API_ENDPOINT")
            or f"https://{self._GCP_REGION}-gkemulticloud.googleapis.com"
        ).rstrip('/')
        self._KUBECONFIG_PATH = os.path.expanduser(lookup("KUBECONFIG_PATH"))
        self._SSH_KEY_DIR = os.path.expanduser(lookup("SSH_KEY_DIR"))
        self._HTTP_TIMEOUT = integers["HTTP_TIMEOUT"]
        self._LOG_LEVEL = lookup("LOG_LEVEL")


# The global config object starts as None.
config = None


def initialize_config(path=None, environ=None):
    """
    Creates and validates the global config instance. This function should be
    called once per invocation, after the command line has been parsed.
    """
    global config
    if config is None:
        config = _Config(path, environ)
    return config


def get_config():
    """Returns the global config instance, loading it on first use."""
    return initialize_config()


def reset_config():
    """Drops the global config instance so the next call reloads it."""
    global config
    config = None
