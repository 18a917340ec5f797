"""
# Anthos on Azure CLI Package

It exposes the core components of the package
1. Custom error classes
2. The configuration loader
3. The command operations used by the CLI dispatcher
"""

__version__ = "0.1.0"

# Expose all public error classes
from .errors import (
    AnthosAzureError,
    ConfigLoadError,
    ExternalCommandError,
    ApiError,
    PayloadError,
    MissingResourceError,
    SSHKeyError,
    KubeconfigError
)

from .config import initialize_config, get_config

# Define the public APIs for the package
__all__ = [
    "__version__",

    # Configuration
    "initialize_config",
    "get_config",

    # Errors
    "AnthosAzureError",
    "ConfigLoadError",
    "ExternalCommandError",
    "ApiError",
    "PayloadError",
    "MissingResourceError",
    "SSHKeyError",
    "KubeconfigError"
]
