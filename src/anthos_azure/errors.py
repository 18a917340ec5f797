"""
# Custom Errors for the Anthos on Azure CLI

This module defines all custom error classes used by the CLI. Every error the
command layer raises derives from `AnthosAzureError`, so the entry point can
report it and exit with a non-zero status.
"""

import logging

LOG = logging.getLogger(__name__)


class AnthosAzureError(Exception):
    """Base class for all errors raised by the CLI."""
    pass


class ConfigLoadError(AnthosAzureError):
    """Custom exception for fatal configuration loading errors."""
    pass


class ExternalCommandError(AnthosAzureError):
    """Raised when a wrapped CLI (az, gcloud) is missing or fails."""

    def __init__(self, message, command=None, returncode=None, stderr=None):
        """
        Initializes the exception with the failing command details.

        Args:
            message (str): The error message.
            command (list): The command and arguments that were executed.
            returncode (int): The exit status of the command, if it ran.
            stderr (str): The captured standard error of the command.
        """
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class ApiError(AnthosAzureError):
    """Raised for errors returned by the GKE Multi-Cloud API."""

    def __init__(self, message, status_code=None, response_text=None):
        """
        Initializes the exception with the HTTP response details.

        Args:
            message (str): The error message.
            status_code (int): The HTTP status code, if a response arrived.
            response_text (str): The raw response body.
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class PayloadError(AnthosAzureError):
    """Raised when a request body fails JSON schema validation."""
    pass


class MissingResourceError(AnthosAzureError):
    """Raised when a resource a command depends on does not exist."""
    pass


class SSHKeyError(AnthosAzureError):
    """Raised for errors related to the per-cluster SSH key pair."""
    pass


class KubeconfigError(AnthosAzureError):
    """Raised for errors while building or merging kubeconfig files."""
    pass
