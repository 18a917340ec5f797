"""
# Initializes and wraps all external service clients (az, gcloud, REST API).

Two kinds of collaborators are used by the commands:

1.  The Azure and Google Cloud CLIs, invoked through `run_command`. All
    subprocess calls go through this single function, so a failing or missing
    executable always surfaces as an `ExternalCommandError`.
2.  The GKE Multi-Cloud REST API, accessed through `MulticloudApiClient`, a
    thin `requests.Session` wrapper that scopes every path to the project and
    location and authenticates with a short-lived gcloud access token.

Nothing here retries. The first failure propagates to the command.
"""

import json
import logging
import subprocess
import requests
from .errors import ExternalCommandError, ApiError
from .helpers import get_error_log_extra

# A constant, shared context for all logs originating from this module
_LOG_CONTEXT = {
    "context": "ANTHOS-AZURE-CLIENTS"
}

# Define the public API of this module.
__all__ = [
    "run_command",
    "run_json_command",
    "MulticloudApiClient",
    "init_api_client"
]

# Setup a module-level logger
log = logging.getLogger(__name__)


def run_command(command):
    """
    Executes an external command and returns its standard output.

    Args:
        command (list): The command and arguments to execute.

    Raises:
        ExternalCommandError: If the executable is not found or exits with a
                              non-zero status.

    Returns:
        str: The decoded, stripped stdout from the command.
    """

    log_extra = {**_LOG_CONTEXT, "command": " ".join(command)}
    log.debug("Running external command.", extra=log_extra)
    try:
        # shell=False keeps user-provided names out of shell parsing.
        process = subprocess.run(
            command,
            check=True,
            capture_output=True,
            text=True
        )
    except FileNotFoundError as e:
        log.error(
            "External command not found.",
            extra=get_error_log_extra(e, log_extra)
        )
        raise ExternalCommandError(
            f"The command '{command[0]}' was not found. "
            "Please ensure it is installed and in your PATH.",
            command=command
        ) from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        log.error(
            "External command failed.",
            extra={
                **get_error_log_extra(e, log_extra),
                "returncode": e.returncode,
                "stderr": stderr
            }
        )
        raise ExternalCommandError(
            f"Command '{' '.join(command)}' failed with exit status "
            f"{e.returncode}: {stderr}",
            command=command,
            returncode=e.returncode,
            stderr=stderr
        ) from e
    return process.stdout.strip()


def run_json_command(command):
    """Executes a command that prints JSON and returns the decoded value."""

    output = run_command(command)
    if not output:
        return None
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        raise ExternalCommandError(
            f"Command '{' '.join(command)}' returned malformed JSON.",
            command=command
        ) from e


class MulticloudApiClient:
    """
    Minimal client for the GKE Multi-Cloud API.

    Paths passed to `get`, `post` and `delete` are relative to
    `projects/<project>/locations/<region>`.
    """

    def __init__(self, endpoint, api_version, project_id, region,
                 token_provider, timeout=None, session=None):
        self.base_url = (
            f"{endpoint.rstrip('/')}/{api_version}"
            f"/projects/{project_id}/locations/{region}"
        )
        self.project_id = project_id
        self.region = region
        self.timeout = timeout
        self._token_provider = token_provider
        self._token = None
        self._session = session or requests.Session()

    def url(self, path=""):
        """Returns the absolute URL for a location-relative path."""
        return f"{self.base_url}/{path}" if path else self.base_url

    def _headers(self):
        if self._token is None:
            self._token = self._token_provider()
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json"
        }

    def request(self, method, path, params=None, body=None):
        """
        Issues one authenticated request and returns the decoded JSON body.

        Raises:
            ApiError: If the request cannot be sent or the API answers with
                      an HTTP error status.
        """

        url = self.url(path)
        log_extra = {
            **_LOG_CONTEXT,
            "operation": "api_request",
            "http_method": method,
            "url": url
        }
        log.debug("Sending API request.", extra=log_extra)
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=body,
                headers=self._headers(),
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            log.error(
                "API request could not be sent.",
                extra=get_error_log_extra(e, log_extra)
            )
            raise ApiError(f"{method} {url} failed: {e}") from e

        if response.status_code >= 400:
            log.error(
                "API returned an error status.",
                extra={**log_extra, "status_code": response.status_code}
            )
            raise ApiError(
                f"{method} {url} returned HTTP {response.status_code}: "
                f"{response.text}",
                status_code=response.status_code,
                response_text=response.text
            )

        log.debug(
            "API request completed.",
            extra={**log_extra, "status_code": response.status_code}
        )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(
                f"{method} {url} returned a non-JSON body.",
                status_code=response.status_code,
                response_text=response.text
            ) from e

    def get(self, path, params=None):
        return self.request("GET", path, params=params)

    def post(self, path, body, params=None):
        return self.request("POST", path, params=params, body=body)

    def delete(self, path, params=None):
        return self.request("DELETE", path, params=params)


def init_api_client(cfg, project_id, token_provider):
    """
    Creates the API client for the configured endpoint, version and region.

    Args:
        cfg: The loaded configuration.
        project_id (str): The Google Cloud project ID.
        token_provider (callable): Returns a bearer token when first needed.

    Returns:
        MulticloudApiClient: The client scoped to the project and location.
    """

    log.debug(
        "Initializing GKE Multi-Cloud API client...",
        extra={
            **_LOG_CONTEXT,
            "api_endpoint": cfg.API_ENDPOINT,
            "api_version": cfg.API_VERSION,
            "project_id": project_id,
            "region": cfg.GCP_REGION
        }
    )
    return MulticloudApiClient(
        cfg.API_ENDPOINT,
        cfg.API_VERSION,
        project_id,
        cfg.GCP_REGION,
        token_provider,
        timeout=cfg.HTTP_TIMEOUT
    )
