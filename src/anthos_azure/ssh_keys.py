"""
# Per-cluster SSH key pairs for Anthos clusters on Azure.

This module is responsible for:
1.  Generating an RSA key pair for a cluster the first time it is needed.
    The private key is created with mode 0600.
2.  Returning the OpenSSH public key that control plane and node pool VMs
    are provisioned with. An existing pair is always reused.
"""

import functools
import logging
import os
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from .errors import SSHKeyError

__all__ = [
    "KEY_SIZE",
    "key_paths",
    "get_or_generate_key_pair"
]

_LOG_CONTEXT = {
    "context": "ANTHOS-AZURE-SSH"
}

KEY_SIZE = 4096

log = logging.getLogger(__name__)


def key_paths(cluster_name, key_dir):
    private_key_path = os.path.join(key_dir, f"{cluster_name}-ssh-key")
    return private_key_path, f"{private_key_path}.pub"


def _generate_rsa_key_pair(comment):
    key = rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)

    private_key = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.OpenSSH,
        encryption_algorithm=serialization.NoEncryption()).decode("utf-8")

    public_key = key.public_key().public_bytes(
        serialization.Encoding.OpenSSH,
        serialization.PublicFormat.OpenSSH).decode("utf-8")

    return f"{public_key} {comment}\n", private_key


def _save_key_pair(private_key_path, public_key_path, private_key,
                   public_key):
    private_key_dir = os.path.dirname(private_key_path)
    if private_key_dir:
        os.makedirs(private_key_dir, exist_ok=True)

    with open(
            private_key_path,
            "w",
            opener=functools.partial(os.open, mode=0o600),
    ) as f:
        f.write(private_key)

    with open(public_key_path, "w") as f:
        f.write(public_key)


def get_or_generate_key_pair(cluster_name, key_dir):
    """
    Returns the OpenSSH public key for the cluster, generating the pair only
    when the private key does not exist yet.

    Raises:
        SSHKeyError: If the pair cannot be written or the public key is
            missing or unreadable.
    """
    private_key_path, public_key_path = key_paths(cluster_name, key_dir)
    log_extra = {**_LOG_CONTEXT, "key_path": private_key_path}

    if not os.path.exists(private_key_path):
        log.info("Generating SSH key pair.", extra=log_extra)
        public_key, private_key = _generate_rsa_key_pair(cluster_name)
        try:
            _save_key_pair(private_key_path, public_key_path, private_key,
                           public_key)
        except OSError as e:
            raise SSHKeyError(
                f"Unable to write SSH key pair {private_key_path}: {e}") from e
    elif not os.path.exists(public_key_path):
        raise SSHKeyError(
            f"Private key {private_key_path} found, but associated public "
            f"key {public_key_path} does not exist.")
    else:
        log.debug("Reusing existing SSH key pair.", extra=log_extra)

    try:
        with open(public_key_path) as f:
            return f.read().strip()
    except OSError as e:
        raise SSHKeyError(
            f"Unable to read SSH public key {public_key_path}: {e}") from e
