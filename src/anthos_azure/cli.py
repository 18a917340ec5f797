"""
# Command-line entry point for the Anthos on Azure CLI.

Application flow:
- Parse the sub-command and its positional arguments. Usage errors and
  unknown commands print the help listing and exit with status 1 before any
  configuration is read or any external call is made.
- Set up structured logging and load the configuration.
- Dispatch to the matching operation in `commands` and print its result.
- Multi-stage exception handling maps failures to exit status 1.
"""

import argparse
import json
import logging
import os
import sys
from . import commands
from .config import initialize_config
from .errors import AnthosAzureError, ConfigLoadError
from .helpers import get_error_log_extra
from .logging_config import setup_logging

__all__ = ["main", "build_parser", "COMMANDS"]

_STARTUP_CONTEXT = {
    "context": "ANTHOS-AZURE-CLI"
}

log = logging.getLogger(__name__)

# name -> (operation, positional arguments, help text)
COMMANDS = {
    "create-network": (commands.create_network, [],
                       "Create the VNet resource group, VNet, subnet and "
                       "NAT gateway."),
    "delete-network": (commands.delete_network, [],
                       "Delete the VNet resource group."),
    "create-secret": (commands.create_secret, [],
                      "Create the Azure AD application, roles and federated "
                      "credential used by the API."),
    "delete-secret": (commands.delete_secret, [],
                      "Delete the Azure AD application and its roles."),
    "create-cluster": (commands.create_cluster, ["cluster"],
                       "Create a cluster."),
    "get-cluster": (commands.get_cluster, ["cluster"],
                    "Describe a cluster."),
    "list-clusters": (commands.list_clusters, [],
                      "List clusters."),
    "delete-cluster": (commands.delete_cluster, ["cluster"],
                       "Delete a cluster."),
    "create-nodepool": (commands.create_nodepool, ["cluster", "nodepool"],
                        "Create a node pool."),
    "get-nodepool": (commands.get_nodepool, ["cluster", "nodepool"],
                     "Describe a node pool."),
    "list-nodepools": (commands.list_nodepools, ["cluster"],
                       "List the node pools of a cluster."),
    "delete-nodepool": (commands.delete_nodepool, ["cluster", "nodepool"],
                        "Delete a node pool."),
    "get-operation": (commands.get_operation, ["operation"],
                      "Describe a long-running operation."),
    "list-operations": (commands.list_operations, [],
                        "List long-running operations."),
    "get-environment": (commands.get_environment, [],
                        "Show supported versions and regions."),
    "get-credentials": (commands.get_credentials, ["cluster"],
                        "Merge cluster credentials into the kubeconfig."),
    "register": (commands.register, ["cluster"],
                 "Register a cluster with the fleet."),
    "unregister": (commands.unregister, ["cluster"],
                   "Unregister a cluster from the fleet (best-effort)."),
}


class _ArgumentParser(argparse.ArgumentParser):
    """Prints the help listing and exits with status 1 on usage errors."""

    def error(self, message):
        self.print_help(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser():
    parser = _ArgumentParser(
        prog="anthos-azure",
        description="Create, inspect and delete Anthos clusters on Azure."
    )
    subparsers = parser.add_subparsers(dest="command", metavar="command",
                                       required=True)
    for name, (_, arg_names, help_text) in COMMANDS.items():
        sub = subparsers.add_parser(name, help=help_text,
                                    description=help_text)
        for arg_name in arg_names:
            sub.add_argument(arg_name)
    return parser


def _emit(result):
    """Prints a command result: JSON for structures, text otherwise."""
    if result is None:
        return
    if isinstance(result, (dict, list)):
        print(json.dumps(result, indent=2, sort_keys=False))
    else:
        print(result)


def main(argv=None):
    """Runs one sub-command and returns the process exit status."""

    args = build_parser().parse_args(argv)
    operation, arg_names, _ = COMMANDS[args.command]
    log_extra = {**_STARTUP_CONTEXT, "command": args.command}

    # Default logging configuration until the config file is read.
    setup_logging(os.getenv("LOG_LEVEL", "WARNING"))

    try:
        cfg = initialize_config()
        setup_logging(cfg.LOG_LEVEL)
        log.debug("Configuration loaded.",
                  extra={**log_extra, "config_path": cfg.CONFIG_PATH})

        result = operation(*[getattr(args, name) for name in arg_names])
        _emit(result)

    # Exceptions from config module
    except ConfigLoadError as e:
        log.critical("Configuration validation failed.",
                     extra=get_error_log_extra(e, log_extra))
        print(f"error: {e}", file=sys.stderr)
        return 1

    # Failures of external tools, the API, or local artifacts
    except AnthosAzureError as e:
        log.error("Command failed.", extra=get_error_log_extra(e, log_extra))
        print(f"error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        log.warning("Interrupted.", extra=log_extra)
        return 130

    log.debug("Command completed.", extra=log_extra)
    return 0


if __name__ == "__main__":
    sys.exit(main())
