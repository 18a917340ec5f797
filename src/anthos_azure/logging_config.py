"""
# Centralized logging configuration for the Anthos on Azure CLI.

This module provides a setup function to configure the application's logger to
output records in a structured JSON format on stderr. Command results are
printed on stdout, so logs never mix with machine-readable output.

Methods:
    setup_logging: Configures the root logger to output structured JSON logs.

"""

import logging
import sys
from pythonjsonlogger import jsonlogger


def setup_logging(level="WARNING"):
    """
    Configures the root logger to output structured JSON logs to stderr.

    Args:
        level (str): The name of the log level (e.g. "DEBUG", "INFO").
    """
    logger = logging.getLogger()
    # Prevent duplicate logs if already configured
    if logger.handlers:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)

    # Define the format of the JSON logs
    formatter = jsonlogger.JsonFormatter(
        '%(asctime)s %(name)s %(levelname)s %(message)s'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, str(level).upper(), logging.WARNING))

    # Redirect standard library warnings to the logger
    logging.captureWarnings(True)
