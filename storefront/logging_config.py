"""
logging_config.py — Centralized Logging Configuration for the Storefront Service

This module configures unified logging behavior for the API process and its
background jobs. All modules log through the standard library `logging`
package so that request handlers and sweep jobs share one format.

Features:
    • Combined console and file logging output
    • Process ID tagging for multi-process visibility
    • Standardized log format for all modules
    • Reduced verbosity for external dependencies (httpx, SQLAlchemy)
"""

import logging
import sys

from . import config


def setup_logging(log_file: str = config.LOG_FILE, level: str = config.LOG_LEVEL):
    """
    Configures the global logging system for the application.

    The configuration includes:
        - Log level: taken from LOG_LEVEL (INFO by default)
        - Log format: timestamp, log level, process ID, and message
        - Output destinations:
            1. File: LOG_FILE (persistent log), skipped when empty
            2. Console (stdout): real-time logs, Docker/Kubernetes compatible
        - Reduced verbosity for third-party libraries such as httpx
    """
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(message)s'

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=log_format,
        handlers=handlers,
    )

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name):
    """
    Returns a logger instance for a given module or component name.

    Args:
        name (str): The logger name, typically the module's __name__.

    Returns:
        logging.Logger: A logger that follows the global format and handlers.
    """
    return logging.getLogger(name)
