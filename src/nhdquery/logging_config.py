"""
Logging configuration for nhdquery.

Configures the root logger level from CLI verbosity flags and, when the
NHDQUERY_LOG_FILE environment variable is set, adds a file handler.
"""

import logging
import os
from pathlib import Path

from nhdquery.config.defaults import ENV_LOG_FILE

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, quiet: bool = False) -> logging.Logger:
    """
    Configure logging for the CLI.

    Args:
        verbose: Enable debug logging
        quiet: Suppress all logging except errors

    Returns:
        The nhdquery package logger
    """
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.getLogger().setLevel(level)

    logger = logging.getLogger("nhdquery")

    # Optional file logging, added once per path
    log_file = os.getenv(ENV_LOG_FILE)
    if log_file:
        log_path = Path(log_file)
        already_attached = any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename) == log_path.resolve()
            for h in logger.handlers
        )
        if not already_attached:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            logger.addHandler(file_handler)

    return logger
