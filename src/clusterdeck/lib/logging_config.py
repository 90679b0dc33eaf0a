"""Logging configuration for clusterdeck.

Console logging is configured once per process by the CLI. Every deployment
additionally writes to its own log file so that a long provisioning run can
be inspected after the fact.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DEPLOYMENT_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(message)s"
DEPLOYMENT_LOGGER_PREFIX = "clusterdeck.deployments"


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure console logging for the clusterdeck package.

    Args:
        verbose: Enable DEBUG level output
        quiet: Only show warnings and errors
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    root = logging.getLogger("clusterdeck")
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, "_clusterdeck_console", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._clusterdeck_console = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    # botocore is very chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("paramiko").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger."""
    return logging.getLogger(name)


def get_deployment_log_path(files_path: Path, deployment_name: str) -> Path:
    """Return the log file path for a deployment."""
    return files_path / "log" / f"{deployment_name}.log"


def create_deployment_logger(files_path: Path, deployment_name: str) -> logging.Logger:
    """Create a logger that writes one deployment's activity to its own file.

    Records also propagate to the package logger so they show up on the
    console when logging is configured.

    Args:
        files_path: Base directory for clusterdeck files
        deployment_name: Unique deployment name

    Returns:
        Logger bound to ``<files_path>/log/<deployment_name>.log``
    """
    log_path = get_deployment_log_path(files_path, deployment_name)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(f"{DEPLOYMENT_LOGGER_PREFIX}.{deployment_name}")
    logger.setLevel(logging.DEBUG)

    resolved = str(log_path.resolve())
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == resolved:
            return logger

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(DEPLOYMENT_LOG_FORMAT))
    logger.addHandler(handler)
    return logger


def close_deployment_logger(deployment_name: str) -> None:
    """Close and detach file handlers of a deployment logger."""
    logger = logging.getLogger(f"{DEPLOYMENT_LOGGER_PREFIX}.{deployment_name}")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
