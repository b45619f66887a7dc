"""
Package logger for the catalog engine.

Every module logs under the ``catalog_engine`` namespace to stdout. The
starting level comes from ``LOG_LEVEL``; ``set_log_level`` applies the level
from a loaded ``CatalogConfig``.
"""
import logging
import os
import sys

PACKAGE_LOGGER = "catalog_engine"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logger = logging.getLogger(PACKAGE_LOGGER)
logger.setLevel(LOG_LEVEL)

if not logger.handlers:
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(LOG_LEVEL)
    stdout_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(stdout_handler)

# Host applications attach their own root handlers
logger.propagate = False


def get_logger(name: str = None) -> logging.Logger:
    """
    Return the package logger, or a child such as ``catalog_engine.cache.store``.

    Args:
        name: Dotted suffix under the package namespace.
    """
    if name:
        return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
    return logger


def set_log_level(level: str) -> None:
    """Change the level of the package logger and its stdout handler."""
    level = level.upper()
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
