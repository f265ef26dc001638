"""Logging configuration for the preview core.

Every module logs through ``logging.getLogger(__name__)``, which places it
under the ``geopreview`` package logger. setup_logging() attaches a single
console handler to that package logger; calling it again only adjusts the
level.

Example:
    Configure logging once at startup:
        >>> from geopreview.core import logging_config
        >>> logger = logging_config.setup_logging("DEBUG")
"""

from __future__ import annotations

import logging

PACKAGE_LOGGER = "geopreview"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the package logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Returns:
        The ``geopreview`` logger.

    Raises:
        ValueError: If the level name is not a valid logging level.
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(numeric_level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
