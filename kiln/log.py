"""Logging helpers for Kiln.

Every module logs through a child of the ``kiln`` logger. Only the CLI installs handlers.
"""

from __future__ import annotations

import logging

_LOGGER_NAME = "kiln"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger under the kiln hierarchy.

    Args:
        name: Optional child name, usually the short module name.

    Returns:
        ``kiln.<name>`` logger, or the root ``kiln`` logger.
    """
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(*, verbose: bool = False) -> logging.Logger:
    """Attach a console handler to the kiln logger.

    Calling this again replaces the previous handler instead of stacking a second one.

    Args:
        verbose: Emit debug records when True.

    Returns:
        The configured ``kiln`` logger.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter("[kiln] %(levelname)s %(message)s"))
    logger.addHandler(stream_handler)
    return logger


__all__ = ["configure_logging", "get_logger"]
