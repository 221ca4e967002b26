"""Centralized logging for trafficflow.

All package modules obtain loggers through :func:`get_logger`, which hangs them
under the ``trafficflow`` root logger. A single stream handler is attached to
that root so repeated imports never duplicate output. The initial level can be
overridden with the ``TRAFFICFLOW_LOG_LEVEL`` environment variable.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

ROOT_LOGGER_NAME = "trafficflow"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_root_configured = False


def _level_from_env(default: int) -> int:
    """Return the level named by ``TRAFFICFLOW_LOG_LEVEL`` or ``default``."""
    raw = os.environ.get("TRAFFICFLOW_LOG_LEVEL")
    if not raw:
        return default
    level = logging.getLevelName(raw.strip().upper())
    return level if isinstance(level, int) else default


def setup_root_logger(
    level: int = logging.INFO,
    format_string: Optional[str] = None,
    handler: Optional[logging.Handler] = None,
) -> None:
    """Attach the single trafficflow handler to the package root logger.

    Subsequent calls are no-ops until :func:`reset_logging` runs.

    Args:
        level: Level used when the environment does not override it.
        format_string: Record format; defaults to ``DEFAULT_FORMAT``.
        handler: Handler to install; defaults to a stdout stream handler.
    """
    global _root_configured

    if _root_configured:
        return

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(_level_from_env(level))
    root.handlers.clear()

    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
    root.addHandler(handler)

    # Propagate so pytest's caplog sees package records
    root.propagate = True

    _root_configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger that inherits the trafficflow root configuration.

    Args:
        name: Logger name, normally ``__name__`` of the calling module.

    Returns:
        Logger with level ``NOTSET`` so the root level applies.
    """
    setup_root_logger()
    logger = logging.getLogger(name)
    logger.setLevel(logging.NOTSET)
    return logger


def set_global_log_level(level: int) -> None:
    """Set the level of the trafficflow root logger and its handlers."""
    setup_root_logger()
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    for handler in root.handlers:
        handler.setLevel(level)


def enable_debug_logging() -> None:
    """Switch the whole package to DEBUG."""
    set_global_log_level(logging.DEBUG)


def disable_debug_logging() -> None:
    """Return the whole package to INFO."""
    set_global_log_level(logging.INFO)


def reset_logging() -> None:
    """Drop the installed handler so the next call configures afresh (tests)."""
    global _root_configured
    _root_configured = False

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


setup_root_logger()
