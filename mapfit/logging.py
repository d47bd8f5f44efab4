"""Logging utilities for mapfit.

Loggers are cached per module and write ``[LEVEL] name: message`` lines to
stderr. The default message sinks of an optimization run forward to these
loggers, so a caller that supplies no sinks still sees progress.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

_DEFAULT_LEVEL = logging.INFO

_DEFAULT_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

_loggers: dict[str, logging.Logger] = {}


def _coerce_level(level: int | str) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get or create a logger for the given module name.

    Args:
        name: Logger name (typically ``__name__``). If None, returns the
            package logger.

    Returns:
        Configured logger instance.

    Example:
        >>> from mapfit.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.debug("Starting line search")
    """
    if name is None:
        name = "mapfit"

    logger_name = name if name == "mapfit" or name.startswith("mapfit.") else f"mapfit.{name}"

    if logger_name in _loggers:
        return _loggers[logger_name]

    logger = logging.getLogger(logger_name)

    # Avoid duplicate handlers when the logging module already knows it
    if not logger.handlers:
        logger.setLevel(_DEFAULT_LEVEL)
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(_DEFAULT_LEVEL)
        handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False

    _loggers[logger_name] = logger
    return logger


def set_log_level(level: int | str) -> None:
    """Set the logging level for all mapfit loggers.

    Args:
        level: Logging level (``logging.DEBUG``, ``logging.INFO``, ...) or its
            name as a string.
    """
    level = _coerce_level(level)

    for logger in _loggers.values():
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)

    global _DEFAULT_LEVEL
    _DEFAULT_LEVEL = level


def configure_logging(
    level: int | str = logging.INFO,
    format_string: Optional[str] = None,
    stream: Optional[object] = None,
) -> None:
    """Configure logging for mapfit.

    Replaces the handlers of every cached logger. Call it once at application
    startup, before running any optimization.

    Args:
        level: Logging level (default: INFO).
        format_string: Custom format string. If None, uses the default.
        stream: Output stream (default: sys.stderr).
    """
    level = _coerce_level(level)

    if stream is None:
        stream = sys.stderr

    formatter = logging.Formatter(format_string or _DEFAULT_FORMAT)

    for logger in _loggers.values():
        logger.setLevel(level)
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
        handler = logging.StreamHandler(stream)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    global _DEFAULT_LEVEL
    _DEFAULT_LEVEL = level


__all__ = ["configure_logging", "get_logger", "set_log_level"]
