"""Logging helpers for archive3d.

The library logs through per-module loggers under the ``archive3d``
namespace and never touches the root logger. Applications that want output
call :func:`configure_logging` (or configure ``logging`` themselves).
"""

from __future__ import annotations

import logging
import sys

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_PACKAGE_LOGGER = "archive3d"

logging.getLogger(_PACKAGE_LOGGER).addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """Return a logger for a module inside the package.

    Args:
        name: Usually ``__name__`` of the calling module

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def configure_logging(
    level: int | str = logging.INFO,
    fmt: str = DEFAULT_FORMAT,
    stream=None,
) -> logging.Logger:
    """Attach a stream handler to the package logger.

    Calling this more than once replaces the previously installed handler
    instead of stacking duplicates.

    Args:
        level: Log level (name or number)
        fmt: Format string for log records
        stream: Output stream (defaults to stderr)

    Returns:
        The configured package logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    package_logger = logging.getLogger(_PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        if getattr(handler, "_archive3d_handler", False):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    handler._archive3d_handler = True  # type: ignore[attr-defined]
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return package_logger
