"""Logging configuration for autoexport with structlog support."""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any, Final

import structlog


if TYPE_CHECKING:
    from typing import TextIO


LogLevel = int | str

PACKAGE_LOGGER: Final = "autoexport"

NOISY_LOGGERS: Final = ("aiosqlite", "sqlalchemy.engine")
"""Loggers that drown out run logs below WARNING."""


def _to_level(level: LogLevel) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper())
    return level


def configure_logging(
    level: LogLevel = "INFO",
    *,
    json_logs: bool | None = None,
    stream: TextIO | None = None,
) -> None:
    """Send autoexport's log events to a stream.

    Only the ``autoexport`` logger tree gets a handler, so a host application
    keeps its own logging setup.

    Args:
        level: Level for the autoexport loggers
        json_logs: Render JSON lines (default: when ``stream`` is not a TTY)
        stream: Output stream, stderr if not given
    """
    level = _to_level(level)
    stream = stream or sys.stderr
    tty = stream.isatty()
    if json_logs is None:
        json_logs = not tty

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.handlers[:] = [handler]
    package_logger.setLevel(level)
    package_logger.propagate = False
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=tty))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


def get_logger(name: str, log_level: LogLevel | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger for the given name.

    Module names that already live in the ``autoexport`` package are used as-is,
    anything else is prefixed with ``autoexport.``.

    Args:
        name: The name of the logger
        log_level: The logging level to set for the logger

    Returns:
        A structlog BoundLogger instance
    """
    full_name = name if name.startswith(PACKAGE_LOGGER) else f"{PACKAGE_LOGGER}.{name}"
    logger = structlog.get_logger(full_name)
    if log_level is not None:
        logging.getLogger(full_name).setLevel(_to_level(log_level))
    return logger
