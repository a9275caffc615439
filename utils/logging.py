# utils/logging.py

"""Logging helpers for the extraction engine.

Module code logs through ``structlog.get_logger(__name__)``; records are
rendered by the standard ``logging`` tree configured here. Values bound with
``structlog.contextvars`` (for example the chunk being processed) are merged
into every record emitted while they are bound.
"""

from __future__ import annotations

import logging
import logging.handlers
import os

import structlog
from config import settings
from rich.logging import RichHandler

logger = structlog.get_logger(__name__)


__all__ = ["setup_logging", "resolve_log_path"]

_NOISY_LOGGERS = ("httpx", "httpcore")


def resolve_log_path(log_file: str | None, output_dir: str | None = None) -> str | None:
    """Return where the log file goes; relative names land in the output dir."""
    if not log_file:
        return None
    if os.path.isabs(log_file):
        return log_file
    return os.path.join(output_dir or settings.BASE_OUTPUT_DIR, log_file)


def _formatter() -> logging.Formatter:
    return logging.Formatter(settings.LOG_FORMAT, datefmt=settings.LOG_DATE_FORMAT)


def _file_handler(file_path: str) -> logging.Handler:
    log_dir = os.path.dirname(file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        file_path,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        mode="a",
        encoding="utf-8",
    )
    handler.setFormatter(_formatter())
    return handler


def _console_handler(level: str) -> logging.Handler:
    if settings.ENABLE_RICH_PROGRESS:
        # Shares the terminal with the Live progress panel.
        return RichHandler(
            level=level,
            rich_tracebacks=True,
            show_path=False,
            markup=False,
            show_time=True,
            show_level=True,
        )
    handler = logging.StreamHandler()
    handler.setFormatter(_formatter())
    return handler


def setup_logging(level: str | None = None, output_dir: str | None = None) -> str | None:
    """Configure structlog and standard logging.

    Args:
        level: Overrides ``settings.LOG_LEVEL_STR``.
        output_dir: Directory for a relative ``settings.LOG_FILE``; defaults
            to ``settings.BASE_OUTPUT_DIR``.

    Returns:
        The log file path in use, or ``None`` when file logging is off or
        the file could not be opened.
    """
    log_level = (level or settings.LOG_LEVEL_STR).upper()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    file_path = resolve_log_path(settings.LOG_FILE, output_dir)
    if file_path:
        try:
            root_logger.addHandler(_file_handler(file_path))
        except OSError as e:  # pragma: no cover - path issues
            logger.error("Error setting up file logger: %s", e)
            file_path = None

    root_logger.addHandler(_console_handler(log_level))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger().info(
        "Logging setup complete.", log_level=log_level, log_file=file_path
    )
    return file_path
