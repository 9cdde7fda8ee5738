"""Structured logging for the tabletop session engine.

Engine modules log through structlog with ``get_logger(__name__)``.
Events are rendered by structlog and handed to the standard library
``logging`` tree, so a single root configuration covers engine events
as well as sqlite3 and tenacity output, on the console and in an
optional log file.

The session being written is bound with ``bind_context(session_id=...)``
for the duration of each write cycle.

Example:
    >>> from tabletop_engine.core.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Turn advanced", session_id="abc", round=2)
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import Processor


if TYPE_CHECKING:
    from structlog.types import EventDict, WrappedLogger

    from tabletop_engine.core.config import Settings


APP_NAME = "tabletop_engine"

LOG_FORMAT = "%(message)s"


def add_app_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Tag every entry with the application name."""
    event_dict["app"] = APP_NAME
    return event_dict


def _renderer(json_format: bool, colors: bool) -> list[Processor]:
    if json_format:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [
        structlog.dev.ConsoleRenderer(
            colors=colors,
            exception_formatter=structlog.dev.plain_traceback,
        )
    ]


def configure_logging(
    *,
    level: str = "INFO",
    json_format: bool = False,
    log_file: str | Path | None = None,
) -> None:
    """Configure application-wide logging.

    Args:
        level: The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Render one JSON object per line instead of console text.
        log_file: Optional path that receives a copy of every entry.

    Example:
        >>> configure_logging(level="DEBUG", json_format=False)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        *_renderer(json_format, colors=log_file is None and sys.stdout.isatty()),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # force=True drops handlers (and log files) left by an earlier call
    logging.basicConfig(format=LOG_FORMAT, level=log_level, stream=sys.stdout, force=True)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(file_handler)


def configure_logging_from_settings(settings: Settings) -> None:
    """Configure logging from application settings.

    Debug mode lowers the level to DEBUG whatever ``log_level`` says.
    """
    configure_logging(
        level="DEBUG" if settings.debug else settings.log_level,
        json_format=settings.log_json,
        log_file=settings.log_file,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger, typically with ``__name__``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables included in every following entry.

    Example:
        >>> bind_context(session_id="abc123", actor="narrator")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


__all__ = [
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
]
