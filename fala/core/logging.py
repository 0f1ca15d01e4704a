"""Structured logging configuration using structlog.

JSON lines in production, colored console output in debug. Every event
carries the app name, version and environment; chat turns additionally bind
``session_id`` through :func:`log_context` so a whole streamed reply
(including its producer task) can be followed in the logs.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from fala.core.config import get_settings

# Generated audio and prompts can be tens of kilobytes
MAX_LOGGED_VALUE_LENGTH = 500

_QUIET_LOGGERS = (
    "uvicorn.access",
    "aiosqlite",
    "httpx",
    "httpcore",
    "openai",
    "upstash_redis",
    "google_genai.models",
    "google.genai",
)


def add_app_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add application context to log events."""
    settings = get_settings()
    event_dict["app"] = settings.app_name
    event_dict["version"] = settings.app_version
    event_dict["env"] = settings.environment
    return event_dict


def truncate_long_values(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Clip oversized string values so payloads never flood the log."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > MAX_LOGGED_VALUE_LENGTH:
            event_dict[key] = f"{value[:MAX_LOGGED_VALUE_LENGTH]}... ({len(value)} chars)"
    return event_dict


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Bind ``values`` to every event logged inside the block.

    Tasks created inside the block inherit the binding.
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield


def setup_logging() -> None:
    """Configure structlog and the standard library root logger."""
    settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_app_context,
        truncate_long_values,
    ]

    if settings.debug:
        renderer: Processor = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
        processors = [*shared_processors, renderer]
    else:
        processors = [
            *shared_processors,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.getLevelName(settings.log_level.upper()),
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.db_echo else logging.WARNING
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
