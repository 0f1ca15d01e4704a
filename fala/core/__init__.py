"""Core module exports."""

from fala.core.config import Settings, get_settings
from fala.core.exceptions import (
    AppException,
    GenerationError,
    GenerationErrorKind,
    NotFoundError,
    StoreCorruption,
    StoreWriteError,
    StreamBusyError,
    StreamFailure,
    ValidationError,
)
from fala.core.logging import get_logger, log_context, setup_logging
from fala.core.tasks import TaskTracker, create_background_task

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Logging
    "get_logger",
    "log_context",
    "setup_logging",
    # Tasks
    "TaskTracker",
    "create_background_task",
    # Exceptions
    "AppException",
    "GenerationError",
    "GenerationErrorKind",
    "NotFoundError",
    "StoreCorruption",
    "StoreWriteError",
    "StreamBusyError",
    "StreamFailure",
    "ValidationError",
]
