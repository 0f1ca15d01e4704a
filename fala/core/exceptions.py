"""Custom exception classes and exception handlers."""

from enum import Enum
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from fala.core.logging import get_logger

logger = get_logger(__name__)


def _get_cors_headers(request: Request) -> dict[str, str]:
    """Get CORS headers for error responses."""
    origin = request.headers.get("origin", "")
    # Import here to avoid circular imports
    from fala.core.config import get_settings
    settings = get_settings()

    if origin and (origin in settings.cors_origins or "*" in settings.cors_origins):
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
            "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type, X-Request-ID",
        }
    return {}


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class NotFoundError(AppException):
    """Resource not found."""

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found", status.HTTP_404_NOT_FOUND)


class ValidationError(AppException):
    """Validation error."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, details)


class GenerationErrorKind(str, Enum):
    """Advisory classification of a failed generation call."""

    QUOTA_EXCEEDED = "quota_exceeded"
    INVALID_CREDENTIAL = "invalid_credential"
    TIMEOUT = "timeout"
    UNCLASSIFIED = "unclassified"


_GENERATION_STATUS = {
    GenerationErrorKind.QUOTA_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
    GenerationErrorKind.INVALID_CREDENTIAL: status.HTTP_502_BAD_GATEWAY,
    GenerationErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    GenerationErrorKind.UNCLASSIFIED: status.HTTP_502_BAD_GATEWAY,
}


class GenerationError(AppException):
    """Content generation failed."""

    def __init__(
        self,
        classification: GenerationErrorKind,
        message: str,
        *,
        kind: str | None = None,
    ):
        self.classification = classification
        self.kind = kind
        details: dict[str, Any] = {"classification": classification.value}
        if kind:
            details["kind"] = kind
        super().__init__(message, _GENERATION_STATUS[classification], details)


class StoreCorruption(AppException):
    """Persisted namespace could not be parsed (recovered locally, never surfaced)."""

    def __init__(self, namespace: str, reason: str):
        self.namespace = namespace
        super().__init__(
            f"Corrupt cache namespace '{namespace}': {reason}",
            details={"namespace": namespace},
        )


class StoreWriteError(AppException):
    """Persisting a namespace failed."""

    def __init__(self, namespace: str, reason: str):
        self.namespace = namespace
        super().__init__(
            f"Failed to persist cache namespace '{namespace}': {reason}",
            status.HTTP_503_SERVICE_UNAVAILABLE,
            {"namespace": namespace},
        )


class StreamFailure(AppException):
    """The multi-phase tutor reply could not be completed."""

    def __init__(self, message: str = "Reply stream failed", cause: BaseException | None = None):
        self.cause = cause
        details: dict[str, Any] = {}
        if isinstance(cause, GenerationError):
            details["classification"] = cause.classification.value
        super().__init__(message, status.HTTP_502_BAD_GATEWAY, details)


class StreamBusyError(AppException):
    """A reply is already streaming for this conversation."""

    def __init__(self, session_id: str):
        super().__init__(
            "A reply is still being generated for this conversation. Please wait.",
            status.HTTP_409_CONFLICT,
            {"session_id": session_id},
        )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle application exceptions."""
    logger.warning(
        "Application exception",
        status_code=exc.status_code,
        message=exc.message,
        details=exc.details,
        path=str(request.url),
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.message,
                "details": exc.details,
            }
        },
        headers=_get_cors_headers(request),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=str(request.url),
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.detail,
            }
        },
        headers=_get_cors_headers(request),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions."""
    logger.exception(
        "Unhandled exception",
        exc_info=exc,
        path=str(request.url),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "message": "An internal error occurred. Please try again later.",
            }
        },
        headers=_get_cors_headers(request),
    )
