"""FastAPI application entry point."""

import asyncio as _asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from fala.api import chat_router, content_router, health_router
from fala.core.config import get_settings
from fala.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)
from fala.core.logging import get_logger, setup_logging
from fala.core.tasks import TaskTracker
from fala.db.session import close_db, init_db
from fala.services.cache import ContentCaches
from fala.services.chat import ChatTutor
from fala.services.content import ContentService
from fala.services.gateway import GenerationGateway
from fala.services.llm import get_llm_service
from fala.services.prefetch import PrefetchCoordinator
from fala.services.store import PersistentStore, build_namespace_store

# Initialize logging first
setup_logging()
logger = get_logger(__name__)


async def _init_db_with_retry() -> None:
    # Retry transient connection failures
    for _attempt in range(3):
        try:
            await init_db()
            return
        except Exception as exc:
            if _attempt == 2:
                logger.error("Failed to initialize database after 3 attempts", error=str(exc))
                raise
            logger.warning(
                "Database init failed, retrying...",
                attempt=_attempt + 1,
                error=str(exc),
            )
            await _asyncio.sleep(2 ** _attempt)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events.

    Startup:
    - Initialize the cache store (creating the table for the SQL backend)
    - Load every persisted cache namespace
    - Pre-warm LLM adapters to eliminate first-request latency
    - Schedule the delayed warm-up of the initial verb list

    Shutdown:
    - Cancel or drain background warm-ups
    - Close HTTP client connections (LLM providers)
    - Close store and database connections
    """
    settings = get_settings()

    logger.info(
        "Starting application",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        cache_backend=settings.cache_backend,
    )

    namespace_store = build_namespace_store(settings)
    if namespace_store.backend_name == "sql":
        await _init_db_with_retry()
        logger.info("Database initialized")

    caches = ContentCaches(PersistentStore(namespace_store))
    loaded = await caches.load_all()
    logger.info("Content caches loaded", **loaded)

    llm_service = get_llm_service()
    llm_service.prewarm_adapters()
    logger.info("LLM adapters pre-warmed")

    gateway = GenerationGateway(llm_service, settings)
    coordinator = PrefetchCoordinator(TaskTracker(), settings)
    content_service = ContentService(caches, gateway, coordinator)

    app.state.namespace_store = namespace_store
    app.state.content_caches = caches
    app.state.prefetch_coordinator = coordinator
    app.state.content_service = content_service
    app.state.chat_tutor = ChatTutor(gateway)

    verbs = settings.initial_verbs
    if verbs:
        # The first verb is what a client opens on load; it is fetched on demand
        content_service.warm_initial_verbs(verbs, active=verbs[0])

    yield

    # Cleanup
    logger.info("Shutting down application")

    await coordinator.shutdown()
    logger.info("Background warm-ups stopped")

    # Close LLM adapter HTTP clients
    await llm_service.close()
    logger.info("LLM adapter connections closed")

    await namespace_store.close()
    if namespace_store.backend_name == "sql":
        await close_db()
        logger.info("Database connections closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Brazilian Portuguese learning content and chat tutor API",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    # Security headers middleware
    from starlette.middleware.base import BaseHTTPMiddleware

    class SecurityHeadersMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Any, call_next: Any) -> Any:
            response = await call_next(request)
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
            response.headers["Permissions-Policy"] = "camera=(), microphone=(self), geolocation=()"
            if not settings.debug:
                response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
            return response

    app.add_middleware(SecurityHeadersMiddleware)

    # GZip compression for responses (speech payloads are large)
    from starlette.middleware.gzip import GZipMiddleware
    app.add_middleware(GZipMiddleware, minimum_size=500)

    # Register exception handlers
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(content_router, prefix="/api/v1")
    app.include_router(chat_router, prefix="/api/v1")

    return app


# Create application instance
app = create_app()
