"""Health check and monitoring endpoints."""

import asyncio
import platform
import sys
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from fala.api.deps import Caches, Store
from fala.api.schemas import HealthResponse, ServiceHealth
from fala.core.config import get_settings
from fala.services.llm import get_llm_service

router = APIRouter(tags=["Health"])

# Track server start time for uptime calculation
_server_start_time = datetime.now(timezone.utc)


def _get_system_info() -> dict[str, Any]:
    """Get system information for health endpoints."""
    return {
        "hostname": platform.node(),
        "platform": platform.system(),
        "platform_version": platform.version(),
        "python_version": sys.version.split()[0],
        "architecture": platform.machine(),
    }


def _get_uptime() -> dict[str, Any]:
    """Calculate server uptime."""
    now = datetime.now(timezone.utc)
    delta = now - _server_start_time

    days = delta.days
    hours, remainder = divmod(delta.seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    return {
        "started_at": _server_start_time.isoformat(),
        "uptime_seconds": int(delta.total_seconds()),
        "uptime_human": f"{days}d {hours}h {minutes}m {seconds}s",
    }


@router.get(
    "/",
    summary="Root endpoint",
    response_description="API information and basic health status",
)
async def root() -> dict[str, Any]:
    """
    Root endpoint with API information.

    Returns basic API metadata including:
    - Application name and version
    - Current status
    - Environment name
    - Server timestamp
    """
    settings = get_settings()

    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "healthy",
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "documentation": "/docs",
    }


async def _timed_health_check(
    check_fn: Any,
    timeout: float = 5.0,
) -> tuple[bool, float, str | None]:
    """Execute a health check and measure its latency with timeout.

    Returns:
        Tuple of (healthy, latency_ms, error_message)
    """
    start = time.perf_counter()
    try:
        result = await asyncio.wait_for(check_fn(), timeout=timeout)
        latency = (time.perf_counter() - start) * 1000
        return (result, latency, None)
    except asyncio.TimeoutError:
        latency = (time.perf_counter() - start) * 1000
        return (False, latency, f"Health check timed out after {timeout}s")
    except Exception as e:
        latency = (time.perf_counter() - start) * 1000
        return (False, latency, str(e))


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Comprehensive health check",
    response_description="Detailed health status of all services",
)
async def health_check(store: Store, caches: Caches) -> HealthResponse:
    """
    Comprehensive health check endpoint for monitoring.

    Checks:
    - **Store**: the cache namespace backend (SQL, Redis or memory)
    - **Generation**: whether the default provider has an API key

    A broken store makes the service unhealthy (content still generates but
    nothing persists); a missing API key makes it degraded.
    """
    settings = get_settings()
    services: dict[str, ServiceHealth] = {}
    overall_status = "healthy"

    healthy, latency, error = await _timed_health_check(store.check_health)
    store_details: dict[str, Any] = {
        "backend": store.backend_name,
        "namespaces": caches.stats(),
    }
    if error:
        store_details["error"] = error
    services["store"] = ServiceHealth(
        status="healthy" if healthy else "unhealthy",
        latency_ms=round(latency, 2),
        details=store_details,
    )
    if not healthy:
        overall_status = "unhealthy"

    provider = settings.default_llm_provider
    key = settings.gemini_api_key if provider == "gemini" else settings.openai_api_key
    services["generation"] = ServiceHealth(
        status="healthy" if key else "degraded",
        details={"provider": provider, "configured": bool(key)},
    )
    if not key and overall_status == "healthy":
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        services=services,
    )


@router.get(
    "/health/live",
    summary="Liveness check",
    response_description="Simple liveness check for orchestrators",
)
async def liveness() -> dict[str, str]:
    """
    Kubernetes liveness check endpoint.

    Returns 200 if the service process is running.
    This is a lightweight check that doesn't verify external dependencies.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get(
    "/health/ready",
    summary="Readiness check",
    response_description="Readiness check for load balancers",
)
async def readiness(store: Store) -> JSONResponse:
    """
    Kubernetes readiness check endpoint.

    Returns 200 if the namespace store answers within 5s, otherwise
    503 Service Unavailable.
    """
    healthy, _, error = await _timed_health_check(store.check_health)

    if not healthy:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "reason": "store_unavailable",
                "message": error or "Cache store check failed",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "ready",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@router.get(
    "/health/info",
    summary="System information",
    response_description="Detailed system and runtime information",
)
async def system_info() -> dict[str, Any]:
    """
    Get detailed system and runtime information.

    Returns:
    - Application metadata (name, version, environment)
    - Generation providers
    - System information (hostname, platform, Python version)
    - Uptime information
    """
    settings = get_settings()

    return {
        "application": {
            "name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
        "generation": {
            "default_provider": settings.default_llm_provider,
            "providers": get_llm_service().get_providers(),
        },
        "system": _get_system_info(),
        "uptime": _get_uptime(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
