"""Upstash Redis namespace store (one string key per namespace)."""

import asyncio

from upstash_redis.asyncio import Redis

from fala.core.config import get_settings
from fala.core.logging import get_logger
from fala.services.store.base import NamespaceStore
from fala.services.store.constants import KEY_PREFIX_NAMESPACE

logger = get_logger(__name__)


class RedisNamespaceStore(NamespaceStore):
    """Stores namespace blobs under ``fala:cache:{namespace}``.

    Unlike the SQL store, errors are not swallowed here: the pair-list
    layer decides whether a failed read means "start empty".
    """

    backend_name = "redis"

    def __init__(self, client: Redis | None = None) -> None:
        if client is None:
            settings = get_settings()
            if not settings.redis_available:
                raise ValueError("Upstash Redis credentials are not configured")
            client = Redis(
                url=settings.upstash_redis_rest_url,
                token=settings.upstash_redis_rest_token,
            )
            logger.info("Redis namespace store initialized")
        self._client = client

    def _make_key(self, name: str) -> str:
        return f"{KEY_PREFIX_NAMESPACE}:{name}"

    async def read_namespace(self, name: str) -> str | None:
        result = await self._client.get(self._make_key(name))
        return result if isinstance(result, str) else None

    async def write_namespace(self, name: str, blob: str) -> None:
        await self._client.set(self._make_key(name), blob)

    async def delete_namespace(self, name: str) -> None:
        await self._client.delete(self._make_key(name))

    async def check_health(self, timeout: float = 5.0) -> bool:
        try:
            result = await asyncio.wait_for(self._client.ping(), timeout=timeout)
            return bool(result)
        except asyncio.TimeoutError:
            logger.error("Redis health check timed out", timeout=timeout)
            return False
        except Exception as e:
            logger.error("Redis health check failed", error=str(e))
            return False
