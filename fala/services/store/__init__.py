"""Persistent key-value store for cache namespaces.

Backends:
- sql: SQLAlchemy table, one row per namespace (default, SQLite file)
- redis: Upstash Redis REST, one string key per namespace
- memory: process-local dict (tests, throwaway runs)

Every backend stores the same blob format, a JSON array of [key, value]
pairs, written and parsed by PersistentStore.
"""

from fala.core.config import Settings, get_settings
from fala.core.logging import get_logger
from fala.services.store.base import NamespaceStore, PersistentStore
from fala.services.store.constants import (
    KEY_PREFIX_NAMESPACE,
    NAMESPACE_CONJUGATIONS,
    NAMESPACE_EXAMPLES,
    NAMESPACE_SCENES,
    NAMESPACE_SPEECH,
    NAMESPACE_VOCABULARY,
    PERSISTED_NAMESPACES,
)
from fala.services.store.memory import MemoryNamespaceStore

logger = get_logger(__name__)


def build_namespace_store(settings: Settings | None = None) -> NamespaceStore:
    """Create the backend selected by ``CACHE_BACKEND``."""
    settings = settings or get_settings()

    if settings.cache_backend == "memory":
        return MemoryNamespaceStore()

    if settings.cache_backend == "redis":
        if settings.redis_available:
            from fala.services.store.redis import RedisNamespaceStore

            return RedisNamespaceStore()
        logger.warning("Redis cache backend selected but not configured, using SQL store")

    from fala.services.store.sql import SqlNamespaceStore

    return SqlNamespaceStore()


__all__ = [
    # Namespaces
    "NAMESPACE_CONJUGATIONS",
    "NAMESPACE_EXAMPLES",
    "NAMESPACE_VOCABULARY",
    "NAMESPACE_SCENES",
    "NAMESPACE_SPEECH",
    "PERSISTED_NAMESPACES",
    "KEY_PREFIX_NAMESPACE",
    # Stores
    "NamespaceStore",
    "PersistentStore",
    "MemoryNamespaceStore",
    "build_namespace_store",
]
