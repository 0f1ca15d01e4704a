"""SQLAlchemy-backed namespace store (one row per namespace)."""

import asyncio

from sqlalchemy import delete, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fala.core.logging import get_logger
from fala.db.models import CacheNamespace
from fala.db.session import get_db_context, get_session_factory
from fala.services.store.base import NamespaceStore

logger = get_logger(__name__)


class SqlNamespaceStore(NamespaceStore):
    """Stores namespace blobs in the ``cache_namespaces`` table."""

    backend_name = "sql"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or get_session_factory()

    async def read_namespace(self, name: str) -> str | None:
        async with get_db_context(self._session_factory) as session:
            result = await session.execute(
                select(CacheNamespace.payload).where(CacheNamespace.name == name)
            )
            return result.scalar_one_or_none()

    async def write_namespace(self, name: str, blob: str) -> None:
        async with get_db_context(self._session_factory) as session:
            row = await session.get(CacheNamespace, name)
            if row is None:
                session.add(CacheNamespace(name=name, payload=blob))
            else:
                row.payload = blob

    async def delete_namespace(self, name: str) -> None:
        async with get_db_context(self._session_factory) as session:
            await session.execute(delete(CacheNamespace).where(CacheNamespace.name == name))

    async def check_health(self, timeout: float = 5.0) -> bool:
        async def _check() -> bool:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True

        try:
            return await asyncio.wait_for(_check(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("Namespace store health check timed out", timeout=timeout)
            return False
        except Exception as e:
            logger.error("Namespace store health check failed", error=str(e))
            return False
