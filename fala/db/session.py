"""Async database session management with connection pooling.

The database only backs the cache namespace store, so sessions are short
and opened per read/write rather than per request.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from fala.core.config import get_settings
from fala.core.logging import get_logger

logger = get_logger(__name__)

# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async database engine."""
    global _engine

    if _engine is None:
        settings = get_settings()
        url = settings.processed_database_url

        engine_kwargs: dict[str, Any] = {
            "echo": settings.db_echo,
            "pool_pre_ping": True,
        }

        if url.startswith("sqlite"):
            # SQLite picks its own pool; connect_args must stay empty
            connect_args: dict[str, Any] = {}
            logger.info("Using SQLite namespace store", url=url)
        else:
            # Disable asyncpg prepared statement cache (pgbouncer / schema changes)
            connect_args = {
                "statement_cache_size": 0,
                "prepared_statement_cache_size": 0,
            }
            if "neon.tech" in url:
                # Serverless: let Neon handle connection pooling
                engine_kwargs["poolclass"] = NullPool
                logger.info("Using NullPool for serverless database")
            else:
                engine_kwargs.update({
                    "pool_size": settings.db_pool_size,
                    "max_overflow": settings.db_max_overflow,
                    "pool_timeout": settings.db_pool_timeout,
                    "pool_recycle": 1800,
                })
                logger.info(
                    "Using connection pool",
                    pool_size=settings.db_pool_size,
                    max_overflow=settings.db_max_overflow,
                )

        _engine = create_async_engine(url, connect_args=connect_args, **engine_kwargs)
        logger.info("Database engine created")

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    return _session_factory


@asynccontextmanager
async def get_db_context(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Session context manager that commits on success and rolls back on error."""
    factory = session_factory or get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create the namespace table if it does not exist."""
    from fala.db.models import Base

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables initialized")


async def close_db() -> None:
    """Close database connections and dispose of the engine."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connections closed")

