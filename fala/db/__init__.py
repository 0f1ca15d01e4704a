"""Database module exports."""

from fala.db.models import Base, CacheNamespace
from fala.db.session import (
    close_db,
    get_db_context,
    get_engine,
    get_session_factory,
    init_db,
)

__all__ = [
    # Models
    "Base",
    "CacheNamespace",
    # Session management
    "get_db_context",
    "get_engine",
    "get_session_factory",
    "init_db",
    "close_db",
]
