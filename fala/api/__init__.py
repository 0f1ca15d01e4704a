"""API module exports."""

from fala.api.routes import chat_router, content_router, health_router
from fala.api.deps import Caches, Content, Store, Tutor

__all__ = [
    # Routers
    "chat_router",
    "content_router",
    "health_router",
    # Dependencies
    "Caches",
    "Content",
    "Store",
    "Tutor",
]
