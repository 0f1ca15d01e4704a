"""Routes module exports."""

from fala.api.routes.chat import router as chat_router
from fala.api.routes.content import router as content_router
from fala.api.routes.health import router as health_router

__all__ = [
    "chat_router",
    "content_router",
    "health_router",
]
