"""API dependencies for FastAPI routes.

Services are built once in the application lifespan and kept on
``app.state``; these getters hand them to routes and are the seams tests
override with ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends, Request

from fala.services.cache import ContentCaches
from fala.services.chat import ChatTutor
from fala.services.content import ContentService
from fala.services.store import NamespaceStore


def get_content_service(request: Request) -> ContentService:
    return request.app.state.content_service


def get_chat_tutor(request: Request) -> ChatTutor:
    return request.app.state.chat_tutor


def get_content_caches(request: Request) -> ContentCaches:
    return request.app.state.content_caches


def get_namespace_store(request: Request) -> NamespaceStore:
    return request.app.state.namespace_store


# Type aliases for cleaner route signatures
Content = Annotated[ContentService, Depends(get_content_service)]
Tutor = Annotated[ChatTutor, Depends(get_chat_tutor)]
Caches = Annotated[ContentCaches, Depends(get_content_caches)]
Store = Annotated[NamespaceStore, Depends(get_namespace_store)]
