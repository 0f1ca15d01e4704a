"""Services module exports."""

from fala.services.cache import ContentCache, ContentCaches
from fala.services.chat import ChatSession, ChatTutor, ReplySequencer, SSERenderSink
from fala.services.content import ContentService
from fala.services.gateway import GenerationGateway, classify_error
from fala.services.llm import LLMService, get_llm_service
from fala.services.prefetch import PrefetchCoordinator
from fala.services.prompts import ContentKind

__all__ = [
    # Cache
    "ContentCache",
    "ContentCaches",
    # Chat
    "ChatSession",
    "ChatTutor",
    "ReplySequencer",
    "SSERenderSink",
    # Content
    "ContentService",
    "ContentKind",
    # Generation
    "GenerationGateway",
    "classify_error",
    "LLMService",
    "get_llm_service",
    # Prefetch
    "PrefetchCoordinator",
]
