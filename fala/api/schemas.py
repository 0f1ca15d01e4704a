"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from fala.services.models import (
    ChatMessage,
    ConjugationData,
    Example,
    FunctionalScene,
    VocabularyItem,
    WrittenDrill,
)


# ============================================================
# Verb Schemas
# ============================================================

class VerbSelectRequest(BaseModel):
    """Schema for selecting a verb from the learner's list."""

    verbs: list[str] = Field(..., min_length=1, description="The ordered verb list being browsed")
    verb: str = Field(..., min_length=1, max_length=100)


class VerbValidateRequest(BaseModel):
    """Schema for checking a learner-added verb."""

    verb: str = Field(..., min_length=1, max_length=100)


class ConjugationResponse(BaseModel):
    """Schema for a verb's conjugation table."""

    verb: str
    conjugations: ConjugationData


# ============================================================
# Content Schemas
# ============================================================

class ExamplesRequest(BaseModel):
    """Schema for example sentences; no form means general examples."""

    verb: str = Field(..., min_length=1, max_length=100)
    form: str | None = Field(default=None, max_length=100)
    existing: list[Example] | None = Field(
        default=None,
        description="Sentences already shown; when given, new ones are generated and not cached",
    )


class ExamplesResponse(BaseModel):
    """Schema for a batch of example sentences."""

    examples: list[Example]


class VocabularyRequest(BaseModel):
    """Schema for a vocabulary set."""

    category: str = Field(..., min_length=1, max_length=200)
    existing_words: list[VocabularyItem] | None = None
    exclude: list[str] | None = Field(default=None, description="Words to leave out, e.g. already banked")


class VocabularyResponse(BaseModel):
    """Schema for a vocabulary set."""

    category: str
    items: list[VocabularyItem]


class SceneRequest(BaseModel):
    """Schema for a functional-language scene."""

    domain: str = Field(..., min_length=1, max_length=200)
    subtopic: str = Field(default="", max_length=200)
    function: str = Field(..., min_length=1, max_length=500)
    existing_scene: FunctionalScene | None = Field(
        default=None,
        description="Previous scene; when given, a different one is generated and not cached",
    )


class DomainRequest(BaseModel):
    """Schema for turning a free-form topic into a learning module."""

    topic: str = Field(..., min_length=1, max_length=200)


class GrammarExamplesRequest(BaseModel):
    """Schema for a batch of grammar practice sentences."""

    topic: str = Field(..., min_length=1, max_length=200)
    count: int = Field(default=5, ge=1, le=20)
    existing: list[Example] | None = None


class GrammarParagraphRequest(BaseModel):
    """Schema for a themed paragraph showcasing a grammar point."""

    topic: str = Field(..., min_length=1, max_length=200)
    theme: str = Field(default="", max_length=200)


class GrammarTheoryRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=200)


class WrittenDrillsRequest(BaseModel):
    """Schema for a batch of fill-in-the-blank exercises."""

    topic: str = Field(..., min_length=1, max_length=200)
    count: int = Field(default=5, ge=1, le=20)


class WrittenDrillsResponse(BaseModel):
    drills: list[WrittenDrill]


class SpeechRequest(BaseModel):
    """Schema for synthesizing one sentence."""

    text: str = Field(..., min_length=1, max_length=2000)


class DrillStepRequest(BaseModel):
    """Schema for the current step of a speaking drill."""

    sentences: list[str] = Field(..., min_length=1)
    index: int = Field(..., ge=0)


class SpeechResponse(BaseModel):
    """Schema for synthesized speech (base64 raw PCM)."""

    text: str
    audio: str


class PronunciationRequest(BaseModel):
    """Schema for pronunciation feedback."""

    original: str = Field(..., min_length=1, max_length=2000)
    attempt: str = Field(..., max_length=2000)


class PronunciationResponse(BaseModel):
    """Schema for pronunciation feedback."""

    feedback: str


class CacheStats(BaseModel):
    """Schema for one cache namespace."""

    entries: int
    persistent: bool


class ClearCacheResponse(BaseModel):
    """Schema for clearing a cache namespace."""

    success: bool = True
    namespace: str
    cleared: int


# ============================================================
# Chat Schemas
# ============================================================

class ChatStartRequest(BaseModel):
    """Schema for opening a tutor conversation."""

    topic: str = Field(..., min_length=1, max_length=200)


class ChatMessageRequest(BaseModel):
    """Schema for a learner message."""

    text: str = Field(..., min_length=1, max_length=2000)


class ChatSessionResponse(BaseModel):
    """Schema for a tutor conversation."""

    id: str
    topic: str
    created_at: datetime
    streaming: bool
    messages: list[ChatMessage]


class SuggestionResponse(BaseModel):
    """Schema for a suggested learner reply."""

    portuguese: str
    english: str


# ============================================================
# Health Check Schemas
# ============================================================

class ServiceHealth(BaseModel):
    """Schema for individual service health."""

    status: str = Field(..., pattern=r"^(healthy|unhealthy|degraded)$")
    latency_ms: float | None = None
    details: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    """Schema for health check response."""

    status: str = Field(..., pattern=r"^(healthy|unhealthy|degraded)$")
    timestamp: datetime
    version: str
    services: dict[str, ServiceHealth]
