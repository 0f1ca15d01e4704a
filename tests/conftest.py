"""Test configuration and fixtures.

Provides isolated test fixtures for:
- Namespace stores (in-memory and SQLite) and content caches
- A scripted generation gateway that records every call
- Content service, prefetch coordinator and chat tutor wired together
- HTTP client with dependency overrides
"""

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fala.api.deps import (
    get_chat_tutor,
    get_content_caches,
    get_content_service,
    get_namespace_store,
)
from fala.core.config import Settings
from fala.core.tasks import TaskTracker
from fala.db.models import Base
from fala.main import app
from fala.services.cache import ContentCaches
from fala.services.chat import ChatTutor
from fala.services.content import ContentService
from fala.services.models import (
    ConjugationData,
    ConjugationForms,
    CorrectionCheck,
    Example,
    FunctionalDomain,
    FunctionalPhrase,
    FunctionalScene,
    FunctionalSubtopic,
    GrammarParagraph,
    GrammarTheory,
    GrammarTheoryExample,
    TutorLine,
    VerbValidation,
    VocabularyItem,
    WrittenDrill,
)
from fala.services.prefetch import PrefetchCoordinator
from fala.services.prompts import ContentKind
from fala.services.store import MemoryNamespaceStore, PersistentStore


# SQLite in-memory; StaticPool keeps every session on the same connection
TEST_DATABASE_URL = "sqlite+aiosqlite://"


# =============================================================================
# Sample content
# =============================================================================

def make_conjugations(stem: str = "fal") -> ConjugationData:
    forms = ConjugationForms(eu=f"{stem}o", voce=f"{stem}a", nos=f"{stem}amos", voces=f"{stem}am")
    return ConjugationData(
        presente=forms,
        preterito_perfeito=forms,
        preterito_imperfeito=forms,
        preterito_perfeito_composto=forms,
        futuro_do_presente=forms,
        futuro_do_preterito=forms,
        presente_do_subjuntivo=forms,
        imperfeito_do_subjuntivo=forms,
    )


SAMPLE_EXAMPLES = [
    Example(portuguese="Eu falo português.", english="I speak Portuguese."),
    Example(portuguese="Ela fala muito rápido.", english="She speaks very fast."),
]

SAMPLE_VOCABULARY = [
    VocabularyItem(
        portuguese_word="arroz",
        english_translation="rice",
        word_type="noun (masculine)",
        example_sentence="Eu como arroz todo dia.",
        example_translation="I eat rice every day.",
    ),
]

SAMPLE_SCENE = FunctionalScene(
    scene_title="Ordering Coffee",
    scene_description="You are at a café in São Paulo.",
    phrases=[
        FunctionalPhrase(speaker="You", portuguese="Um café, por favor.", english="A coffee, please."),
        FunctionalPhrase(speaker="Barista", portuguese="Com açúcar?", english="With sugar?"),
    ],
)


def default_responses() -> dict[ContentKind, Any]:
    return {
        ContentKind.CONJUGATIONS: lambda params: make_conjugations(params["verb"].lower()[:3]),
        ContentKind.EXAMPLES: SAMPLE_EXAMPLES,
        ContentKind.GENERAL_EXAMPLES: SAMPLE_EXAMPLES,
        ContentKind.VOCABULARY: SAMPLE_VOCABULARY,
        ContentKind.SCENE: SAMPLE_SCENE,
        ContentKind.SPEECH: lambda params: f"pcm:{params['text']}",
        ContentKind.VERB_VALIDATION: VerbValidation(is_valid=True),
        ContentKind.FUNCTIONAL_DOMAIN: FunctionalDomain(
            name="At the Airport",
            emoji="✈️",
            subtopics=[FunctionalSubtopic(name="Checking In", functions=["Checking luggage"])],
        ),
        ContentKind.GRAMMAR_EXAMPLES: SAMPLE_EXAMPLES,
        ContentKind.GRAMMAR_PARAGRAPH: GrammarParagraph(
            portuguese_paragraph="Espero que você venha para a festa. Tomara que faça sol.",
            english_translation="I hope you come to the party. Hopefully it will be sunny.",
            highlighted_words=["venha", "faça"],
        ),
        ContentKind.GRAMMAR_THEORY: GrammarTheory(
            topic="Present Subjunctive",
            explanation="Used after expressions of hope, doubt and desire.",
            examples=[GrammarTheoryExample(portuguese="Espero que você venha.", english="I hope you come.")],
        ),
        ContentKind.WRITTEN_DRILLS: lambda params: [
            WrittenDrill(
                sentence_with_blank="Espero que ele ___ amanhã.",
                correct_answer="venha",
                english_hint="I hope he comes tomorrow.",
            )
        ] * params["count"],
        ContentKind.PRONUNCIATION_FEEDBACK: "Excellent! That's perfect.",
        ContentKind.CHAT_OPENING: TutorLine(portuguese="Oi! Você gosta de café?", english="Hi! Do you like coffee?"),
        ContentKind.CHAT_SUGGESTION: TutorLine(portuguese="Sim, eu adoro café.", english="Yes, I love coffee."),
        ContentKind.CHAT_CORRECTION: CorrectionCheck(needs_correction=False),
        ContentKind.CHAT_TRANSLATION: "That's great! Do you drink it every day?",
    }


# =============================================================================
# Fake gateway
# =============================================================================

class FakeGateway:
    """Scripted stand-in for GenerationGateway that records every call.

    ``responses[kind]`` may be a value, a callable taking the params, or an
    exception instance to raise.
    """

    def __init__(self) -> None:
        self.responses: dict[ContentKind, Any] = default_responses()
        self.calls: list[tuple[ContentKind, dict[str, Any], frozenset[str] | None]] = []
        self.stream_chunks: list[str] = ["Que bom! ", "Você toma ", "café todo dia?"]
        self.stream_error: BaseException | None = None
        self.stream_calls: list[list[dict[str, str]]] = []
        self.delay = 0.0

    async def fetch(self, kind: ContentKind, params: dict[str, Any], exclude: Any = None) -> Any:
        self.calls.append((kind, dict(params), frozenset(exclude) if exclude else None))
        if self.delay:
            await asyncio.sleep(self.delay)

        response = self.responses[kind]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(params)
        return response

    async def stream_text(self, messages: list[dict[str, str]], *, system_prompt: str | None = None) -> AsyncIterator[str]:
        self.stream_calls.append(list(messages))
        for chunk in self.stream_chunks:
            await asyncio.sleep(0)
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error

    def calls_for(self, kind: ContentKind) -> list[tuple[ContentKind, dict[str, Any], frozenset[str] | None]]:
        return [call for call in self.calls if call[0] is kind]


# =============================================================================
# Settings & stores
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        cache_backend="memory",
        gemini_api_key="test-key",
        openai_api_key="",
        prefetch_startup_delay_seconds=0.0,
        prefetch_lookahead=2,
        generation_timeout_seconds=1.0,
        debug=True,
        upstash_redis_rest_url="",
        upstash_redis_rest_token="",
    )


@pytest.fixture
def memory_store() -> MemoryNamespaceStore:
    return MemoryNamespaceStore()


@pytest.fixture
def persistent_store(memory_store: MemoryNamespaceStore) -> PersistentStore:
    return PersistentStore(memory_store)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine with fresh schema for each test."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


# =============================================================================
# Services
# =============================================================================

@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def caches(persistent_store: PersistentStore) -> ContentCaches:
    return ContentCaches(persistent_store)


@pytest.fixture
def coordinator(test_settings: Settings) -> PrefetchCoordinator:
    return PrefetchCoordinator(TaskTracker(), test_settings)


@pytest.fixture
def content_service(
    caches: ContentCaches,
    fake_gateway: FakeGateway,
    coordinator: PrefetchCoordinator,
) -> ContentService:
    return ContentService(caches, fake_gateway, coordinator)  # type: ignore[arg-type]


@pytest.fixture
def chat_tutor(fake_gateway: FakeGateway) -> ChatTutor:
    return ChatTutor(fake_gateway)  # type: ignore[arg-type]


@pytest.fixture
def mock_llm_service() -> MagicMock:
    """Create a mock LLM service whose adapter methods are AsyncMocks."""
    adapter = MagicMock()
    adapter.generate_json = AsyncMock()
    adapter.generate_text = AsyncMock()
    adapter.synthesize_speech = AsyncMock()

    service = MagicMock()
    service.get_adapter = MagicMock(return_value=adapter)
    service.adapter = adapter
    return service


class RecordingSink:
    """RenderSink that records callbacks in the order they fire."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def on_correction(self, correction: Any) -> None:
        self.events.append(("correction", correction))

    def on_chunk(self, text: str) -> None:
        self.events.append(("chunk", text))

    def on_translation(self, english: str) -> None:
        self.events.append(("translation", english))

    def on_stream_error(self, error: Any) -> None:
        self.events.append(("error", error))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


# =============================================================================
# HTTP Client Fixtures
# =============================================================================

@pytest_asyncio.fixture(scope="function")
async def client(
    content_service: ContentService,
    chat_tutor: ChatTutor,
    caches: ContentCaches,
    memory_store: MemoryNamespaceStore,
    coordinator: PrefetchCoordinator,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client wired to the in-memory services."""
    app.dependency_overrides[get_content_service] = lambda: content_service
    app.dependency_overrides[get_chat_tutor] = lambda: chat_tutor
    app.dependency_overrides[get_content_caches] = lambda: caches
    app.dependency_overrides[get_namespace_store] = lambda: memory_store

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await coordinator.wait_idle()
    app.dependency_overrides.clear()
