"""Write-through content caches, one per generated content kind.

Each cache is an in-memory mapping loaded once from the namespace store at
startup. ``put`` replaces the entry and immediately persists the whole
namespace; there is no TTL and no eviction.
"""

import asyncio
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from fala.core.exceptions import StoreWriteError
from fala.core.logging import get_logger
from fala.services.models import ConjugationData, Example, FunctionalScene, VocabularyItem
from fala.services.store import (
    NAMESPACE_CONJUGATIONS,
    NAMESPACE_EXAMPLES,
    NAMESPACE_SCENES,
    NAMESPACE_SPEECH,
    NAMESPACE_VOCABULARY,
    PersistentStore,
)

logger = get_logger(__name__)

T = TypeVar("T")


class ContentCache(Generic[T]):
    """Keyed cache of generated values backed by one store namespace.

    ``store=None`` makes a process-lifetime cache with the same interface
    (used for synthesized speech, which is too large to persist).
    """

    def __init__(
        self,
        namespace: str,
        value_type: Any,
        store: PersistentStore | None = None,
    ) -> None:
        self.namespace = namespace
        self._adapter: TypeAdapter[T] = TypeAdapter(value_type)
        self._store = store
        self._entries: dict[str, T] = {}
        self._persist_lock = asyncio.Lock()

    @property
    def persistent(self) -> bool:
        return self._store is not None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        return list(self._entries)

    async def load(self) -> int:
        """Replace in-memory entries with the persisted namespace."""
        if self._store is None:
            return 0

        pairs = await self._store.load(self.namespace)
        entries: dict[str, T] = {}
        try:
            for key, raw in pairs:
                entries[key] = self._adapter.validate_python(raw)
        except PydanticValidationError as e:
            await self._store.discard(
                self.namespace,
                reason=f"entry does not match {self._adapter} ({e.error_count()} errors)",
            )
            entries = {}

        self._entries = entries
        logger.info("Content cache loaded", namespace=self.namespace, entries=len(entries))
        return len(entries)

    def get(self, key: str) -> T | None:
        """Pure in-memory lookup."""
        return self._entries.get(key)

    async def put(self, key: str, value: T) -> None:
        """Insert or overwrite, then persist the entire namespace."""
        self._entries[key] = value
        await self._persist()

    async def clear(self) -> None:
        self._entries = {}
        await self._persist()

    async def _persist(self) -> None:
        if self._store is None:
            return

        # Snapshot under the lock so a later put can never be overwritten
        # by an earlier, slower save.
        async with self._persist_lock:
            snapshot = [
                (key, self._adapter.dump_python(value, mode="json"))
                for key, value in self._entries.items()
            ]
            try:
                await self._store.save(self.namespace, snapshot)
            except StoreWriteError as e:
                # Content is already generated; serve it from memory this session
                logger.warning(
                    "Cache persist failed, keeping in-memory entry",
                    namespace=self.namespace,
                    error=e.message,
                )


class ContentCaches:
    """The process-wide set of content caches."""

    def __init__(self, store: PersistentStore | None) -> None:
        self.conjugations: ContentCache[ConjugationData] = ContentCache(
            NAMESPACE_CONJUGATIONS, ConjugationData, store
        )
        self.examples: ContentCache[list[Example]] = ContentCache(
            NAMESPACE_EXAMPLES, list[Example], store
        )
        self.vocabulary: ContentCache[list[VocabularyItem]] = ContentCache(
            NAMESPACE_VOCABULARY, list[VocabularyItem], store
        )
        self.scenes: ContentCache[FunctionalScene] = ContentCache(
            NAMESPACE_SCENES, FunctionalScene, store
        )
        self.speech: ContentCache[str] = ContentCache(NAMESPACE_SPEECH, str)

    def all(self) -> list[ContentCache[Any]]:
        return [self.conjugations, self.examples, self.vocabulary, self.scenes, self.speech]

    def by_namespace(self, namespace: str) -> ContentCache[Any] | None:
        return next((c for c in self.all() if c.namespace == namespace), None)

    async def load_all(self) -> dict[str, int]:
        """Load every persisted namespace concurrently."""
        caches = self.all()
        counts = await asyncio.gather(*(cache.load() for cache in caches))
        return {cache.namespace: count for cache, count in zip(caches, counts)}

    def stats(self) -> dict[str, dict[str, Any]]:
        return {
            cache.namespace: {"entries": len(cache), "persistent": cache.persistent}
            for cache in self.all()
        }
