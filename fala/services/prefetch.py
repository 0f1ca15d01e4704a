"""Prefetch coordinator.

``ensure`` is the one way cached content gets generated: it returns a cache
hit, joins an in-flight generation for the same key, or starts one. The
warm-up triggers build on it and run as tracked background tasks whose
failures are logged and dropped.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from fala.core.config import Settings, get_settings
from fala.core.logging import get_logger
from fala.core.tasks import TaskTracker
from fala.services.cache import ContentCache

logger = get_logger(__name__)

T = TypeVar("T")
I = TypeVar("I")

Generator = Callable[[], Awaitable[T]]


class PrefetchCoordinator:
    """Coalesces generations per key and runs speculative warm-ups."""

    def __init__(
        self,
        tracker: TaskTracker | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._tracker = tracker or TaskTracker()
        self._startup_delay = settings.prefetch_startup_delay_seconds
        self._lookahead = settings.prefetch_lookahead
        self._in_flight: dict[tuple[str, str], asyncio.Task[Any]] = {}
        self._startup_task: asyncio.Task[Any] | None = None

    @property
    def tracker(self) -> TaskTracker:
        return self._tracker

    def is_in_flight(self, cache: ContentCache[Any], key: str) -> bool:
        return (cache.namespace, key) in self._in_flight

    async def ensure(self, cache: ContentCache[T], key: str, generator: Generator[T]) -> T:
        """Return the cached value for ``key``, generating it at most once.

        The generation runs in its own tracked task and every caller, the
        first included, awaits it shielded: cancelling one caller never
        aborts the value the others are waiting for.

        Raises:
            Whatever ``generator`` raises; nothing is cached in that case and
            every caller coalesced onto this generation gets the same error.
        """
        cached = cache.get(key)
        if cached is not None:
            return cached

        marker = (cache.namespace, key)
        task = self._in_flight.get(marker)
        if task is None:
            # Registered before the first await so a concurrent caller sees it
            task = self._tracker.submit(
                self._generate(cache, key, generator, marker),
                name=f"generate:{cache.namespace}:{key}",
            )
            self._in_flight[marker] = task
        else:
            logger.debug("Joining in-flight generation", namespace=cache.namespace, key=key)

        return await asyncio.shield(task)

    async def _generate(
        self,
        cache: ContentCache[T],
        key: str,
        generator: Generator[T],
        marker: tuple[str, str],
    ) -> T:
        try:
            value = await generator()
            await cache.put(key, value)
            return value
        finally:
            self._in_flight.pop(marker, None)

    def warm(self, cache: ContentCache[T], key: str, generator: Generator[T]) -> asyncio.Task[Any]:
        """Fire-and-forget ``ensure``; failures are logged, never raised."""
        return self._tracker.submit(
            self._warm(cache, key, generator),
            name=f"warm:{cache.namespace}:{key}",
        )

    async def _warm(self, cache: ContentCache[T], key: str, generator: Generator[T]) -> None:
        try:
            await self.ensure(cache, key, generator)
        except Exception as e:
            logger.warning(
                "Background warm-up failed",
                namespace=cache.namespace,
                key=key,
                error=str(e),
            )

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def warm_startup(
        self,
        cache: ContentCache[T],
        items: Sequence[I],
        key_fn: Callable[[I], str],
        generator_fn: Callable[[I], Awaitable[T]],
        active: I | None = None,
    ) -> asyncio.Task[Any]:
        """After the startup delay, warm every item except ``active``."""

        async def _run() -> None:
            await asyncio.sleep(self._startup_delay)
            targets = [item for item in items if item != active]
            logger.info("Startup warm-up", namespace=cache.namespace, items=len(targets))
            for item in targets:
                self.warm(cache, key_fn(item), _bind(generator_fn, item))

        self._startup_task = self._tracker.submit(_run(), name=f"warm-startup:{cache.namespace}")
        return self._startup_task

    def warm_following(
        self,
        cache: ContentCache[T],
        items: Sequence[I],
        selected: I,
        key_fn: Callable[[I], str],
        generator_fn: Callable[[I], Awaitable[T]],
        count: int | None = None,
    ) -> list[str]:
        """Warm the ``count`` items after ``selected`` in ``items``."""
        if selected not in items:
            return []

        count = self._lookahead if count is None else count
        start = list(items).index(selected) + 1
        keys = []
        for item in items[start:start + count]:
            key = key_fn(item)
            self.warm(cache, key, _bind(generator_fn, item))
            keys.append(key)
        return keys

    def warm_batch(
        self,
        cache: ContentCache[T],
        texts: Sequence[str],
        generator_fn: Callable[[str], Awaitable[T]],
        key_fn: Callable[[str], str] = str,
    ) -> list[str]:
        """Warm a derived key for every sentence of a fresh batch."""
        keys = []
        for text in texts:
            key = key_fn(text)
            self.warm(cache, key, _bind(generator_fn, text))
            keys.append(key)
        return keys

    def warm_next(
        self,
        cache: ContentCache[T],
        items: Sequence[I],
        index: int,
        key_fn: Callable[[I], str],
        generator_fn: Callable[[I], Awaitable[T]],
    ) -> str | None:
        """Warm item ``index + 1`` of a sequence, if there is one."""
        following = index + 1
        if index < 0 or following >= len(items):
            return None

        item = items[following]
        key = key_fn(item)
        self.warm(cache, key, _bind(generator_fn, item))
        return key

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait until every background warm-up has settled."""
        await self._tracker.wait_idle()

    async def shutdown(self, drain_timeout: float = 5.0) -> None:
        """Cancel a pending startup warm-up and drain the rest."""
        if self._startup_task is not None and not self._startup_task.done():
            self._startup_task.cancel()

        try:
            await asyncio.wait_for(self._tracker.wait_idle(), timeout=drain_timeout)
        except TimeoutError:
            logger.warning("Background warm-ups still running at shutdown, cancelling", pending=len(self._tracker))
            await self._tracker.cancel_all()


def _bind(generator_fn: Callable[[I], Awaitable[T]], item: I) -> Generator[T]:
    def _generator() -> Awaitable[T]:
        return generator_fn(item)

    return _generator
