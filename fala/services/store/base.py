"""Namespace store contract and the pair-list serialization on top of it.

A namespace is persisted as one blob: a JSON array of ``[key, value]``
pairs. Backends only move blobs around; ``PersistentStore`` owns the
format and the corruption recovery.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

import orjson

from fala.core.exceptions import StoreCorruption, StoreWriteError
from fala.core.logging import get_logger

logger = get_logger(__name__)


class NamespaceStore(ABC):
    """Durable blob storage keyed by namespace name."""

    backend_name: str = "base"

    @abstractmethod
    async def read_namespace(self, name: str) -> str | None:
        """Return the stored blob, or None if the namespace was never written."""
        ...

    @abstractmethod
    async def write_namespace(self, name: str, blob: str) -> None:
        """Replace the stored blob."""
        ...

    @abstractmethod
    async def delete_namespace(self, name: str) -> None:
        """Remove the stored blob if present."""
        ...

    async def check_health(self, timeout: float = 5.0) -> bool:
        """Check backend connectivity."""
        return True

    async def close(self) -> None:
        """Release backend resources."""
        return None


def _parse_pairs(namespace: str, blob: str) -> list[tuple[str, Any]]:
    """Decode a namespace blob, raising StoreCorruption on any malformed shape."""
    try:
        data = orjson.loads(blob)
    except orjson.JSONDecodeError as e:
        raise StoreCorruption(namespace, f"invalid JSON ({e})") from e

    if not isinstance(data, list):
        raise StoreCorruption(namespace, f"expected a list, got {type(data).__name__}")

    pairs: list[tuple[str, Any]] = []
    for index, item in enumerate(data):
        if not isinstance(item, list) or len(item) != 2 or not isinstance(item[0], str):
            raise StoreCorruption(namespace, f"malformed pair at index {index}")
        pairs.append((item[0], item[1]))
    return pairs


class PersistentStore:
    """Loads and saves ordered (key, value) pair lists per namespace."""

    def __init__(self, backend: NamespaceStore) -> None:
        self.backend = backend

    async def load(self, namespace: str) -> list[tuple[str, Any]]:
        """Load a namespace; absent, unreachable or corrupt data yields ``[]``."""
        try:
            blob = await self.backend.read_namespace(namespace)
        except Exception as e:
            logger.warning(
                "Namespace read failed, starting empty",
                namespace=namespace,
                backend=self.backend.backend_name,
                error=str(e),
            )
            return []

        if blob is None:
            return []

        try:
            pairs = _parse_pairs(namespace, blob)
        except StoreCorruption as e:
            await self.discard(namespace, reason=e.message)
            return []

        logger.debug("Namespace loaded", namespace=namespace, entries=len(pairs))
        return pairs

    async def save(self, namespace: str, pairs: Iterable[tuple[str, Any]]) -> None:
        """Serialize and persist the entire namespace."""
        blob = orjson.dumps([[key, value] for key, value in pairs]).decode()
        try:
            await self.backend.write_namespace(namespace, blob)
        except Exception as e:
            raise StoreWriteError(namespace, str(e)) from e

    async def discard(self, namespace: str, *, reason: str) -> None:
        """Clear a corrupt record so it cannot poison future loads."""
        logger.warning("Discarding corrupt cache namespace", namespace=namespace, reason=reason)
        try:
            await self.backend.delete_namespace(namespace)
        except Exception as e:
            logger.warning("Failed to clear corrupt namespace", namespace=namespace, error=str(e))
