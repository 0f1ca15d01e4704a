"""Process-local namespace store."""

from fala.services.store.base import NamespaceStore


class MemoryNamespaceStore(NamespaceStore):
    """Keeps blobs in a dict; survives cache reloads but not the process."""

    backend_name = "memory"

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.blobs: dict[str, str] = dict(initial or {})

    async def read_namespace(self, name: str) -> str | None:
        return self.blobs.get(name)

    async def write_namespace(self, name: str, blob: str) -> None:
        self.blobs[name] = blob

    async def delete_namespace(self, name: str) -> None:
        self.blobs.pop(name, None)
