"""
In-memory blob store for tests and single-process deployments.
"""

from boltgraph.core.storage.base import BlobStore


class InMemoryBlobStore(BlobStore):
    """Dictionary-backed blob store. No ranged reads."""

    def __init__(self):
        self._blobs: dict[str, bytes] = {}

    async def initialize(self) -> None:
        pass

    async def store(self, key: str, data: bytes) -> None:
        self._blobs[key] = bytes(data)

    async def retrieve(self, key: str) -> bytes | None:
        return self._blobs.get(key)

    async def exists(self, key: str) -> bool:
        return key in self._blobs

    async def delete(self, key: str) -> None:
        self._blobs.pop(key, None)

    async def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(key for key in self._blobs if key.startswith(prefix))

    async def close(self) -> None:
        pass
