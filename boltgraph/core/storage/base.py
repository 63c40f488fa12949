"""
Base interface for blob storage backends.

The physical storage engine is external; BoltGraph only needs keyed byte
blobs with optional ranged reads.
"""

from abc import ABC, abstractmethod


class BlobStore(ABC):
    """Abstract base class for blob storage implementations."""

    @abstractmethod
    async def initialize(self) -> None:
        """
        Prepare the backend (create tables, directories).

        Raises:
            StorageError: If initialization fails
        """
        pass

    @abstractmethod
    async def store(self, key: str, data: bytes) -> None:
        """
        Store a blob, replacing any blob under the same key.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def retrieve(self, key: str) -> bytes | None:
        """
        Retrieve a blob.

        Returns:
            Blob bytes or None if the key is unknown
        """
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> list[str]:
        """Keys starting with prefix, sorted."""
        pass

    def supports_partial_retrieval(self) -> bool:
        """Whether retrieve_partial can read a byte range without the full blob."""
        return False

    async def retrieve_partial(self, key: str, offset: int, length: int) -> bytes | None:
        """
        Read length bytes starting at offset.

        Backends without ranged reads fall back to slicing the full blob.
        """
        data = await self.retrieve(key)
        if data is None:
            return None
        return data[offset : offset + length]

    @abstractmethod
    async def close(self) -> None:
        pass
