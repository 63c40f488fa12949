"""
Factory for creating storage backends.
"""

from boltgraph.config import StorageConfig
from boltgraph.core.storage.base import BlobStore
from boltgraph.core.storage.codec import HierarchyCodec
from boltgraph.core.storage.manager import StorageManager
from boltgraph.core.storage.memory import InMemoryBlobStore
from boltgraph.core.storage.sqlite import SQLiteBlobStore


class StorageFactory:
    """Factory for creating blob stores and the revision storage manager."""

    @staticmethod
    def create_blob_store(config: StorageConfig) -> BlobStore:
        """
        Create blob store from configuration.

        Raises:
            ValueError: If backend is not supported
        """
        if config.backend == "memory":
            return InMemoryBlobStore()
        elif config.backend == "sqlite":
            return SQLiteBlobStore(db_path=config.sqlite_path)
        else:
            raise ValueError(f"Unsupported storage backend: {config.backend}")

    @staticmethod
    def create(config: StorageConfig) -> StorageManager:
        return StorageManager(
            store=StorageFactory.create_blob_store(config),
            codec=HierarchyCodec(compression_level=config.compression_level),
        )
