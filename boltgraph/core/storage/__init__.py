"""Blob storage, revision bundles and the hot-node cache."""

from boltgraph.core.storage.base import BlobStore
from boltgraph.core.storage.cache import HotNodeCache
from boltgraph.core.storage.codec import BundleHeader, HierarchyCodec
from boltgraph.core.storage.manager import StorageManager
from boltgraph.core.storage.memory import InMemoryBlobStore
from boltgraph.core.storage.sqlite import SQLiteBlobStore

__all__ = [
    "BlobStore",
    "InMemoryBlobStore",
    "SQLiteBlobStore",
    "BundleHeader",
    "HierarchyCodec",
    "HotNodeCache",
    "StorageManager",
]
