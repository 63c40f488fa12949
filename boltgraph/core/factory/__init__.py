"""
Factory modules for creating BoltGraph components.

Provides modular factories for the analyzer, storage and search index.
"""

from boltgraph.core.factory.analyzer_factory import AnalyzerFactory
from boltgraph.core.factory.index_factory import IndexFactory
from boltgraph.core.factory.storage_factory import StorageFactory

__all__ = [
    "AnalyzerFactory",
    "IndexFactory",
    "StorageFactory",
]
