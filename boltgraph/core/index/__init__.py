"""Node search index implementations."""

from boltgraph.core.index.base import NodeHit, NodeIndex
from boltgraph.core.index.memory import InMemoryNodeIndex
from boltgraph.core.index.qdrant import QdrantNodeIndex

__all__ = [
    "NodeHit",
    "NodeIndex",
    "InMemoryNodeIndex",
    "QdrantNodeIndex",
]
