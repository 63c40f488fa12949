"""
Factory for creating node search indexes.
"""

from urllib.parse import urlparse

from boltgraph.config import IndexConfig
from boltgraph.core.index.base import NodeIndex
from boltgraph.core.index.memory import InMemoryNodeIndex
from boltgraph.core.index.qdrant import QdrantNodeIndex


class IndexFactory:
    """Factory for creating node indexes from configuration."""

    @staticmethod
    def create(config: IndexConfig, vector_size: int) -> NodeIndex:
        """
        Create node index from configuration.

        Args:
            config: Index configuration
            vector_size: Combined vector dimension

        Returns:
            Node index instance

        Raises:
            ValueError: If backend is not supported
        """
        if config.backend == "memory":
            return InMemoryNodeIndex()
        elif config.backend == "qdrant":
            # Parse URL to extract host and port
            parsed = urlparse(config.qdrant_url)
            host = parsed.hostname or "localhost"
            port = parsed.port or 6333

            return QdrantNodeIndex(
                host=host,
                port=port,
                collection_name=config.collection_name,
                vector_size=vector_size,
                use_grpc=config.use_grpc,
                timeout=config.timeout,
            )
        else:
            raise ValueError(f"Unsupported index backend: {config.backend}")
