"""
Base interface for the node search index.

The index holds the combined vectors of live nodes in each document's head
revision. It is rebuilt from committed revisions and is never the source of
truth.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from boltgraph.models.node import Granularity, Node


class NodeHit(BaseModel):
    """Search index hit."""

    node_id: str
    document_id: str
    granularity: Granularity
    score: float


class NodeIndex(ABC):
    """Abstract base class for node index implementations."""

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the index (create collections).

        Raises:
            SearchIndexError: If initialization fails
        """
        pass

    @abstractmethod
    async def upsert_nodes(self, document_id: str, nodes: list[Node]) -> None:
        """
        Store or replace the vectors of live nodes.

        Args:
            document_id: Owning document ID
            nodes: Node records with combined vectors

        Raises:
            SearchIndexError: If the upsert fails
        """
        pass

    @abstractmethod
    async def delete_nodes(self, document_id: str, node_ids: list[str]) -> None:
        pass

    @abstractmethod
    async def search(
        self,
        vector: list[float],
        k: int = 10,
        document_id: str | None = None,
        granularity: Granularity | None = None,
        min_score: float | None = None,
    ) -> list[NodeHit]:
        """
        Nearest nodes by cosine similarity.

        Args:
            vector: Query vector in the combined space
            k: Maximum number of hits
            document_id: Restrict to one document
            granularity: Restrict to one granularity
            min_score: Drop hits below this similarity

        Returns:
            Hits ordered by descending score
        """
        pass

    @abstractmethod
    async def count(self, document_id: str | None = None) -> int:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
