"""
Brute-force in-memory node index using numpy.
"""

import numpy as np

from boltgraph.core.index.base import NodeHit, NodeIndex
from boltgraph.core.vectors import as_array, normalize
from boltgraph.models.node import Granularity, Node
from boltgraph.utils.exceptions import DimensionMismatchError


class InMemoryNodeIndex(NodeIndex):
    """Exact cosine search over every indexed vector."""

    def __init__(self):
        self._vectors: dict[tuple[str, str], np.ndarray] = {}
        self._entries: dict[tuple[str, str], Node] = {}

    async def initialize(self) -> None:
        pass

    async def upsert_nodes(self, document_id: str, nodes: list[Node]) -> None:
        for node in nodes:
            if node.tombstoned or not node.combined_vector:
                continue
            key = (document_id, node.id)
            self._vectors[key] = normalize(node.combined_vector)
            self._entries[key] = node

    async def delete_nodes(self, document_id: str, node_ids: list[str]) -> None:
        for node_id in node_ids:
            self._vectors.pop((document_id, node_id), None)
            self._entries.pop((document_id, node_id), None)

    async def search(
        self,
        vector: list[float],
        k: int = 10,
        document_id: str | None = None,
        granularity: Granularity | None = None,
        min_score: float | None = None,
    ) -> list[NodeHit]:
        keys = [
            key
            for key, node in self._entries.items()
            if (document_id is None or key[0] == document_id)
            and (granularity is None or node.granularity == granularity)
        ]
        if not keys or k <= 0:
            return []

        query = normalize(as_array(vector))
        matrix = np.vstack([self._vectors[key] for key in keys])
        if matrix.shape[1] != query.shape[0]:
            raise DimensionMismatchError(
                f"Query dimension {query.shape[0]} does not match index dimension {matrix.shape[1]}",
                context={"query": int(query.shape[0]), "index": int(matrix.shape[1])},
            )
        scores = matrix @ query

        # Ties broken by (document, node) so results are deterministic
        order = sorted(range(len(keys)), key=lambda i: (-scores[i], keys[i]))
        hits = []
        for i in order:
            score = float(scores[i])
            if min_score is not None and score < min_score:
                continue
            node = self._entries[keys[i]]
            hits.append(
                NodeHit(
                    node_id=node.id,
                    document_id=keys[i][0],
                    granularity=node.granularity,
                    score=score,
                )
            )
            if len(hits) >= k:
                break
        return hits

    async def count(self, document_id: str | None = None) -> int:
        if document_id is None:
            return len(self._entries)
        return sum(1 for key in self._entries if key[0] == document_id)

    async def close(self) -> None:
        self._vectors.clear()
        self._entries.clear()
