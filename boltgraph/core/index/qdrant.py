"""
Qdrant node index.

Point IDs are derived from (document_id, node_id); payloads carry enough
to build a NodeHit without touching storage.
"""

from uuid import NAMESPACE_DNS, uuid5

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    HnswConfigDiff,
    MatchValue,
    PointStruct,
    VectorParams,
)

from boltgraph.core.index.base import NodeHit, NodeIndex
from boltgraph.models.node import Granularity, Node
from boltgraph.utils.exceptions import SearchIndexError
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)


class QdrantNodeIndex(NodeIndex):
    """
    Qdrant-backed node index.

    Features:
    - Cosine distance collection with HNSW
    - Keyword payload indexes on document_id and granularity
    - Batch upserts
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6333,
        collection_name: str = "boltgraph_nodes",
        vector_size: int = 384,
        use_grpc: bool = False,
        timeout: int = 30,
        hnsw_m: int = 16,
        hnsw_ef_construct: int = 100,
    ):
        """
        Initialize Qdrant node index.

        Args:
            host: Qdrant host
            port: Qdrant port (6333 for HTTP, 6334 for gRPC)
            collection_name: Collection name
            vector_size: Combined vector dimension
            use_grpc: Use gRPC connection
            timeout: Client timeout in seconds
            hnsw_m: HNSW M parameter
            hnsw_ef_construct: HNSW ef_construct parameter
        """
        self.host = host
        self.port = port
        self.collection_name = collection_name
        self.vector_size = vector_size
        self.use_grpc = use_grpc
        self.timeout = timeout
        self.hnsw_m = hnsw_m
        self.hnsw_ef_construct = hnsw_ef_construct
        self.client: AsyncQdrantClient | None = None

    @staticmethod
    def _point_id(document_id: str, node_id: str) -> str:
        return str(uuid5(NAMESPACE_DNS, f"{document_id}/{node_id}"))

    async def connect(self) -> None:
        """
        Establish connection to Qdrant.

        Raises:
            SearchIndexError: If connection fails
        """
        if self.client is None:
            try:
                self.client = AsyncQdrantClient(
                    host=self.host,
                    port=self.port,
                    prefer_grpc=self.use_grpc,
                    timeout=self.timeout,
                )
            except Exception as e:
                logger.error(
                    "Failed to connect to Qdrant",
                    extra={"host": self.host, "port": self.port, "error": str(e)},
                )
                raise SearchIndexError(f"Failed to connect to Qdrant: {e}") from e

    async def initialize(self) -> None:
        try:
            await self.connect()

            collections = await self.client.get_collections()
            collection_names = [col.name for col in collections.collections]

            if self.collection_name not in collection_names:
                await self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=VectorParams(
                        size=self.vector_size,
                        distance=Distance.COSINE,
                        hnsw_config=HnswConfigDiff(
                            m=self.hnsw_m,
                            ef_construct=self.hnsw_ef_construct,
                        ),
                    ),
                )
                for field_name in ("document_id", "granularity"):
                    await self.client.create_payload_index(
                        collection_name=self.collection_name,
                        field_name=field_name,
                        field_schema="keyword",
                    )
        except Exception as e:
            logger.error(
                "Failed to initialize Qdrant collection",
                extra={"collection": self.collection_name, "error": str(e)},
            )
            raise SearchIndexError(f"Failed to initialize Qdrant collection: {e}") from e

    async def upsert_nodes(self, document_id: str, nodes: list[Node], batch_size: int = 100) -> None:
        live = [node for node in nodes if not node.tombstoned and node.combined_vector]
        if not live:
            return

        try:
            await self.connect()
            for i in range(0, len(live), batch_size):
                points = [
                    PointStruct(
                        id=self._point_id(document_id, node.id),
                        vector=node.combined_vector,
                        payload={
                            "node_id": node.id,
                            "document_id": document_id,
                            "granularity": node.granularity.value,
                        },
                    )
                    for node in live[i : i + batch_size]
                ]
                await self.client.upsert(
                    collection_name=self.collection_name,
                    points=points,
                    wait=True,
                )
        except Exception as e:
            logger.error(
                "Failed to upsert nodes",
                extra={"document_id": document_id, "count": len(live), "error": str(e)},
            )
            raise SearchIndexError(f"Failed to upsert nodes: {e}") from e

    async def delete_nodes(self, document_id: str, node_ids: list[str]) -> None:
        if not node_ids:
            return
        try:
            await self.connect()
            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=[self._point_id(document_id, node_id) for node_id in node_ids],
                wait=True,
            )
        except Exception as e:
            logger.error(
                "Failed to delete nodes",
                extra={"document_id": document_id, "error": str(e)},
            )
            raise SearchIndexError(f"Failed to delete nodes: {e}") from e

    @staticmethod
    def _filter(document_id: str | None, granularity: Granularity | None) -> Filter | None:
        conditions = []
        if document_id is not None:
            conditions.append(FieldCondition(key="document_id", match=MatchValue(value=document_id)))
        if granularity is not None:
            conditions.append(
                FieldCondition(key="granularity", match=MatchValue(value=granularity.value))
            )
        return Filter(must=conditions) if conditions else None

    async def search(
        self,
        vector: list[float],
        k: int = 10,
        document_id: str | None = None,
        granularity: Granularity | None = None,
        min_score: float | None = None,
    ) -> list[NodeHit]:
        try:
            await self.connect()
            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                limit=k,
                score_threshold=min_score,
                query_filter=self._filter(document_id, granularity),
                with_payload=True,
            )
        except Exception as e:
            logger.error("Qdrant search failed", extra={"error": str(e)})
            raise SearchIndexError(f"Qdrant search failed: {e}") from e

        return [
            NodeHit(
                node_id=point.payload["node_id"],
                document_id=point.payload["document_id"],
                granularity=Granularity(point.payload["granularity"]),
                score=point.score,
            )
            for point in response.points
        ]

    async def count(self, document_id: str | None = None) -> int:
        await self.connect()
        response = await self.client.count(
            collection_name=self.collection_name,
            count_filter=self._filter(document_id, None),
        )
        return response.count

    async def close(self) -> None:
        """Close the connection to Qdrant."""
        if self.client is not None:
            await self.client.close()
            self.client = None
