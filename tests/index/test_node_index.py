"""
Tests for node search indexes.

Tests cover:
1. In-memory cosine search with filters
2. Qdrant index against a mocked client
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from boltgraph.core.index.memory import InMemoryNodeIndex
from boltgraph.core.index.qdrant import QdrantNodeIndex
from boltgraph.models.node import Granularity, Node
from boltgraph.utils.exceptions import DimensionMismatchError, SearchIndexError


def node(node_id: str, vector: list[float], granularity=Granularity.PARAGRAPH) -> Node:
    return Node(
        id=node_id,
        granularity=granularity,
        content_ref=f"doc#{node_id}",
        combined_vector=vector,
        content_hash=node_id,
        revision_id="rev_1",
    )


@pytest.fixture
async def index() -> InMemoryNodeIndex:
    instance = InMemoryNodeIndex()
    await instance.initialize()
    await instance.upsert_nodes(
        "a",
        [
            node("a1", [1.0, 0.0]),
            node("a2", [0.6, 0.8]),
            node("a3", [0.0, 1.0], Granularity.SECTION),
        ],
    )
    await instance.upsert_nodes("b", [node("b1", [1.0, 0.0])])
    return instance


@pytest.mark.unit
@pytest.mark.asyncio
class TestInMemoryNodeIndex:
    """Tests for the brute-force index."""

    async def test_ranked_hits(self, index):
        hits = await index.search([1.0, 0.0], k=3)

        assert [(h.document_id, h.node_id) for h in hits] == [("a", "a1"), ("b", "b1"), ("a", "a2")]
        assert hits[0].score == pytest.approx(1.0)
        assert hits[2].score == pytest.approx(0.6)

    async def test_unnormalised_query(self, index):
        hits = await index.search([5.0, 0.0], k=1)
        assert hits[0].score == pytest.approx(1.0)

    async def test_filters(self, index):
        by_document = await index.search([1.0, 0.0], document_id="b")
        by_granularity = await index.search([1.0, 0.0], granularity=Granularity.SECTION)
        by_score = await index.search([1.0, 0.0], min_score=0.7)

        assert [h.node_id for h in by_document] == ["b1"]
        assert [h.node_id for h in by_granularity] == ["a3"]
        assert {h.node_id for h in by_score} == {"a1", "b1"}

    async def test_dimension_mismatch(self, index):
        with pytest.raises(DimensionMismatchError):
            await index.search([1.0, 0.0, 0.0])

    async def test_skips_tombstones(self, index):
        await index.upsert_nodes("a", [node("a1", [1.0, 0.0]).tombstone("rev_2")])
        assert await index.count("a") == 3

        await index.delete_nodes("a", ["a1"])
        assert await index.count("a") == 2
        assert await index.count() == 3

    async def test_upsert_replaces(self, index):
        await index.upsert_nodes("a", [node("a1", [0.0, 1.0])])
        hits = await index.search([0.0, 1.0], document_id="a", granularity=Granularity.PARAGRAPH)
        assert hits[0].node_id == "a1"

    async def test_empty(self):
        assert await InMemoryNodeIndex().search([1.0, 0.0]) == []

    async def test_close_clears(self, index):
        await index.close()
        assert await index.count() == 0


@pytest.fixture
def qdrant_client():
    client = AsyncMock()
    client.get_collections.return_value = SimpleNamespace(collections=[])
    client.count.return_value = SimpleNamespace(count=3)
    client.query_points.return_value = SimpleNamespace(
        points=[
            SimpleNamespace(
                payload={"node_id": "par_1", "document_id": "doc", "granularity": "paragraph"},
                score=0.91,
            )
        ]
    )
    with patch("boltgraph.core.index.qdrant.AsyncQdrantClient", return_value=client):
        yield client


@pytest.mark.unit
@pytest.mark.asyncio
class TestQdrantNodeIndex:
    """Tests for the Qdrant index with a mocked client."""

    async def test_initialize_creates_collection(self, qdrant_client):
        index = QdrantNodeIndex(collection_name="nodes", vector_size=64)
        await index.initialize()

        kwargs = qdrant_client.create_collection.call_args.kwargs
        assert kwargs["collection_name"] == "nodes"
        assert kwargs["vectors_config"].size == 64
        indexed = [c.kwargs["field_name"] for c in qdrant_client.create_payload_index.call_args_list]
        assert indexed == ["document_id", "granularity"]

    async def test_initialize_existing_collection(self, qdrant_client):
        qdrant_client.get_collections.return_value = SimpleNamespace(
            collections=[SimpleNamespace(name="nodes")]
        )
        await QdrantNodeIndex(collection_name="nodes").initialize()
        qdrant_client.create_collection.assert_not_called()

    async def test_initialize_failure(self, qdrant_client):
        qdrant_client.get_collections.side_effect = ConnectionError("refused")
        with pytest.raises(SearchIndexError):
            await QdrantNodeIndex().initialize()

    async def test_upsert_batches(self, qdrant_client):
        index = QdrantNodeIndex()
        nodes = [node(f"par_{i}", [1.0, 0.0]) for i in range(5)]
        nodes.append(node("par_dead", [1.0, 0.0]).tombstone("rev_2"))

        await index.upsert_nodes("doc", nodes, batch_size=2)

        batches = [c.kwargs["points"] for c in qdrant_client.upsert.call_args_list]
        assert [len(b) for b in batches] == [2, 2, 1]
        point = batches[0][0]
        assert point.payload == {"node_id": "par_0", "document_id": "doc", "granularity": "paragraph"}
        assert point.id == QdrantNodeIndex._point_id("doc", "par_0")

    async def test_upsert_failure(self, qdrant_client):
        qdrant_client.upsert.side_effect = RuntimeError("boom")
        with pytest.raises(SearchIndexError):
            await QdrantNodeIndex().upsert_nodes("doc", [node("par_1", [1.0, 0.0])])

    async def test_delete(self, qdrant_client):
        index = QdrantNodeIndex()
        await index.delete_nodes("doc", [])
        qdrant_client.delete.assert_not_called()

        await index.delete_nodes("doc", ["par_1"])
        selector = qdrant_client.delete.call_args.kwargs["points_selector"]
        assert selector == [QdrantNodeIndex._point_id("doc", "par_1")]

    async def test_search(self, qdrant_client):
        hits = await QdrantNodeIndex().search(
            [1.0, 0.0], k=5, document_id="doc", granularity=Granularity.PARAGRAPH, min_score=0.5
        )

        assert len(hits) == 1
        assert hits[0].node_id == "par_1"
        assert hits[0].granularity == Granularity.PARAGRAPH
        kwargs = qdrant_client.query_points.call_args.kwargs
        assert kwargs["limit"] == 5
        assert kwargs["score_threshold"] == 0.5
        assert len(kwargs["query_filter"].must) == 2

    async def test_search_without_filters(self, qdrant_client):
        await QdrantNodeIndex().search([1.0, 0.0])
        assert qdrant_client.query_points.call_args.kwargs["query_filter"] is None

    async def test_search_failure(self, qdrant_client):
        qdrant_client.query_points.side_effect = RuntimeError("timeout")
        with pytest.raises(SearchIndexError):
            await QdrantNodeIndex().search([1.0, 0.0])

    async def test_count_and_close(self, qdrant_client):
        index = QdrantNodeIndex()
        assert await index.count("doc") == 3

        await index.close()
        qdrant_client.close.assert_awaited_once()
        assert index.client is None


@pytest.mark.unit
class TestQdrantPointIds:
    """Tests for point ID derivation."""

    def test_point_ids_stable(self):
        assert QdrantNodeIndex._point_id("doc", "par_1") == QdrantNodeIndex._point_id(
            "doc", "par_1"
        )
        assert QdrantNodeIndex._point_id("doc", "par_1") != QdrantNodeIndex._point_id(
            "other", "par_1"
        )
