"""
Tests for revision storage.

Tests cover:
1. Hierarchy bundle encoding and corruption handling
2. Commit, head pointer and revision log, including rollback of the log
3. Single-node reads with and without ranged retrieval
4. SQLite blob store
5. Hot-node cache eviction
"""

import struct
from unittest.mock import patch

import pytest

from boltgraph.core.storage.cache import HotNodeCache
from boltgraph.core.storage.codec import MAGIC, HierarchyCodec
from boltgraph.core.storage.manager import StorageManager
from boltgraph.core.storage.memory import InMemoryBlobStore
from boltgraph.core.storage.sqlite import SQLiteBlobStore
from boltgraph.core.telemetry import AccessTracker
from boltgraph.models.document import Document
from boltgraph.models.edge import Edge, EdgeType
from boltgraph.models.hierarchy import Hierarchy
from boltgraph.models.node import Granularity, Node
from boltgraph.utils.exceptions import NotFoundError, StorageError


def node(node_id: str, granularity: Granularity, revision_id: str = "rev_1") -> Node:
    return Node(
        id=node_id,
        granularity=granularity,
        content_ref=f"doc#{node_id}",
        combined_vector=[0.6, 0.8],
        content_hash=f"hash-{node_id}",
        revision_id=revision_id,
        feature_metadata={"title": node_id},
    )


def sample_hierarchy(revision_id: str = "rev_1", parent: str | None = None) -> Hierarchy:
    hierarchy = Hierarchy(revision_id=revision_id, document_id="doc", parent_revision_id=parent)
    hierarchy.add_node(node("doc", Granularity.DOCUMENT, revision_id))
    hierarchy.add_node(node("sec_1", Granularity.SECTION, revision_id))
    hierarchy.add_node(node("par_1", Granularity.PARAGRAPH, revision_id))
    hierarchy.add_node(node("par_old", Granularity.PARAGRAPH, revision_id).tombstone(revision_id))
    hierarchy.add_edge(Edge(from_id="doc", to_id="sec_1", type=EdgeType.CONTAINS))
    hierarchy.add_edge(Edge(from_id="sec_1", to_id="par_1", type=EdgeType.CONTAINS))
    return hierarchy


DOCUMENT = Document(document_id="doc", content="# Sec\n\nPara.", source_revision="v1")


@pytest.fixture(params=["memory", "sqlite"])
async def manager(request, tmp_path):
    if request.param == "memory":
        store = InMemoryBlobStore()
    else:
        store = SQLiteBlobStore(db_path=str(tmp_path / "blobs.db"))
    instance = StorageManager(store)
    await instance.initialize()
    yield instance
    await instance.close()


class TestCodec:
    """Tests for the bundle codec."""

    def test_round_trip(self):
        hierarchy = sample_hierarchy(parent="rev_0")
        decoded = HierarchyCodec().decode(HierarchyCodec().encode(hierarchy))

        assert decoded.revision_id == "rev_1"
        assert decoded.parent_revision_id == "rev_0"
        assert decoded.nodes == hierarchy.nodes
        assert sorted(e.key for e in decoded.edges) == sorted(e.key for e in hierarchy.edges)
        assert decoded.children_of("doc") == ["sec_1"]
        assert decoded.nodes["par_old"].tombstoned

    def test_header_indexes_nodes(self):
        codec = HierarchyCodec()
        data = codec.encode(sample_hierarchy())
        header, body_offset = codec.decode_header(data)

        assert data[:4] == MAGIC
        assert set(header.nodes) == {"doc", "sec_1", "par_1", "par_old"}
        offset, length = header.node_range("par_1", body_offset)
        assert codec.decode_node(data[offset : offset + length]).id == "par_1"
        assert header.node_range("missing", body_offset) is None

    def test_bad_magic(self):
        data = HierarchyCodec().encode(sample_hierarchy())
        with pytest.raises(StorageError):
            HierarchyCodec().decode(b"XXXX" + data[4:])

    def test_truncated(self):
        data = HierarchyCodec().encode(sample_hierarchy())
        with pytest.raises(StorageError):
            HierarchyCodec().decode(data[:3])
        with pytest.raises(StorageError):
            HierarchyCodec().decode(data[: struct.calcsize(">4sI") + 2])

    def test_corrupt_segment(self):
        codec = HierarchyCodec()
        data = bytearray(codec.encode(sample_hierarchy()))
        header, body_offset = codec.decode_header(bytes(data))
        offset, _ = header.node_range("doc", body_offset)
        data[offset : offset + 4] = b"\x00\x00\x00\x00"

        with pytest.raises(StorageError):
            codec.decode(bytes(data))


@pytest.mark.asyncio
class TestStorageManager:
    """Tests for commits and reads."""

    async def test_commit_moves_head(self, manager):
        await manager.commit(sample_hierarchy("rev_1"), DOCUMENT)
        await manager.commit(sample_hierarchy("rev_2", parent="rev_1"), DOCUMENT)

        assert await manager.head_revision("doc") == "rev_2"
        assert await manager.list_revisions("doc") == ["rev_1", "rev_2"]
        assert await manager.list_documents() == ["doc"]

        head = await manager.load_hierarchy("doc")
        assert head.revision_id == "rev_2"
        assert (await manager.load_hierarchy("doc", "rev_1")).revision_id == "rev_1"

    async def test_saved_revision_invisible_until_head_moves(self, manager):
        await manager.commit(sample_hierarchy("rev_1"), DOCUMENT)
        await manager.save_revision(sample_hierarchy("rev_2", parent="rev_1"), DOCUMENT)

        assert await manager.head_revision("doc") == "rev_1"
        assert await manager.list_revisions("doc") == ["rev_1"]

    async def test_recommit_does_not_duplicate_revlog(self, manager):
        hierarchy = sample_hierarchy("rev_1")
        await manager.commit(hierarchy, DOCUMENT)
        await manager.commit(hierarchy, DOCUMENT)

        assert await manager.list_revisions("doc") == ["rev_1"]

    async def test_load_document(self, manager):
        await manager.commit(sample_hierarchy("rev_1"), DOCUMENT)
        assert await manager.load_document("doc") == DOCUMENT

    async def test_load_node(self, manager):
        await manager.commit(sample_hierarchy("rev_1"), DOCUMENT)

        loaded = await manager.load_node("doc", "sec_1")
        assert loaded.id == "sec_1"
        assert loaded.feature_metadata == {"title": "sec_1"}
        assert (await manager.load_node("doc", "par_old", "rev_1")).tombstoned

    async def test_missing(self, manager):
        await manager.commit(sample_hierarchy("rev_1"), DOCUMENT)

        assert await manager.head_revision("other") is None
        with pytest.raises(NotFoundError):
            await manager.load_hierarchy("other")
        with pytest.raises(NotFoundError):
            await manager.load_hierarchy("doc", "rev_9")
        with pytest.raises(NotFoundError):
            await manager.load_node("doc", "missing")
        with pytest.raises(NotFoundError):
            await manager.load_node("doc", "sec_1", "rev_9")

    async def test_failed_head_write_restores_revlog(self, manager):
        await manager.commit(sample_hierarchy("rev_1"), DOCUMENT)
        error = StorageError("Head write failed")

        with patch.object(manager, "set_head", side_effect=error):
            with pytest.raises(StorageError):
                await manager.commit(sample_hierarchy("rev_2", parent="rev_1"), DOCUMENT)

        assert await manager.head_revision("doc") == "rev_1"
        assert await manager.list_revisions("doc") == ["rev_1"]

    async def test_failed_first_commit_leaves_no_revlog(self, manager):
        error = StorageError("Head write failed")

        with patch.object(manager, "set_head", side_effect=error):
            with pytest.raises(StorageError):
                await manager.commit(sample_hierarchy("rev_1"), DOCUMENT)

        assert await manager.list_revisions("doc") == []
        assert not await manager.store.exists(manager.revlog_key("doc"))
        assert await manager.list_documents() == []


@pytest.mark.asyncio
class TestSQLiteBlobStore:
    """Tests for the SQLite backend."""

    async def test_ranged_reads(self, tmp_path):
        store = SQLiteBlobStore(db_path=str(tmp_path / "blobs.db"))
        await store.initialize()
        try:
            await store.store("k", b"0123456789")

            assert store.supports_partial_retrieval()
            assert await store.retrieve_partial("k", 2, 3) == b"234"
            assert await store.retrieve_partial("missing", 0, 3) is None
        finally:
            await store.close()

    async def test_keys(self, tmp_path):
        store = SQLiteBlobStore(db_path=str(tmp_path / "blobs.db"))
        await store.initialize()
        try:
            await store.store("head/a", b"1")
            await store.store("head/b", b"2")
            await store.store("revlog/a", b"3")
            await store.store("head/a", b"4")

            assert await store.list_keys("head/") == ["head/a", "head/b"]
            assert await store.retrieve("head/a") == b"4"
            assert await store.exists("revlog/a")
            await store.delete("revlog/a")
            assert not await store.exists("revlog/a")
        finally:
            await store.close()

    async def test_persists_across_connections(self, tmp_path):
        path = str(tmp_path / "blobs.db")
        first = StorageManager(SQLiteBlobStore(db_path=path))
        await first.initialize()
        await first.commit(sample_hierarchy("rev_1"), DOCUMENT)
        await first.close()

        second = StorageManager(SQLiteBlobStore(db_path=path))
        await second.initialize()
        try:
            assert await second.head_revision("doc") == "rev_1"
        finally:
            await second.close()

    async def test_ranged_prefix_of_memory_store(self):
        store = InMemoryBlobStore()
        await store.store("k", b"abcdef")

        assert not store.supports_partial_retrieval()
        assert await store.retrieve_partial("k", 1, 2) == b"bc"


class TestHotNodeCache:
    """Tests for the LRU cache."""

    def test_evicts_least_recently_used(self):
        cache = HotNodeCache(max_nodes=2)
        cache.put("doc", node("a", Granularity.PARAGRAPH))
        cache.put("doc", node("b", Granularity.PARAGRAPH))
        cache.get("doc", "a")
        cache.put("doc", node("c", Granularity.PARAGRAPH))

        assert len(cache) == 2
        assert cache.get("doc", "b") is None
        assert cache.get("doc", "a") is not None

    def test_invalidate_document(self):
        cache = HotNodeCache()
        cache.put("doc", node("a", Granularity.PARAGRAPH))
        cache.put("doc", node("b", Granularity.SECTION))
        cache.put("other", node("a", Granularity.PARAGRAPH))

        cache.invalidate_document("doc")
        assert cache.get("doc", "a") is None
        assert cache.get("doc", "b") is None
        assert cache.get("other", "a") is not None

    def test_records_hits_and_misses(self):
        tracker = AccessTracker()
        cache = HotNodeCache(tracker=tracker)
        cache.put("doc", node("a", Granularity.PARAGRAPH))

        cache.get("doc", "a")
        cache.get("doc", "b")
        assert tracker.snapshot()["cache_hits"] == 1
        assert tracker.snapshot()["cache_misses"] == 1
