"""
Tests for HierarchyEngine.

Tests cover:
1. First ingest and incremental updates end to end
2. Preservation of nodes outside the impact region
3. Per-document serialisation, conflicts and cancellation
4. Failed updates leave the previous head visible
5. Node reads through the hot-node cache
6. Search, history and the document source hooks
"""

import asyncio
from collections.abc import AsyncGenerator
from unittest.mock import patch

import pytest

from boltgraph.core.document_source import InMemoryDocumentSource
from boltgraph.core.index.memory import InMemoryNodeIndex
from boltgraph.models.change import ImpactLevel
from boltgraph.models.document import Document
from boltgraph.models.edge import EdgeType
from boltgraph.models.node import Granularity
from boltgraph.services.hierarchy_engine import HierarchyEngine
from boltgraph.utils.exceptions import (
    AnalysisUnavailableError,
    ContentMismatchError,
    EmptyContentError,
    NotFoundError,
    SearchIndexError,
    StructuralCycleError,
    UpdateCancelledError,
    UpdateInProgressError,
    ValidationFailedError,
)
from tests.conftest import make_config, make_engine
from tests.services.conftest import concept_id, section_ids


@pytest.fixture
async def fail_engine(analyzer) -> AsyncGenerator[HierarchyEngine, None]:
    """Engine that rejects concurrent updates instead of queueing them."""
    instance = make_engine(make_config(update={"on_conflict": "fail"}), analyzer)
    await instance.initialize()
    yield instance
    await instance.close()


@pytest.mark.integration
@pytest.mark.asyncio
class TestIngest:
    """Tests for first revisions."""

    async def test_first_ingest(self, engine, document):
        result = await engine.ingest(document)

        assert result.parent_revision_id is None
        assert result.report.passed
        assert len(result.regenerated) == 10
        assert result.preserved == []
        assert await engine.head_revision("doc-1") == result.revision_id
        assert await engine.history("doc-1") == [result.revision_id]
        assert await engine.list_documents() == ["doc-1"]
        assert await engine.index.count("doc-1") == 10

    async def test_statistics(self, engine, document):
        await engine.ingest(document)
        stats = engine.get_statistics()

        assert stats["documents"] == 1
        assert stats["access"]["updates_committed"] == 1

    async def test_raw_text(self, engine):
        revision_id = await engine.apply_update("notes", "# Notes\n\nA short note about tides.")
        hierarchy = await engine.get_hierarchy("notes")

        assert hierarchy.revision_id == revision_id
        assert hierarchy.document_node().id == "notes"

    async def test_id_mismatch(self, engine, document):
        with pytest.raises(ContentMismatchError):
            await engine.update_document("other", document)

    async def test_blank_document(self, engine):
        with pytest.raises(EmptyContentError):
            await engine.update_document("doc-1", " \n ")
        assert await engine.head_revision("doc-1") is None

    async def test_reindex_on_initialize(self, engine, document):
        await engine.ingest(document)
        fresh = HierarchyEngine(
            analyzer=engine.analyzer,
            storage=engine.storage,
            index=InMemoryNodeIndex(),
            config=engine.config,
        )
        await fresh.initialize()

        assert await fresh.index.count() == 10
        assert await fresh.head_revision("doc-1") == await engine.head_revision("doc-1")


@pytest.mark.integration
@pytest.mark.asyncio
class TestIncrementalUpdates:
    """Tests for updates after the first revision."""

    async def test_one_word_edit(self, engine, document, edited):
        first = await engine.ingest(document)
        before = await engine.get_hierarchy("doc-1")

        result = await engine.update_document("doc-1", edited)
        after = await engine.get_hierarchy("doc-1")
        section_one, section_two = section_ids(before)
        paragraph = before.children_of(section_one)[0]

        assert result.parent_revision_id == first.revision_id
        assert after.parent_revision_id == first.revision_id
        assert result.impact_counts == {"none": 5, "local": 1, "propagated": 4, "cascading": 0}
        assert paragraph in result.regenerated
        assert section_two in result.preserved
        for node_id in [section_two, *before.children_of(section_two)]:
            assert after.nodes[node_id].fingerprint() == before.nodes[node_id].fingerprint()
        assert after.nodes[paragraph].previous_revision_id == first.revision_id
        assert len(await engine.history("doc-1")) == 2

    async def test_validator_sees_propagated_impact(self, engine, document, edited):
        await engine.ingest(document)

        with patch.object(engine.validator, "validate", wraps=engine.validator.validate) as validate:
            await engine.update_document("doc-1", edited)

        change_set = validate.call_args.kwargs["change_set"]
        impact_map = validate.call_args.kwargs["impact_map"]
        assert change_set.per_node_impact == impact_map.levels
        assert ImpactLevel.PROPAGATED in change_set.per_node_impact.values()

    async def test_previous_revision_still_readable(self, engine, document, edited):
        first = await engine.ingest(document)
        before = await engine.get_hierarchy("doc-1")
        await engine.update_document("doc-1", edited)

        old = await engine.get_hierarchy("doc-1", first.revision_id)
        assert old.revision_id == first.revision_id
        assert {n.id: n.combined_vector for n in old.nodes.values()} == {
            n.id: n.combined_vector for n in before.nodes.values()
        }

    async def test_new_section(self, analyzer, document, extended):
        engine = make_engine(make_config(hierarchy={"sibling_threshold": 0.99}), analyzer)
        await engine.initialize()
        try:
            await engine.ingest(document)
            before = await engine.get_hierarchy("doc-1")
            result = await engine.update_document("doc-1", extended)
            after = await engine.get_hierarchy("doc-1")
        finally:
            await engine.close()

        added = section_ids(after)[2]
        contains = next(e for e in after.edges_of_type(EdgeType.CONTAINS) if e.to_id == added)
        assert contains.from_id == "doc-1"
        assert contains.ordinal == 2
        assert after.edges_touching(added, EdgeType.SIBLING) == []

        assert result.impact_counts == {"none": 9, "local": 2, "propagated": 0, "cascading": 1}
        assert "doc-1" in result.regenerated
        assert set(section_ids(before)) <= set(result.preserved)
        assert result.full_regeneration is False

    async def test_removal(self, engine, document, trimmed):
        await engine.ingest(document)
        before = await engine.get_hierarchy("doc-1")
        third = before.children_of(section_ids(before)[0])[2]

        result = await engine.update_document("doc-1", trimmed)
        after = await engine.get_hierarchy("doc-1")

        assert set(result.tombstoned) == {third, concept_id(before, "cargo")}
        assert after.nodes[third].tombstoned
        assert await engine.index.count("doc-1") == 8
        hits = await engine.search(before.nodes[third].combined_vector, k=20)
        assert third not in {hit.node_id for hit in hits}

    async def test_noop_update(self, engine, document):
        first = await engine.ingest(document)
        before = await engine.get_hierarchy("doc-1")

        result = await engine.update_document("doc-1", document)
        after = await engine.get_hierarchy("doc-1")

        assert result.revision_id != first.revision_id
        assert result.regenerated == []
        assert len(result.preserved) == 10
        assert result.report.warnings == []
        for node_id, node in before.nodes.items():
            assert after.nodes[node_id].fingerprint() == node.fingerprint()

    async def test_hop_limit_regenerates_everything(self, analyzer, document, edited):
        engine = make_engine(make_config(propagation={"max_hops": 1}), analyzer)
        await engine.initialize()
        try:
            await engine.ingest(document)
            result = await engine.update_document("doc-1", edited)
        finally:
            await engine.close()

        assert result.full_regeneration is True
        assert result.preserved == []
        assert len(result.regenerated) == 10

    async def test_cycle_retries_with_full_regeneration(self, engine, document, edited):
        await engine.ingest(document)
        reconcile = engine.reconciler.reconcile
        calls = []

        def flaky(candidate):
            calls.append(candidate)
            if len(calls) == 1:
                raise StructuralCycleError("Contains edges do not form a forest")
            return reconcile(candidate)

        with patch.object(engine.reconciler, "reconcile", side_effect=flaky):
            result = await engine.update_document("doc-1", edited)

        assert len(calls) == 2
        assert result.full_regeneration is True


@pytest.mark.integration
@pytest.mark.asyncio
class TestFailures:
    """Tests for failed updates."""

    async def test_analyzer_outage_keeps_head(self, engine, analyzer, document, edited):
        first = await engine.ingest(document)
        analyzer.fail_times = -1

        with pytest.raises(AnalysisUnavailableError):
            await engine.update_document("doc-1", edited)

        assert await engine.head_revision("doc-1") == first.revision_id
        assert await engine.history("doc-1") == [first.revision_id]
        assert engine.tracker.snapshot()["updates_failed"] == 1

    async def test_index_failure_after_commit(self, engine, document, edited):
        first = await engine.ingest(document)
        error = SearchIndexError("Index unavailable")

        with patch.object(engine.index, "upsert_nodes", side_effect=error):
            result = await engine.update_document("doc-1", edited)

        assert await engine.head_revision("doc-1") == result.revision_id
        assert await engine.history("doc-1") == [first.revision_id, result.revision_id]
        assert len(result.warnings) == 1
        assert result.revision_id in result.warnings[0]
        assert engine.tracker.snapshot()["updates_failed"] == 0
        assert engine.get_statistics()["stale_index_documents"] == ["doc-1"]

    async def test_search_repairs_stale_index(self, engine, document, edited):
        await engine.ingest(document)
        before = await engine.get_hierarchy("doc-1")
        paragraph = before.children_of(section_ids(before)[0])[0]
        error = SearchIndexError("Index unavailable")

        with patch.object(engine.index, "upsert_nodes", side_effect=error):
            await engine.update_document("doc-1", edited)

        node = (await engine.get_hierarchy("doc-1")).nodes[paragraph]
        hits = await engine.search(node.combined_vector, k=1, granularity=Granularity.PARAGRAPH)

        assert hits[0].node_id == paragraph
        assert hits[0].score == pytest.approx(1.0)
        assert engine.get_statistics()["stale_index_documents"] == []

    async def test_repair_keeps_failing_documents_pending(self, engine, document, edited):
        await engine.ingest(document)
        error = SearchIndexError("Index unavailable")

        with patch.object(engine.index, "upsert_nodes", side_effect=error):
            await engine.update_document("doc-1", edited)
            assert await engine.repair_index() == ["doc-1"]

        assert await engine.repair_index() == []

    async def test_analyzer_recovers_within_retries(self, engine, analyzer, document, edited):
        await engine.ingest(document)
        analyzer.fail_times = 2

        result = await engine.update_document("doc-1", edited)
        assert result.report.passed

    async def test_validation_failure_keeps_head(self, engine, document, edited):
        first = await engine.ingest(document)
        error = ValidationFailedError("Revision failed validation")

        with patch.object(engine.validator, "validate", side_effect=error):
            with pytest.raises(ValidationFailedError):
                await engine.update_document("doc-1", edited)

        assert await engine.head_revision("doc-1") == first.revision_id


@pytest.mark.integration
@pytest.mark.asyncio
class TestConcurrency:
    """Tests for per-document serialisation."""

    async def test_updates_queue(self, engine, document, edited, extended):
        await engine.ingest(document)

        first, second = await asyncio.gather(
            engine.update_document("doc-1", edited),
            engine.update_document("doc-1", extended),
        )

        assert second.parent_revision_id == first.revision_id
        assert await engine.head_revision("doc-1") == second.revision_id

    async def test_conflict_fails_fast(self, fail_engine, analyzer, document, edited):
        await fail_engine.ingest(document)
        analyzer.delay = 0.05

        running = asyncio.create_task(fail_engine.update_document("doc-1", edited))
        await asyncio.sleep(0.01)
        with pytest.raises(UpdateInProgressError):
            await fail_engine.update_document("doc-1", edited)

        result = await running
        assert result.report.passed
        assert fail_engine.tracker.snapshot()["updates_rejected"] == 1

    async def test_simultaneous_updates_conflict(
        self, fail_engine, analyzer, document, edited, extended
    ):
        first = await fail_engine.ingest(document)
        analyzer.delay = 0.05

        results = await asyncio.gather(
            fail_engine.update_document("doc-1", edited),
            fail_engine.update_document("doc-1", extended),
            return_exceptions=True,
        )

        assert results[0].parent_revision_id == first.revision_id
        assert isinstance(results[1], UpdateInProgressError)
        assert await fail_engine.history("doc-1") == [first.revision_id, results[0].revision_id]

        # The claim is released once the winning update commits
        later = await fail_engine.update_document("doc-1", extended)
        assert later.parent_revision_id == results[0].revision_id

    async def test_other_documents_not_blocked(self, fail_engine, analyzer, document, edited):
        await fail_engine.ingest(document)
        analyzer.delay = 0.05

        running = asyncio.create_task(fail_engine.update_document("doc-1", edited))
        await asyncio.sleep(0.01)
        other = await fail_engine.update_document("doc-2", "# Other\n\nUnrelated text.")

        assert other.document_id == "doc-2"
        await running

    async def test_cancel_update(self, engine, analyzer, document, edited):
        first = await engine.ingest(document)
        analyzer.delay = 0.2

        running = asyncio.create_task(engine.update_document("doc-1", edited))
        await asyncio.sleep(0.02)
        assert await engine.cancel_update("doc-1") is True

        with pytest.raises(UpdateCancelledError):
            await running
        assert await engine.head_revision("doc-1") == first.revision_id
        assert engine.tracker.snapshot()["updates_cancelled"] == 1

    async def test_cancel_without_update(self, engine):
        assert await engine.cancel_update("doc-1") is False


@pytest.mark.integration
@pytest.mark.asyncio
class TestReads:
    """Tests for node reads, search and history."""

    async def test_get_node_uses_cache(self, engine, document):
        result = await engine.ingest(document)

        node = await engine.get_node("doc-1", "doc-1")
        again = await engine.get_node("doc-1", "doc-1")

        assert node.revision_id == result.revision_id
        assert again == node
        access = engine.tracker.snapshot()
        assert access["cache_misses"] == 1
        assert access["cache_hits"] == 1
        assert access["hot_nodes"] == ["doc-1"]

    async def test_cache_follows_head(self, engine, document, edited):
        await engine.ingest(document)
        await engine.get_node("doc-1", "doc-1")

        result = await engine.update_document("doc-1", edited)
        node = await engine.get_node("doc-1", "doc-1")
        assert node.revision_id == result.revision_id

    async def test_get_node_at_revision(self, engine, document, edited):
        first = await engine.ingest(document)
        await engine.update_document("doc-1", edited)

        node = await engine.get_node("doc-1", "doc-1", revision=first.revision_id)
        assert node.revision_id == first.revision_id

    async def test_get_node_missing(self, engine, document):
        await engine.ingest(document)

        with pytest.raises(NotFoundError):
            await engine.get_node("doc-1", "par_missing")
        with pytest.raises(NotFoundError):
            await engine.get_node("unknown", "doc-1")

    async def test_history_missing(self, engine):
        with pytest.raises(NotFoundError):
            await engine.history("unknown")

    async def test_search_by_vector(self, engine, document):
        await engine.ingest(document)
        root = (await engine.get_hierarchy("doc-1")).document_node()

        hits = await engine.search(root.combined_vector, k=3)

        assert len(hits) == 3
        assert hits[0].node_id == "doc-1"
        assert hits[0].score == pytest.approx(1.0)
        assert hits[0].score >= hits[1].score >= hits[2].score

    async def test_search_scores(self, engine, document):
        await engine.ingest(document)
        root = (await engine.get_hierarchy("doc-1")).document_node()

        pairs = await engine.search_scores(root.combined_vector, k=2)

        assert len(pairs) == 2
        assert pairs[0][0] == "doc-1"
        assert pairs[0][1] == pytest.approx(1.0)

    async def test_search_text_filters(self, engine, document):
        await engine.ingest(document)

        hits = await engine.search_text(
            "harbour crane cargo", k=10, document_id="doc-1", granularity=Granularity.PARAGRAPH
        )

        assert len(hits) == 5
        assert all(hit.granularity == Granularity.PARAGRAPH for hit in hits)
        assert engine.tracker.snapshot()["searches"] == 1

    async def test_embed_query_blank(self, engine):
        with pytest.raises(EmptyContentError):
            await engine.embed_query("  ")


@pytest.mark.integration
@pytest.mark.asyncio
class TestDocumentSource:
    """Tests for pulling and watching a document source."""

    async def test_sync_from_source(self, analyzer, document):
        source = InMemoryDocumentSource()
        published = await source.publish(document)
        engine = make_engine(analyzer=analyzer, source=source)
        await engine.initialize()
        try:
            result = await engine.sync_from_source("doc-1")
            snapshot = await engine.storage.load_document("doc-1")
            with pytest.raises(NotFoundError):
                await engine.sync_from_source("unknown")
        finally:
            await engine.close()

        assert result.report.passed
        assert snapshot.source_revision == published.source_revision

    async def test_watch_source(self, analyzer, document, edited):
        source = InMemoryDocumentSource()
        engine = make_engine(analyzer=analyzer, source=source)
        await engine.initialize()
        try:
            engine.watch_source()
            await source.publish(document)
            await source.publish(edited)
            history = await engine.history("doc-1")
        finally:
            await engine.close()

        assert len(history) == 2

    async def test_no_source(self, engine):
        with pytest.raises(NotFoundError):
            await engine.sync_from_source("doc-1")
        with pytest.raises(NotFoundError):
            engine.watch_source()


@pytest.mark.unit
@pytest.mark.asyncio
class TestClose:
    """Tests for shutdown."""

    async def test_close(self, config, analyzer):
        engine = make_engine(config, analyzer)
        await engine.initialize()
        await engine.ingest(Document(document_id="d", content="# A\n\nSome text."))

        await engine.close()

        assert analyzer.closed is True
        assert engine.tracker.snapshot() == {"hot_nodes": []}
