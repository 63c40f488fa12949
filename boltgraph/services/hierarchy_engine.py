"""
Hierarchy Engine - integrates all components.

Brings together:
- Analyzer capability and view generation
- Hierarchy construction and incremental updates
- Change detection, impact propagation, reconciliation and validation
- Revision storage, hot-node cache and search index

Updates are serialised per document. A revision becomes visible only when
the storage head pointer moves; the cache and the index follow the commit.
"""

import asyncio
import time

from boltgraph.config import Config
from boltgraph.core.analyzer.base import Analyzer
from boltgraph.core.combiner import Combiner
from boltgraph.core.concepts import ConceptExtractor
from boltgraph.core.document_source import DocumentSource
from boltgraph.core.factory.analyzer_factory import AnalyzerFactory
from boltgraph.core.factory.index_factory import IndexFactory
from boltgraph.core.factory.storage_factory import StorageFactory
from boltgraph.core.hierarchy_builder import HierarchyBuilder
from boltgraph.core.index.base import NodeHit, NodeIndex
from boltgraph.core.scheduler import TaskScheduler
from boltgraph.core.segmenter import Segmenter
from boltgraph.core.storage.cache import HotNodeCache
from boltgraph.core.storage.manager import StorageManager
from boltgraph.core.telemetry import AccessTracker
from boltgraph.core.views.base import GranularityContext
from boltgraph.core.views.pipeline import ViewPipeline
from boltgraph.models.change import ChangeSet, ImpactMap
from boltgraph.models.document import Document
from boltgraph.models.hierarchy import Hierarchy
from boltgraph.models.node import Granularity, Node, ViewKind
from boltgraph.models.policy import CombinationStrategy, ContentType
from boltgraph.models.report import UpdateResult
from boltgraph.services.change_detector import ChangeDetector
from boltgraph.services.impact_propagator import ImpactPropagator
from boltgraph.services.incremental_updater import CandidateRevision, IncrementalUpdater
from boltgraph.services.reconciler import Reconciler
from boltgraph.services.validator import Validator
from boltgraph.utils.exceptions import (
    ContentMismatchError,
    EmptyContentError,
    NotFoundError,
    SearchIndexError,
    StructuralCycleError,
    UpdateCancelledError,
    UpdateInProgressError,
)
from boltgraph.utils.id_generator import generate_revision_id, generate_update_id
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)


class HierarchyEngine:
    """
    Multi-view hierarchy engine.

    Features:
    - Ingest documents into node hierarchies with per-view vectors
    - Incremental updates that regenerate only affected nodes
    - Revision history with an atomic head pointer per document
    - Node lookup through a hot-node cache
    - Vector search over combined vectors
    """

    def __init__(
        self,
        analyzer: Analyzer,
        storage: StorageManager,
        index: NodeIndex,
        config: Config,
        source: DocumentSource | None = None,
        tracker: AccessTracker | None = None,
    ):
        """
        Initialize Hierarchy Engine.

        Args:
            analyzer: Analyzer capability for semantic and pragmatic views
            storage: Revision storage
            index: Node search index
            config: Configuration object
            source: Optional document source for pull-based sync
            tracker: Access tracker (one per engine when omitted)
        """
        self.analyzer = analyzer
        self.storage = storage
        self.index = index
        self.config = config
        self.source = source
        self.tracker = tracker or AccessTracker()

        self.scheduler = TaskScheduler.from_config(config.analyzer)
        self.views = ViewPipeline(dimension=config.views.dimension, timeout=config.analyzer.timeout)
        self.combiner = Combiner.from_config(config.combiner)
        self.policy = Combiner.policy_from_config(config.combiner)
        self.segmenter = Segmenter()
        self.extractor = ConceptExtractor(
            min_mentions=config.hierarchy.min_concept_mentions,
            max_concepts=config.hierarchy.max_concepts,
            min_term_length=config.hierarchy.min_term_length,
        )

        self.builder = HierarchyBuilder(
            combiner=self.combiner,
            policy=self.policy,
            extractor=self.extractor,
            views=self.views,
            sibling_threshold=config.hierarchy.sibling_threshold,
        )
        self.detector = ChangeDetector(
            segmenter=self.segmenter,
            extractor=self.extractor,
            semantic_view=self.views.semantic,
            analyzer=analyzer,
            scheduler=self.scheduler,
            semantic_check=config.change_detection.semantic_check,
            material_threshold=config.change_detection.material_threshold,
            match_ratio=config.change_detection.match_ratio,
        )
        self.propagator = ImpactPropagator(
            cascade_threshold=config.propagation.cascade_threshold,
            max_hops=config.propagation.max_hops,
        )
        self.updater = IncrementalUpdater(self.builder, analyzer, self.scheduler)
        self.reconciler = Reconciler(self.builder)
        self.validator = Validator(
            unit_norm_epsilon=config.validation.unit_norm_epsilon,
            regression_floor=config.validation.regression_floor,
        )
        self.cache = HotNodeCache(max_nodes=config.cache.max_nodes, tracker=self.tracker)

        self._locks: dict[str, asyncio.Lock] = {}
        self._running: dict[str, asyncio.Task] = {}
        self._cancel_requested: set[asyncio.Task] = set()
        self._committing: set[str] = set()
        self._heads: dict[str, str] = {}
        # Updates accepted per document, running or queued
        self._claims: dict[str, int] = {}
        # Node IDs whose index entries missed a commit, per document
        self._index_pending: dict[str, set[str]] = {}

    @classmethod
    def from_config(
        cls, config: Config, source: DocumentSource | None = None
    ) -> "HierarchyEngine":
        """
        Build an engine with components created by the factories.

        Raises:
            ValueError: If a configured provider or backend is not supported
        """
        dimension = config.views.dimension
        vector_size = (
            dimension * 3
            if config.combiner.strategy == CombinationStrategy.CONCATENATION.value
            else dimension
        )
        return cls(
            analyzer=AnalyzerFactory.create(config.analyzer, dimension=dimension),
            storage=StorageFactory.create(config.storage),
            index=IndexFactory.create(config.index, vector_size=vector_size),
            config=config,
            source=source,
        )

    async def initialize(self) -> None:
        """Initialize storage and index, then rebuild the index if it is empty."""
        logger.info("Initializing Hierarchy Engine")

        await self.storage.initialize()
        logger.info("Storage initialized")

        await self.index.initialize()
        if await self.index.count() == 0:
            await self.reindex()
        logger.info("Search index initialized")

        logger.info("Hierarchy Engine ready")

    async def reindex(self) -> int:
        """
        Load every document head into the search index.

        Returns:
            Number of documents indexed
        """
        documents = await self.storage.list_documents()
        for document_id in documents:
            hierarchy = await self.storage.load_hierarchy(document_id)
            self._heads[document_id] = hierarchy.revision_id
            await self.index.upsert_nodes(document_id, hierarchy.live_nodes())
        if documents:
            logger.info(f"Reindexed {len(documents)} documents", extra={"documents": len(documents)})
        return len(documents)

    # ═══════════════════════════════════════════════════════════
    # UPDATES
    # ═══════════════════════════════════════════════════════════

    async def ingest(self, document: Document) -> UpdateResult:
        """
        Build or update the hierarchy of a document.

        The first revision of a document is built from scratch; later calls
        behave like update_document.
        """
        return await self.update_document(document.document_id, document)

    async def apply_update(self, document_id: str, new_document: Document | str) -> str:
        """
        Apply a new document revision.

        Returns:
            ID of the committed revision
        """
        result = await self.update_document(document_id, new_document)
        return result.revision_id

    async def update_document(
        self, document_id: str, new_document: Document | str
    ) -> UpdateResult:
        """
        Apply a new document revision and report what changed.

        Args:
            document_id: Target document ID
            new_document: New revision, or its raw text

        Returns:
            Update result with the validation report

        Raises:
            EmptyContentError: If the new revision is blank
            ContentMismatchError: If new_document belongs to another document
            UpdateInProgressError: If on_conflict is "fail" and an update is running
            UpdateCancelledError: If cancel_update() stopped this update
            AnalysisUnavailableError: If analyzer retries are exhausted
            ValidationFailedError: If the candidate revision fails validation
        """
        if isinstance(new_document, str):
            new_document = Document(document_id=document_id, content=new_document)
        if new_document.document_id != document_id:
            raise ContentMismatchError(
                "Document ID does not match the update target",
                context={"document_id": document_id, "given": new_document.document_id},
            )
        if new_document.is_blank():
            raise EmptyContentError(
                f"Document {document_id} is empty", context={"document_id": document_id}
            )

        lock = self._locks.setdefault(document_id, asyncio.Lock())
        # Claimed synchronously so that callers in the same tick see each other
        if self._claims.get(document_id) and self.config.update.on_conflict == "fail":
            self.tracker.record_update("rejected")
            raise UpdateInProgressError(
                f"Update already in progress for {document_id}",
                context={"document_id": document_id},
            )

        self._claims[document_id] = self._claims.get(document_id, 0) + 1
        task = asyncio.ensure_future(self._serialized_update(lock, new_document))
        try:
            return await task
        except asyncio.CancelledError:
            if task in self._cancel_requested:
                self._cancel_requested.discard(task)
                self.tracker.record_update("cancelled")
                logger.warning(
                    "Update cancelled before commit", extra={"document_id": document_id}
                )
                raise UpdateCancelledError(
                    f"Update of {document_id} was cancelled",
                    context={"document_id": document_id},
                ) from None
            raise
        except Exception:
            self.tracker.record_update("failed")
            raise
        finally:
            self._claims[document_id] -= 1
            if not self._claims[document_id]:
                del self._claims[document_id]

    async def cancel_update(self, document_id: str) -> bool:
        """
        Cancel the in-flight update of a document.

        Returns:
            True if an update was cancelled, False if none was running or it
            was already committing
        """
        task = self._running.get(document_id)
        if task is None or task.done() or document_id in self._committing:
            return False
        self._cancel_requested.add(task)
        task.cancel()
        return True

    async def sync_from_source(self, document_id: str, revision: str | None = None) -> UpdateResult:
        """
        Pull a revision from the document source and apply it.

        Raises:
            NotFoundError: If no source is configured or the document is unknown
        """
        if self.source is None:
            raise NotFoundError("No document source configured")
        document = await self.source.get_document(document_id, revision)
        return await self.update_document(document_id, document)

    def watch_source(self) -> None:
        """Apply every revision the document source publishes."""
        if self.source is None:
            raise NotFoundError("No document source configured")
        self.source.subscribe(self._on_published)

    async def _on_published(self, document: Document) -> None:
        await self.update_document(document.document_id, document)

    async def _serialized_update(self, lock: asyncio.Lock, document: Document) -> UpdateResult:
        async with lock:
            document_id = document.document_id
            self._running[document_id] = asyncio.current_task()
            try:
                return await self._run_update(document)
            finally:
                self._running.pop(document_id, None)

    async def _run_update(self, document: Document) -> UpdateResult:
        started = time.perf_counter()
        update_id = generate_update_id()
        document_id = document.document_id

        head = await self.storage.head_revision(document_id)
        if head is None:
            result = await self._build_first(update_id, document)
        else:
            result = await self._build_incremental(update_id, document, head)

        result.duration_ms = (time.perf_counter() - started) * 1000
        self.tracker.record_update("committed")
        logger.info(
            f"Committed {result.revision_id} for {document_id}",
            extra={
                "update_id": update_id,
                "document_id": document_id,
                "revision_id": result.revision_id,
                "parent_revision_id": result.parent_revision_id,
                "regenerated": len(result.regenerated),
                "preserved": len(result.preserved),
                "tombstoned": len(result.tombstoned),
                "full_regeneration": result.full_regeneration,
                "duration_ms": round(result.duration_ms, 2),
            },
        )
        return result

    async def _build_first(self, update_id: str, document: Document) -> UpdateResult:
        layout = self.segmenter.layout(document)
        embeddings = await self.builder.embed_leaves(layout, self.analyzer, self.scheduler)
        hierarchy = self.builder.build(document, layout, embeddings, generate_revision_id())
        report = self.validator.validate(hierarchy, None)

        warnings = await self._commit(
            hierarchy, document, regenerated=list(hierarchy.nodes), tombstoned=[]
        )
        return UpdateResult(
            update_id=update_id,
            document_id=document.document_id,
            revision_id=hierarchy.revision_id,
            report=report,
            regenerated=sorted(hierarchy.nodes),
            warnings=warnings,
        )

    async def _build_incremental(
        self, update_id: str, document: Document, head: str
    ) -> UpdateResult:
        document_id = document.document_id
        previous = await self.storage.load_hierarchy(document_id, head)
        previous_document = await self.storage.load_document(document_id, head)

        change_set = await self.detector.detect(previous_document, document, previous)
        impact_map = self.propagator.propagate(change_set, previous)

        try:
            candidate, reconciled = await self._candidate(previous, impact_map, change_set, document)
        except StructuralCycleError as e:
            logger.warning(
                "Structural cycle in candidate, retrying with full regeneration",
                extra={"document_id": document_id, "error": str(e)},
            )
            impact_map = self.propagator.full_regeneration(change_set, previous)
            candidate, reconciled = await self._candidate(previous, impact_map, change_set, document)

        change_set = impact_map.apply_to(change_set)
        report = self.validator.validate(
            reconciled, previous, change_set=change_set, impact_map=impact_map
        )
        warnings = await self._commit(
            reconciled, document, regenerated=candidate.regenerated, tombstoned=candidate.tombstoned
        )
        return UpdateResult(
            update_id=update_id,
            document_id=document_id,
            revision_id=reconciled.revision_id,
            parent_revision_id=previous.revision_id,
            report=report,
            impact_counts=impact_map.counts(),
            regenerated=sorted(candidate.regenerated),
            preserved=sorted(candidate.preserved),
            tombstoned=sorted(candidate.tombstoned),
            full_regeneration=impact_map.full_regeneration,
            warnings=warnings,
        )

    async def _candidate(
        self,
        previous: Hierarchy,
        impact_map: ImpactMap,
        change_set: ChangeSet,
        document: Document,
    ) -> tuple[CandidateRevision, Hierarchy]:
        candidate = await self.updater.update(previous, impact_map, change_set, document)
        reconciled = self.reconciler.reconcile(candidate)
        return candidate, reconciled.hierarchy

    async def _commit(
        self,
        hierarchy: Hierarchy,
        document: Document,
        regenerated: list[str],
        tombstoned: list[str],
    ) -> list[str]:
        """
        Persist, move the head, then refresh cache and index. Not cancellable.

        Returns:
            Warnings for post-commit steps that failed
        """
        document_id = hierarchy.document_id
        self._committing.add(document_id)
        try:
            return await asyncio.shield(
                self._publish(hierarchy, document, set(regenerated) | set(tombstoned))
            )
        finally:
            self._committing.discard(document_id)

    async def _publish(
        self, hierarchy: Hierarchy, document: Document, touched: set[str]
    ) -> list[str]:
        document_id = hierarchy.document_id
        await self.storage.commit(hierarchy, document)
        self._heads[document_id] = hierarchy.revision_id

        # The revision is committed from here on; later failures are warnings
        self.cache.invalidate_document(document_id)
        warning = await self._refresh_index(hierarchy, touched)
        return [warning] if warning else []

    async def _refresh_index(self, hierarchy: Hierarchy, node_ids: set[str]) -> str | None:
        """
        Bring the index entries of node_ids in line with a committed hierarchy.

        Entries that earlier refreshes missed are folded in. On failure every
        node stays pending for the next commit or repair_index().

        Returns:
            A warning message if the index could not be updated
        """
        document_id = hierarchy.document_id
        pending = self._index_pending.pop(document_id, set()) | node_ids
        live = [hierarchy.nodes[node_id] for node_id in sorted(pending) if hierarchy.is_live(node_id)]
        gone = sorted(node_id for node_id in pending if not hierarchy.is_live(node_id))
        try:
            await self.index.delete_nodes(document_id, gone)
            await self.index.upsert_nodes(document_id, live)
        except SearchIndexError as e:
            self._index_pending.setdefault(document_id, set()).update(pending)
            logger.error(
                "Search index refresh failed after commit",
                extra={
                    "document_id": document_id,
                    "revision_id": hierarchy.revision_id,
                    "pending": len(pending),
                    "error": str(e),
                },
            )
            return f"Search index not updated for {hierarchy.revision_id}: {e.message}"
        return None

    async def repair_index(self) -> list[str]:
        """
        Retry index refreshes that failed after a commit.

        Documents with an update in flight are skipped; their commit folds
        the pending entries in.

        Returns:
            IDs of documents whose index entries are still stale
        """
        for document_id in sorted(self._index_pending):
            lock = self._locks.setdefault(document_id, asyncio.Lock())
            if lock.locked():
                continue
            async with lock:
                hierarchy = await self.storage.load_hierarchy(document_id)
                await self._refresh_index(hierarchy, set())
        return sorted(self._index_pending)

    # ═══════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════

    async def head_revision(self, document_id: str) -> str | None:
        head = self._heads.get(document_id)
        if head is None:
            head = await self.storage.head_revision(document_id)
            if head is not None:
                self._heads[document_id] = head
        return head

    async def get_hierarchy(self, document_id: str, revision: str | None = None) -> Hierarchy:
        """
        Get a committed hierarchy, the head revision by default.

        Raises:
            NotFoundError: If the document or revision does not exist
        """
        return await self.storage.load_hierarchy(document_id, revision)

    async def get_node(self, document_id: str, node_id: str, revision: str | None = None) -> Node:
        """
        Get one node record.

        Head reads go through the hot-node cache; explicit revisions are
        read from storage.

        Raises:
            NotFoundError: If the document, revision or node does not exist
        """
        self.tracker.record_read(node_id)
        if revision is not None:
            return await self.storage.load_node(document_id, node_id, revision)

        head = await self.head_revision(document_id)
        if head is None:
            raise NotFoundError(
                f"Document {document_id} has no committed revision",
                context={"document_id": document_id},
            )
        node = self.cache.get(document_id, node_id)
        if node is not None and node.revision_id == head:
            return node

        node = await self.storage.load_node(document_id, node_id, head)
        # A commit may have moved the head while loading
        if self._heads.get(document_id) == head:
            self.cache.put(document_id, node)
        return node

    async def history(self, document_id: str) -> list[str]:
        """
        Committed revision IDs of a document, oldest first.

        Raises:
            NotFoundError: If the document has no revisions
        """
        revisions = await self.storage.list_revisions(document_id)
        if not revisions:
            raise NotFoundError(
                f"Document {document_id} not found", context={"document_id": document_id}
            )
        return revisions

    async def list_documents(self) -> list[str]:
        return await self.storage.list_documents()

    async def search(
        self,
        query_vector: list[float],
        k: int = 10,
        document_id: str | None = None,
        granularity: Granularity | None = None,
        min_score: float | None = None,
    ) -> list[NodeHit]:
        """
        Search combined vectors of head revisions.

        Returns:
            Hits (node ID, document ID, granularity, score) by descending score
        """
        self.tracker.record_search()
        if self._index_pending:
            await self.repair_index()
        return await self.index.search(
            query_vector, k=k, document_id=document_id, granularity=granularity, min_score=min_score
        )

    async def search_scores(self, query_vector: list[float], k: int = 10) -> list[tuple[str, float]]:
        """Search combined vectors and return (node ID, score) pairs."""
        return [(hit.node_id, hit.score) for hit in await self.search(query_vector, k=k)]

    async def embed_query(self, text: str) -> list[float]:
        """
        Embed free text into the combined vector space.

        Raises:
            EmptyContentError: If text is blank
            AnalysisUnavailableError: If the analyzer fails
        """
        context = GranularityContext(document_id="query", granularity=Granularity.PARAGRAPH)
        embeddings = await self.scheduler.run(
            lambda: self.views.generate(text, context, self.analyzer), "embed_query"
        )
        structural = embeddings[ViewKind.STRUCTURAL]
        content_type = ContentType(structural.features["content_type"])
        return self.combiner.combine(
            structural,
            embeddings[ViewKind.SEMANTIC],
            embeddings[ViewKind.PRAGMATIC],
            self.policy.for_content(content_type),
        )

    async def search_text(
        self,
        query: str,
        k: int = 10,
        document_id: str | None = None,
        granularity: Granularity | None = None,
        min_score: float | None = None,
    ) -> list[NodeHit]:
        vector = await self.embed_query(query)
        return await self.search(
            vector, k=k, document_id=document_id, granularity=granularity, min_score=min_score
        )

    def get_statistics(self) -> dict:
        return {
            "documents": len(self._heads),
            "cached_nodes": len(self.cache),
            "stale_index_documents": sorted(self._index_pending),
            "access": self.tracker.snapshot(),
        }

    async def close(self) -> None:
        """Close all connections and flush access counters."""
        for document_id in list(self._running):
            await self.cancel_update(document_id)
        await self.analyzer.close()
        await self.storage.close()
        await self.index.close()
        self.tracker.flush()
        logger.info("Hierarchy Engine closed")
