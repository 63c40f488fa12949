"""
Incremental Updater - regenerates only the nodes an update affects.

Nodes with no impact are carried into the new revision verbatim (only
revision_id changes), removed nodes become tombstones and everything else
is regenerated bottom-up: leaves through the view generators, then
concepts and sections from their updated children, then the document.
"""

from pydantic import BaseModel, Field

from boltgraph.core.analyzer.base import Analyzer
from boltgraph.core.concepts import ConceptCandidate
from boltgraph.core.hierarchy_builder import HierarchyBuilder
from boltgraph.core.scheduler import TaskScheduler
from boltgraph.core.segmenter import DocumentLayout, SpanPlan
from boltgraph.models.change import ChangeSet, ImpactLevel, ImpactMap, TextImpact
from boltgraph.models.document import Document
from boltgraph.models.edge import EdgeType
from boltgraph.models.hierarchy import Hierarchy
from boltgraph.models.node import Granularity
from boltgraph.utils.id_generator import generate_revision_id
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)


class CandidateRevision(BaseModel):
    """Unvalidated revision produced by the updater."""

    hierarchy: Hierarchy
    previous: Hierarchy
    layout: DocumentLayout
    concepts: list[ConceptCandidate] = Field(default_factory=list)
    regenerated: list[str] = Field(default_factory=list)
    preserved: list[str] = Field(default_factory=list)
    tombstoned: list[str] = Field(default_factory=list)


def layout_from_change_set(change_set: ChangeSet) -> DocumentLayout:
    """Span layout of the new revision, with the IDs assigned during detection."""
    layout = DocumentLayout(document_id=change_set.document_id)
    for alignment in change_set.alignments.values():
        if alignment.text_impact == TextImpact.REMOVED:
            continue
        if alignment.granularity == Granularity.CONCEPT:
            continue
        layout.add(
            SpanPlan(
                node_id=alignment.node_id,
                granularity=alignment.granularity,
                parent_id=alignment.parent_id,
                ordinal=alignment.ordinal,
                text=alignment.text or "",
                title=alignment.title,
                level=alignment.level,
            )
        )
    return layout


class IncrementalUpdater:
    """
    Produces a candidate revision from an impact map.

    Analyzer calls happen only for leaf spans that need regeneration; they
    run on the bounded scheduler so a level completes before its parents.
    """

    def __init__(self, builder: HierarchyBuilder, analyzer: Analyzer, scheduler: TaskScheduler):
        self.builder = builder
        self.analyzer = analyzer
        self.scheduler = scheduler

    async def update(
        self,
        hierarchy: Hierarchy,
        impact_map: ImpactMap,
        change_set: ChangeSet,
        new_document: Document,
    ) -> CandidateRevision:
        """
        Build the candidate revision.

        Args:
            hierarchy: Previous committed hierarchy
            impact_map: Result of impact propagation
            change_set: Detected changes (carries the new span IDs)
            new_document: Incoming document revision

        Returns:
            Candidate revision for reconciliation

        Raises:
            AnalysisUnavailableError: If a leaf exhausts its retries
            StructuralCycleError: If the new layout does not form a tree
        """
        revision_id = generate_revision_id()
        document_id = new_document.document_id
        layout = layout_from_change_set(change_set)
        candidate = Hierarchy(
            revision_id=revision_id,
            document_id=document_id,
            parent_revision_id=hierarchy.revision_id,
        )

        regenerate: set[str] = set()
        preserved: list[str] = []
        tombstoned: list[str] = []
        for node in hierarchy.nodes.values():
            if node.tombstoned:
                candidate.add_node(node.with_revision(revision_id))
                continue
            text_impact = change_set.text_impacts.get(node.id, TextImpact.UNCHANGED)
            if text_impact == TextImpact.REMOVED:
                candidate.add_node(node.tombstone(revision_id))
                tombstoned.append(node.id)
            elif impact_map.level(node.id) == ImpactLevel.NONE:
                candidate.add_node(node.with_revision(revision_id))
                preserved.append(node.id)
            else:
                regenerate.add(node.id)
        regenerate.update(
            node_id
            for node_id, text_impact in change_set.text_impacts.items()
            if text_impact == TextImpact.ADDED
        )

        def previous_revision(node_id: str) -> str | None:
            node = hierarchy.get_node(node_id)
            return node.revision_id if node is not None else None

        # Leaves
        leaf_ids = {span.node_id for span in layout.leaves()} & regenerate
        embeddings = await self.builder.embed_leaves(
            layout, self.analyzer, self.scheduler, only=leaf_ids
        )
        for node_id in sorted(leaf_ids):
            candidate.add_node(
                self.builder.leaf_node(
                    layout.get(node_id),
                    document_id,
                    embeddings[node_id],
                    revision_id,
                    previous_revision(node_id),
                )
            )

        # Concepts
        concepts = self.builder.select_concepts(layout)
        for concept in concepts:
            if concept.concept_id not in regenerate:
                continue
            mentions = [candidate.nodes[span_id] for span_id in concept.mentions]
            candidate.add_node(
                self.builder.concept_node(
                    concept,
                    document_id,
                    mentions,
                    revision_id,
                    previous_revision(concept.concept_id),
                )
            )

        # Sections, then the document
        for section in layout.sections():
            children = layout.children(section.node_id)
            if section.node_id not in regenerate or not children:
                continue
            candidate.add_node(
                self.builder.aggregate_node(
                    section,
                    document_id,
                    [candidate.nodes[child.node_id] for child in children],
                    revision_id,
                    previous_revision(section.node_id),
                )
            )
        document_span = layout.document()
        if document_span.node_id in regenerate:
            candidate.add_node(
                self.builder.aggregate_node(
                    document_span,
                    document_id,
                    [candidate.nodes[section.node_id] for section in layout.sections()],
                    revision_id,
                    previous_revision(document_span.node_id),
                )
            )

        self.builder.add_contains_edges(candidate, layout)
        candidate.adopt_edges([e for e in hierarchy.edges if e.type != EdgeType.CONTAINS])

        logger.info(
            f"Candidate revision {revision_id} for {document_id}",
            extra={
                "document_id": document_id,
                "revision_id": revision_id,
                "regenerated": len(regenerate),
                "preserved": len(preserved),
                "tombstoned": len(tombstoned),
                "analyzed_leaves": len(leaf_ids),
            },
        )
        return CandidateRevision(
            hierarchy=candidate,
            previous=hierarchy,
            layout=layout,
            concepts=concepts,
            regenerated=sorted(regenerate),
            preserved=sorted(preserved),
            tombstoned=sorted(tombstoned),
        )
