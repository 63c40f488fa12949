"""
Hierarchy Builder - assembles nodes and edges for a document revision.

Leaf spans (paragraphs, and sections without paragraphs) carry vectors from
the view generators; sections, the document and concepts are aggregated
from the nodes beneath them.
"""

from boltgraph.core.analyzer.base import Analyzer
from boltgraph.core.combiner import Combiner
from boltgraph.core.concepts import ConceptCandidate, ConceptExtractor
from boltgraph.core.scheduler import TaskScheduler
from boltgraph.core.segmenter import DocumentLayout, SpanPlan
from boltgraph.core.vectors import cosine_similarity
from boltgraph.core.views.base import GranularityContext
from boltgraph.core.views.pipeline import ViewPipeline
from boltgraph.models.document import Document
from boltgraph.models.edge import Edge, EdgeType
from boltgraph.models.hierarchy import Hierarchy
from boltgraph.models.node import (
    Granularity,
    Node,
    ViewEmbedding,
    ViewKind,
    ViewVectors,
    compute_content_hash,
    make_content_ref,
)
from boltgraph.models.policy import CombinationPolicy, ContentType
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)

LeafEmbeddings = dict[ViewKind, ViewEmbedding]


class HierarchyBuilder:
    """
    Builds hierarchies and the individual node records they hold.

    The node constructors are shared with the incremental updater so a
    regenerated node is indistinguishable from a freshly built one.
    """

    def __init__(
        self,
        combiner: Combiner,
        policy: CombinationPolicy,
        extractor: ConceptExtractor,
        views: ViewPipeline,
        sibling_threshold: float = 0.6,
    ):
        self.combiner = combiner
        self.policy = policy
        self.extractor = extractor
        self.views = views
        self.sibling_threshold = sibling_threshold

    # ═══════════════════════════════════════════════════════════
    # VIEW GENERATION
    # ═══════════════════════════════════════════════════════════

    def context_for(self, span: SpanPlan, layout: DocumentLayout) -> GranularityContext:
        section_title = span.title
        if span.granularity == Granularity.PARAGRAPH and span.parent_id:
            parent = layout.get(span.parent_id)
            section_title = parent.title if parent else ""
        return GranularityContext(
            document_id=layout.document_id,
            granularity=span.granularity,
            section_title=section_title,
            heading_level=span.level,
        )

    async def embed_leaves(
        self,
        layout: DocumentLayout,
        analyzer: Analyzer,
        scheduler: TaskScheduler,
        only: set[str] | None = None,
    ) -> dict[str, LeafEmbeddings]:
        """
        Generate view embeddings for leaf spans on the bounded pool.

        Args:
            layout: Document layout
            analyzer: Analyzer capability
            scheduler: Bounded task pool with retry
            only: Restrict generation to these span IDs

        Returns:
            Span ID -> embeddings per view
        """
        operations = {}
        for span in layout.leaves():
            if only is not None and span.node_id not in only:
                continue
            context = self.context_for(span, layout)

            async def _generate(text=span.text, context=context):
                return await self.views.generate(text, context, analyzer)

            operations[span.node_id] = _generate

        return await scheduler.run_level(operations)

    # ═══════════════════════════════════════════════════════════
    # NODE CONSTRUCTION
    # ═══════════════════════════════════════════════════════════

    def leaf_node(
        self,
        span: SpanPlan,
        document_id: str,
        embeddings: LeafEmbeddings,
        revision_id: str,
        previous_revision_id: str | None = None,
    ) -> Node:
        structural = embeddings[ViewKind.STRUCTURAL]
        semantic = embeddings[ViewKind.SEMANTIC]
        pragmatic = embeddings[ViewKind.PRAGMATIC]
        content_type = ContentType(structural.features["content_type"])

        combined = self.combiner.combine(
            structural, semantic, pragmatic, self.policy.for_content(content_type)
        )
        content_ref = make_content_ref(document_id, span.text)
        return Node(
            id=span.node_id,
            granularity=span.granularity,
            content_ref=content_ref,
            combined_vector=combined,
            per_view_vectors=ViewVectors(
                structural=structural.vector,
                semantic=semantic.vector,
                pragmatic=pragmatic.vector,
            ),
            feature_metadata={
                "title": span.title,
                "content_type": content_type.value,
                "structural": {
                    k: v for k, v in structural.features.items() if isinstance(v, float)
                },
                "cues": pragmatic.features.get("cues", {}),
                "model": semantic.features.get("model", ""),
            },
            content_hash=compute_content_hash(content_ref, span.granularity),
            revision_id=revision_id,
            previous_revision_id=previous_revision_id,
        )

    def aggregate_node(
        self,
        span: SpanPlan,
        document_id: str,
        children: list[Node],
        revision_id: str,
        previous_revision_id: str | None = None,
    ) -> Node:
        """
        Node whose vectors are the aggregate of its Contains children.

        Raises:
            ValueError: If children is empty
        """
        view_vectors, combined = self.combiner.aggregate(
            [child.per_view_vectors for child in children], self.policy
        )
        content_ref = make_content_ref(document_id, span.text)
        return Node(
            id=span.node_id,
            granularity=span.granularity,
            content_ref=content_ref,
            combined_vector=combined,
            per_view_vectors=view_vectors,
            feature_metadata={"title": span.title, "children": len(children)},
            content_hash=compute_content_hash(content_ref, span.granularity),
            revision_id=revision_id,
            previous_revision_id=previous_revision_id,
        )

    def concept_node(
        self,
        candidate: ConceptCandidate,
        document_id: str,
        mentions: list[Node],
        revision_id: str,
        previous_revision_id: str | None = None,
    ) -> Node:
        """Concept node: salience-weighted aggregate of mentioning spans."""
        weights = [candidate.mentions[node.id] for node in mentions]
        view_vectors, combined = self.combiner.aggregate(
            [node.per_view_vectors for node in mentions], self.policy, weights
        )
        content_ref = make_content_ref(document_id, f"concept:{candidate.term}")
        return Node(
            id=candidate.concept_id,
            granularity=Granularity.CONCEPT,
            content_ref=content_ref,
            combined_vector=combined,
            per_view_vectors=view_vectors,
            feature_metadata={"term": candidate.term, "mentions": len(mentions)},
            content_hash=compute_content_hash(content_ref, Granularity.CONCEPT),
            revision_id=revision_id,
            previous_revision_id=previous_revision_id,
        )

    def select_concepts(self, layout: DocumentLayout) -> list[ConceptCandidate]:
        return self.extractor.select(
            layout.document_id, {span.node_id: span.text for span in layout.leaves()}
        )

    # ═══════════════════════════════════════════════════════════
    # BUILD
    # ═══════════════════════════════════════════════════════════

    def build(
        self,
        document: Document,
        layout: DocumentLayout,
        embeddings: dict[str, LeafEmbeddings],
        revision_id: str,
    ) -> Hierarchy:
        """
        Build a complete hierarchy from leaf embeddings.

        Args:
            document: Source document
            layout: Span layout of the document
            embeddings: Leaf span ID -> view embeddings
            revision_id: Revision ID of the new hierarchy

        Returns:
            Hierarchy with Contains, Appears and Sibling edges

        Raises:
            StructuralCycleError: If the layout does not form a tree
        """
        hierarchy = Hierarchy(revision_id=revision_id, document_id=document.document_id)
        doc_span = layout.document()

        section_nodes = []
        for section in layout.sections():
            paragraphs = layout.children(section.node_id)
            if paragraphs:
                children = []
                for paragraph in paragraphs:
                    node = self.leaf_node(
                        paragraph, document.document_id, embeddings[paragraph.node_id], revision_id
                    )
                    hierarchy.add_node(node)
                    children.append(node)
                section_node = self.aggregate_node(
                    section, document.document_id, children, revision_id
                )
            else:
                section_node = self.leaf_node(
                    section, document.document_id, embeddings[section.node_id], revision_id
                )
            hierarchy.add_node(section_node)
            section_nodes.append(section_node)

        hierarchy.add_node(
            self.aggregate_node(doc_span, document.document_id, section_nodes, revision_id)
        )
        self.add_contains_edges(hierarchy, layout)

        candidates = self.select_concepts(layout)
        for candidate in candidates:
            mentions = [hierarchy.nodes[span_id] for span_id in candidate.mentions]
            hierarchy.add_node(
                self.concept_node(candidate, document.document_id, mentions, revision_id)
            )
        self.link_concepts(hierarchy, candidates)
        self.link_siblings(hierarchy)

        logger.info(
            f"Built hierarchy {revision_id} for {document.document_id}",
            extra={
                "document_id": document.document_id,
                "revision_id": revision_id,
                "nodes": len(hierarchy.nodes),
                "edges": len(hierarchy.edges),
                "concepts": len(candidates),
            },
        )
        return hierarchy

    # ═══════════════════════════════════════════════════════════
    # EDGES
    # ═══════════════════════════════════════════════════════════

    def add_contains_edges(self, hierarchy: Hierarchy, layout: DocumentLayout) -> None:
        doc_id = layout.document().node_id
        for section in layout.sections():
            hierarchy.add_edge(
                Edge(
                    from_id=doc_id,
                    to_id=section.node_id,
                    type=EdgeType.CONTAINS,
                    ordinal=section.ordinal,
                )
            )
            for paragraph in layout.children(section.node_id):
                hierarchy.add_edge(
                    Edge(
                        from_id=section.node_id,
                        to_id=paragraph.node_id,
                        type=EdgeType.CONTAINS,
                        ordinal=paragraph.ordinal,
                    )
                )

    def link_concepts(
        self,
        hierarchy: Hierarchy,
        candidates: list[ConceptCandidate],
        span_ids: set[str] | None = None,
    ) -> int:
        """
        Add Appears edges from mentioning spans to concepts.

        Args:
            hierarchy: Target hierarchy
            candidates: Selected concepts
            span_ids: Only link these spans (all when None)

        Returns:
            Number of edges added
        """
        added = 0
        for candidate in candidates:
            if not hierarchy.is_live(candidate.concept_id):
                continue
            for span_id, salience in candidate.mentions.items():
                if span_ids is not None and span_id not in span_ids:
                    continue
                if not hierarchy.is_live(span_id):
                    continue
                hierarchy.add_edge(
                    Edge(
                        from_id=span_id,
                        to_id=candidate.concept_id,
                        type=EdgeType.APPEARS,
                        strength=min(1.0, salience),
                    )
                )
                added += 1
        return added

    def sibling_edge(self, hierarchy: Hierarchy, left_id: str, right_id: str) -> Edge | None:
        """Sibling edge between two adjacent sections, or None below threshold."""
        similarity = cosine_similarity(
            hierarchy.nodes[left_id].combined_vector, hierarchy.nodes[right_id].combined_vector
        )
        if similarity <= self.sibling_threshold:
            return None
        return Edge(
            from_id=left_id,
            to_id=right_id,
            type=EdgeType.SIBLING,
            strength=min(1.0, similarity),
        )

    def link_siblings(self, hierarchy: Hierarchy) -> int:
        """Add Sibling edges between every adjacent pair of similar sections."""
        document = hierarchy.document_node()
        if document is None:
            return 0
        sections = hierarchy.children_of(document.id)
        added = 0
        for left_id, right_id in zip(sections, sections[1:], strict=False):
            edge = self.sibling_edge(hierarchy, left_id, right_id)
            if edge is not None:
                hierarchy.add_edge(edge)
                added += 1
        return added
