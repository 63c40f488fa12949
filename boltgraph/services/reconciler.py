"""
Reconciler - repairs edges of a candidate revision.
"""

from pydantic import BaseModel, Field

from boltgraph.core.hierarchy_builder import HierarchyBuilder
from boltgraph.models.edge import EdgeType
from boltgraph.models.hierarchy import Hierarchy
from boltgraph.services.incremental_updater import CandidateRevision
from boltgraph.utils.exceptions import DimensionMismatchError, StructuralCycleError
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)


class ReconciledHierarchy(BaseModel):
    """Candidate hierarchy after edge repair."""

    hierarchy: Hierarchy
    repairs: list[str] = Field(default_factory=list)


class Reconciler:
    """
    Restores edge invariants after selective regeneration.

    - Drops edges with a tombstoned or missing endpoint
    - Recomputes Sibling edges where an endpoint was regenerated or
      adjacency changed
    - Recomputes Appears edges touching regenerated spans or concepts
    - Verifies the Contains forest and a single vector dimension
    """

    def __init__(self, builder: HierarchyBuilder):
        self.builder = builder

    def reconcile(self, candidate: CandidateRevision) -> ReconciledHierarchy:
        """
        Reconcile a candidate revision in place.

        Raises:
            StructuralCycleError: If Contains edges no longer form a forest
            DimensionMismatchError: If live nodes disagree on dimension
        """
        hierarchy = candidate.hierarchy
        regenerated = set(candidate.regenerated)
        repairs: list[str] = []

        dangling = hierarchy.remove_edges(
            lambda e: not hierarchy.is_live(e.from_id) or not hierarchy.is_live(e.to_id)
        )
        repairs.extend(f"dropped {e.type.value} {e.from_id}->{e.to_id}" for e in dangling)

        repairs.extend(self._reconcile_siblings(candidate, regenerated))
        repairs.extend(self._reconcile_appears(candidate, regenerated))

        if not hierarchy.contains_is_forest():
            raise StructuralCycleError(
                "Contains edges do not form a forest",
                context={"revision_id": hierarchy.revision_id},
            )
        dimensions = hierarchy.dimensions()
        if len(dimensions) > 1:
            raise DimensionMismatchError(
                "Live nodes have different vector dimensions",
                context={"revision_id": hierarchy.revision_id, "dimensions": sorted(dimensions)},
            )

        logger.debug(
            f"Reconciled {hierarchy.revision_id} with {len(repairs)} repairs",
            extra={"revision_id": hierarchy.revision_id, "repairs": len(repairs)},
        )
        return ReconciledHierarchy(hierarchy=hierarchy, repairs=repairs)

    def _reconcile_siblings(self, candidate: CandidateRevision, regenerated: set[str]) -> list[str]:
        hierarchy = candidate.hierarchy
        document_id = hierarchy.document_id
        sections = hierarchy.children_of(document_id)
        adjacent = set(zip(sections, sections[1:], strict=False))
        previous_sections = candidate.previous.children_of(document_id)
        previously_adjacent = set(zip(previous_sections, previous_sections[1:], strict=False))

        repairs = []
        stale = hierarchy.remove_edges(
            lambda e: e.type == EdgeType.SIBLING
            and (
                (e.from_id, e.to_id) not in adjacent
                or e.from_id in regenerated
                or e.to_id in regenerated
            )
        )
        repairs.extend(f"dropped sibling {e.from_id}->{e.to_id}" for e in stale)

        for left_id, right_id in sorted(adjacent):
            unchanged = (
                left_id not in regenerated
                and right_id not in regenerated
                and (left_id, right_id) in previously_adjacent
            )
            if unchanged:
                continue
            edge = self.builder.sibling_edge(hierarchy, left_id, right_id)
            if edge is not None:
                hierarchy.add_edge(edge)
                repairs.append(f"linked sibling {left_id}->{right_id}")
        return repairs

    def _reconcile_appears(self, candidate: CandidateRevision, regenerated: set[str]) -> list[str]:
        hierarchy = candidate.hierarchy
        stale = hierarchy.remove_edges(
            lambda e: e.type == EdgeType.APPEARS
            and (e.from_id in regenerated or e.to_id in regenerated)
        )
        added = 0
        for concept in candidate.concepts:
            span_ids = None if concept.concept_id in regenerated else regenerated
            added += self.builder.link_concepts(hierarchy, [concept], span_ids)
        return [f"relinked {added} appears edges, dropped {len(stale)}"] if stale or added else []
