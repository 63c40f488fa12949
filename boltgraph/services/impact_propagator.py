"""
Impact Propagator - spreads local changes through the hierarchy.

Waves travel up Contains edges and along Appears edges into concepts.
A node whose estimated shift crosses the cascade threshold also reaches
its Sibling neighbours. Propagation is bounded by a hop limit; exceeding
it degrades to full regeneration.
"""

from boltgraph.models.change import ChangeSet, ImpactLevel, ImpactMap, TextImpact
from boltgraph.models.hierarchy import Hierarchy
from boltgraph.models.node import Granularity
from boltgraph.utils.exceptions import MaxHopsExceededError
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)

LEVEL_RANK = {
    ImpactLevel.NONE: 0,
    ImpactLevel.LOCAL: 1,
    ImpactLevel.PROPAGATED: 2,
    ImpactLevel.CASCADING: 3,
}
SHIFT_EPSILON = 1e-9


class ImpactPropagator:
    """
    Computes an impact map from a change set.

    Seeds are the nodes with a text impact other than unchanged; they stay
    LOCAL. Every node reached from a seed is PROPAGATED, or CASCADING when
    its estimated shift exceeds cascade_threshold.
    """

    def __init__(self, cascade_threshold: float = 0.15, max_hops: int = 5):
        self.cascade_threshold = cascade_threshold
        self.max_hops = max_hops

    def propagate(self, change_set: ChangeSet, hierarchy: Hierarchy) -> ImpactMap:
        """
        Propagate impact through the previous hierarchy.

        Args:
            change_set: Detected changes
            hierarchy: Previous committed hierarchy

        Returns:
            Impact map covering every live previous node and every added span
        """
        try:
            impact = self._propagate(change_set, hierarchy)
        except MaxHopsExceededError as e:
            logger.warning(
                f"Propagation exceeded {self.max_hops} hops, falling back to full regeneration",
                extra={"document_id": change_set.document_id, "error": str(e)},
            )
            impact = self.full_regeneration(change_set, hierarchy)

        logger.info(
            f"Propagated impact over {impact.hops} hops",
            extra={
                "document_id": change_set.document_id,
                "counts": impact.counts(),
                "full_regeneration": impact.full_regeneration,
            },
        )
        return impact

    def full_regeneration(self, change_set: ChangeSet, hierarchy: Hierarchy) -> ImpactMap:
        """Every live or added node CASCADING; removed nodes stay LOCAL."""
        levels = {}
        for node_id in self._universe(change_set, hierarchy):
            if change_set.text_impacts.get(node_id) == TextImpact.REMOVED:
                levels[node_id] = ImpactLevel.LOCAL
            else:
                levels[node_id] = ImpactLevel.CASCADING
        return ImpactMap(
            levels=levels,
            estimated_shift={node_id: 1.0 for node_id in levels},
            hops=self.max_hops,
            full_regeneration=True,
        )

    # ═══════════════════════════════════════════════════════════
    # WAVES
    # ═══════════════════════════════════════════════════════════

    def _propagate(self, change_set: ChangeSet, hierarchy: Hierarchy) -> ImpactMap:
        levels = {node_id: ImpactLevel.NONE for node_id in self._universe(change_set, hierarchy)}
        shift: dict[str, float] = {}

        frontier = []
        for node_id, text_impact in sorted(change_set.text_impacts.items()):
            if text_impact == TextImpact.UNCHANGED:
                continue
            levels[node_id] = ImpactLevel.LOCAL
            shift[node_id] = self._seed_shift(change_set, node_id, text_impact)
            frontier.append(node_id)

        hops = 0
        while frontier:
            if hops >= self.max_hops:
                raise MaxHopsExceededError(
                    f"Impact still spreading after {self.max_hops} hops",
                    context={"document_id": change_set.document_id, "frontier": len(frontier)},
                )
            hops += 1

            reached = set()
            for node_id in frontier:
                reached.update(self._targets(node_id, levels, change_set, hierarchy))

            next_frontier = []
            for node_id in sorted(reached):
                if node_id not in levels:
                    continue
                estimate = self._estimate(node_id, shift, change_set, hierarchy)
                old_shift = shift.get(node_id, 0.0)
                if levels[node_id] == ImpactLevel.LOCAL:
                    if estimate > old_shift + SHIFT_EPSILON:
                        shift[node_id] = estimate
                        next_frontier.append(node_id)
                    continue

                new_level = (
                    ImpactLevel.CASCADING
                    if estimate > self.cascade_threshold
                    else ImpactLevel.PROPAGATED
                )
                first_visit = levels[node_id] == ImpactLevel.NONE
                raised = LEVEL_RANK[new_level] > LEVEL_RANK[levels[node_id]]
                grew = estimate > old_shift + SHIFT_EPSILON
                if first_visit or raised or grew:
                    if raised or first_visit:
                        levels[node_id] = new_level
                    shift[node_id] = max(estimate, old_shift)
                    next_frontier.append(node_id)
            frontier = next_frontier

        return ImpactMap(levels=levels, estimated_shift=shift, hops=hops)

    def _universe(self, change_set: ChangeSet, hierarchy: Hierarchy) -> list[str]:
        ids = {node.id for node in hierarchy.live_nodes()}
        ids.update(change_set.text_impacts)
        return sorted(ids)

    def _seed_shift(self, change_set: ChangeSet, node_id: str, text_impact: TextImpact) -> float:
        if text_impact in (TextImpact.ADDED, TextImpact.REMOVED):
            return 1.0
        semantic = change_set.semantic_delta.get(node_id)
        if semantic is not None:
            return min(1.0, semantic.magnitude)
        return change_set.edit_magnitude.get(node_id, 1.0)

    def _parent(self, node_id: str, change_set: ChangeSet, hierarchy: Hierarchy) -> str | None:
        alignment = change_set.alignments.get(node_id)
        if alignment is not None and alignment.granularity != Granularity.CONCEPT:
            return alignment.parent_id
        return hierarchy.parent_of(node_id)

    def _children(self, node_id: str, change_set: ChangeSet, hierarchy: Hierarchy) -> list[str]:
        children = set(hierarchy.children_of(node_id))
        children.update(
            a.node_id
            for a in change_set.alignments.values()
            if a.parent_id == node_id and a.granularity != Granularity.CONCEPT
        )
        return sorted(children)

    def _targets(
        self,
        node_id: str,
        levels: dict[str, ImpactLevel],
        change_set: ChangeSet,
        hierarchy: Hierarchy,
    ) -> list[str]:
        targets = []
        parent = self._parent(node_id, change_set, hierarchy)
        if parent is not None:
            targets.append(parent)
        targets.extend(edge.to_id for edge in hierarchy.concepts_of(node_id))
        if levels.get(node_id) == ImpactLevel.CASCADING:
            targets.extend(hierarchy.siblings_of(node_id))
        return targets

    def _estimate(
        self,
        node_id: str,
        shift: dict[str, float],
        change_set: ChangeSet,
        hierarchy: Hierarchy,
    ) -> float:
        """
        Estimated shift of a reached node.

        Concepts take the salience-weighted share of their mentions' shift;
        other nodes take the mean shift of their children.
        """
        node = hierarchy.get_node(node_id)
        if node is not None and node.granularity == Granularity.CONCEPT:
            mentions = hierarchy.mentions_of(node_id)
            total = sum(edge.strength for edge in mentions)
            if total == 0.0:
                return 0.0
            return sum(edge.strength * shift.get(edge.from_id, 0.0) for edge in mentions) / total

        children = self._children(node_id, change_set, hierarchy)
        if not children:
            return shift.get(node_id, 0.0)
        return sum(shift.get(child, 0.0) for child in children) / len(children)
