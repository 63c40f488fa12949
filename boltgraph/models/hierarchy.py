"""
Hierarchy (revision graph) model.

A Hierarchy is an arena of node records keyed by ID plus a separate edge
list. Every cross reference is an ID lookup, so the concept <-> content
relationships never form owning reference cycles.
"""

from collections import defaultdict
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel, Field, PrivateAttr

from boltgraph.models.edge import Edge, EdgeType
from boltgraph.models.node import Granularity, Node
from boltgraph.utils.exceptions import InvalidEdgeError, StructuralCycleError


class Hierarchy(BaseModel):
    """
    Node/edge graph for one document revision.

    Invariants enforced on insertion:
    - Contains edges form a forest rooted at the Document node
      (single parent, no cycles)
    - Sibling edges only join nodes that share a Contains parent
    - Appears edges always point at a Concept node
    """

    revision_id: str
    document_id: str
    parent_revision_id: str | None = None
    nodes: dict[str, Node] = Field(default_factory=dict)
    edges: list[Edge] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)

    _parents: dict[str, str] | None = PrivateAttr(default=None)
    _children: dict[str, list[Edge]] | None = PrivateAttr(default=None)

    # ═══════════════════════════════════════════════════════════
    # INDEXES
    # ═══════════════════════════════════════════════════════════

    def _invalidate(self) -> None:
        self._parents = None
        self._children = None

    def _ensure_index(self) -> None:
        if self._parents is not None:
            return
        parents: dict[str, str] = {}
        children: dict[str, list[Edge]] = defaultdict(list)
        for edge in self.edges:
            if edge.type == EdgeType.CONTAINS:
                parents[edge.to_id] = edge.from_id
                children[edge.from_id].append(edge)
        for edge_list in children.values():
            edge_list.sort(key=lambda e: e.ordinal)
        self._parents = parents
        self._children = dict(children)

    # ═══════════════════════════════════════════════════════════
    # NODE OPERATIONS
    # ═══════════════════════════════════════════════════════════

    def add_node(self, node: Node) -> None:
        """
        Put a node record into this revision.

        Args:
            node: Node record; replaces any record with the same ID
        """
        self.nodes[node.id] = node

    def get_node(self, node_id: str) -> Node | None:
        return self.nodes.get(node_id)

    def is_live(self, node_id: str) -> bool:
        node = self.nodes.get(node_id)
        return node is not None and not node.tombstoned

    def live_nodes(self) -> list[Node]:
        return [node for node in self.nodes.values() if not node.tombstoned]

    def nodes_of_granularity(self, granularity: Granularity, live_only: bool = True) -> list[Node]:
        return [
            node
            for node in self.nodes.values()
            if node.granularity == granularity and (not live_only or not node.tombstoned)
        ]

    def document_node(self) -> Node | None:
        for node in self.nodes.values():
            if node.granularity == Granularity.DOCUMENT and not node.tombstoned:
                return node
        return None

    def dimensions(self) -> set[int]:
        """Distinct combined-vector dimensions across live nodes."""
        return {node.dimension for node in self.live_nodes()}

    # ═══════════════════════════════════════════════════════════
    # EDGE OPERATIONS
    # ═══════════════════════════════════════════════════════════

    def add_edge(self, edge: Edge) -> None:
        """
        Insert an edge, enforcing hierarchy invariants.

        An edge with the same (from, to, type) replaces the existing one.

        Args:
            edge: Edge to insert

        Raises:
            InvalidEdgeError: If an endpoint is unknown or tombstoned, or if the
                edge breaks sibling/appears rules
            StructuralCycleError: If a Contains edge would give a node a second
                parent or close a cycle
        """
        for endpoint in (edge.from_id, edge.to_id):
            if not self.is_live(endpoint):
                raise InvalidEdgeError(
                    f"Edge endpoint {endpoint} is not a live node",
                    context={"edge": edge.model_dump(mode="json")},
                )
        if edge.from_id == edge.to_id:
            if edge.type == EdgeType.CONTAINS:
                raise StructuralCycleError(
                    f"Node {edge.from_id} cannot contain itself",
                    context={"node_id": edge.from_id},
                )
            raise InvalidEdgeError(f"Self edge on {edge.from_id} is not allowed")

        self._ensure_index()

        if edge.type == EdgeType.CONTAINS:
            current_parent = self._parents.get(edge.to_id)
            if current_parent is not None and current_parent != edge.from_id:
                raise StructuralCycleError(
                    f"Node {edge.to_id} already has parent {current_parent}",
                    context={"node_id": edge.to_id, "new_parent": edge.from_id},
                )
            if edge.to_id in self.ancestors(edge.from_id):
                raise StructuralCycleError(
                    f"Contains edge {edge.from_id} -> {edge.to_id} would create a cycle",
                    context={"from_id": edge.from_id, "to_id": edge.to_id},
                )
        elif edge.type == EdgeType.SIBLING:
            parent_a = self._parents.get(edge.from_id)
            parent_b = self._parents.get(edge.to_id)
            if parent_a is None or parent_a != parent_b:
                raise InvalidEdgeError(
                    f"Sibling edge {edge.from_id} - {edge.to_id} joins nodes with different parents",
                    context={"from_parent": parent_a, "to_parent": parent_b},
                )
        elif edge.type == EdgeType.APPEARS:
            if self.nodes[edge.to_id].granularity != Granularity.CONCEPT:
                raise InvalidEdgeError(
                    f"Appears edge must point at a concept, got {edge.to_id}",
                    context={"to_id": edge.to_id},
                )

        self.edges = [e for e in self.edges if e.key != edge.key]
        self.edges.append(edge)
        self._invalidate()

    def adopt_edges(self, edges: list[Edge]) -> None:
        """
        Copy edges in without invariant checks.

        Used when carrying edges into a candidate revision; the reconciler
        drops or repairs whatever no longer holds.
        """
        keys = {e.key for e in edges}
        self.edges = [e for e in self.edges if e.key not in keys] + list(edges)
        self._invalidate()

    def remove_edges(self, predicate: Callable[[Edge], bool]) -> list[Edge]:
        """
        Remove every edge matching predicate.

        Returns:
            Removed edges
        """
        removed = [e for e in self.edges if predicate(e)]
        if removed:
            self.edges = [e for e in self.edges if not predicate(e)]
            self._invalidate()
        return removed

    def edges_of_type(self, edge_type: EdgeType) -> list[Edge]:
        return [e for e in self.edges if e.type == edge_type]

    def edges_touching(self, node_id: str, edge_type: EdgeType | None = None) -> list[Edge]:
        return [
            e
            for e in self.edges
            if e.touches(node_id) and (edge_type is None or e.type == edge_type)
        ]

    # ═══════════════════════════════════════════════════════════
    # TRAVERSAL
    # ═══════════════════════════════════════════════════════════

    def parent_of(self, node_id: str) -> str | None:
        self._ensure_index()
        return self._parents.get(node_id)

    def children_of(self, node_id: str) -> list[str]:
        """Contains children of a node, in ordinal order."""
        self._ensure_index()
        return [e.to_id for e in self._children.get(node_id, [])]

    def ancestors(self, node_id: str) -> list[str]:
        """Contains ancestors from parent up to the root."""
        self._ensure_index()
        result = []
        seen = {node_id}
        current = self._parents.get(node_id)
        while current is not None and current not in seen:
            result.append(current)
            seen.add(current)
            current = self._parents.get(current)
        return result

    def mentions_of(self, concept_id: str) -> list[Edge]:
        """Appears edges pointing at a concept."""
        return [e for e in self.edges if e.type == EdgeType.APPEARS and e.to_id == concept_id]

    def concepts_of(self, span_id: str) -> list[Edge]:
        """Appears edges leaving a mentioning span."""
        return [e for e in self.edges if e.type == EdgeType.APPEARS and e.from_id == span_id]

    def siblings_of(self, node_id: str) -> list[str]:
        return [
            e.to_id if e.from_id == node_id else e.from_id
            for e in self.edges
            if e.type == EdgeType.SIBLING and e.touches(node_id)
        ]

    def contains_is_forest(self) -> bool:
        """
        Check that Contains edges form a forest.

        Returns:
            True if every node has at most one parent and no cycle exists
        """
        parents: dict[str, str] = {}
        for edge in self.edges:
            if edge.type != EdgeType.CONTAINS:
                continue
            if edge.to_id in parents and parents[edge.to_id] != edge.from_id:
                return False
            parents[edge.to_id] = edge.from_id

        for start in parents:
            seen = {start}
            current = parents.get(start)
            while current is not None:
                if current in seen:
                    return False
                seen.add(current)
                current = parents.get(current)
        return True
