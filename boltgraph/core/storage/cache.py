"""
Hot-node cache: LRU of committed node records.
"""

from collections import OrderedDict

from boltgraph.core.telemetry import AccessTracker
from boltgraph.models.node import Node


class HotNodeCache:
    """
    Least-recently-used cache of node records keyed by (document, node).

    Only records of committed, validated revisions may be put here; the
    engine fills it after the head pointer moves.
    """

    def __init__(self, max_nodes: int = 10000, tracker: AccessTracker | None = None):
        self.max_nodes = max_nodes
        self.tracker = tracker
        self._entries: OrderedDict[tuple[str, str], Node] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, document_id: str, node_id: str) -> Node | None:
        key = (document_id, node_id)
        node = self._entries.get(key)
        if node is not None:
            self._entries.move_to_end(key)
        if self.tracker is not None:
            self.tracker.record_cache(hit=node is not None)
        return node

    def put(self, document_id: str, node: Node) -> None:
        key = (document_id, node.id)
        self._entries[key] = node
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_nodes:
            self._entries.popitem(last=False)

    def invalidate_document(self, document_id: str) -> None:
        for key in [k for k in self._entries if k[0] == document_id]:
            del self._entries[key]
