"""
Access tracking with an explicit flush lifecycle.

One tracker lives per engine instance and is handed to the components
that record into it; nothing reads it as a global.
"""

from collections import Counter

from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)


class AccessTracker:
    """Counts node reads, cache hits and update outcomes between flushes."""

    def __init__(self):
        self._counters: Counter[str] = Counter()
        self._node_reads: Counter[str] = Counter()

    def record_read(self, node_id: str) -> None:
        self._counters["node_reads"] += 1
        self._node_reads[node_id] += 1

    def record_cache(self, hit: bool) -> None:
        self._counters["cache_hits" if hit else "cache_misses"] += 1

    def record_search(self) -> None:
        self._counters["searches"] += 1

    def record_update(self, outcome: str) -> None:
        self._counters[f"updates_{outcome}"] += 1

    def snapshot(self, top: int = 10) -> dict:
        return {
            **dict(self._counters),
            "hot_nodes": [node_id for node_id, _ in self._node_reads.most_common(top)],
        }

    def flush(self) -> dict:
        """Log and reset counters. Returns what was flushed."""
        snapshot = self.snapshot()
        logger.info("Access tracker flush", extra={"access": snapshot})
        self._counters.clear()
        self._node_reads.clear()
        return snapshot
