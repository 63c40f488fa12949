"""
Services for BoltGraph.

High-level services:
- HierarchyEngine: Unified interface for ingest, updates, reads and search
- ChangeDetector: Text, structural and semantic differences between revisions
- ImpactPropagator: Wave-based impact levels over the previous hierarchy
- IncrementalUpdater: Candidate revisions regenerating only affected nodes
- Reconciler: Edge repair and structural checks on candidates
- Validator: Pre-commit validation report
"""

from boltgraph.services.change_detector import ChangeDetector
from boltgraph.services.hierarchy_engine import HierarchyEngine
from boltgraph.services.impact_propagator import ImpactPropagator
from boltgraph.services.incremental_updater import CandidateRevision, IncrementalUpdater
from boltgraph.services.reconciler import ReconciledHierarchy, Reconciler
from boltgraph.services.validator import Validator

__all__ = [
    "HierarchyEngine",
    "ChangeDetector",
    "ImpactPropagator",
    "IncrementalUpdater",
    "CandidateRevision",
    "Reconciler",
    "ReconciledHierarchy",
    "Validator",
]
