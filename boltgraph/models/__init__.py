"""
Data models for BoltGraph.

Layers:
1. Source layer (Document, Section) owned by the document source
2. Derived layer (Node, Edge, Hierarchy) one graph per document revision
3. Change layer (ChangeSet, ImpactMap) describing how a revision moves
4. Outcome layer (ValidationReport, UpdateResult)
"""

from boltgraph.models.change import (
    ChangeSet,
    DiffOp,
    ImpactLevel,
    ImpactMap,
    SemanticDelta,
    SpanAlignment,
    StructuralDelta,
    TextDiffSpan,
    TextImpact,
)
from boltgraph.models.document import Document, Section
from boltgraph.models.edge import Edge, EdgeType
from boltgraph.models.hierarchy import Hierarchy
from boltgraph.models.node import (
    Granularity,
    Node,
    ViewEmbedding,
    ViewKind,
    ViewVectors,
    compute_content_hash,
    hash_text,
    make_content_ref,
)
from boltgraph.models.policy import (
    ApplicationType,
    CombinationPolicy,
    CombinationStrategy,
    ContentType,
    ViewWeights,
)
from boltgraph.models.report import (
    UpdateResult,
    ValidationCheck,
    ValidationIssue,
    ValidationReport,
)

__all__ = [
    # Source models
    "Document",
    "Section",
    # Node models
    "Granularity",
    "Node",
    "ViewEmbedding",
    "ViewKind",
    "ViewVectors",
    "compute_content_hash",
    "hash_text",
    "make_content_ref",
    # Edge / hierarchy models
    "Edge",
    "EdgeType",
    "Hierarchy",
    # Change models
    "ChangeSet",
    "DiffOp",
    "ImpactLevel",
    "ImpactMap",
    "SemanticDelta",
    "SpanAlignment",
    "StructuralDelta",
    "TextDiffSpan",
    "TextImpact",
    # Policy models
    "ApplicationType",
    "CombinationPolicy",
    "CombinationStrategy",
    "ContentType",
    "ViewWeights",
    # Outcome models
    "UpdateResult",
    "ValidationCheck",
    "ValidationIssue",
    "ValidationReport",
]
