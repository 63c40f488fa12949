"""View generators."""

from boltgraph.core.views.base import GranularityContext, ViewGenerator
from boltgraph.core.views.pipeline import ViewPipeline
from boltgraph.core.views.pragmatic import PragmaticViewGenerator
from boltgraph.core.views.semantic import SemanticViewGenerator
from boltgraph.core.views.structural import (
    StructuralViewGenerator,
    extract_structural_features,
    infer_content_type,
)

__all__ = [
    "GranularityContext",
    "ViewGenerator",
    "ViewPipeline",
    "StructuralViewGenerator",
    "SemanticViewGenerator",
    "PragmaticViewGenerator",
    "extract_structural_features",
    "infer_content_type",
]
