"""
Semantic view: what a span means, as judged by the analyzer.
"""

from boltgraph.core.analyzer.base import Analyzer
from boltgraph.core.views.base import GranularityContext, ViewGenerator
from boltgraph.models.node import ViewEmbedding, ViewKind


class SemanticViewGenerator(ViewGenerator):
    """Semantic view generator backed by the analyzer capability."""

    view = ViewKind.SEMANTIC

    async def generate(
        self, text: str, context: GranularityContext, analyzer: Analyzer
    ) -> ViewEmbedding:
        self._require_text(text, context)
        result = await self._analyze(text, context, analyzer)
        features = {
            **result.features,
            "model": result.model,
            "raw_dimension": len(result.vector),
        }
        return self._finalize(result.vector, text, features)
