"""
Pragmatic view: purpose and intent of a span.
"""

from boltgraph.core.analyzer.base import Analyzer
from boltgraph.core.analyzer.cues import extract_pragmatic_cues
from boltgraph.core.views.base import GranularityContext, ViewGenerator
from boltgraph.models.node import ViewEmbedding, ViewKind


class PragmaticViewGenerator(ViewGenerator):
    """
    Pragmatic view generator.

    The vector comes from the analyzer; local cue counts are recorded as
    feature metadata so they survive even with opaque analyzers.
    """

    view = ViewKind.PRAGMATIC

    async def generate(
        self, text: str, context: GranularityContext, analyzer: Analyzer
    ) -> ViewEmbedding:
        self._require_text(text, context)
        result = await self._analyze(text, context, analyzer)
        features = {
            **result.features,
            "model": result.model,
            "cues": extract_pragmatic_cues(text),
        }
        if context.content_type is not None:
            features["content_type"] = context.content_type.value
        return self._finalize(result.vector, text, features)
