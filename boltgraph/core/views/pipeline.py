"""
Runs the three view generators for one span.
"""

import asyncio

from boltgraph.core.analyzer.base import Analyzer
from boltgraph.core.views.base import GranularityContext
from boltgraph.core.views.pragmatic import PragmaticViewGenerator
from boltgraph.core.views.semantic import SemanticViewGenerator
from boltgraph.core.views.structural import StructuralViewGenerator
from boltgraph.models.node import ViewEmbedding, ViewKind
from boltgraph.models.policy import ContentType


class ViewPipeline:
    """
    Generates structural, semantic and pragmatic embeddings of a span.

    The structural view runs first; its inferred content type becomes the
    analyzer hint for the other two, which run concurrently.
    """

    def __init__(self, dimension: int = 384, timeout: float = 30.0):
        self.dimension = dimension
        self.structural = StructuralViewGenerator(dimension, timeout)
        self.semantic = SemanticViewGenerator(dimension, timeout)
        self.pragmatic = PragmaticViewGenerator(dimension, timeout)

    async def generate(
        self, text: str, context: GranularityContext, analyzer: Analyzer
    ) -> dict[ViewKind, ViewEmbedding]:
        structural = await self.structural.generate(text, context, analyzer)
        if context.content_type is None:
            context = context.model_copy(
                update={"content_type": ContentType(structural.features["content_type"])}
            )
        semantic, pragmatic = await asyncio.gather(
            self.semantic.generate(text, context, analyzer),
            self.pragmatic.generate(text, context, analyzer),
        )
        return {
            ViewKind.STRUCTURAL: structural,
            ViewKind.SEMANTIC: semantic,
            ViewKind.PRAGMATIC: pragmatic,
        }
