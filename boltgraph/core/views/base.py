"""
Abstract base class for view generators.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel

from boltgraph.core.analyzer.base import AnalysisResult, Analyzer
from boltgraph.core.vectors import l2_norm, normalize, pad_or_truncate, to_list
from boltgraph.models.node import Granularity, ViewEmbedding, ViewKind, hash_text
from boltgraph.models.policy import ContentType
from boltgraph.utils.exceptions import (
    AnalysisTimeoutError,
    AnalysisUnavailableError,
    EmptyContentError,
)


class GranularityContext(BaseModel):
    """Where a span sits in its document."""

    document_id: str
    granularity: Granularity
    section_title: str = ""
    heading_level: int = 0
    content_type: ContentType | None = None


class ViewGenerator(ABC):
    """
    Abstract base for view generators.

    Every generator returns a unit-length vector of the configured dimension.
    Analyzer output is padded or truncated before normalisation.
    """

    view: ViewKind

    def __init__(self, dimension: int = 384, timeout: float = 30.0):
        """
        Args:
            dimension: Output vector dimension
            timeout: Per analyzer call timeout in seconds
        """
        self.dimension = dimension
        self.timeout = timeout

    @abstractmethod
    async def generate(
        self, text: str, context: GranularityContext, analyzer: Analyzer
    ) -> ViewEmbedding:
        """
        Generate the view embedding of one span.

        Args:
            text: Span text
            context: Granularity context of the span
            analyzer: Analyzer capability (unused by local views)

        Returns:
            Unit-length view embedding

        Raises:
            EmptyContentError: If text is blank
            AnalysisUnavailableError: If the analyzer fails or times out
        """
        pass

    def _require_text(self, text: str, context: GranularityContext) -> None:
        if not text or not text.strip():
            raise EmptyContentError(
                f"Cannot generate {self.view.value} view for empty span",
                context={"document_id": context.document_id, "view": self.view.value},
            )

    async def _analyze(
        self, text: str, context: GranularityContext, analyzer: Analyzer
    ) -> AnalysisResult:
        try:
            return await asyncio.wait_for(
                analyzer.analyze(text, self.view, context.content_type), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise AnalysisTimeoutError(
                f"Analyzer timed out after {self.timeout}s",
                context={"view": self.view.value, "document_id": context.document_id},
            ) from e

    def _finalize(
        self, raw: Sequence[float], text: str, features: dict[str, Any]
    ) -> ViewEmbedding:
        vector = pad_or_truncate(raw, self.dimension)
        if l2_norm(vector) == 0.0:
            raise AnalysisUnavailableError(
                f"Degenerate {self.view.value} vector",
                context={"view": self.view.value},
            )
        return ViewEmbedding(
            view=self.view,
            vector=to_list(normalize(vector)),
            features=features,
            content_hash=hash_text(text),
        )
