"""
Analyzer selection by content-type hint.
"""

from boltgraph.core.analyzer.base import AnalysisResult, Analyzer
from boltgraph.models.node import ViewKind
from boltgraph.models.policy import ContentType
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)


class AnalyzerRegistry(Analyzer):
    """
    Routes analysis to an analyzer chosen from a lookup table.

    Content types without an entry fall back to the default analyzer.
    The registry is itself an Analyzer, so view generators never know
    whether they talk to one provider or several.
    """

    name = "registry"

    def __init__(
        self,
        default: Analyzer,
        by_content_type: dict[ContentType, Analyzer] | None = None,
    ):
        self.default = default
        self.by_content_type: dict[ContentType, Analyzer] = dict(by_content_type or {})

    def register(self, content_type: ContentType, analyzer: Analyzer) -> None:
        self.by_content_type[content_type] = analyzer

    def select(self, content_type_hint: ContentType | None) -> Analyzer:
        if content_type_hint is None:
            return self.default
        return self.by_content_type.get(content_type_hint, self.default)

    async def analyze(
        self,
        text: str,
        view: ViewKind,
        content_type_hint: ContentType | None = None,
    ) -> AnalysisResult:
        analyzer = self.select(content_type_hint)
        return await analyzer.analyze(text, view, content_type_hint)

    async def close(self):
        """Close every distinct analyzer once."""
        seen: set[int] = set()
        for analyzer in [self.default, *self.by_content_type.values()]:
            if id(analyzer) in seen:
                continue
            seen.add(id(analyzer))
            await analyzer.close()
        logger.debug(f"Closed {len(seen)} analyzers")
