"""
Abstract base class for analyzer capabilities.
Turns text into a view-specific vector for the semantic and pragmatic views.
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from boltgraph.models.node import ViewKind
from boltgraph.models.policy import ContentType

# Instruction prefixes steer general-purpose embedding models towards one view.
VIEW_INSTRUCTIONS: dict[ViewKind, str] = {
    ViewKind.SEMANTIC: "Represent the meaning of this passage: ",
    ViewKind.PRAGMATIC: "Represent the purpose, intent and audience of this passage: ",
}


class AnalysisResult(BaseModel):
    """Raw analyzer output for one view of one span."""

    vector: list[float] = Field(..., description="Unnormalized view vector")
    features: dict[str, Any] = Field(default_factory=dict)
    model: str = ""


class Analyzer(ABC):
    """
    Abstract base for analyzer capabilities.

    Responsibilities:
    - Produce a vector for the semantic or pragmatic view of a text span
    - Report failures as AnalysisUnavailableError

    Analyzers are side-effect free but not guaranteed deterministic; callers
    must tolerate small drift between calls.
    """

    name: str = "analyzer"

    @abstractmethod
    async def analyze(
        self,
        text: str,
        view: ViewKind,
        content_type_hint: ContentType | None = None,
    ) -> AnalysisResult:
        """
        Analyze text for one view.

        Args:
            text: Span text
            view: SEMANTIC or PRAGMATIC
            content_type_hint: Optional coarse content category

        Returns:
            Analysis result with an unnormalized vector

        Raises:
            EmptyContentError: If text is blank
            AnalysisUnavailableError: If the capability fails
        """
        pass

    @abstractmethod
    async def close(self):
        """
        Close any open connections.

        Optional to override if provider needs cleanup.
        """
        pass


def build_prompt(text: str, view: ViewKind, content_type_hint: ContentType | None) -> str:
    """
    Prefix text with the view instruction and content-type hint.

    Raises:
        ValueError: If the structural view is requested; it is computed locally
    """
    if view not in VIEW_INSTRUCTIONS:
        raise ValueError(f"View {view.value} is not served by analyzers")
    hint = f"[{content_type_hint.value}] " if content_type_hint else ""
    return f"{VIEW_INSTRUCTIONS[view]}{hint}{text}"
