"""Combination policy models."""

from enum import Enum

from pydantic import BaseModel, Field


class CombinationStrategy(str, Enum):
    """How per-view vectors are bolted together."""

    WEIGHTED_AVERAGE = "weighted_average"
    CONCATENATION = "concatenation"
    ADAPTIVE = "adaptive"


class ContentType(str, Enum):
    """Coarse content category, inferred from structural features."""

    NARRATIVE = "narrative"
    TECHNICAL = "technical"
    REFERENCE = "reference"
    LIST = "list"
    CONVERSATIONAL = "conversational"


class ApplicationType(str, Enum):
    """What the combined vectors will be used for."""

    SEARCH = "search"
    SUMMARIZATION = "summarization"
    CLASSIFICATION = "classification"
    NAVIGATION = "navigation"


class ViewWeights(BaseModel):
    """Weights per view. Not validated here; the combiner checks the sum."""

    structural: float = 0.3
    semantic: float = 0.5
    pragmatic: float = 0.2

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.structural, self.semantic, self.pragmatic)

    def total(self) -> float:
        return self.structural + self.semantic + self.pragmatic


class CombinationPolicy(BaseModel):
    """Strategy plus its parameters."""

    strategy: CombinationStrategy = CombinationStrategy.WEIGHTED_AVERAGE
    weights: ViewWeights = Field(default_factory=ViewWeights)
    content_type: ContentType | None = None
    application_type: ApplicationType = ApplicationType.SEARCH

    def for_content(self, content_type: ContentType | None) -> "CombinationPolicy":
        """Same policy with a content-type hint, used by the adaptive strategy."""
        if content_type is None or content_type == self.content_type:
            return self
        return self.model_copy(update={"content_type": content_type})
