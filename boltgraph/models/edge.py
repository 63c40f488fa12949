"""Hierarchy edge models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EdgeType(str, Enum):
    """Types of edges between hierarchy nodes."""

    # Parent -> child (Document -> Section -> Paragraph)
    CONTAINS = "contains"

    # Adjacent sections with similar vectors
    SIBLING = "sibling"

    # Mentioning span -> Concept
    APPEARS = "appears"


class Edge(BaseModel):
    """Graph edge representation."""

    model_config = ConfigDict(frozen=True)

    from_id: str
    to_id: str
    type: EdgeType
    strength: float = Field(default=1.0, ge=0.0, le=1.0)
    ordinal: int = Field(default=0, description="Child position for Contains edges")

    @property
    def key(self) -> tuple[str, str, EdgeType]:
        return (self.from_id, self.to_id, self.type)

    def touches(self, node_id: str) -> bool:
        return self.from_id == node_id or self.to_id == node_id
