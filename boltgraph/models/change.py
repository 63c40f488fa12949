"""
Change tracking models: change sets, alignments and impact maps.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from boltgraph.models.node import Granularity


class TextImpact(str, Enum):
    """Text-level classification of a node between two revisions."""

    UNCHANGED = "unchanged"
    MODIFIED = "modified"
    ADDED = "added"
    REMOVED = "removed"


class ImpactLevel(str, Enum):
    """How strongly a change affects a node."""

    NONE = "none"
    LOCAL = "local"
    PROPAGATED = "propagated"
    CASCADING = "cascading"


class DiffOp(str, Enum):
    """Opcode of a text diff span."""

    EQUAL = "equal"
    INSERT = "insert"
    DELETE = "delete"
    REPLACE = "replace"


class TextDiffSpan(BaseModel):
    """One opcode of the text diff, in character offsets."""

    op: DiffOp
    old_start: int
    old_end: int
    new_start: int
    new_end: int


class SpanAlignment(BaseModel):
    """
    Where a node's span lives in the new revision.

    One entry exists for every previous node and for every added span.
    text is None for removed nodes; previous_text is None for added ones.
    Concepts carry their term as text.
    """

    node_id: str
    granularity: Granularity
    parent_id: str | None = None
    ordinal: int = 0
    text: str | None = None
    previous_text: str | None = None
    title: str = ""
    level: int = 0
    text_impact: TextImpact = TextImpact.UNCHANGED


class StructuralDelta(BaseModel):
    """Section, paragraph and concept level differences."""

    section_alignment: list[tuple[str | None, int | None]] = Field(
        default_factory=list,
        description="(previous section ID, new section ordinal); None marks a side missing",
    )
    sections_added: list[str] = Field(default_factory=list)
    sections_removed: list[str] = Field(default_factory=list)
    paragraphs_added: list[str] = Field(default_factory=list)
    paragraphs_removed: list[str] = Field(default_factory=list)
    concepts_added: list[str] = Field(default_factory=list)
    concepts_removed: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.sections_added
            or self.sections_removed
            or self.paragraphs_added
            or self.paragraphs_removed
            or self.concepts_added
            or self.concepts_removed
        )


class SemanticDelta(BaseModel):
    """Analyzer verdict on whether a modified span changed meaning."""

    node_id: str
    material: bool
    magnitude: float = Field(..., ge=0.0, le=2.0, description="Cosine distance old -> new")


class ChangeSet(BaseModel):
    """Structured difference between two document revisions."""

    document_id: str
    base_revision_id: str | None = None
    document_impact: TextImpact = TextImpact.UNCHANGED
    text_diff: list[TextDiffSpan] = Field(default_factory=list)
    structural_delta: StructuralDelta = Field(default_factory=StructuralDelta)
    semantic_delta: dict[str, SemanticDelta] = Field(default_factory=dict)
    text_impacts: dict[str, TextImpact] = Field(
        default_factory=dict, description="Label for every previous node and every added span"
    )
    alignments: dict[str, SpanAlignment] = Field(default_factory=dict)
    edit_magnitude: dict[str, float] = Field(
        default_factory=dict, description="Share of a previous span covered by diff spans"
    )
    per_node_impact: dict[str, ImpactLevel] = Field(default_factory=dict)
    detected_at: datetime = Field(default_factory=datetime.now)

    def changed_nodes(self) -> list[str]:
        return [
            node_id
            for node_id, impact in self.text_impacts.items()
            if impact != TextImpact.UNCHANGED
        ]

    def is_noop(self) -> bool:
        return self.document_impact == TextImpact.UNCHANGED and not self.changed_nodes()


class ImpactMap(BaseModel):
    """Result of impact propagation over a hierarchy."""

    levels: dict[str, ImpactLevel] = Field(default_factory=dict)
    estimated_shift: dict[str, float] = Field(default_factory=dict)
    hops: int = 0
    full_regeneration: bool = False

    def level(self, node_id: str) -> ImpactLevel:
        return self.levels.get(node_id, ImpactLevel.NONE)

    def affected(self) -> list[str]:
        return [node_id for node_id, lvl in self.levels.items() if lvl != ImpactLevel.NONE]

    def counts(self) -> dict[str, int]:
        counts = {lvl.value: 0 for lvl in ImpactLevel}
        for lvl in self.levels.values():
            counts[lvl.value] += 1
        return counts

    def apply_to(self, change_set: ChangeSet) -> ChangeSet:
        """Return a change set whose per-node impact reflects propagation."""
        return change_set.model_copy(update={"per_node_impact": dict(self.levels)})
