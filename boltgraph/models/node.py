"""
Hierarchy node models with per-view vectors and revision tracking.
"""

import hashlib
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Granularity(str, Enum):
    """Granularity levels of nodes in a hierarchy."""

    DOCUMENT = "document"
    SECTION = "section"
    PARAGRAPH = "paragraph"
    CONCEPT = "concept"
    RELATIONSHIP = "relationship"  # Reserved; never produced by the builder


class ViewKind(str, Enum):
    """Independent lenses on content."""

    STRUCTURAL = "structural"
    SEMANTIC = "semantic"
    PRAGMATIC = "pragmatic"


class ViewEmbedding(BaseModel):
    """Output of a single view generator for one content span."""

    view: ViewKind
    vector: list[float] = Field(..., description="Unit-length view vector")
    features: dict[str, Any] = Field(default_factory=dict, description="Feature metadata")
    content_hash: str = Field(..., description="Hash of the span the vector describes")

    @property
    def dimension(self) -> int:
        return len(self.vector)


class ViewVectors(BaseModel):
    """Per-view vectors kept on a node."""

    model_config = ConfigDict(frozen=True)

    structural: list[float]
    semantic: list[float]
    pragmatic: list[float]

    def get(self, view: ViewKind) -> list[float]:
        return getattr(self, view.value)


class Node(BaseModel):
    """
    One record of a hierarchy node.

    Records are immutable. Regenerating a node produces a new record whose
    previous_revision_id points at the revision holding the record it
    replaces; removing a node produces a tombstone record. A record carried
    into a new revision unchanged differs from its predecessor only in
    revision_id.

    content_ref is a non-owning reference into the document store
    ("<document_id>#<span sha256>") and content_hash is derived from it.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable node ID (sec_xxx, par_xxx, cpt_xxx, document ID)")
    granularity: Granularity
    content_ref: str = Field(..., description="Reference into the document store")
    combined_vector: list[float] = Field(default_factory=list)
    per_view_vectors: ViewVectors | None = None
    feature_metadata: dict[str, Any] = Field(default_factory=dict)
    content_hash: str = Field(..., description="Pure function of content_ref and granularity")
    revision_id: str
    created_at: datetime = Field(default_factory=datetime.now)
    previous_revision_id: str | None = Field(
        default=None, description="Revision of the record this one replaced"
    )
    tombstoned: bool = False

    @property
    def dimension(self) -> int:
        return len(self.combined_vector)

    @property
    def is_live(self) -> bool:
        return not self.tombstoned

    def with_revision(self, revision_id: str) -> "Node":
        """Carry this record into another revision unchanged."""
        return self.model_copy(update={"revision_id": revision_id})

    def tombstone(self, revision_id: str) -> "Node":
        """Create the tombstone record that marks this node removed."""
        return self.model_copy(
            update={
                "revision_id": revision_id,
                "previous_revision_id": self.revision_id,
                "tombstoned": True,
                "created_at": datetime.now(),
            }
        )

    def fingerprint(self) -> str:
        """Serialized record without revision_id, for preservation checks."""
        return self.model_dump_json(exclude={"revision_id"})


def hash_text(text: str) -> str:
    """
    Compute SHA256 hash of span text.

    Args:
        text: Span text

    Returns:
        Hex digest
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def make_content_ref(document_id: str, text: str) -> str:
    """
    Build a position-independent reference to a span of a document.

    Args:
        document_id: Owning document ID
        text: Span text

    Returns:
        Reference in format "<document_id>#<sha256>"
    """
    return f"{document_id}#{hash_text(text)}"


def compute_content_hash(content_ref: str, granularity: Granularity) -> str:
    """
    Compute the content hash of a node.

    Args:
        content_ref: Node content reference
        granularity: Node granularity

    Returns:
        Hash string in format "sha256:hexdigest"
    """
    payload = f"{granularity.value}|{content_ref}"
    return f"sha256:{hashlib.sha256(payload.encode('utf-8')).hexdigest()}"
