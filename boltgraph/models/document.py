"""
Source document models.

Documents are owned by the external document source. The hierarchy only
keeps references (content_ref) into them.
"""

from typing import Any

from pydantic import BaseModel, Field


class Section(BaseModel):
    """A headed region of a document."""

    title: str = Field(default="", description="Heading text without markup")
    content: str = Field(..., description="Full section text including the heading line")
    start: int = Field(default=0, ge=0, description="Start offset in document content")
    end: int = Field(default=0, ge=0, description="End offset in document content")
    level: int = Field(default=1, ge=0, description="Heading level (0 for untitled preamble)")


class Document(BaseModel):
    """
    One revision of a source document.

    Sections may be supplied by the document source; when absent they are
    derived from markdown-style headings by the segmenter.
    """

    document_id: str = Field(..., description="Stable document ID")
    content: str = Field(..., description="Full document text")
    sections: list[Section] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    source_revision: str | None = Field(
        default=None, description="Revision label assigned by the document source"
    )

    def is_blank(self) -> bool:
        return not self.content or not self.content.strip()
