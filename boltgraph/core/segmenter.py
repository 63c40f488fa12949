"""
Document segmentation into section and paragraph spans.

Full document parsing belongs to the document source; this module only
splits already-extracted text on markdown headings and blank lines so the
builder and the change detector see the same spans.
"""

import re

from pydantic import BaseModel, Field

from boltgraph.models.document import Document
from boltgraph.models.node import Granularity, hash_text
from boltgraph.utils.exceptions import EmptyContentError
from boltgraph.utils.id_generator import generate_paragraph_id, generate_section_id

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")


class ParagraphSpan(BaseModel):
    """Blank-line separated block inside a section body."""

    text: str
    start: int
    end: int


class SectionSpan(BaseModel):
    """A section with its paragraphs, in document offsets."""

    title: str = ""
    level: int = 0
    text: str
    start: int
    end: int
    paragraphs: list[ParagraphSpan] = Field(default_factory=list)

    def key(self) -> str:
        """Alignment key: the normalized title, or the content hash when untitled."""
        if self.title:
            return "title:" + " ".join(self.title.lower().split())
        return "hash:" + hash_text(self.text)


class SpanPlan(BaseModel):
    """A node-to-be: ID, place in the Contains tree and its text."""

    node_id: str
    granularity: Granularity
    parent_id: str | None = None
    ordinal: int = 0
    text: str
    title: str = ""
    level: int = 0
    start: int = 0
    end: int = 0


class DocumentLayout(BaseModel):
    """All spans of one document revision keyed by node ID."""

    document_id: str
    spans: dict[str, SpanPlan] = Field(default_factory=dict)

    def add(self, span: SpanPlan) -> None:
        self.spans[span.node_id] = span

    def get(self, node_id: str) -> SpanPlan | None:
        return self.spans.get(node_id)

    def document(self) -> SpanPlan:
        for span in self.spans.values():
            if span.granularity == Granularity.DOCUMENT:
                return span
        raise EmptyContentError(f"Layout for {self.document_id} has no document span")

    def children(self, node_id: str) -> list[SpanPlan]:
        children = [s for s in self.spans.values() if s.parent_id == node_id]
        return sorted(children, key=lambda s: s.ordinal)

    def sections(self) -> list[SpanPlan]:
        return self.children(self.document().node_id)

    def paragraphs(self) -> list[SpanPlan]:
        result = []
        for section in self.sections():
            result.extend(self.children(section.node_id))
        return result

    def leaves(self) -> list[SpanPlan]:
        """Spans whose vectors come from view generation rather than aggregation."""
        result = []
        for section in self.sections():
            children = self.children(section.node_id)
            if children:
                result.extend(children)
            else:
                result.append(section)
        return result


class Segmenter:
    """Splits documents into sections and paragraphs."""

    def split(self, document: Document) -> list[SectionSpan]:
        """
        Split a document into sections with paragraphs.

        Uses the sections supplied by the document source when present,
        otherwise splits on markdown headings. Text before the first heading
        becomes an untitled section.

        Args:
            document: Source document

        Returns:
            Sections in document order

        Raises:
            EmptyContentError: If the document has no non-whitespace content
        """
        if document.is_blank():
            raise EmptyContentError(
                f"Document {document.document_id} is empty",
                context={"document_id": document.document_id},
            )

        if document.sections:
            sections = [
                self._build_section(sec.start, sec.end, sec.title, sec.level, sec.content)
                for sec in document.sections
            ]
        else:
            sections = self._split_headings(document.content)

        return [section for section in sections if section.text]

    def layout(self, document: Document) -> DocumentLayout:
        """
        Build a layout with freshly generated node IDs.

        The Document node takes the document ID as its node ID.
        """
        layout = DocumentLayout(document_id=document.document_id)
        layout.add(
            SpanPlan(
                node_id=document.document_id,
                granularity=Granularity.DOCUMENT,
                text=document.content.strip(),
                title=document.metadata.get("title", ""),
                start=0,
                end=len(document.content),
            )
        )
        for s_ordinal, section in enumerate(self.split(document)):
            section_id = generate_section_id()
            layout.add(
                SpanPlan(
                    node_id=section_id,
                    granularity=Granularity.SECTION,
                    parent_id=document.document_id,
                    ordinal=s_ordinal,
                    text=section.text,
                    title=section.title,
                    level=section.level,
                    start=section.start,
                    end=section.end,
                )
            )
            for p_ordinal, paragraph in enumerate(section.paragraphs):
                layout.add(
                    SpanPlan(
                        node_id=generate_paragraph_id(),
                        granularity=Granularity.PARAGRAPH,
                        parent_id=section_id,
                        ordinal=p_ordinal,
                        text=paragraph.text,
                        start=paragraph.start,
                        end=paragraph.end,
                    )
                )
        return layout

    def _split_headings(self, content: str) -> list[SectionSpan]:
        bounds: list[tuple[int, str, int]] = []  # (start, title, level)
        offset = 0
        seen_text = False
        for line in content.splitlines(keepends=True):
            match = HEADING_PATTERN.match(line.strip())
            if match:
                bounds.append((offset, match.group(2).strip(), len(match.group(1))))
                seen_text = True
            elif line.strip() and not seen_text:
                bounds.append((offset, "", 0))
                seen_text = True
            offset += len(line)

        sections = []
        for i, (start, title, level) in enumerate(bounds):
            end = bounds[i + 1][0] if i + 1 < len(bounds) else len(content)
            sections.append(
                self._build_section(start, end, title, level, content[start:end])
            )
        return sections

    def _build_section(
        self, start: int, end: int, title: str, level: int, text: str
    ) -> SectionSpan:
        body_offset = 0
        lines = text.splitlines(keepends=True)
        if lines and HEADING_PATTERN.match(lines[0].strip()):
            match = HEADING_PATTERN.match(lines[0].strip())
            title = title or match.group(2).strip()
            level = level or len(match.group(1))
            body_offset = len(lines[0])

        paragraphs = self._split_paragraphs(text[body_offset:], start + body_offset)
        return SectionSpan(
            title=title,
            level=level,
            text=text.strip(),
            start=start,
            end=end,
            paragraphs=paragraphs,
        )

    def _split_paragraphs(self, body: str, base: int) -> list[ParagraphSpan]:
        paragraphs = []
        block_start: int | None = None
        block_end = 0
        offset = 0
        for line in body.splitlines(keepends=True):
            if line.strip():
                if block_start is None:
                    block_start = offset
                block_end = offset + len(line.rstrip("\r\n"))
            elif block_start is not None:
                paragraphs.append(self._paragraph(body, base, block_start, block_end))
                block_start = None
            offset += len(line)
        if block_start is not None:
            paragraphs.append(self._paragraph(body, base, block_start, block_end))
        return paragraphs

    def _paragraph(self, body: str, base: int, start: int, end: int) -> ParagraphSpan:
        return ParagraphSpan(text=body[start:end].strip(), start=base + start, end=base + end)
