"""
Change Detector - structured difference between two document revisions.

Detection runs in three passes:
1. Word-level text diff mapped onto previous span ranges (edit magnitude)
2. Structural alignment of sections, paragraphs and concepts
3. Semantic check of modified leaf spans through the analyzer
"""

import re
from difflib import SequenceMatcher

from boltgraph.core.analyzer.base import Analyzer
from boltgraph.core.concepts import ConceptExtractor
from boltgraph.core.scheduler import TaskScheduler
from boltgraph.core.segmenter import SectionSpan, Segmenter
from boltgraph.core.vectors import cosine_distance
from boltgraph.core.views.base import GranularityContext
from boltgraph.core.views.semantic import SemanticViewGenerator
from boltgraph.models.change import (
    ChangeSet,
    DiffOp,
    ImpactLevel,
    SemanticDelta,
    SpanAlignment,
    StructuralDelta,
    TextDiffSpan,
    TextImpact,
)
from boltgraph.models.document import Document
from boltgraph.models.hierarchy import Hierarchy
from boltgraph.models.node import Granularity, hash_text
from boltgraph.models.policy import ContentType
from boltgraph.utils.exceptions import ContentMismatchError
from boltgraph.utils.id_generator import generate_paragraph_id, generate_section_id
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)

TOKEN_PATTERN = re.compile(r"\S+")


def text_diff(old: str, new: str) -> list[TextDiffSpan]:
    """
    Word-level diff of two texts in character offsets.

    Returns:
        Non-equal opcodes only
    """
    old_tokens = list(TOKEN_PATTERN.finditer(old))
    new_tokens = list(TOKEN_PATTERN.finditer(new))
    matcher = SequenceMatcher(
        None, [t.group() for t in old_tokens], [t.group() for t in new_tokens], autojunk=False
    )

    def bounds(tokens, lo, hi, length):
        if lo < hi:
            return tokens[lo].start(), tokens[hi - 1].end()
        position = tokens[lo].start() if lo < len(tokens) else length
        return position, position

    spans = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        old_start, old_end = bounds(old_tokens, i1, i2, len(old))
        new_start, new_end = bounds(new_tokens, j1, j2, len(new))
        spans.append(
            TextDiffSpan(
                op=DiffOp(tag),
                old_start=old_start,
                old_end=old_end,
                new_start=new_start,
                new_end=new_end,
            )
        )
    return spans


def edit_ratio(diff: list[TextDiffSpan], start: int, end: int) -> float:
    """
    Share of the previous range [start, end) touched by diff spans.

    Deletions and replacements count their overlap; insertions inside the
    range count their inserted length.
    """
    length = max(end - start, 1)
    touched = 0
    for span in diff:
        if span.old_start == span.old_end:
            if start <= span.old_start <= end:
                touched += span.new_end - span.new_start
            continue
        touched += max(0, min(end, span.old_end) - max(start, span.old_start))
    return min(1.0, touched / length)


class ChangeDetector:
    """
    Compares a previous and a new document revision against the previous
    hierarchy.

    Node IDs survive alignment: matched spans keep their ID, added spans get
    fresh IDs, removed spans are labelled for tombstoning.
    """

    def __init__(
        self,
        segmenter: Segmenter,
        extractor: ConceptExtractor,
        semantic_view: SemanticViewGenerator,
        analyzer: Analyzer,
        scheduler: TaskScheduler,
        semantic_check: bool = True,
        material_threshold: float = 0.1,
        match_ratio: float = 0.5,
    ):
        self.segmenter = segmenter
        self.extractor = extractor
        self.semantic_view = semantic_view
        self.analyzer = analyzer
        self.scheduler = scheduler
        self.semantic_check = semantic_check
        self.material_threshold = material_threshold
        self.match_ratio = match_ratio

    async def detect(
        self, previous_document: Document, new_document: Document, hierarchy: Hierarchy
    ) -> ChangeSet:
        """
        Detect changes between two revisions of a document.

        Args:
            previous_document: Revision the hierarchy was built from
            new_document: Incoming revision
            hierarchy: Committed hierarchy of the previous revision

        Returns:
            Change set with a label for every previous node and added span

        Raises:
            EmptyContentError: If the new document is blank
            ContentMismatchError: If the documents or hierarchy disagree on
                identity or structure
            AnalysisUnavailableError: If the semantic check exhausts retries
        """
        document_id = hierarchy.document_id
        if previous_document.document_id != document_id or new_document.document_id != document_id:
            raise ContentMismatchError(
                "Documents do not belong to the hierarchy",
                context={
                    "hierarchy": document_id,
                    "previous": previous_document.document_id,
                    "new": new_document.document_id,
                },
            )

        old_sections = self.segmenter.split(previous_document)
        new_sections = self.segmenter.split(new_document)
        old_section_ids = hierarchy.children_of(document_id)
        if len(old_section_ids) != len(old_sections):
            raise ContentMismatchError(
                "Previous document does not match its hierarchy",
                context={
                    "document_id": document_id,
                    "sections": len(old_sections),
                    "section_nodes": len(old_section_ids),
                },
            )

        change_set = ChangeSet(document_id=document_id, base_revision_id=hierarchy.revision_id)
        change_set.text_diff = text_diff(previous_document.content, new_document.content)

        self._align_sections(
            change_set, hierarchy, old_sections, old_section_ids, new_sections, document_id
        )
        self._label_document(change_set, previous_document, new_document)
        self._align_concepts(change_set, hierarchy)

        if self.semantic_check:
            await self._check_semantics(change_set, hierarchy)

        change_set.per_node_impact = {
            node_id: ImpactLevel.NONE if impact == TextImpact.UNCHANGED else ImpactLevel.LOCAL
            for node_id, impact in change_set.text_impacts.items()
        }

        logger.info(
            f"Detected {len(change_set.changed_nodes())} changed nodes in {document_id}",
            extra={
                "document_id": document_id,
                "base_revision_id": hierarchy.revision_id,
                "diff_spans": len(change_set.text_diff),
                "sections_added": len(change_set.structural_delta.sections_added),
                "sections_removed": len(change_set.structural_delta.sections_removed),
                "semantic_checks": len(change_set.semantic_delta),
            },
        )
        return change_set

    # ═══════════════════════════════════════════════════════════
    # ALIGNMENT
    # ═══════════════════════════════════════════════════════════

    def align(
        self, old_keys: list[str], new_keys: list[str], old_texts: list[str], new_texts: list[str]
    ) -> list[tuple[int | None, int | None]]:
        """
        Align two sequences by longest common subsequence over keys.

        Unmatched runs are paired in order when their texts are similar
        enough; the rest become removals and additions.

        Returns:
            (old index, new index) pairs in new-document order
        """
        pairs: list[tuple[int | None, int | None]] = []
        matcher = SequenceMatcher(None, old_keys, new_keys, autojunk=False)
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == "equal":
                pairs.extend(zip(range(i1, i2), range(j1, j2), strict=True))
            else:
                pairs.extend(
                    self._match_gap(list(range(i1, i2)), list(range(j1, j2)), old_texts, new_texts)
                )
        return pairs

    def _match_gap(
        self, olds: list[int], news: list[int], old_texts: list[str], new_texts: list[str]
    ) -> list[tuple[int | None, int | None]]:
        pairs: list[tuple[int | None, int | None]] = []
        cursor = 0
        for old_index in olds:
            best = None
            best_ratio = self.match_ratio
            for position in range(cursor, len(news)):
                matcher = SequenceMatcher(
                    None, old_texts[old_index], new_texts[news[position]], autojunk=False
                )
                if matcher.quick_ratio() < best_ratio:
                    continue
                ratio = matcher.ratio()
                if ratio >= best_ratio and (best is None or ratio > best_ratio):
                    best, best_ratio = position, ratio
            if best is None:
                pairs.append((old_index, None))
                continue
            pairs.extend((None, news[p]) for p in range(cursor, best))
            pairs.append((old_index, news[best]))
            cursor = best + 1
        pairs.extend((None, news[p]) for p in range(cursor, len(news)))
        return pairs

    def _align_sections(
        self,
        change_set: ChangeSet,
        hierarchy: Hierarchy,
        old_sections: list[SectionSpan],
        old_section_ids: list[str],
        new_sections: list[SectionSpan],
        document_id: str,
    ) -> None:
        delta = change_set.structural_delta
        pairs = self.align(
            [s.key() for s in old_sections],
            [s.key() for s in new_sections],
            [s.text for s in old_sections],
            [s.text for s in new_sections],
        )

        for old_index, new_index in pairs:
            old = old_sections[old_index] if old_index is not None else None
            new = new_sections[new_index] if new_index is not None else None
            section_id = old_section_ids[old_index] if old_index is not None else None
            delta.section_alignment.append((section_id, new_index))

            if old is None:
                section_id = generate_section_id()
                delta.sections_added.append(section_id)
                self._record(
                    change_set,
                    SpanAlignment(
                        node_id=section_id,
                        granularity=Granularity.SECTION,
                        parent_id=document_id,
                        ordinal=new_index,
                        text=new.text,
                        title=new.title,
                        level=new.level,
                        text_impact=TextImpact.ADDED,
                    ),
                )
                self._align_paragraphs(change_set, hierarchy, section_id, None, new)
                continue

            if new is None:
                delta.sections_removed.append(section_id)
                self._record(
                    change_set,
                    SpanAlignment(
                        node_id=section_id,
                        granularity=Granularity.SECTION,
                        parent_id=document_id,
                        ordinal=old_index,
                        previous_text=old.text,
                        title=old.title,
                        level=old.level,
                        text_impact=TextImpact.REMOVED,
                    ),
                )
                change_set.edit_magnitude[section_id] = 1.0
                self._align_paragraphs(change_set, hierarchy, section_id, old, None)
                continue

            was_leaf = not old.paragraphs
            is_leaf = not new.paragraphs
            if was_leaf and is_leaf:
                changed = old.text != new.text
                magnitude = edit_ratio(change_set.text_diff, old.start, old.end)
            elif was_leaf != is_leaf:
                changed = True
                magnitude = 1.0
            else:
                changed = old.title != new.title or old.level != new.level
                magnitude = 1.0 - SequenceMatcher(None, old.title, new.title).ratio()

            self._record(
                change_set,
                SpanAlignment(
                    node_id=section_id,
                    granularity=Granularity.SECTION,
                    parent_id=document_id,
                    ordinal=new_index,
                    text=new.text,
                    previous_text=old.text,
                    title=new.title,
                    level=new.level,
                    text_impact=TextImpact.MODIFIED if changed else TextImpact.UNCHANGED,
                ),
            )
            change_set.edit_magnitude[section_id] = magnitude if changed else 0.0
            self._align_paragraphs(change_set, hierarchy, section_id, old, new)

    def _align_paragraphs(
        self,
        change_set: ChangeSet,
        hierarchy: Hierarchy,
        section_id: str,
        old: SectionSpan | None,
        new: SectionSpan | None,
    ) -> None:
        delta = change_set.structural_delta
        old_paragraphs = old.paragraphs if old is not None else []
        new_paragraphs = new.paragraphs if new is not None else []
        old_ids = hierarchy.children_of(section_id) if old is not None else []
        if len(old_ids) != len(old_paragraphs):
            raise ContentMismatchError(
                f"Section {section_id} does not match its hierarchy",
                context={"paragraphs": len(old_paragraphs), "paragraph_nodes": len(old_ids)},
            )

        pairs = self.align(
            [hash_text(p.text) for p in old_paragraphs],
            [hash_text(p.text) for p in new_paragraphs],
            [p.text for p in old_paragraphs],
            [p.text for p in new_paragraphs],
        )
        for old_index, new_index in pairs:
            if old_index is None:
                paragraph = new_paragraphs[new_index]
                node_id = generate_paragraph_id()
                delta.paragraphs_added.append(node_id)
                self._record(
                    change_set,
                    SpanAlignment(
                        node_id=node_id,
                        granularity=Granularity.PARAGRAPH,
                        parent_id=section_id,
                        ordinal=new_index,
                        text=paragraph.text,
                        text_impact=TextImpact.ADDED,
                    ),
                )
                continue

            node_id = old_ids[old_index]
            previous = old_paragraphs[old_index]
            if new_index is None:
                delta.paragraphs_removed.append(node_id)
                self._record(
                    change_set,
                    SpanAlignment(
                        node_id=node_id,
                        granularity=Granularity.PARAGRAPH,
                        parent_id=section_id,
                        ordinal=old_index,
                        previous_text=previous.text,
                        text_impact=TextImpact.REMOVED,
                    ),
                )
                change_set.edit_magnitude[node_id] = 1.0
                continue

            paragraph = new_paragraphs[new_index]
            changed = paragraph.text != previous.text
            self._record(
                change_set,
                SpanAlignment(
                    node_id=node_id,
                    granularity=Granularity.PARAGRAPH,
                    parent_id=section_id,
                    ordinal=new_index,
                    text=paragraph.text,
                    previous_text=previous.text,
                    text_impact=TextImpact.MODIFIED if changed else TextImpact.UNCHANGED,
                ),
            )
            change_set.edit_magnitude[node_id] = (
                edit_ratio(change_set.text_diff, previous.start, previous.end) if changed else 0.0
            )

    def _label_document(
        self, change_set: ChangeSet, previous_document: Document, new_document: Document
    ) -> None:
        content_changed = previous_document.content != new_document.content
        change_set.document_impact = (
            TextImpact.MODIFIED if content_changed else TextImpact.UNCHANGED
        )

        title = new_document.metadata.get("title", "")
        title_changed = title != previous_document.metadata.get("title", "")
        # A change that touches no span (whitespace, blank lines) still moves the document ref
        own_change = title_changed or (content_changed and not change_set.changed_nodes())

        self._record(
            change_set,
            SpanAlignment(
                node_id=change_set.document_id,
                granularity=Granularity.DOCUMENT,
                text=new_document.content.strip(),
                previous_text=previous_document.content.strip(),
                title=title,
                text_impact=TextImpact.MODIFIED if own_change else TextImpact.UNCHANGED,
            ),
        )
        change_set.edit_magnitude[change_set.document_id] = edit_ratio(
            change_set.text_diff, 0, len(previous_document.content)
        )

    def _align_concepts(self, change_set: ChangeSet, hierarchy: Hierarchy) -> None:
        delta = change_set.structural_delta
        candidates = {
            c.concept_id: c
            for c in self.extractor.select(change_set.document_id, self.new_leaf_texts(change_set))
        }
        previous = {node.id: node for node in hierarchy.nodes_of_granularity(Granularity.CONCEPT)}

        for concept_id, node in sorted(previous.items()):
            term = node.feature_metadata.get("term", "")
            candidate = candidates.get(concept_id)
            if candidate is None:
                delta.concepts_removed.append(concept_id)
                impact = TextImpact.REMOVED
                magnitude = 1.0
            else:
                old_mentions = {e.from_id for e in hierarchy.mentions_of(concept_id)}
                new_mentions = set(candidate.mentions)
                changed = old_mentions != new_mentions
                impact = TextImpact.MODIFIED if changed else TextImpact.UNCHANGED
                union = old_mentions | new_mentions
                magnitude = len(old_mentions ^ new_mentions) / len(union) if changed else 0.0
            self._record(
                change_set,
                SpanAlignment(
                    node_id=concept_id,
                    granularity=Granularity.CONCEPT,
                    text=term if impact != TextImpact.REMOVED else None,
                    previous_text=term,
                    title=term,
                    text_impact=impact,
                ),
            )
            change_set.edit_magnitude[concept_id] = magnitude

        for concept_id, candidate in candidates.items():
            if concept_id in previous:
                continue
            delta.concepts_added.append(concept_id)
            self._record(
                change_set,
                SpanAlignment(
                    node_id=concept_id,
                    granularity=Granularity.CONCEPT,
                    text=candidate.term,
                    title=candidate.term,
                    text_impact=TextImpact.ADDED,
                ),
            )

    def new_leaf_texts(self, change_set: ChangeSet) -> dict[str, str]:
        """Leaf span ID -> text in the new revision."""
        live = [
            a
            for a in change_set.alignments.values()
            if a.text_impact != TextImpact.REMOVED
            and a.granularity in (Granularity.SECTION, Granularity.PARAGRAPH)
        ]
        parents = {a.parent_id for a in live if a.granularity == Granularity.PARAGRAPH}
        sections = sorted(
            (a for a in live if a.granularity == Granularity.SECTION), key=lambda a: a.ordinal
        )
        texts: dict[str, str] = {}
        for section in sections:
            if section.node_id not in parents:
                texts[section.node_id] = section.text
                continue
            paragraphs = sorted(
                (a for a in live if a.parent_id == section.node_id), key=lambda a: a.ordinal
            )
            for paragraph in paragraphs:
                texts[paragraph.node_id] = paragraph.text
        return texts

    def _record(self, change_set: ChangeSet, alignment: SpanAlignment) -> None:
        change_set.alignments[alignment.node_id] = alignment
        change_set.text_impacts[alignment.node_id] = alignment.text_impact

    # ═══════════════════════════════════════════════════════════
    # SEMANTIC CHECK
    # ═══════════════════════════════════════════════════════════

    async def _check_semantics(self, change_set: ChangeSet, hierarchy: Hierarchy) -> None:
        leaves = self.new_leaf_texts(change_set)
        operations = {}
        for node_id, text in leaves.items():
            if change_set.text_impacts.get(node_id) != TextImpact.MODIFIED:
                continue
            node = hierarchy.get_node(node_id)
            if node is None or node.per_view_vectors is None:
                continue
            alignment = change_set.alignments[node_id]
            hint = node.feature_metadata.get("content_type")
            context = GranularityContext(
                document_id=change_set.document_id,
                granularity=alignment.granularity,
                section_title=alignment.title,
                heading_level=alignment.level,
                content_type=ContentType(hint) if hint else None,
            )

            async def _embed(text=text, context=context):
                return await self.semantic_view.generate(text, context, self.analyzer)

            operations[node_id] = _embed

        embeddings = await self.scheduler.run_level(operations)
        for node_id, embedding in embeddings.items():
            previous = hierarchy.nodes[node_id].per_view_vectors.semantic
            magnitude = cosine_distance(previous, embedding.vector)
            change_set.semantic_delta[node_id] = SemanticDelta(
                node_id=node_id,
                material=magnitude > self.material_threshold,
                magnitude=magnitude,
            )
