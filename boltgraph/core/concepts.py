"""
Concept extraction: salient terms shared by several spans.
"""

from collections import Counter

from pydantic import BaseModel, Field
from sklearn.feature_extraction.text import CountVectorizer

from boltgraph.utils.id_generator import generate_concept_id

TERM_PATTERN = r"(?u)\b[a-zA-Z][a-zA-Z-]+\b"


class ConceptCandidate(BaseModel):
    """A selected concept and the spans mentioning it."""

    concept_id: str
    term: str
    mentions: dict[str, float] = Field(
        default_factory=dict, description="Span ID -> salience in that span (0, 1]"
    )

    @property
    def total_salience(self) -> float:
        return sum(self.mentions.values())


class ConceptExtractor:
    """
    Selects concepts from span texts.

    Salience of a term in a span is its count divided by the count of the
    most frequent term in that span. A term becomes a concept when at least
    min_mentions spans mention it; the max_concepts terms with the highest
    total salience are kept (ties broken alphabetically).
    """

    def __init__(self, min_mentions: int = 2, max_concepts: int = 20, min_term_length: int = 3):
        self.min_mentions = min_mentions
        self.max_concepts = max_concepts
        self.min_term_length = min_term_length
        self._analyze = CountVectorizer(
            stop_words="english", token_pattern=TERM_PATTERN
        ).build_analyzer()

    def terms(self, text: str) -> dict[str, float]:
        """Term -> salience within one span."""
        counts = Counter(
            token for token in self._analyze(text) if len(token) >= self.min_term_length
        )
        if not counts:
            return {}
        top = max(counts.values())
        return {term: count / top for term, count in counts.items()}

    def select(self, document_id: str, spans: dict[str, str]) -> list[ConceptCandidate]:
        """
        Select concepts across spans.

        Args:
            document_id: Owning document, part of the concept ID
            spans: Span ID -> span text

        Returns:
            Concepts sorted by term
        """
        mentions: dict[str, dict[str, float]] = {}
        for span_id, text in spans.items():
            for term, salience in self.terms(text).items():
                mentions.setdefault(term, {})[span_id] = salience

        shared = {term: m for term, m in mentions.items() if len(m) >= self.min_mentions}
        ranked = sorted(shared, key=lambda t: (-sum(shared[t].values()), t))[: self.max_concepts]

        return [
            ConceptCandidate(
                concept_id=generate_concept_id(document_id, term),
                term=term,
                mentions=dict(sorted(shared[term].items())),
            )
            for term in sorted(ranked)
        ]
