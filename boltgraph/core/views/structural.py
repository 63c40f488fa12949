"""
Structural view: layout and shape of a span, computed locally.
"""

import re

import numpy as np
from sklearn.feature_extraction.text import HashingVectorizer

from boltgraph.core.analyzer.base import Analyzer
from boltgraph.core.analyzer.cues import split_sentences
from boltgraph.core.views.base import GranularityContext, ViewGenerator
from boltgraph.models.node import Granularity, ViewEmbedding, ViewKind
from boltgraph.models.policy import ContentType

LIST_ITEM = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+")
CITATION = re.compile(r"\[\d+\]|\([A-Z][A-Za-z]+(?: et al\.)?,? \d{4}\)")
URL = re.compile(r"https?://\S+")
INLINE_CODE = re.compile(r"`[^`\n]+`")
NUMERAL = re.compile(r"\b\d+(?:[.,]\d+)?\b")
WORD = re.compile(r"\w+")

GRANULARITY_ORDER = list(Granularity)


def line_shape(line: str) -> str:
    stripped = line.strip()
    if not stripped:
        return "blank"
    if stripped.startswith("#"):
        return "heading"
    if stripped.startswith("```"):
        return "fence"
    if stripped.startswith(">"):
        return "quote"
    if LIST_ITEM.match(line):
        return "list"
    if line.startswith(("    ", "\t")):
        return "indented"
    return "short" if len(stripped) < 60 else "long"


def shape_tokens(text: str) -> list[str]:
    shapes = [line_shape(line) for line in text.splitlines()] or ["blank"]
    tokens = [f"shape:{s}" for s in shapes]
    tokens.extend(f"pair:{a}>{b}" for a, b in zip(shapes, shapes[1:], strict=False))
    return tokens


def extract_structural_features(text: str, context: GranularityContext) -> dict[str, float]:
    """
    Compute bounded structural features of a span.

    Counts are scaled into [0, 1] by a cap per feature.

    Returns:
        Feature name -> value in [0, 1]
    """
    lines = [line for line in text.splitlines() if line.strip()]
    line_count = max(len(lines), 1)
    sentences = split_sentences(text)
    words = WORD.findall(text)
    word_count = max(len(words), 1)
    paragraphs = [p for p in re.split(r"\n\s*\n", text) if p.strip()]
    avg_sentence_words = len(words) / max(len(sentences), 1)
    avg_word_length = sum(len(w) for w in words) / word_count

    return {
        "paragraphs": min(len(paragraphs) / 10.0, 1.0),
        "sentences": min(len(sentences) / 50.0, 1.0),
        "avg_sentence_length": min(avg_sentence_words / 40.0, 1.0),
        "avg_word_length": min(avg_word_length / 10.0, 1.0),
        "heading_level": min(context.heading_level / 6.0, 1.0),
        "list_items": sum(1 for line in lines if LIST_ITEM.match(line)) / line_count,
        "quotes": sum(1 for line in lines if line.lstrip().startswith(">")) / line_count,
        "code_fences": min(text.count("```") / 4.0, 1.0),
        "inline_code": min(len(INLINE_CODE.findall(text)) / 10.0, 1.0),
        "citations": min(len(CITATION.findall(text)) / 10.0, 1.0),
        "urls": min(len(URL.findall(text)) / 5.0, 1.0),
        "numerals": min(len(NUMERAL.findall(text)) / word_count * 5.0, 1.0),
        "questions": sum(1 for s in sentences if s.endswith("?")) / max(len(sentences), 1),
        "length": min(len(text) / 5000.0, 1.0),
    }


def infer_content_type(features: dict[str, float]) -> ContentType:
    """Coarse content type from structural features."""
    if features["list_items"] >= 0.5:
        return ContentType.LIST
    if features["code_fences"] > 0 or features["inline_code"] >= 0.2:
        return ContentType.TECHNICAL
    if features["citations"] > 0 or features["urls"] > 0:
        return ContentType.REFERENCE
    if features["questions"] >= 0.3:
        return ContentType.CONVERSATIONAL
    if features["numerals"] >= 0.5:
        return ContentType.TECHNICAL
    return ContentType.NARRATIVE


class StructuralViewGenerator(ViewGenerator):
    """
    Structural view generator.

    Vector layout: bounded features, a granularity one-hot (so the vector
    is never zero), then a hashed line-shape signature filling the rest of
    the dimension.
    """

    view = ViewKind.STRUCTURAL

    def __init__(self, dimension: int = 384, timeout: float = 30.0, shape_weight: float = 0.5):
        super().__init__(dimension, timeout)
        self.shape_weight = shape_weight
        fixed = 14 + len(GRANULARITY_ORDER)
        self._shapes = HashingVectorizer(
            n_features=max(dimension - fixed, 16),
            analyzer=shape_tokens,
            alternate_sign=False,
            norm="l2",
        )

    async def generate(
        self, text: str, context: GranularityContext, analyzer: Analyzer
    ) -> ViewEmbedding:
        self._require_text(text, context)

        features = extract_structural_features(text, context)
        one_hot = [1.0 if context.granularity == g else 0.0 for g in GRANULARITY_ORDER]
        shape = self._shapes.transform([text]).toarray()[0] * self.shape_weight
        raw = np.concatenate([np.array(list(features.values())), np.array(one_hot), shape])

        content_type = context.content_type or infer_content_type(features)
        metadata = {**features, "content_type": content_type.value}
        return self._finalize(raw, text, metadata)
