"""
Local analyzer built on scikit-learn feature hashing.

Needs no model server. Deterministic for a given dimension, which makes it
the analyzer of choice for tests and offline deployments.
"""

import numpy as np
from sklearn.feature_extraction.text import HashingVectorizer

from boltgraph.core.analyzer.base import AnalysisResult, Analyzer
from boltgraph.core.analyzer.cues import cue_tokens, extract_pragmatic_cues
from boltgraph.models.node import ViewKind
from boltgraph.models.policy import ContentType
from boltgraph.utils.exceptions import AnalysisUnavailableError, EmptyContentError
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)


class HashingAnalyzer(Analyzer):
    """
    Feature-hashing analyzer.

    Semantic view: word unigrams/bigrams (stop words removed) blended with
    character n-grams, so that even stop-word-only text is never a zero
    vector. Pragmatic view: hashed sentence mood, modal verb, person and
    opener cues plus the content-type hint.
    """

    name = "hashing"

    def __init__(self, dimension: int = 384, char_weight: float = 0.5):
        """
        Initialize hashing analyzer.

        Args:
            dimension: Output vector dimension
            char_weight: Weight of character n-grams relative to words
        """
        self.dimension = dimension
        self.char_weight = char_weight

        self._words = HashingVectorizer(
            n_features=dimension,
            ngram_range=(1, 2),
            stop_words="english",
            alternate_sign=False,
            norm="l2",
        )
        self._chars = HashingVectorizer(
            n_features=dimension,
            analyzer="char_wb",
            ngram_range=(3, 5),
            alternate_sign=False,
            norm="l2",
        )
        self._cues = HashingVectorizer(
            n_features=dimension,
            analyzer=cue_tokens,
            alternate_sign=False,
            norm="l2",
        )

    async def analyze(
        self,
        text: str,
        view: ViewKind,
        content_type_hint: ContentType | None = None,
    ) -> AnalysisResult:
        """
        Hash text into a view vector.

        Raises:
            EmptyContentError: If text is blank
            AnalysisUnavailableError: If the view is not served or hashing fails
        """
        if not text or not text.strip():
            raise EmptyContentError("Text cannot be empty")

        try:
            if view == ViewKind.SEMANTIC:
                vector = self._hash(self._words, text) + self.char_weight * self._hash(
                    self._chars, text
                )
                features = {"provider": self.name, "view": view.value}
            elif view == ViewKind.PRAGMATIC:
                hinted = f"{text}\n{content_type_hint.value}" if content_type_hint else text
                vector = self._hash(self._cues, hinted)
                features = {
                    "provider": self.name,
                    "view": view.value,
                    "cues": extract_pragmatic_cues(text),
                }
            else:
                raise AnalysisUnavailableError(
                    f"View {view.value} is not served by the hashing analyzer"
                )
        except AnalysisUnavailableError:
            raise
        except ValueError as e:
            logger.error(
                "Hashing analysis failed",
                extra={"view": view.value, "dimension": self.dimension, "error": str(e)},
            )
            raise AnalysisUnavailableError(f"Hashing analysis error: {e}") from e

        return AnalysisResult(
            vector=[float(x) for x in vector], features=features, model="hashing"
        )

    def _hash(self, vectorizer: HashingVectorizer, text: str) -> np.ndarray:
        return vectorizer.transform([text]).toarray()[0].astype(np.float64)

    async def close(self):
        pass
