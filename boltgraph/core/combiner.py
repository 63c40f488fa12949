"""
Combiner: bolts structural, semantic and pragmatic view vectors together.

Pure numpy float64 arithmetic; identical inputs give identical outputs.
"""

from collections.abc import Sequence

import numpy as np

from boltgraph.config import CombinerConfig
from boltgraph.core.vectors import as_array, normalize, to_list, weighted_mean
from boltgraph.models.node import ViewEmbedding, ViewKind, ViewVectors
from boltgraph.models.policy import (
    ApplicationType,
    CombinationPolicy,
    CombinationStrategy,
    ContentType,
    ViewWeights,
)
from boltgraph.utils.exceptions import (
    ContentMismatchError,
    DimensionMismatchError,
    InvalidWeightsError,
    NegativeWeightError,
)
from boltgraph.utils.logger import get_logger

logger = get_logger(__name__)

WEIGHT_TOLERANCE = 1e-3

Deltas = dict[str, tuple[float, float, float]]


class Combiner:
    """
    Combines per-view vectors under a combination policy.

    Strategies:
    - weighted_average: sum of views times weights; weights must sum to 1
    - concatenation: views laid end to end (dimension 3D)
    - adaptive: base weights shifted by content-type and application-type
      deltas, clipped at zero and renormalised to sum 1

    The result is always re-normalised to unit length.
    """

    def __init__(
        self,
        content_type_deltas: Deltas | None = None,
        application_type_deltas: Deltas | None = None,
    ):
        defaults = CombinerConfig()
        self.content_type_deltas = (
            content_type_deltas if content_type_deltas is not None else defaults.content_type_deltas
        )
        self.application_type_deltas = (
            application_type_deltas
            if application_type_deltas is not None
            else defaults.application_type_deltas
        )

    @classmethod
    def from_config(cls, config: CombinerConfig) -> "Combiner":
        return cls(config.content_type_deltas, config.application_type_deltas)

    @staticmethod
    def policy_from_config(config: CombinerConfig) -> CombinationPolicy:
        return CombinationPolicy(
            strategy=CombinationStrategy(config.strategy),
            weights=ViewWeights(
                structural=config.structural_weight,
                semantic=config.semantic_weight,
                pragmatic=config.pragmatic_weight,
            ),
            application_type=ApplicationType(config.application_type),
        )

    # ═══════════════════════════════════════════════════════════
    # COMBINATION
    # ═══════════════════════════════════════════════════════════

    def combine(
        self,
        structural: ViewEmbedding,
        semantic: ViewEmbedding,
        pragmatic: ViewEmbedding,
        policy: CombinationPolicy,
    ) -> list[float]:
        """
        Combine three view embeddings of the same span.

        Args:
            structural: Structural view embedding
            semantic: Semantic view embedding
            pragmatic: Pragmatic view embedding
            policy: Combination policy

        Returns:
            Unit-length combined vector

        Raises:
            ContentMismatchError: If the embeddings describe different spans
            DimensionMismatchError: If the view dimensions differ
            InvalidWeightsError: If weighted-average weights are invalid
        """
        hashes = {structural.content_hash, semantic.content_hash, pragmatic.content_hash}
        if len(hashes) != 1:
            raise ContentMismatchError(
                "View embeddings describe different content",
                context={"content_hashes": sorted(hashes)},
            )
        return self.combine_vectors(
            [structural.vector, semantic.vector, pragmatic.vector], policy
        )

    def combine_vectors(
        self, vectors: Sequence[Sequence[float]], policy: CombinationPolicy
    ) -> list[float]:
        """Combine (structural, semantic, pragmatic) vectors; no content check."""
        return to_list(normalize(self.combine_raw(vectors, policy)))

    def combine_raw(
        self, vectors: Sequence[Sequence[float]], policy: CombinationPolicy
    ) -> np.ndarray:
        """
        Combine before the final renormalisation.

        Raises:
            DimensionMismatchError: If the view dimensions differ
            InvalidWeightsError: If weighted-average weights are invalid
        """
        arrays = [as_array(v) for v in vectors]
        dimensions = {a.shape[0] for a in arrays}
        if len(dimensions) != 1:
            raise DimensionMismatchError(
                "View vectors have different dimensions",
                context={"dimensions": [int(a.shape[0]) for a in arrays]},
            )

        if policy.strategy == CombinationStrategy.CONCATENATION:
            return np.concatenate(arrays)

        if policy.strategy == CombinationStrategy.ADAPTIVE:
            weights = self.adaptive_weights(policy)
        else:
            weights = self.validate_weights(policy.weights)

        return self.weighted_sum(arrays, weights)

    @staticmethod
    def weighted_sum(
        vectors: Sequence[Sequence[float]], weights: Sequence[float]
    ) -> np.ndarray:
        matrix = np.vstack([as_array(v) for v in vectors])
        return (matrix * as_array(weights)[:, None]).sum(axis=0)

    # ═══════════════════════════════════════════════════════════
    # WEIGHTS
    # ═══════════════════════════════════════════════════════════

    @staticmethod
    def validate_weights(weights: ViewWeights) -> tuple[float, float, float]:
        """
        Check weighted-average weights.

        Raises:
            NegativeWeightError: If any weight is below zero
            InvalidWeightsError: If the sum is not 1 within tolerance
        """
        values = weights.as_tuple()
        if any(w < 0 for w in values):
            raise NegativeWeightError(
                "Combination weights must be non-negative",
                context={"weights": list(values)},
            )
        if abs(sum(values) - 1.0) > WEIGHT_TOLERANCE:
            raise InvalidWeightsError(
                f"Combination weights sum to {sum(values):.4f}, expected 1.0",
                context={"weights": list(values), "tolerance": WEIGHT_TOLERANCE},
            )
        return values

    def adaptive_weights(self, policy: CombinationPolicy) -> tuple[float, float, float]:
        """
        Base weights shifted by the policy's content and application deltas.

        Raises:
            InvalidWeightsError: If every weight clips to zero
        """
        weights = np.array(policy.weights.as_tuple(), dtype=np.float64)
        if policy.content_type is not None:
            weights += self._delta(self.content_type_deltas, policy.content_type)
        weights += self._delta(self.application_type_deltas, policy.application_type)
        weights = np.clip(weights, 0.0, None)

        total = weights.sum()
        if total == 0.0:
            raise InvalidWeightsError(
                "Adaptive weights clipped to zero",
                context={
                    "content_type": policy.content_type.value if policy.content_type else None,
                    "application_type": policy.application_type.value,
                },
            )
        weights = weights / total
        return (float(weights[0]), float(weights[1]), float(weights[2]))

    @staticmethod
    def _delta(table: Deltas, key: ContentType | ApplicationType) -> np.ndarray:
        return np.array(table.get(key.value, (0.0, 0.0, 0.0)), dtype=np.float64)

    # ═══════════════════════════════════════════════════════════
    # AGGREGATION
    # ═══════════════════════════════════════════════════════════

    def aggregate(
        self,
        children: Sequence[ViewVectors],
        policy: CombinationPolicy,
        weights: Sequence[float] | None = None,
    ) -> tuple[ViewVectors, list[float]]:
        """
        Derive a parent's view vectors and combined vector from its children.

        Each view is the (weighted) mean of the children's view, normalised;
        the three views are then combined under policy.

        Args:
            children: Child view vectors
            policy: Combination policy
            weights: Optional per-child weights (e.g. salience)

        Returns:
            (view vectors, combined vector)

        Raises:
            ValueError: If no children are given
        """
        views = {}
        for view in ViewKind:
            views[view.value] = to_list(
                normalize(weighted_mean([child.get(view) for child in children], weights))
            )
        view_vectors = ViewVectors(**views)
        combined = self.combine_vectors(
            [view_vectors.structural, view_vectors.semantic, view_vectors.pragmatic], policy
        )
        return view_vectors, combined
