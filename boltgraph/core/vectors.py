"""
Vector utilities shared by view generators, the combiner and validators.

All arithmetic runs in numpy float64 so identical inputs give bit-identical
outputs.
"""

from collections.abc import Sequence

import numpy as np

from boltgraph.utils.exceptions import DimensionMismatchError


def as_array(vector: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(vector, dtype=np.float64)


def l2_norm(vector: Sequence[float] | np.ndarray) -> float:
    return float(np.linalg.norm(as_array(vector)))


def normalize(vector: Sequence[float] | np.ndarray) -> np.ndarray:
    """
    Scale a vector to unit L2 length.

    Zero vectors are returned unchanged; callers decide whether that is an error.
    """
    array = as_array(vector)
    norm = np.linalg.norm(array)
    if norm == 0.0:
        return array
    return array / norm


def is_unit(vector: Sequence[float] | np.ndarray, epsilon: float = 1e-6) -> bool:
    return abs(l2_norm(vector) - 1.0) <= epsilon


def pad_or_truncate(vector: Sequence[float] | np.ndarray, dimension: int) -> np.ndarray:
    """Resize a vector to dimension, zero padding or truncating the tail."""
    array = as_array(vector)
    if array.shape[0] == dimension:
        return array
    if array.shape[0] > dimension:
        return array[:dimension]
    return np.concatenate([array, np.zeros(dimension - array.shape[0], dtype=np.float64)])


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """
    Calculate cosine similarity between two vectors.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    va = as_array(a)
    vb = as_array(b)
    if va.shape != vb.shape:
        raise DimensionMismatchError(
            f"Cannot compare vectors of dimension {va.shape[0]} and {vb.shape[0]}",
            context={"left": int(va.shape[0]), "right": int(vb.shape[0])},
        )
    mag_a = np.linalg.norm(va)
    mag_b = np.linalg.norm(vb)
    if mag_a == 0.0 or mag_b == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (mag_a * mag_b))


def cosine_distance(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine distance (1 - similarity), clipped to [0, 2]."""
    return float(min(2.0, max(0.0, 1.0 - cosine_similarity(a, b))))


def weighted_mean(
    vectors: Sequence[Sequence[float] | np.ndarray], weights: Sequence[float] | None = None
) -> np.ndarray:
    """
    Weighted mean of equally sized vectors.

    Raises:
        ValueError: If no vectors are given
        DimensionMismatchError: If vectors differ in length
    """
    if not vectors:
        raise ValueError("weighted_mean needs at least one vector")
    matrix = np.vstack([as_array(v) for v in vectors]) if _same_length(vectors) else None
    if matrix is None:
        raise DimensionMismatchError(
            "Cannot average vectors of different dimensions",
            context={"dimensions": sorted({len(v) for v in vectors})},
        )
    if weights is None:
        return matrix.mean(axis=0)
    w = as_array(weights)
    total = w.sum()
    if total == 0.0:
        return matrix.mean(axis=0)
    return (matrix * w[:, None]).sum(axis=0) / total


def _same_length(vectors: Sequence[Sequence[float] | np.ndarray]) -> bool:
    return len({len(v) for v in vectors}) == 1


def to_list(vector: np.ndarray) -> list[float]:
    return [float(x) for x in vector]
