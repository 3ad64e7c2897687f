"""Composite similarity between face embeddings.

The composite blends three views of the distance between two vectors:

- cosine similarity of the directions,
- ``1 / (1 + d)`` of the euclidean distance ``d``,
- ``1 / (1 + m)`` of the mean absolute (manhattan per dimension) difference ``m``.

Embeddings of different length are unrelated rather than an error, so a
stale embedding never aborts a batch.
"""
import math
from typing import List, Optional, Sequence, Union

import numpy as np

from facecluster.core.config import SimilarityWeights

DEFAULT_WEIGHTS = SimilarityWeights()
SIMILARITY_DECIMALS = 12

EmbeddingLike = Union[np.ndarray, Sequence[float]]


def _as_vector(embedding: EmbeddingLike) -> np.ndarray:
    return np.asarray(embedding, dtype=np.float64).ravel()


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine of the angle between two vectors, 0 when either has zero norm."""
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def euclidean_similarity(a: np.ndarray, b: np.ndarray) -> float:
    return 1.0 / (1.0 + float(np.linalg.norm(a - b)))


def manhattan_similarity(a: np.ndarray, b: np.ndarray) -> float:
    return 1.0 / (1.0 + float(np.mean(np.abs(a - b))))


def similarity(
    a: EmbeddingLike,
    b: EmbeddingLike,
    weights: Optional[SimilarityWeights] = None,
) -> float:
    """Composite similarity of two embeddings.

    Args:
        a: First embedding
        b: Second embedding
        weights: Metric weights, defaults to 0.6 cosine / 0.3 euclidean / 0.1 manhattan

    Returns:
        Similarity in [0, 1] rounded to 12 decimals; exactly 1.0 for identical non-zero
        embeddings and exactly 0.0 for embeddings of differing or zero length
    """
    weights = weights or DEFAULT_WEIGHTS
    va = _as_vector(a)
    vb = _as_vector(b)
    if va.size != vb.size or va.size == 0:
        return 0.0

    composite = math.fsum((
        weights.cosine * cosine_similarity(va, vb),
        weights.euclidean * euclidean_similarity(va, vb),
        weights.manhattan * manhattan_similarity(va, vb),
    ))
    # Rounded so identical embeddings score exactly 1.0; strongly opposed
    # vectors have negative cosine
    return min(1.0, max(0.0, round(composite, SIMILARITY_DECIMALS)))


def pairwise_similarities(
    embeddings: Sequence[EmbeddingLike],
    weights: Optional[SimilarityWeights] = None,
) -> List[float]:
    """Similarities of every unordered pair, in (i, j>i) order."""
    values: List[float] = []
    for i in range(len(embeddings)):
        for j in range(i + 1, len(embeddings)):
            values.append(similarity(embeddings[i], embeddings[j], weights))
    return values


def cross_similarities(
    left: Sequence[EmbeddingLike],
    right: Sequence[EmbeddingLike],
    weights: Optional[SimilarityWeights] = None,
) -> List[float]:
    """Similarities of every (left, right) combination."""
    return [similarity(a, b, weights) for a in left for b in right]
