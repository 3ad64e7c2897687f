"""Tests for the composite similarity."""
import numpy as np
import pytest

from conftest import rotated, unit
from facecluster.core.config import (
    COSINE_WEIGHT,
    EUCLIDEAN_WEIGHT,
    MANHATTAN_WEIGHT,
    SimilarityWeights,
)
from facecluster.services.clustering.similarity import (
    cosine_similarity,
    cross_similarities,
    pairwise_similarities,
    similarity,
)


class TestSimilarity:
    """Test suite for the similarity evaluator."""

    @pytest.mark.parametrize("embedding", [
        [1.0, 0.0, 0.0],
        [0.3, -1.2, 4.5, 0.01],
        np.linspace(-1.0, 1.0, 512),
    ])
    def test_self_similarity_is_one(self, embedding):
        """An embedding is fully similar to itself, with no rounding residue."""
        assert similarity(embedding, embedding) == 1.0
        assert similarity(list(embedding), np.array(embedding, copy=True)) == 1.0

    def test_symmetric(self):
        rng = np.random.default_rng(7)
        for _ in range(20):
            a, b = rng.normal(size=16), rng.normal(size=16)
            assert similarity(a, b) == pytest.approx(similarity(b, a), abs=1e-12)

    def test_rounded_to_twelve_decimals(self):
        value = similarity(unit(0), rotated(0, 1, 0.7))
        assert value == round(value, 12)

    def test_length_mismatch_is_zero(self):
        """Embeddings of different dimension are unrelated, not an error."""
        assert similarity([1.0, 2.0, 3.0], [1.0, 2.0]) == 0.0
        assert similarity([], []) == 0.0

    def test_weighted_components(self):
        """Orthogonal unit vectors only score through the distance terms."""
        a, b = unit(0), unit(1)
        expected = (
            COSINE_WEIGHT * 0.0
            + EUCLIDEAN_WEIGHT / (1.0 + np.sqrt(2.0))
            + MANHATTAN_WEIGHT / (1.0 + 2.0 / len(a))
        )
        assert similarity(a, b) == pytest.approx(expected)
        assert similarity(a, b) < 0.3

    def test_zero_vector_has_no_cosine(self):
        assert cosine_similarity(np.zeros(4), np.ones(4)) == 0.0

    def test_opposite_vectors_stay_in_range(self):
        a = np.ones(8)
        assert 0.0 <= similarity(a, -a) <= 1.0

    def test_close_embeddings_pass_high_confidence(self):
        assert similarity(unit(0), rotated(0, 1, 0.92)) >= 0.5

    def test_custom_weights(self):
        cosine_only = SimilarityWeights(cosine=1.0, euclidean=0.0, manhattan=0.0)
        assert similarity(unit(0), rotated(0, 1, 0.5), cosine_only) == pytest.approx(0.5)

    def test_pairwise_and_cross_counts(self):
        embeddings = [unit(0), unit(1), unit(2), unit(3)]
        assert len(pairwise_similarities(embeddings)) == 6
        assert len(cross_similarities(embeddings[:2], embeddings[2:])) == 4
        assert pairwise_similarities([unit(0)]) == []
