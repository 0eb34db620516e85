"""
Tests for cosine similarity, brute-force ranking and the numpy vector index.
"""

import math

import pytest

from lawimpact.errors import DimensionMismatchError
from lawimpact.matching.similarity import (
    Match,
    VectorIndex,
    cosine_similarity,
    find_top_matches,
)


@pytest.fixture
def corpus():
    return [
        ("a", [1.0, 0.0, 0.0]),
        ("b", [0.9, 0.1, 0.0]),
        ("c", [0.0, 1.0, 0.0]),
        ("d", [-1.0, 0.0, 0.0]),
    ]


class TestCosineSimilarity:
    """Cosine similarity bounds and edge cases."""

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_symmetric_and_bounded(self):
        a, b = [0.3, -1.2, 4.0], [2.5, 0.7, -0.1]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
        assert -1.0 <= cosine_similarity(a, b) <= 1.0

    def test_scale_invariant(self):
        assert cosine_similarity([1.0, 1.0], [3.0, 3.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [1.0, 1.0]) == pytest.approx(1 / math.sqrt(2))

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestFindTopMatches:
    """Threshold, ordering and k contract."""

    def test_sorted_descending(self, corpus):
        matches = find_top_matches([1.0, 0.0, 0.0], corpus, k=4, threshold=-1.0)

        assert [m.item for m in matches] == ["a", "b", "c", "d"]
        scores = [m.score for m in matches]
        assert scores == sorted(scores, reverse=True)

    def test_threshold_filters(self, corpus):
        matches = find_top_matches([1.0, 0.0, 0.0], corpus, k=10, threshold=0.5)
        assert [m.item for m in matches] == ["a", "b"]

    def test_threshold_is_inclusive(self):
        matches = find_top_matches([1.0, 0.0], [("x", [2.0, 0.0])], k=1, threshold=1.0)
        assert [m.item for m in matches] == ["x"]

    def test_at_most_k(self, corpus):
        assert len(find_top_matches([1.0, 0.0, 0.0], corpus, k=2, threshold=-1.0)) == 2

    def test_ties_keep_input_order(self):
        corpus = [("first", [1.0, 0.0]), ("second", [1.0, 0.0]), ("third", [0.0, 1.0])]
        matches = find_top_matches([1.0, 0.0], corpus, k=2, threshold=0.0)
        assert [m.item for m in matches] == ["first", "second"]

    def test_empty_corpus(self):
        assert find_top_matches([1.0, 0.0], [], k=5, threshold=0.0) == []

    def test_returns_match_objects(self, corpus):
        match = find_top_matches([1.0, 0.0, 0.0], corpus, k=1, threshold=0.0)[0]
        assert match == Match("a", pytest.approx(1.0))


class TestVectorIndex:
    """The matrix-backed index agrees with brute force."""

    def test_same_results_as_brute_force(self, corpus):
        index = VectorIndex(dimension=3)
        index.add_many(corpus)

        query = [0.7, 0.3, 0.1]
        expected = find_top_matches(query, corpus, k=3, threshold=0.0)
        actual = index.search(query, k=3, threshold=0.0)

        assert [m.item for m in actual] == [m.item for m in expected]
        for got, want in zip(actual, expected):
            assert got.score == pytest.approx(want.score)

    def test_where_filter(self, corpus):
        index = VectorIndex(dimension=3)
        index.add_many(corpus)

        matches = index.search([1.0, 0.0, 0.0], k=3, threshold=-1.0, where=lambda item: item != "a")

        assert "a" not in [m.item for m in matches]
        assert matches[0].item == "b"

    def test_remove(self, corpus):
        index = VectorIndex(dimension=3)
        index.add_many(corpus)

        assert index.remove(lambda item: item in ("a", "b")) == 2
        assert len(index) == 2
        assert index.search([1.0, 0.0, 0.0], k=1, threshold=-1.0)[0].item == "c"

    def test_zero_query_scores_zero(self, corpus):
        index = VectorIndex(dimension=3)
        index.add_many(corpus)

        matches = index.search([0.0, 0.0, 0.0], k=4, threshold=0.0)
        assert all(m.score == 0.0 for m in matches)

    def test_rejects_wrong_dimension(self):
        index = VectorIndex(dimension=3)
        with pytest.raises(DimensionMismatchError):
            index.add("x", [1.0, 0.0])
        with pytest.raises(DimensionMismatchError):
            index.search([1.0, 0.0], k=1, threshold=0.0)

    def test_empty_index(self):
        assert VectorIndex(dimension=2).search([1.0, 0.0], k=5, threshold=-1.0) == []
