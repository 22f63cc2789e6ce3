"""Tests for cosine similarity and ranking."""

import pytest

from companion.retrieval.similarity import DimensionMismatchError, cosine_similarity, rank


def test_identical_vectors_score_one() -> None:
    assert cosine_similarity([0.3, 0.4, 0.5], [0.3, 0.4, 0.5]) == pytest.approx(1.0)


def test_orthogonal_vectors_score_zero() -> None:
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_opposite_vectors_score_minus_one() -> None:
    assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)


def test_zero_vector_scores_zero() -> None:
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_dimension_mismatch_raises() -> None:
    with pytest.raises(DimensionMismatchError):
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


def test_score_never_exceeds_one() -> None:
    v = [0.1] * 1536
    assert cosine_similarity(v, v) <= 1.0


# -- rank ----------------------------------------------------------------------


def test_rank_orders_by_score() -> None:
    candidates = [
        ("far", [0.0, 1.0]),
        ("near", [1.0, 0.1]),
        ("middle", [1.0, 1.0]),
    ]
    results = rank([1.0, 0.0], candidates, top_k=3)
    assert [r.item for r in results] == ["near", "middle", "far"]
    assert results[0].score > results[1].score > results[2].score


def test_rank_limits_to_top_k() -> None:
    candidates = [(i, [1.0, float(i)]) for i in range(10)]
    assert len(rank([1.0, 0.0], candidates, top_k=3)) == 3


def test_rank_ties_keep_input_order() -> None:
    candidates = [("a", [1.0, 0.0]), ("b", [2.0, 0.0]), ("c", [3.0, 0.0])]
    results = rank([1.0, 0.0], candidates, top_k=3)
    assert [r.item for r in results] == ["a", "b", "c"]


def test_rank_empty_candidates() -> None:
    assert rank([1.0, 0.0], [], top_k=5) == []


def test_rank_non_positive_top_k() -> None:
    assert rank([1.0, 0.0], [("a", [1.0, 0.0])], top_k=0) == []


def test_rank_propagates_dimension_mismatch() -> None:
    with pytest.raises(DimensionMismatchError):
        rank([1.0, 0.0], [("a", [1.0, 0.0, 0.0])], top_k=1)
