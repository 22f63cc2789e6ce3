"""Cosine-similarity ranking over embedding vectors."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

import numpy as np

T = TypeVar("T")

Vector = Sequence[float]


class DimensionMismatchError(ValueError):
    """Raised when two vectors being compared differ in length."""


@dataclass(frozen=True)
class RetrievalResult(Generic[T]):
    """A ranked item and its cosine score."""

    item: T
    score: float


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine similarity in [-1, 1]. Zero-norm vectors score 0.0."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(f"Vector dimensions differ: {va.shape[0]} vs {vb.shape[0]}")

    denominator = np.linalg.norm(va) * np.linalg.norm(vb)
    if denominator == 0:
        return 0.0
    score = float(np.dot(va, vb) / denominator)
    # Clamp float drift so identical vectors never exceed 1.0
    return max(-1.0, min(1.0, score))


def rank(
    query: Vector,
    candidates: Sequence[tuple[T, Vector]],
    top_k: int,
) -> list[RetrievalResult[T]]:
    """Rank *candidates* by cosine similarity to *query*.

    Args:
        query: The query embedding.
        candidates: ``(id, vector)`` pairs. Any hashable or plain value works
            as the id.
        top_k: Maximum number of results.

    Returns:
        At most ``top_k`` results, highest score first. Equal scores keep
        their input order.
    """
    if top_k <= 0 or not candidates:
        return []

    scored = [
        RetrievalResult(item=item, score=cosine_similarity(query, vector))
        for item, vector in candidates
    ]
    # sorted() is stable, so ties stay in input order
    scored = sorted(scored, key=lambda r: r.score, reverse=True)
    return scored[:top_k]
