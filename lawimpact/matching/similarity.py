"""
Cosine similarity ranking over embedded entities.

``find_top_matches`` is the reference brute-force ranking; ``VectorIndex``
keeps a pre-normalised numpy matrix so a query is one matrix-vector product.
Both honour the same contract:

- only items with ``score >= threshold`` are returned
- results are sorted by score, descending
- ties keep input order (first seen wins)
- at most ``k`` results
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Sequence, TypeVar

import numpy as np

from ..errors import DimensionMismatchError

T = TypeVar("T")


@dataclass(frozen=True)
class Match(Generic[T]):
    """A corpus item and its similarity to the query."""

    item: T
    score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero magnitude. Raises
    DimensionMismatchError when the lengths differ.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))


def _rank(scores: np.ndarray, k: int, threshold: float) -> list[int]:
    """Indices passing the threshold, best first, stable on ties."""
    if k <= 0 or scores.size == 0:
        return []
    order = np.argsort(-scores, kind="stable")
    ranked = [int(i) for i in order if scores[i] >= threshold]
    return ranked[:k]


def find_top_matches(
    query: Sequence[float],
    corpus: Iterable[tuple[T, Sequence[float]]],
    k: int,
    threshold: float,
) -> list[Match[T]]:
    """
    Rank ``(item, vector)`` pairs by cosine similarity to ``query``.

    Args:
        query: Query vector
        corpus: Candidate items with their embeddings
        k: Maximum number of matches
        threshold: Minimum similarity (inclusive)

    Returns:
        Up to k matches, highest score first
    """
    items: list[T] = []
    scores: list[float] = []
    for item, vector in corpus:
        items.append(item)
        scores.append(cosine_similarity(query, vector))

    ranked = _rank(np.asarray(scores, dtype=np.float64), k, threshold)
    return [Match(items[i], scores[i]) for i in ranked]


class VectorIndex(Generic[T]):
    """
    Exact in-memory cosine index.

    Rows are L2-normalised on insert so the similarity of a query against the
    whole corpus is a single dot product. Zero vectors score 0.0.

    Usage:
        index = VectorIndex(dimension=1536)
        index.add_many((article, article.embedding) for article in articles)
        matches = index.search(query_vector, k=5, threshold=0.65)
    """

    def __init__(self, dimension: int):
        self.dimension = dimension
        self._items: list[T] = []
        self._rows: list[np.ndarray] = []
        self._matrix: np.ndarray | None = None

    def __len__(self) -> int:
        return len(self._items)

    def add(self, item: T, vector: Sequence[float]) -> None:
        if len(vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(vector))
        row = np.asarray(vector, dtype=np.float64)
        norm = np.linalg.norm(row)
        self._rows.append(row / norm if norm else row)
        self._items.append(item)
        self._matrix = None

    def add_many(self, pairs: Iterable[tuple[T, Sequence[float]]]) -> None:
        for item, vector in pairs:
            self.add(item, vector)

    def remove(self, predicate: Callable[[T], bool]) -> int:
        """Drop every item matching predicate. Returns the number removed."""
        keep = [i for i, item in enumerate(self._items) if not predicate(item)]
        removed = len(self._items) - len(keep)
        if removed:
            self._items = [self._items[i] for i in keep]
            self._rows = [self._rows[i] for i in keep]
            self._matrix = None
        return removed

    def _ensure_matrix(self) -> np.ndarray:
        if self._matrix is None:
            if self._rows:
                self._matrix = np.vstack(self._rows)
            else:
                self._matrix = np.zeros((0, self.dimension))
        return self._matrix

    def search(
        self,
        query: Sequence[float],
        k: int,
        threshold: float,
        where: Callable[[T], bool] | None = None,
    ) -> list[Match[T]]:
        """Top-k items with similarity >= threshold, optionally filtered."""
        if len(query) != self.dimension:
            raise DimensionMismatchError(len(query), self.dimension)

        matrix = self._ensure_matrix()
        q = np.asarray(query, dtype=np.float64)
        norm = np.linalg.norm(q)
        if norm == 0 or matrix.shape[0] == 0:
            scores = np.zeros(matrix.shape[0])
        else:
            scores = np.clip(matrix @ (q / norm), -1.0, 1.0)

        if where is not None:
            mask = np.array([where(item) for item in self._items], dtype=bool)
            scores = np.where(mask, scores, -np.inf)

        return [Match(self._items[i], float(scores[i])) for i in _rank(scores, k, threshold)]
