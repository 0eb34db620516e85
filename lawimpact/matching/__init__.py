"""Cosine similarity and exact nearest-neighbour search."""

from .similarity import Match, VectorIndex, cosine_similarity, find_top_matches

__all__ = ["Match", "VectorIndex", "cosine_similarity", "find_top_matches"]
