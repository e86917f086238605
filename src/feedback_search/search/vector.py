"""
Vector similarity scan over stored feedback embeddings.

Embeddings are compared in memory against a bounded window of the most
recent embedded items rather than through an ANN index.
"""

from __future__ import annotations

from ..embeddings import Embedding
from ..errors import DimensionMismatchError
from ..storage import FeedbackItem, StorageBackend
from .similarity import cosine_similarity, relevance_score

DEFAULT_SCAN_LIMIT = 1000


class VectorSearch:
    """Score embedded items against a query embedding."""

    def __init__(
        self,
        storage: StorageBackend,
        *,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
    ) -> None:
        self.storage = storage
        self.scan_limit = scan_limit

    def score_all(self, query: Embedding) -> list[tuple[FeedbackItem, float]]:
        """Relevance for every scanned item, in scan order (most recent first)."""
        scored: list[tuple[FeedbackItem, float]] = []
        for item in self.storage.scan_items_with_embedding(self.scan_limit):
            stored = item.embedding
            if stored is None:
                continue
            if stored.dimensions != query.dimensions:
                raise DimensionMismatchError(stored.dimensions, query.dimensions)
            similarity = cosine_similarity(query.vector, stored.vector)
            scored.append((item, relevance_score(similarity)))
        return scored

    def search(
        self,
        query: Embedding,
        *,
        limit: int,
        threshold: float = 0.0,
    ) -> list[tuple[FeedbackItem, float]]:
        """Items scoring at least *threshold*, best first, truncated to *limit*."""
        hits = [(item, score) for item, score in self.score_all(query) if score >= threshold]
        hits.sort(key=lambda hit: hit[1], reverse=True)
        return hits[: max(limit, 0)]
