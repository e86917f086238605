"""
Substring retrieval over feedback text.
"""

from __future__ import annotations

from ..storage import FeedbackItem, StorageBackend


def rank_pseudo_scores(count: int) -> list[float]:
    """Linear rank decay: the first of *count* results scores 1, later ones less."""
    if count <= 0:
        return []
    return [max(0.0, 1.0 - index / count) for index in range(count)]


class LexicalSearch:
    """Keyword matching with most-recent-first ordering."""

    def __init__(self, storage: StorageBackend) -> None:
        self.storage = storage

    def match_by_text(self, query: str, limit: int) -> list[FeedbackItem]:
        term = query.strip()
        if not term or limit < 1:
            return []
        return self.storage.find_by_text_substring(term, limit)

    def match_with_scores(
        self, query: str, limit: int
    ) -> list[tuple[FeedbackItem, float]]:
        items = self.match_by_text(query, limit)
        return list(zip(items, rank_pseudo_scores(len(items))))
