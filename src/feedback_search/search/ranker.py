"""
Rank fusion for merging lexical and vector result sets.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..storage import FeedbackItem


@dataclass(frozen=True)
class ScoredItem:
    """A feedback item with its fused relevance score."""

    item: FeedbackItem
    score: float
    text_score: float = 0.0
    vector_score: float = 0.0

    @property
    def matched_by(self) -> str:
        if self.text_score > 0 and self.vector_score > 0:
            return "text+vector"
        if self.vector_score > 0:
            return "vector"
        return "text"


def fuse_results(
    lexical: list[tuple[FeedbackItem, float]],
    vector: list[tuple[FeedbackItem, float]],
    *,
    text_weight: float,
    vector_weight: float,
    limit: int,
) -> list[ScoredItem]:
    """Additively fuse weighted lexical and vector scores.

    Weights are applied as given; they are not required to sum to 1, so
    fused scores may exceed 1. Ties keep first-seen order.
    """
    items: dict[str, FeedbackItem] = {}
    text_scores: dict[str, float] = {}
    vector_scores: dict[str, float] = {}

    for item, pseudo_score in lexical:
        items.setdefault(item.id, item)
        text_scores[item.id] = pseudo_score

    for item, relevance in vector:
        items.setdefault(item.id, item)
        vector_scores[item.id] = relevance

    scored = [
        ScoredItem(
            item=item,
            score=text_scores.get(item_id, 0.0) * text_weight
            + vector_scores.get(item_id, 0.0) * vector_weight,
            text_score=text_scores.get(item_id, 0.0),
            vector_score=vector_scores.get(item_id, 0.0),
        )
        for item_id, item in items.items()
    ]
    # sorted() is stable, so equal scores keep insertion order.
    ordered = sorted(scored, key=lambda hit: -hit.score)
    return ordered[: max(limit, 0)]
