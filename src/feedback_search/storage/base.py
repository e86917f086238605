"""
Storage interfaces and data models for feedback persistence.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from ..embeddings import Embedding


@dataclass(frozen=True)
class FeedbackItem:
    """A stored piece of citizen feedback."""

    id: str
    text: str
    category: str
    sentiment: float
    timestamp: datetime
    embedding: Embedding | None = None

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None


class StorageBackend(Protocol):
    """Protocol for the persistence operations used by search and backfill."""

    def initialize(self) -> None:
        """Initialize required tables/indexes."""

    def add_feedback(
        self,
        text: str,
        *,
        category: str = "other",
        sentiment: float = 0.0,
        timestamp: datetime | None = None,
        item_id: str | None = None,
    ) -> FeedbackItem:
        """Insert a feedback item without an embedding."""

    def get_feedback(self, item_id: str) -> FeedbackItem | None:
        """Get a feedback item by id."""

    def delete_feedback(self, item_id: str) -> bool:
        """Delete a feedback item together with its embedding."""

    def get_items_missing_embedding(self, limit: int) -> list[FeedbackItem]:
        """Return up to *limit* items lacking an embedding, oldest first."""

    def update_embedding(self, item_id: str, embedding: Embedding) -> bool:
        """Attach an embedding to an item. Return False if the item is gone."""

    def find_by_text_substring(self, term: str, limit: int) -> list[FeedbackItem]:
        """Case-insensitive substring match over text, most recent first."""

    def scan_items_with_embedding(self, limit: int) -> list[FeedbackItem]:
        """Return up to *limit* of the most recent items that have an embedding."""

    def count_feedback(self, *, with_embedding: bool | None = None) -> int:
        """Count items, optionally restricted by embedding presence."""
