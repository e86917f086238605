"""Storage backends for feedback search."""

from .base import FeedbackItem, StorageBackend
from .duckdb import DuckDBStorage

__all__ = [
    "FeedbackItem",
    "StorageBackend",
    "DuckDBStorage",
]
