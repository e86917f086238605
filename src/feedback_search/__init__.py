"""
Feedback Search - hybrid lexical and semantic search over citizen feedback.

Keeps a per-item embedding in sync with a growing feedback corpus, fuses
substring matches with vector similarity into one ranking, falls back to
text search when the embedding provider is down, and backfills missing
embeddings in throttled batches.

Example usage:
    >>> from feedback_search import DuckDBStorage, EmbeddingProvider, SearchOrchestrator
    >>> storage = DuckDBStorage("feedback.duckdb")
    >>> orchestrator = SearchOrchestrator(storage, EmbeddingProvider())
    >>> orchestrator.search("pothole on main street").search_type
    'hybrid'
"""

from .backfill import BackfillOutcome, BackgroundBackfill, EmbeddingBackfillJob
from .config import SearchSettings, resolve_db_path
from .embeddings import (
    Embedder,
    Embedding,
    EmbeddingProvider,
    RetryingEmbedder,
    preprocess_text,
)
from .errors import (
    DimensionMismatchError,
    FeedbackNotFoundError,
    FeedbackSearchError,
    ProviderError,
    ProviderFormatError,
    ProviderTransportError,
    StorageError,
)
from .search import (
    SearchOrchestrator,
    SearchResponse,
    SearchResult,
    SuggestionGenerator,
    cosine_similarity,
    fuse_results,
    relevance_score,
)
from .storage import DuckDBStorage, FeedbackItem, StorageBackend

__all__ = [
    # Backfill
    "BackfillOutcome",
    "BackgroundBackfill",
    "EmbeddingBackfillJob",
    # Config
    "SearchSettings",
    "resolve_db_path",
    # Embeddings
    "Embedder",
    "Embedding",
    "EmbeddingProvider",
    "RetryingEmbedder",
    "preprocess_text",
    # Errors
    "DimensionMismatchError",
    "FeedbackNotFoundError",
    "FeedbackSearchError",
    "ProviderError",
    "ProviderFormatError",
    "ProviderTransportError",
    "StorageError",
    # Search
    "SearchOrchestrator",
    "SearchResponse",
    "SearchResult",
    "SuggestionGenerator",
    "cosine_similarity",
    "fuse_results",
    "relevance_score",
    # Storage
    "DuckDBStorage",
    "FeedbackItem",
    "StorageBackend",
]
