"""
Search orchestration: picks hybrid, vector-only or lexical-fallback mode.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from ..config import SearchSettings
from ..embeddings import Embedder, Embedding, preprocess_text
from ..errors import FeedbackNotFoundError, ProviderError
from ..storage import FeedbackItem, StorageBackend
from .lexical import LexicalSearch
from .ranker import fuse_results
from .vector import VectorSearch

logger = logging.getLogger(__name__)

SearchType = Literal["hybrid", "vector", "text"]

SIMILAR_THRESHOLD = 0.1


@dataclass(frozen=True)
class SearchResult:
    """A feedback snapshot taken at search time with its relevance."""

    item_id: str
    text: str
    category: str
    sentiment: float
    timestamp: datetime
    relevance_score: float

    @classmethod
    def from_item(cls, item: FeedbackItem, relevance_score: float) -> SearchResult:
        return cls(
            item_id=item.id,
            text=item.text,
            category=item.category,
            sentiment=item.sentiment,
            timestamp=item.timestamp,
            relevance_score=relevance_score,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemId": self.item_id,
            "text": self.text,
            "category": self.category,
            "sentiment": self.sentiment,
            "timestamp": self.timestamp.isoformat(),
            "relevanceScore": self.relevance_score,
        }


@dataclass(frozen=True)
class SearchResponse:
    results: list[SearchResult]
    query: str
    total_results: int
    processing_time_ms: float
    search_type: SearchType

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [result.to_dict() for result in self.results],
            "query": self.query,
            "totalResults": self.total_results,
            "processingTimeMs": self.processing_time_ms,
            "searchType": self.search_type,
        }


@dataclass(frozen=True)
class SearchAnalytics:
    items_with_embedding: int
    items_without_embedding: int
    embedding_coverage_percent: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemsWithEmbedding": self.items_with_embedding,
            "itemsWithoutEmbedding": self.items_without_embedding,
            "embeddingCoveragePercent": self.embedding_coverage_percent,
        }


class SearchOrchestrator:
    """Entry point for semantic search over stored feedback.

    Provider failures never reach the caller of ``search``: the request is
    answered from lexical matches instead and reported as ``"text"``.
    """

    def __init__(
        self,
        storage: StorageBackend,
        embedder: Embedder,
        settings: SearchSettings | None = None,
    ) -> None:
        self.storage = storage
        self.embedder = embedder
        self.settings = settings or SearchSettings()
        self.lexical = LexicalSearch(storage)
        self.vector = VectorSearch(storage, scan_limit=self.settings.scan_limit)

    def search(
        self,
        query: str,
        *,
        limit: int | None = None,
        threshold: float | None = None,
        use_hybrid: bool = True,
        text_weight: float | None = None,
        vector_weight: float | None = None,
    ) -> SearchResponse:
        started = time.perf_counter()
        limit = self.settings.limit if limit is None else limit
        threshold = self.settings.threshold if threshold is None else threshold
        text_weight = self.settings.text_weight if text_weight is None else text_weight
        vector_weight = (
            self.settings.vector_weight if vector_weight is None else vector_weight
        )
        search_type: SearchType = "hybrid" if use_hybrid else "vector"

        processed = preprocess_text(query, self.settings.max_query_chars)
        if not processed:
            return self._respond([], processed, started, search_type)

        try:
            query_embedding = self.embedder.embed(processed)
        except ProviderError as exc:
            logger.warning(
                "Embedding unavailable (%s: %s); falling back to text search",
                type(exc).__name__,
                exc,
            )
            raw_query = query.strip()
            results = [
                SearchResult.from_item(item, score)
                for item, score in self.lexical.match_with_scores(raw_query, limit)
            ]
            return self._respond(results, raw_query, started, "text")

        if use_hybrid:
            fused = fuse_results(
                self.lexical.match_with_scores(processed, limit),
                self.vector.score_all(query_embedding),
                text_weight=text_weight,
                vector_weight=vector_weight,
                limit=limit,
            )
            results = [SearchResult.from_item(hit.item, hit.score) for hit in fused]
        else:
            hits = self.vector.search(query_embedding, limit=limit, threshold=threshold)
            results = [SearchResult.from_item(item, score) for item, score in hits]

        return self._respond(results, processed, started, search_type)

    def find_similar(self, item_id: str, limit: int = 10) -> list[SearchResult]:
        """Items closest to *item_id*, embedding it on demand if needed."""
        source = self.storage.get_feedback(item_id)
        if source is None:
            raise FeedbackNotFoundError(item_id)

        embedding: Embedding
        if source.embedding is not None:
            embedding = source.embedding
        else:
            embedding = self.embedder.embed(source.text)
            self.storage.update_embedding(item_id, embedding)

        hits = self.vector.search(embedding, limit=limit + 1, threshold=SIMILAR_THRESHOLD)
        return [
            SearchResult.from_item(item, score)
            for item, score in hits
            if item.id != item_id
        ][:limit]

    def analytics(self) -> SearchAnalytics:
        with_embedding = self.storage.count_feedback(with_embedding=True)
        without_embedding = self.storage.count_feedback(with_embedding=False)
        total = with_embedding + without_embedding
        coverage = (with_embedding / total) * 100 if total > 0 else 0.0
        return SearchAnalytics(
            items_with_embedding=with_embedding,
            items_without_embedding=without_embedding,
            embedding_coverage_percent=round(coverage, 2),
        )

    @staticmethod
    def _respond(
        results: list[SearchResult],
        query: str,
        started: float,
        search_type: SearchType,
    ) -> SearchResponse:
        return SearchResponse(
            results=results,
            query=query,
            total_results=len(results),
            processing_time_ms=round((time.perf_counter() - started) * 1000, 3),
            search_type=search_type,
        )
