"""Search helpers for the feedback corpus."""

from .lexical import LexicalSearch, rank_pseudo_scores
from .query import SearchAnalytics, SearchOrchestrator, SearchResponse, SearchResult
from .ranker import ScoredItem, fuse_results
from .similarity import cosine_similarity, relevance_score
from .suggestions import SuggestionGenerator
from .vector import VectorSearch

__all__ = [
    "LexicalSearch",
    "rank_pseudo_scores",
    "SearchAnalytics",
    "SearchOrchestrator",
    "SearchResponse",
    "SearchResult",
    "ScoredItem",
    "fuse_results",
    "cosine_similarity",
    "relevance_score",
    "SuggestionGenerator",
    "VectorSearch",
]
