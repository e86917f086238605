"""
Error taxonomy for the search and embedding subsystem.
"""

from __future__ import annotations


class FeedbackSearchError(Exception):
    """Base class for all feedback search errors."""


class ProviderError(FeedbackSearchError):
    """Raised when the embedding provider cannot produce an embedding."""

    retryable: bool = False


class ProviderTransportError(ProviderError):
    """Timeouts, 5xx responses, throttling and network failures."""

    retryable = True


class ProviderFormatError(ProviderError):
    """The provider answered, but not with a usable vector."""

    retryable = False


class DimensionMismatchError(FeedbackSearchError, ValueError):
    """Two embeddings with different dimensionality were compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(
            f"Embedding dimensions do not match: {left} != {right}. "
            "Stored embeddings may come from a different model."
        )
        self.left = left
        self.right = right


class StorageError(FeedbackSearchError):
    """Raised when the feedback store fails to read or write."""


class FeedbackNotFoundError(FeedbackSearchError, LookupError):
    """Raised when a feedback item id does not exist."""

    def __init__(self, item_id: str) -> None:
        super().__init__(f"Feedback not found: {item_id}")
        self.item_id = item_id
