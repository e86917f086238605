"""
Embedding records and providers for vector-based semantic search.

Wraps the Google GenAI embedding API behind a small ``Embedder`` protocol,
classifies provider failures into retryable and non-retryable errors, and
provides a retry/timeout wrapper for callers.
"""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

import httpx
import pydantic
from google.genai import Client as GenAIClient
from google.genai import errors as genai_errors

from .errors import (
    DimensionMismatchError,
    ProviderError,
    ProviderFormatError,
    ProviderTransportError,
)

logger = logging.getLogger(__name__)

_DEFAULT_MODEL = "gemini-embedding-001"
_DEFAULT_DIM = 768
_DEFAULT_TASK_TYPE = "SEMANTIC_SIMILARITY"
MAX_EMBED_CHARS = 512

_RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}
_NON_WORD_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def preprocess_text(text: str, max_chars: int = MAX_EMBED_CHARS) -> str:
    """Normalize text before embedding or matching.

    Lowercases, replaces punctuation with spaces, collapses whitespace and
    truncates to *max_chars*. Applying it twice yields the same result.
    """
    cleaned = _NON_WORD_RE.sub(" ", text.strip().lower())
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    return cleaned[:max_chars].rstrip()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Embedding:
    """A vector together with the model that produced it."""

    vector: list[float]
    model: str
    dimensions: int
    generated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.dimensions != len(self.vector):
            raise DimensionMismatchError(self.dimensions, len(self.vector))

    @classmethod
    def from_vector(cls, vector: list[float], model: str) -> Embedding:
        return cls(vector=list(vector), model=model, dimensions=len(vector))

    def to_dict(self) -> dict[str, Any]:
        return {
            "vector": list(self.vector),
            "model": self.model,
            "dimensions": self.dimensions,
            "generated_at": self.generated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Embedding:
        raw_generated = data.get("generated_at")
        generated_at = (
            datetime.fromisoformat(raw_generated)
            if isinstance(raw_generated, str)
            else _utcnow()
        )
        vector = [float(value) for value in data["vector"]]
        return cls(
            vector=vector,
            model=str(data["model"]),
            dimensions=int(data.get("dimensions", len(vector))),
            generated_at=generated_at,
        )


class Embedder(Protocol):
    """Anything that turns text into an ``Embedding``."""

    def embed(self, text: str) -> Embedding:
        """Embed a single text. Raises ``ProviderError`` on failure."""


def _coerce_vector(values: Any) -> list[float]:
    """Accept a flat vector or a nested ``[[...]]`` form and return floats."""
    if isinstance(values, (list, tuple)) and values and isinstance(values[0], (list, tuple)):
        values = values[0]
    if not isinstance(values, (list, tuple)) or not values:
        raise ProviderFormatError("Unexpected response format from embedding model")
    vector: list[float] = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ProviderFormatError(
                f"Embedding vector contains a non-numeric value: {value!r}"
            )
        vector.append(float(value))
    return vector


class EmbeddingProvider:
    """Generate text embeddings via Google GenAI.

    Performs no retries of its own; wrap it in ``RetryingEmbedder``.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        dim: int | None = None,
        task_type: str = _DEFAULT_TASK_TYPE,
        max_chars: int = MAX_EMBED_CHARS,
        client: Any | None = None,
    ) -> None:
        self.model = model or os.getenv("FEEDBACK_SEARCH_EMBEDDING_MODEL", _DEFAULT_MODEL)
        self.dim = dim or int(os.getenv("FEEDBACK_SEARCH_EMBEDDING_DIM", str(_DEFAULT_DIM)))
        self.task_type = task_type
        self.max_chars = max_chars

        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv("GOOGLE_API_KEY")
            if resolved_key is None:
                raise ValueError(
                    "GOOGLE_API_KEY not found. "
                    "Provide api_key or set the environment variable."
                )
            self._client = GenAIClient(api_key=resolved_key)

    def embed(self, text: str) -> Embedding:
        """Embed one text after preprocessing it."""
        prepared = preprocess_text(text, self.max_chars)
        try:
            result = self._client.models.embed_content(
                model=self.model,
                contents=[prepared],
                config={
                    "task_type": self.task_type,
                    "output_dimensionality": self.dim,
                },
            )
        except genai_errors.APIError as exc:
            raise _classify_api_error(exc) from exc
        except (genai_errors.UnknownApiResponseError, pydantic.ValidationError) as exc:
            raise ProviderFormatError(
                f"Could not parse embedding response: {exc}"
            ) from exc
        except (httpx.TransportError, TimeoutError, ConnectionError) as exc:
            raise ProviderTransportError(f"Embedding request failed: {exc}") from exc

        embeddings = getattr(result, "embeddings", None)
        if not embeddings:
            raise ProviderFormatError("Embedding response contained no embeddings")
        vector = _coerce_vector(getattr(embeddings[0], "values", None))
        return Embedding.from_vector(vector, self.model)


def _classify_api_error(exc: genai_errors.APIError) -> ProviderError:
    code = getattr(exc, "code", None)
    if isinstance(exc, genai_errors.ServerError) or code in _RETRYABLE_STATUS:
        return ProviderTransportError(f"Embedding provider unavailable ({code}): {exc}")
    return ProviderFormatError(f"Embedding provider rejected the request ({code}): {exc}")


class RetryingEmbedder:
    """Bounded retry with exponential backoff and a caller-side timeout.

    Transport errors are retried up to *max_attempts* total attempts with a
    delay of ``base_delay * 2 ** (attempt - 1)``. Format errors fail fast.
    An attempt that exceeds *timeout* seconds is abandoned and counts as a
    transport error. Each attempt runs on its own daemon thread, so an
    abandoned call never holds up later ones.
    """

    def __init__(
        self,
        embedder: Embedder,
        *,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        timeout: float | None = 10.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.embedder = embedder
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.timeout = timeout
        self._sleep = sleep

    def embed(self, text: str) -> Embedding:
        attempt = 1
        while True:
            try:
                return self._attempt(text)
            except ProviderError as exc:
                if not exc.retryable or attempt >= self.max_attempts:
                    raise
                delay = self.base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "Embedding attempt %d/%d failed (%s), retrying in %.2fs",
                    attempt,
                    self.max_attempts,
                    type(exc).__name__,
                    delay,
                )
                self._sleep(delay)
                attempt += 1

    def _attempt(self, text: str) -> Embedding:
        if self.timeout is None:
            return self.embedder.embed(text)
        future: Future[Embedding] = Future()

        def run() -> None:
            future.set_running_or_notify_cancel()
            try:
                future.set_result(self.embedder.embed(text))
            except Exception as exc:
                future.set_exception(exc)

        threading.Thread(target=run, name="embed-attempt", daemon=True).start()
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as exc:
            raise ProviderTransportError(
                f"Embedding request timed out after {self.timeout}s"
            ) from exc
