from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from google.genai import errors as genai_errors

from feedback_search.embeddings import Embedding, EmbeddingProvider, preprocess_text
from feedback_search.errors import ProviderTransportError
from feedback_search.storage import DuckDBStorage

VOCABULARY = ("road", "repair", "water", "leak", "park", "noise", "light", "bus")


class KeywordEmbedder:
    """Deterministic embedder: one dimension per vocabulary word."""

    def __init__(self, *, fail_on: str | None = None, model: str = "keyword-test") -> None:
        self.fail_on = fail_on
        self.model = model
        self.calls: list[str] = []

    def embed(self, text: str) -> Embedding:
        self.calls.append(text)
        if self.fail_on is not None and self.fail_on in text:
            raise ProviderTransportError(f"refusing to embed {text!r}")
        words = preprocess_text(text).split()
        vector = [float(sum(1 for word in words if word.startswith(term))) for term in VOCABULARY]
        return Embedding.from_vector(vector, self.model)


class BrokenEmbedder:
    """Provider that is always down."""

    def __init__(self) -> None:
        self.calls = 0

    def embed(self, text: str) -> Embedding:
        self.calls += 1
        raise ProviderTransportError("provider unavailable")


class _UnparseableModels:
    """GenAI models stub whose responses never parse."""

    def __init__(self) -> None:
        self.calls = 0

    def embed_content(self, **kwargs):
        self.calls += 1
        raise genai_errors.UnknownApiResponseError("Failed to parse response as JSON")


class _UnparseableClient:
    def __init__(self) -> None:
        self.models = _UnparseableModels()


@pytest.fixture()
def storage(tmp_path: Path):
    store = DuckDBStorage(str(tmp_path / "feedback.duckdb"))
    yield store
    store.close()


@pytest.fixture()
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture()
def broken_embedder() -> BrokenEmbedder:
    return BrokenEmbedder()


@pytest.fixture()
def unparseable_provider() -> EmbeddingProvider:
    return EmbeddingProvider(client=_UnparseableClient(), dim=len(VOCABULARY))


@pytest.fixture()
def corpus(storage: DuckDBStorage):
    """Five items, one hour apart; the last added is the most recent."""
    base = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    texts = [
        ("The road needs repair urgently near the school.", "infrastructure", -0.6),
        ("Road conditions are terrible after the storm.", "infrastructure", -0.8),
        ("Water leak on Elm street flooding the sidewalk.", "infrastructure", -0.4),
        ("The new park is lovely, thanks to the council.", "other", 0.9),
        ("Too much noise from the bus depot at night.", "safety", -0.5),
    ]
    return [
        storage.add_feedback(
            text,
            category=category,
            sentiment=sentiment,
            timestamp=base + timedelta(hours=offset),
        )
        for offset, (text, category, sentiment) in enumerate(texts)
    ]


@pytest.fixture()
def embedder_factory():
    return KeywordEmbedder
