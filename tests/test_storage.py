"""Tests for the DuckDB feedback store."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from feedback_search.embeddings import Embedding
from feedback_search.errors import StorageError
from feedback_search.storage import DuckDBStorage


def test_add_and_get_feedback(storage: DuckDBStorage) -> None:
    ts = datetime(2024, 2, 1, 8, 15, tzinfo=timezone.utc)
    item = storage.add_feedback(
        "Streetlights are out on Oak avenue.",
        category="safety",
        sentiment=-0.3,
        timestamp=ts,
    )

    loaded = storage.get_feedback(item.id)

    assert loaded is not None
    assert loaded.text == "Streetlights are out on Oak avenue."
    assert loaded.category == "safety"
    assert loaded.sentiment == pytest.approx(-0.3)
    assert loaded.timestamp == ts
    assert loaded.embedding is None
    assert storage.get_feedback("missing") is None


def test_update_embedding_persists_typed_record(storage: DuckDBStorage) -> None:
    item = storage.add_feedback("Bus stop shelter is broken.")
    generated = datetime(2024, 2, 2, tzinfo=timezone.utc)
    embedding = Embedding(vector=[0.25, -0.5, 1.0], model="m-1", dimensions=3, generated_at=generated)

    assert storage.update_embedding(item.id, embedding) is True

    loaded = storage.get_feedback(item.id)
    assert loaded is not None
    assert loaded.embedding == embedding


def test_update_embedding_for_missing_item_returns_false(storage: DuckDBStorage) -> None:
    embedding = Embedding.from_vector([1.0], "m")
    assert storage.update_embedding("does-not-exist", embedding) is False


def test_missing_embedding_listing_is_oldest_first(storage: DuckDBStorage, corpus) -> None:
    storage.update_embedding(corpus[0].id, Embedding.from_vector([1.0], "m"))

    missing = storage.get_items_missing_embedding(limit=2)

    assert [item.id for item in missing] == [corpus[1].id, corpus[2].id]


def test_substring_search_is_case_insensitive_and_recent_first(
    storage: DuckDBStorage, corpus
) -> None:
    matches = storage.find_by_text_substring("ROAD", limit=10)

    assert [item.id for item in matches] == [corpus[1].id, corpus[0].id]
    assert storage.find_by_text_substring("road", limit=1)[0].id == corpus[1].id
    assert storage.find_by_text_substring("", limit=10) == []


def test_substring_search_treats_wildcards_literally(storage: DuckDBStorage, corpus) -> None:
    storage.add_feedback("Fees went up 100% this year.")

    assert len(storage.find_by_text_substring("100%", limit=10)) == 1
    assert storage.find_by_text_substring("%", limit=10)[0].text.startswith("Fees")
    assert storage.find_by_text_substring("_", limit=10) == []


def test_scan_only_returns_embedded_items(storage: DuckDBStorage, corpus) -> None:
    for item in corpus[:3]:
        storage.update_embedding(item.id, Embedding.from_vector([1.0, 0.0], "m"))

    scanned = storage.scan_items_with_embedding(limit=2)

    assert [item.id for item in scanned] == [corpus[2].id, corpus[1].id]
    assert all(item.has_embedding for item in scanned)


def test_counts_and_delete(storage: DuckDBStorage, corpus) -> None:
    storage.update_embedding(corpus[0].id, Embedding.from_vector([1.0], "m"))

    assert storage.count_feedback() == 5
    assert storage.count_feedback(with_embedding=True) == 1
    assert storage.count_feedback(with_embedding=False) == 4

    assert storage.delete_feedback(corpus[0].id) is True
    assert storage.delete_feedback(corpus[0].id) is False
    assert storage.count_feedback(with_embedding=True) == 0


def test_reopening_keeps_data(tmp_path: Path) -> None:
    db_path = str(tmp_path / "reopen.duckdb")
    first = DuckDBStorage(db_path)
    item = first.add_feedback("Park benches need paint.")
    first.close()

    second = DuckDBStorage(db_path)
    try:
        assert second.get_feedback(item.id) is not None
        second.add_feedback("Another item after reopening.")
        assert second.count_feedback() == 2
    finally:
        second.close()


def test_duplicate_ids_raise_storage_error(storage: DuckDBStorage) -> None:
    storage.add_feedback("First entry text.", item_id="fixed")
    with pytest.raises(StorageError):
        storage.add_feedback("Second entry text.", item_id="fixed")
