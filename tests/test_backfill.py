"""Tests for the embedding backfill job and its background runner."""

from __future__ import annotations

from feedback_search.backfill import BackgroundBackfill, EmbeddingBackfillJob
from feedback_search.embeddings import Embedding
from feedback_search.errors import StorageError


def test_backfill_isolates_per_item_failures(storage, corpus, embedder_factory) -> None:
    # The third item (oldest-first) is the only one the provider rejects.
    embedder = embedder_factory(fail_on="Water leak")
    job = EmbeddingBackfillJob(storage, embedder, delay=0)

    outcome = job.run_batch(10)

    assert (outcome.processed_count, outcome.error_count) == (4, 1)
    assert len(embedder.calls) == 5
    assert storage.count_feedback(with_embedding=False) == 1

    embedder.calls.clear()
    second = job.run_batch(10)

    assert embedder.calls == [corpus[2].text]
    assert second.to_dict() == {"processed": 0, "errors": 1}


def test_backfill_recovers_once_provider_is_healthy(storage, corpus, embedder_factory) -> None:
    flaky = embedder_factory(fail_on="Water leak")
    EmbeddingBackfillJob(storage, flaky, delay=0).run_batch(10)

    healthy = embedder_factory()
    outcome = EmbeddingBackfillJob(storage, healthy, delay=0).run_batch(10)

    assert outcome.to_dict() == {"processed": 1, "errors": 0}
    assert healthy.calls == [corpus[2].text]
    assert storage.count_feedback(with_embedding=False) == 0


def test_backfill_with_nothing_to_do(storage, embedder) -> None:
    outcome = EmbeddingBackfillJob(storage, embedder, delay=0).run_batch(10)

    assert outcome.to_dict() == {"processed": 0, "errors": 0}
    assert embedder.calls == []


def test_backfill_respects_batch_size_and_order(storage, corpus, embedder) -> None:
    outcome = EmbeddingBackfillJob(storage, embedder, delay=0).run_batch(2)

    assert outcome.processed_count == 2
    assert embedder.calls == [corpus[0].text, corpus[1].text]


def test_backfill_sleeps_between_items(storage, corpus, embedder) -> None:
    delays: list[float] = []
    job = EmbeddingBackfillJob(storage, embedder, delay=0.25, sleep=delays.append)

    job.run_batch(3)

    assert delays == [0.25, 0.25]


class _FlakyWriteStorage:
    """Wraps a real store and fails writes for one item id."""

    def __init__(self, inner, bad_id: str) -> None:
        self.inner = inner
        self.bad_id = bad_id

    def get_items_missing_embedding(self, limit: int):
        return self.inner.get_items_missing_embedding(limit)

    def update_embedding(self, item_id: str, embedding: Embedding) -> bool:
        if item_id == self.bad_id:
            raise StorageError("disk full")
        return self.inner.update_embedding(item_id, embedding)


def test_backfill_counts_store_failures(storage, corpus, embedder) -> None:
    flaky = _FlakyWriteStorage(storage, bad_id=corpus[1].id)

    outcome = EmbeddingBackfillJob(flaky, embedder, delay=0).run_batch(10)

    assert outcome.to_dict() == {"processed": 4, "errors": 1}


def test_backfill_counts_vanished_items(storage, corpus, embedder) -> None:
    class _VanishingStorage(_FlakyWriteStorage):
        def update_embedding(self, item_id: str, embedding: Embedding) -> bool:
            if item_id == self.bad_id:
                self.inner.delete_feedback(item_id)
            return self.inner.update_embedding(item_id, embedding)

    outcome = EmbeddingBackfillJob(
        _VanishingStorage(storage, bad_id=corpus[0].id), embedder, delay=0
    ).run_batch(10)

    assert outcome.to_dict() == {"processed": 4, "errors": 1}


class _UnreachableStorage:
    def get_items_missing_embedding(self, limit: int):
        raise StorageError("database offline")


def test_background_backfill_reports_completion(storage, corpus, embedder) -> None:
    runner = BackgroundBackfill(EmbeddingBackfillJob(storage, embedder, delay=0))
    try:
        job_id = runner.submit(batch_size=3)
        status = runner.wait(job_id, timeout=10)
    finally:
        runner.shutdown()

    assert status is not None
    assert status.state == "completed"
    assert status.outcome is not None and status.outcome.processed_count == 3
    assert status.to_dict()["outcome"] == {"processed": 3, "errors": 0}


def test_background_backfill_reports_failure(embedder) -> None:
    runner = BackgroundBackfill(EmbeddingBackfillJob(_UnreachableStorage(), embedder, delay=0))
    try:
        job_id = runner.submit()
        status = runner.wait(job_id, timeout=10)
    finally:
        runner.shutdown()

    assert status is not None
    assert status.state == "failed"
    assert status.error == "database offline"
    assert runner.status("unknown") is None


def test_backfill_isolates_unparseable_provider_responses(
    storage, corpus, unparseable_provider
) -> None:
    outcome = EmbeddingBackfillJob(storage, unparseable_provider, delay=0).run_batch(10)

    assert outcome.to_dict() == {"processed": 0, "errors": 5}
    assert storage.count_feedback(with_embedding=False) == 5


def test_backfill_isolates_unexpected_item_errors(storage, corpus, embedder) -> None:
    class _Exploding:
        def embed(self, text: str) -> Embedding:
            if "storm" in text:
                raise RuntimeError("unexpected")
            return embedder.embed(text)

    outcome = EmbeddingBackfillJob(storage, _Exploding(), delay=0).run_batch(10)

    assert outcome.to_dict() == {"processed": 4, "errors": 1}


def test_background_backfill_keeps_bounded_history(storage, embedder) -> None:
    runner = BackgroundBackfill(
        EmbeddingBackfillJob(storage, embedder, delay=0), max_tracked_jobs=2
    )
    try:
        job_ids = [runner.submit(batch_size=1) for _ in range(4)]
        for job_id in job_ids:
            runner.wait(job_id, timeout=10)
    finally:
        runner.shutdown()

    assert runner.status(job_ids[0]) is None
    assert runner.status(job_ids[1]) is None
    assert [runner.status(job_id).state for job_id in job_ids[2:]] == [
        "completed",
        "completed",
    ]
    assert runner._futures == {}
