"""
Embedding backfill for feedback items that were stored without a vector.

``EmbeddingBackfillJob`` processes one batch synchronously.
``BackgroundBackfill`` submits batches to a worker pool and records their
status so callers never block on them.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Any, Callable, Literal

from .embeddings import Embedder
from .storage import StorageBackend

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_ITEM_DELAY = 0.1
MAX_TRACKED_JOBS = 100


@dataclass(frozen=True)
class BackfillOutcome:
    """Summary of one backfill batch."""

    processed_count: int
    error_count: int

    def to_dict(self) -> dict[str, int]:
        return {"processed": self.processed_count, "errors": self.error_count}


class EmbeddingBackfillJob:
    """Embed and store vectors for items that lack one, oldest first."""

    def __init__(
        self,
        storage: StorageBackend,
        embedder: Embedder,
        *,
        delay: float = DEFAULT_ITEM_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.storage = storage
        self.embedder = embedder
        self.delay = delay
        self._sleep = sleep

    def run_batch(self, batch_size: int = DEFAULT_BATCH_SIZE) -> BackfillOutcome:
        """Process up to *batch_size* items.

        A failing item is counted and skipped. Only a failure to fetch the
        candidate items raises.
        """
        items = self.storage.get_items_missing_embedding(batch_size)
        if not items:
            return BackfillOutcome(processed_count=0, error_count=0)

        logger.info("Generating embeddings for %d feedback items", len(items))
        processed = 0
        errors = 0
        for index, item in enumerate(items):
            if index > 0 and self.delay > 0:
                self._sleep(self.delay)
            try:
                embedding = self.embedder.embed(item.text)
                stored = self.storage.update_embedding(item.id, embedding)
            except Exception as exc:
                errors += 1
                logger.warning(
                    "Failed to embed feedback %s: %s: %s",
                    item.id,
                    type(exc).__name__,
                    exc,
                )
                continue
            if stored:
                processed += 1
            else:
                errors += 1
                logger.warning("Feedback %s disappeared before its embedding was stored", item.id)

        logger.info(
            "Embedding backfill complete. Processed: %d, Errors: %d", processed, errors
        )
        return BackfillOutcome(processed_count=processed, error_count=errors)


BackfillState = Literal["pending", "running", "completed", "failed"]


@dataclass(frozen=True)
class BackfillStatus:
    job_id: str
    batch_size: int
    state: BackfillState = "pending"
    outcome: BackfillOutcome | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "batchSize": self.batch_size,
            "state": self.state,
            "outcome": self.outcome.to_dict() if self.outcome is not None else None,
            "error": self.error,
        }


class BackgroundBackfill:
    """Run backfill batches on a worker pool with an observable status record.

    Only the most recent *max_tracked_jobs* finished jobs keep a status.
    """

    def __init__(
        self,
        job: EmbeddingBackfillJob,
        *,
        max_workers: int = 1,
        max_tracked_jobs: int = MAX_TRACKED_JOBS,
    ) -> None:
        self.job = job
        self.max_tracked_jobs = max_tracked_jobs
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="backfill"
        )
        self._statuses: dict[str, BackfillStatus] = {}
        self._futures: dict[str, Future[BackfillOutcome]] = {}
        self._lock = threading.Lock()

    def submit(self, batch_size: int = DEFAULT_BATCH_SIZE) -> str:
        job_id = uuid.uuid4().hex
        with self._lock:
            self._statuses[job_id] = BackfillStatus(job_id=job_id, batch_size=batch_size)
            future = self._executor.submit(self._run, job_id, batch_size)
            self._futures[job_id] = future
        future.add_done_callback(lambda _: self._forget_future(job_id))
        return job_id

    def status(self, job_id: str) -> BackfillStatus | None:
        with self._lock:
            return self._statuses.get(job_id)

    def wait(self, job_id: str, timeout: float | None = None) -> BackfillStatus | None:
        """Block until *job_id* finishes. Intended for tests and the CLI."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            # Failures are already recorded on the status.
            future.exception(timeout=timeout)
        return self.status(job_id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _forget_future(self, job_id: str) -> None:
        with self._lock:
            self._futures.pop(job_id, None)

    def _update(self, job_id: str, **changes: Any) -> None:
        with self._lock:
            self._statuses[job_id] = replace(self._statuses[job_id], **changes)
            if changes.get("state") in ("completed", "failed"):
                self._prune_finished()

    def _prune_finished(self) -> None:
        finished = [
            job_id
            for job_id, status in self._statuses.items()
            if status.state in ("completed", "failed")
        ]
        # Insertion order is submission order, so the oldest go first.
        for job_id in finished[: max(0, len(finished) - self.max_tracked_jobs)]:
            del self._statuses[job_id]

    def _run(self, job_id: str, batch_size: int) -> BackfillOutcome:
        self._update(job_id, state="running")
        try:
            outcome = self.job.run_batch(batch_size)
        except Exception as exc:
            logger.exception("Background backfill %s failed", job_id)
            self._update(job_id, state="failed", error=str(exc))
            raise
        self._update(job_id, state="completed", outcome=outcome)
        logger.info(
            "Background backfill %s completed: processed=%d errors=%d",
            job_id,
            outcome.processed_count,
            outcome.error_count,
        )
        return outcome
