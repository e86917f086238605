"""
DuckDB storage backend for feedback persistence.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import duckdb

from ..embeddings import Embedding
from ..errors import StorageError
from .base import FeedbackItem

_ITEM_COLUMNS = """
    id, text, category, sentiment, timestamp,
    embedding_vector, embedding_model, embedding_dimensions, embedding_generated_at
"""


def _to_db_timestamp(value: datetime) -> datetime:
    # Stored as naive UTC.
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db_timestamp(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


class DuckDBStorage:
    """DuckDB-backed persistence for feedback items and their embeddings.

    Every call runs on its own cursor so the backfill job and search
    requests can share one storage object across threads.
    """

    def __init__(
        self,
        db_path: str,
        *,
        read_only: bool = False,
        initialize: bool = True,
    ) -> None:
        self.db_path = str(Path(db_path).expanduser().resolve())
        self.read_only = read_only
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = duckdb.connect(self.db_path, read_only=read_only)
        except duckdb.Error as exc:
            raise StorageError(f"Cannot open database {self.db_path}: {exc}") from exc
        if initialize and not read_only:
            self.initialize()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._conn.close()

    @contextmanager
    def _cursor(self, action: str) -> Iterator[duckdb.DuckDBPyConnection]:
        try:
            with self._conn.cursor() as cur:
                yield cur
        except duckdb.Error as exc:
            raise StorageError(f"Failed to {action}: {exc}") from exc

    def initialize(self) -> None:
        with self._cursor("initialize schema") as cur:
            cur.execute("CREATE SEQUENCE IF NOT EXISTS feedback_seq START 1;")
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS feedback (
                    id VARCHAR PRIMARY KEY,
                    seq BIGINT NOT NULL DEFAULT nextval('feedback_seq'),
                    text VARCHAR NOT NULL,
                    category VARCHAR NOT NULL DEFAULT 'other',
                    sentiment DOUBLE NOT NULL DEFAULT 0,
                    timestamp TIMESTAMP NOT NULL,
                    embedding_vector DOUBLE[],
                    embedding_model VARCHAR,
                    embedding_dimensions INTEGER,
                    embedding_generated_at TIMESTAMP
                );
                """
            )

    def add_feedback(
        self,
        text: str,
        *,
        category: str = "other",
        sentiment: float = 0.0,
        timestamp: datetime | None = None,
        item_id: str | None = None,
    ) -> FeedbackItem:
        resolved_id = item_id or str(uuid.uuid4())
        resolved_ts = timestamp or datetime.now(timezone.utc)
        with self._cursor("insert feedback") as cur:
            cur.execute(
                """
                INSERT INTO feedback (id, text, category, sentiment, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                [resolved_id, text, category, float(sentiment), _to_db_timestamp(resolved_ts)],
            )
        return FeedbackItem(
            id=resolved_id,
            text=text,
            category=category,
            sentiment=float(sentiment),
            timestamp=_from_db_timestamp(_to_db_timestamp(resolved_ts)),
        )

    def get_feedback(self, item_id: str) -> FeedbackItem | None:
        with self._cursor("load feedback") as cur:
            row = cur.execute(
                f"SELECT {_ITEM_COLUMNS} FROM feedback WHERE id = ? LIMIT 1",
                [item_id],
            ).fetchone()
        if row is None:
            return None
        return self._row_to_item(row)

    def delete_feedback(self, item_id: str) -> bool:
        with self._cursor("delete feedback") as cur:
            rows = cur.execute(
                "DELETE FROM feedback WHERE id = ? RETURNING id",
                [item_id],
            ).fetchall()
        return len(rows) > 0

    def get_items_missing_embedding(self, limit: int) -> list[FeedbackItem]:
        with self._cursor("list items missing embeddings") as cur:
            rows = cur.execute(
                f"""
                SELECT {_ITEM_COLUMNS}
                FROM feedback
                WHERE embedding_vector IS NULL
                ORDER BY seq ASC
                LIMIT ?
                """,
                [limit],
            ).fetchall()
        return [self._row_to_item(row) for row in rows]

    def update_embedding(self, item_id: str, embedding: Embedding) -> bool:
        with self._cursor("store embedding") as cur:
            rows = cur.execute(
                """
                UPDATE feedback
                SET embedding_vector = ?,
                    embedding_model = ?,
                    embedding_dimensions = ?,
                    embedding_generated_at = ?
                WHERE id = ?
                RETURNING id
                """,
                [
                    list(embedding.vector),
                    embedding.model,
                    embedding.dimensions,
                    _to_db_timestamp(embedding.generated_at),
                    item_id,
                ],
            ).fetchall()
        return len(rows) > 0

    def find_by_text_substring(self, term: str, limit: int) -> list[FeedbackItem]:
        if not term:
            return []
        with self._cursor("search feedback text") as cur:
            rows = cur.execute(
                f"""
                SELECT {_ITEM_COLUMNS}
                FROM feedback
                WHERE strpos(lower(text), lower(?)) > 0
                ORDER BY timestamp DESC, seq DESC
                LIMIT ?
                """,
                [term, limit],
            ).fetchall()
        return [self._row_to_item(row) for row in rows]

    def scan_items_with_embedding(self, limit: int) -> list[FeedbackItem]:
        with self._cursor("scan embedded feedback") as cur:
            rows = cur.execute(
                f"""
                SELECT {_ITEM_COLUMNS}
                FROM feedback
                WHERE embedding_vector IS NOT NULL
                ORDER BY timestamp DESC, seq DESC
                LIMIT ?
                """,
                [limit],
            ).fetchall()
        return [self._row_to_item(row) for row in rows]

    def count_feedback(self, *, with_embedding: bool | None = None) -> int:
        sql = "SELECT COUNT(*) FROM feedback"
        if with_embedding is True:
            sql += " WHERE embedding_vector IS NOT NULL"
        elif with_embedding is False:
            sql += " WHERE embedding_vector IS NULL"
        with self._cursor("count feedback") as cur:
            row = cur.execute(sql).fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    def _row_to_item(row: tuple[Any, ...]) -> FeedbackItem:
        embedding: Embedding | None = None
        if row[5] is not None:
            embedding = Embedding(
                vector=[float(value) for value in row[5]],
                model=str(row[6]),
                dimensions=int(row[7]),
                generated_at=_from_db_timestamp(row[8]),
            )
        return FeedbackItem(
            id=str(row[0]),
            text=str(row[1]),
            category=str(row[2]),
            sentiment=float(row[3]),
            timestamp=_from_db_timestamp(row[4]),
            embedding=embedding,
        )
