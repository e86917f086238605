"""
Configuration helpers for storage location and search tuning.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from rich.logging import RichHandler


DEFAULT_DB_PATH = "~/.feedback_search/feedback.duckdb"
ENV_DB_PATH = "FEEDBACK_SEARCH_DB_PATH"
ENV_LOG_LEVEL = "FEEDBACK_SEARCH_LOG_LEVEL"


def resolve_db_path(override_path: str | None = None) -> str:
    """
    Resolve the DuckDB path from CLI override, env var, or default.

    Precedence:
    1) explicit override_path
    2) FEEDBACK_SEARCH_DB_PATH
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass(frozen=True)
class SearchSettings:
    """Tunables shared by the search orchestrator and the backfill job."""

    limit: int = 50
    threshold: float = 0.1
    text_weight: float = 0.3
    vector_weight: float = 0.7
    scan_limit: int = 1000
    max_query_chars: int = 200
    retry_attempts: int = 3
    retry_base_delay: float = 0.5
    embed_timeout: float = 10.0
    backfill_delay: float = 0.1
    backfill_batch_size: int = 50

    @classmethod
    def from_env(cls) -> SearchSettings:
        """Build settings from FEEDBACK_SEARCH_* environment variables."""
        return cls(
            limit=_env_int("FEEDBACK_SEARCH_LIMIT", cls.limit),
            threshold=_env_float("FEEDBACK_SEARCH_THRESHOLD", cls.threshold),
            text_weight=_env_float("FEEDBACK_SEARCH_TEXT_WEIGHT", cls.text_weight),
            vector_weight=_env_float("FEEDBACK_SEARCH_VECTOR_WEIGHT", cls.vector_weight),
            scan_limit=_env_int("FEEDBACK_SEARCH_SCAN_LIMIT", cls.scan_limit),
            max_query_chars=_env_int(
                "FEEDBACK_SEARCH_MAX_QUERY_CHARS", cls.max_query_chars
            ),
            retry_attempts=_env_int("FEEDBACK_SEARCH_RETRY_ATTEMPTS", cls.retry_attempts),
            retry_base_delay=_env_float(
                "FEEDBACK_SEARCH_RETRY_BASE_DELAY", cls.retry_base_delay
            ),
            embed_timeout=_env_float("FEEDBACK_SEARCH_EMBED_TIMEOUT", cls.embed_timeout),
            backfill_delay=_env_float("FEEDBACK_SEARCH_BACKFILL_DELAY", cls.backfill_delay),
            backfill_batch_size=_env_int(
                "FEEDBACK_SEARCH_BACKFILL_BATCH_SIZE", cls.backfill_batch_size
            ),
        )


def configure_logging(level: str | None = None) -> None:
    """Route package logs through a Rich console handler."""
    resolved = (level or os.getenv(ENV_LOG_LEVEL) or "WARNING").upper()
    logging.basicConfig(
        level=resolved,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
