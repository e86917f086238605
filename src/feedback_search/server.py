"""
FastAPI server for feedback search.

Exposes search, suggestions, similar-item lookup, embedding backfill and
coverage analytics over HTTP. Dependencies are built once per app and
kept on ``app.state``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .backfill import BackgroundBackfill, EmbeddingBackfillJob
from .config import SearchSettings, resolve_db_path
from .embeddings import Embedder, Embedding, EmbeddingProvider, RetryingEmbedder
from .errors import FeedbackNotFoundError, FeedbackSearchError, ProviderFormatError
from .search import SearchOrchestrator, SuggestionGenerator
from .storage import DuckDBStorage, StorageBackend

logger = logging.getLogger(__name__)


class UnavailableEmbedder:
    """Stands in when no provider credentials are configured."""

    def __init__(self, reason: str) -> None:
        self.reason = reason

    def embed(self, text: str) -> Embedding:
        raise ProviderFormatError(self.reason)


@dataclass
class Services:
    """Explicitly wired dependencies shared by all requests."""

    storage: StorageBackend
    orchestrator: SearchOrchestrator
    suggestions: SuggestionGenerator
    backfill_job: EmbeddingBackfillJob
    background: BackgroundBackfill
    settings: SearchSettings


def build_services(
    storage: StorageBackend,
    embedder: Embedder,
    settings: SearchSettings | None = None,
) -> Services:
    resolved = settings or SearchSettings()
    orchestrator = SearchOrchestrator(storage, embedder, resolved)
    backfill_job = EmbeddingBackfillJob(storage, embedder, delay=resolved.backfill_delay)
    return Services(
        storage=storage,
        orchestrator=orchestrator,
        suggestions=SuggestionGenerator(orchestrator.lexical),
        backfill_job=backfill_job,
        background=BackgroundBackfill(backfill_job),
        settings=resolved,
    )


def build_embedder(settings: SearchSettings) -> Embedder:
    """GenAI provider wrapped in the retry policy, or a stand-in without a key."""
    try:
        provider = EmbeddingProvider()
    except ValueError as exc:
        logger.warning("Embedding provider disabled: %s", exc)
        return UnavailableEmbedder(str(exc))
    return RetryingEmbedder(
        provider,
        max_attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
        timeout=settings.embed_timeout,
    )


class SearchRequest(BaseModel):
    """Request model for search queries."""

    model_config = ConfigDict(populate_by_name=True)

    query: str
    limit: int | None = Field(default=None, ge=1, le=100)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    use_hybrid: bool = Field(default=True, alias="useHybrid")
    text_weight: float | None = Field(default=None, ge=0.0, le=1.0, alias="textWeight")
    vector_weight: float | None = Field(
        default=None, ge=0.0, le=1.0, alias="vectorWeight"
    )


class BackfillRequest(BaseModel):
    """Request model for embedding backfill."""

    model_config = ConfigDict(populate_by_name=True)

    batch_size: int = Field(default=50, ge=1, le=200, alias="batchSize")


class FeedbackRequest(BaseModel):
    """Request model for storing a feedback item."""

    text: str = Field(min_length=10, max_length=5000)
    category: str = "other"
    sentiment: float = Field(default=0.0, ge=-1.0, le=1.0)


def _services(request: Request) -> Services:
    return request.app.state.services


def create_app(
    *,
    storage: StorageBackend | None = None,
    embedder: Embedder | None = None,
    settings: SearchSettings | None = None,
) -> FastAPI:
    """Create the API app.

    When *storage* and *embedder* are given they are used as-is; otherwise
    they are built from the environment when the app starts.
    """
    injected = storage is not None and embedder is not None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned_storage: DuckDBStorage | None = None
        if getattr(app.state, "services", None) is None:
            resolved_settings = settings or SearchSettings.from_env()
            owned_storage = DuckDBStorage(resolve_db_path())
            app.state.services = build_services(
                owned_storage, build_embedder(resolved_settings), resolved_settings
            )
        try:
            yield
        finally:
            app.state.services.background.shutdown(wait=False)
            if owned_storage is not None:
                owned_storage.close()
                app.state.services = None

    app = FastAPI(
        title="Feedback Search",
        description="Hybrid lexical and semantic search over citizen feedback",
        lifespan=lifespan,
    )
    app.state.services = (
        build_services(storage, embedder, settings) if injected else None
    )

    @app.post("/api/search")
    async def search(body: SearchRequest, request: Request):
        """Run a hybrid, vector-only or text-fallback search."""
        if not body.query.strip():
            return JSONResponse({"error": "Query cannot be empty"}, status_code=400)
        services = _services(request)
        try:
            response = await asyncio.to_thread(
                services.orchestrator.search,
                body.query.strip(),
                limit=body.limit,
                threshold=body.threshold,
                use_hybrid=body.use_hybrid,
                text_weight=body.text_weight,
                vector_weight=body.vector_weight,
            )
        except FeedbackSearchError as exc:
            logger.exception("Search failed")
            return JSONResponse({"error": str(exc)}, status_code=500)
        return response.to_dict()

    @app.get("/api/search/suggestions")
    async def suggestions(
        request: Request,
        q: str = Query(min_length=1),
        limit: int = Query(default=5, ge=1, le=20),
    ):
        """Autocomplete phrases for a partial query."""
        services = _services(request)
        try:
            phrases = await asyncio.to_thread(services.suggestions.suggest, q.strip(), limit)
        except FeedbackSearchError as exc:
            return JSONResponse({"error": str(exc)}, status_code=500)
        return {"query": q.strip(), "suggestions": phrases}

    @app.get("/api/search/similar/{item_id}")
    async def similar(
        item_id: str,
        request: Request,
        limit: int = Query(default=10, ge=1, le=50),
    ):
        """Feedback items semantically close to *item_id*."""
        services = _services(request)
        try:
            results = await asyncio.to_thread(
                services.orchestrator.find_similar, item_id, limit
            )
        except FeedbackNotFoundError:
            return JSONResponse({"error": "Feedback not found"}, status_code=404)
        except FeedbackSearchError as exc:
            return JSONResponse({"error": str(exc)}, status_code=500)
        return {
            "itemId": item_id,
            "similar": [result.to_dict() for result in results],
            "count": len(results),
        }

    @app.post("/api/search/generate-embeddings")
    async def generate_embeddings(request: Request, body: BackfillRequest | None = None):
        """Embed one batch of items that still lack a vector."""
        batch = body or BackfillRequest()
        services = _services(request)
        try:
            outcome = await asyncio.to_thread(
                services.backfill_job.run_batch, batch.batch_size
            )
        except FeedbackSearchError as exc:
            return JSONResponse({"error": str(exc)}, status_code=500)
        return {**outcome.to_dict(), "batchSize": batch.batch_size}

    @app.post("/api/search/generate-embeddings/background", status_code=202)
    async def generate_embeddings_background(
        request: Request, body: BackfillRequest | None = None
    ):
        """Queue a backfill batch and return its job id immediately."""
        batch = body or BackfillRequest()
        job_id = _services(request).background.submit(batch.batch_size)
        return {"jobId": job_id, "batchSize": batch.batch_size}

    @app.get("/api/search/generate-embeddings/{job_id}")
    async def generate_embeddings_status(job_id: str, request: Request):
        status = _services(request).background.status(job_id)
        if status is None:
            return JSONResponse({"error": "Unknown job"}, status_code=404)
        return status.to_dict()

    @app.get("/api/search/analytics")
    async def analytics(request: Request):
        """Embedding coverage across the stored corpus."""
        try:
            stats = await asyncio.to_thread(_services(request).orchestrator.analytics)
        except FeedbackSearchError as exc:
            return JSONResponse({"error": str(exc)}, status_code=500)
        return stats.to_dict()

    @app.post("/api/feedback", status_code=201)
    async def add_feedback(body: FeedbackRequest, request: Request):
        """Store a feedback item; its embedding is filled in by backfill."""
        try:
            item = await asyncio.to_thread(
                _services(request).storage.add_feedback,
                body.text,
                category=body.category,
                sentiment=body.sentiment,
            )
        except FeedbackSearchError as exc:
            return JSONResponse({"error": str(exc)}, status_code=500)
        return {"id": item.id, "timestamp": item.timestamp.isoformat()}

    return app


app = create_app()


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the FastAPI server."""
    import uvicorn

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
