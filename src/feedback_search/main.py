from typing import Annotated, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from typer import Argument, Exit, Option, Typer

from .backfill import EmbeddingBackfillJob
from .config import SearchSettings, configure_logging, resolve_db_path
from .errors import FeedbackNotFoundError, FeedbackSearchError
from .search import LexicalSearch, SearchOrchestrator, SearchResult, SuggestionGenerator
from .server import UnavailableEmbedder, build_embedder
from .storage import DuckDBStorage

app = Typer(help="Hybrid lexical and semantic search over citizen feedback.")
console = Console()

DbPathOption = Annotated[
    Optional[str],
    Option("--db-path", help="DuckDB file to use (defaults to FEEDBACK_SEARCH_DB_PATH)."),
]


@app.callback()
def main(
    log_level: Annotated[
        Optional[str],
        Option("--log-level", help="Logging level, e.g. INFO or DEBUG."),
    ] = None,
) -> None:
    configure_logging(log_level)


def _open(db_path: Optional[str]) -> tuple[DuckDBStorage, SearchSettings]:
    return DuckDBStorage(resolve_db_path(db_path)), SearchSettings.from_env()


def _results_table(title: str, results: list[SearchResult]) -> Table:
    table = Table(title=title)
    table.add_column("Score", justify="right", style="bold green")
    table.add_column("Category", style="cyan")
    table.add_column("Sentiment", justify="right")
    table.add_column("Text")
    table.add_column("Id", style="dim")
    for result in results:
        table.add_row(
            f"{result.relevance_score:.3f}",
            result.category,
            f"{result.sentiment:+.2f}",
            result.text,
            result.item_id,
        )
    return table


@app.command()
def add(
    text: Annotated[str, Argument(help="Feedback text.")],
    category: Annotated[str, Option("--category", "-c")] = "other",
    sentiment: Annotated[float, Option("--sentiment", "-s", min=-1.0, max=1.0)] = 0.0,
    db_path: DbPathOption = None,
) -> None:
    """Store a feedback item (without an embedding)."""
    storage, _ = _open(db_path)
    try:
        item = storage.add_feedback(text, category=category, sentiment=sentiment)
    finally:
        storage.close()
    console.print(f"[bold green]Stored[/] {item.id}")


@app.command()
def search(
    query: Annotated[str, Argument(help="Search query.")],
    limit: Annotated[int, Option("--limit", "-n", min=1, max=100)] = 10,
    threshold: Annotated[Optional[float], Option("--threshold", min=0.0, max=1.0)] = None,
    hybrid: Annotated[bool, Option("--hybrid/--vector-only")] = True,
    text_weight: Annotated[Optional[float], Option("--text-weight", min=0.0, max=1.0)] = None,
    vector_weight: Annotated[
        Optional[float], Option("--vector-weight", min=0.0, max=1.0)
    ] = None,
    db_path: DbPathOption = None,
) -> None:
    """Search stored feedback."""
    storage, settings = _open(db_path)
    try:
        orchestrator = SearchOrchestrator(storage, build_embedder(settings), settings)
        response = orchestrator.search(
            query,
            limit=limit,
            threshold=threshold,
            use_hybrid=hybrid,
            text_weight=text_weight,
            vector_weight=vector_weight,
        )
    finally:
        storage.close()
    title = (
        f"{response.total_results} results for {response.query!r} "
        f"({response.search_type}, {response.processing_time_ms:.1f} ms)"
    )
    console.print(_results_table(title, response.results))


@app.command()
def suggest(
    partial: Annotated[str, Argument(help="Partial query, at least two characters.")],
    limit: Annotated[int, Option("--limit", "-n", min=1, max=20)] = 5,
    db_path: DbPathOption = None,
) -> None:
    """Autocomplete phrases for a partial query."""
    storage, _ = _open(db_path)
    try:
        phrases = SuggestionGenerator(LexicalSearch(storage)).suggest(partial, limit)
    finally:
        storage.close()
    if not phrases:
        console.print("[dim]No suggestions.[/]")
    for phrase in phrases:
        console.print(f"  {phrase}")


@app.command()
def similar(
    item_id: Annotated[str, Argument(help="Feedback id.")],
    limit: Annotated[int, Option("--limit", "-n", min=1, max=50)] = 10,
    db_path: DbPathOption = None,
) -> None:
    """List feedback semantically close to an item."""
    storage, settings = _open(db_path)
    try:
        orchestrator = SearchOrchestrator(storage, build_embedder(settings), settings)
        results = orchestrator.find_similar(item_id, limit)
    except FeedbackNotFoundError as exc:
        console.print(f"[bold red]{exc}[/]")
        raise Exit(code=1) from exc
    except FeedbackSearchError as exc:
        console.print(f"[bold red]Similarity lookup failed:[/] {exc}")
        raise Exit(code=1) from exc
    finally:
        storage.close()
    console.print(_results_table(f"Similar to {item_id}", results))


@app.command()
def backfill(
    batch_size: Annotated[int, Option("--batch-size", "-b", min=1, max=200)] = 50,
    db_path: DbPathOption = None,
) -> None:
    """Generate embeddings for items that do not have one yet."""
    storage, settings = _open(db_path)
    try:
        job = EmbeddingBackfillJob(
            storage, build_embedder(settings), delay=settings.backfill_delay
        )
        with console.status("Generating embeddings..."):
            outcome = job.run_batch(batch_size)
    finally:
        storage.close()
    console.print(
        Panel(
            f"Processed: {outcome.processed_count}\nErrors: {outcome.error_count}",
            title="Embedding backfill",
            title_align="left",
            border_style="bold green" if outcome.error_count == 0 else "bold yellow",
        )
    )


@app.command()
def stats(db_path: DbPathOption = None) -> None:
    """Show embedding coverage."""
    storage, settings = _open(db_path)
    try:
        analytics = SearchOrchestrator(
            storage, UnavailableEmbedder("not needed for analytics"), settings
        ).analytics()
    finally:
        storage.close()
    table = Table(title="Embedding coverage")
    table.add_column("With embedding", justify="right")
    table.add_column("Without embedding", justify="right")
    table.add_column("Coverage", justify="right", style="bold")
    table.add_row(
        str(analytics.items_with_embedding),
        str(analytics.items_without_embedding),
        f"{analytics.embedding_coverage_percent:.2f}%",
    )
    console.print(table)


@app.command()
def serve(
    host: Annotated[str, Option("--host")] = "127.0.0.1",
    port: Annotated[int, Option("--port")] = 8000,
) -> None:
    """Run the HTTP API."""
    from .server import run_server

    run_server(host=host, port=port)
