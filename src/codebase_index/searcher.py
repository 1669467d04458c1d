"""Query service over the codebase index, plus terminal rendering."""

import logging
import time

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from codebase_index.errors import ErrorCode, IndexEngineError, SearchError
from codebase_index.models import IndexState, SearchHit, SearchOptions, SearchResponse
from codebase_index.scanner import matches_any
from codebase_index.storage import SqliteIndexEngine

logger = logging.getLogger(__name__)

console = Console()

# Characters of chunk content shown per hit in human output
PREVIEW_CHARS = 500


def _normalize_extensions(extensions: list[str]) -> list[str]:
    return [(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions]


def apply_filters(hits: list[SearchHit], options: SearchOptions) -> list[SearchHit]:
    """Post-filter engine hits by file extension and path glob."""
    if options.filter_extensions:
        extensions = _normalize_extensions(options.filter_extensions)
        hits = [
            hit
            for hit in hits
            if any(hit.document.file_path.lower().endswith(ext) for ext in extensions)
        ]
    if options.filter_paths:
        hits = [hit for hit in hits if matches_any(hit.document.file_path, options.filter_paths)]
    return hits


def search(
    engine: SqliteIndexEngine,
    state: IndexState,
    query: str,
    options: SearchOptions | None = None,
) -> SearchResponse:
    """Run a ranked full-text search against a ready index.

    Raises:
        SearchError: ``QUERY_EMPTY`` for blank queries, ``INDEX_NOT_FOUND``
            when the index is not ready, ``DATABASE_ERROR`` when the engine
            fails.
    """
    if not query or not query.strip():
        raise SearchError(ErrorCode.QUERY_EMPTY, "Search query cannot be empty")
    if state != IndexState.READY:
        raise SearchError(
            ErrorCode.INDEX_NOT_FOUND,
            "Index not ready. Build the index first.",
            {"state": state.value},
        )

    options = options or SearchOptions()
    start_time = time.perf_counter()
    try:
        raw_hits, total = engine.search(
            query,
            properties=options.properties,
            limit=options.limit,
            threshold=options.threshold,
        )
    except IndexEngineError as exc:
        logger.error("Search failed: %s", exc.message)
        raise SearchError(ErrorCode.DATABASE_ERROR, f"Search failed: {exc.message}") from exc
    except ValueError as exc:
        raise SearchError(ErrorCode.DATABASE_ERROR, str(exc)) from exc
    execution_time_ms = round((time.perf_counter() - start_time) * 1000, 3)

    hits = apply_filters([SearchHit(document=doc, score=score) for doc, score in raw_hits], options)
    logger.info(
        'Search completed: "%s" - %d results in %.3fms', query, len(hits), execution_time_ms
    )
    return SearchResponse(
        results=hits,
        total_matches=total,
        execution_time_ms=execution_time_ms,
        query=query,
    )


def format_human_output(response: SearchResponse) -> None:
    """Format results for human-readable output."""
    if not response.results:
        console.print("[yellow]No results found. Try a different query.[/yellow]")
        return

    terms = [term for term in response.query.split() if len(term) >= 3]

    for i, hit in enumerate(response.results, 1):
        doc = hit.document
        content = doc.content
        if len(content) > PREVIEW_CHARS:
            remaining = len(content) - PREVIEW_CHARS
            content = content[:PREVIEW_CHARS]
        else:
            remaining = 0

        body = Text(content)
        body.highlight_words(terms, style="bold yellow", case_sensitive=False)
        if remaining:
            body.append(f"\n[truncated - {remaining} more chars]", style="dim")

        header = Text()
        header.append(f"[{i}] ", style="bold cyan")
        header.append(f"{doc.file_path}:{doc.start_line}-{doc.end_line}", style="green")
        header.append(f" | {doc.language}", style="dim")
        header.append(f" | {int(hit.score * 100)}%", style="dim")

        console.print(Panel(body, title=header, subtitle=doc.id, subtitle_align="left"))
        console.print()

    console.print("─" * 50)
    console.print(
        f"Showing {len(response.results)} of {response.total_matches} matches "
        f"in {response.execution_time_ms:.1f}ms"
    )


def format_json_output(response: SearchResponse) -> None:
    """Format results as JSON for programmatic use."""
    console.print_json(data=response.to_dict())
