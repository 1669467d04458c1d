"""CLI for codebase-index."""

import asyncio
import contextlib
import logging
import signal
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from codebase_index import __version__
from codebase_index.errors import ErrorCode, SearchError
from codebase_index.indexer import CodebaseIndex
from codebase_index.models import BuildResult, IndexState, SearchOptions

app = typer.Typer(
    name="codebase-index",
    help="Build and query a local full-text index of a source tree.",
    no_args_is_help=True,
)
console = Console()

WorkspaceArg = Annotated[
    Path, typer.Option("--workspace", "-w", help="Workspace root to index")
]
DataDirOpt = Annotated[
    Path | None,
    typer.Option("--data-dir", help="Where indexes are stored (default: $CODEBASE_INDEX_HOME)"),
]


def version_callback(value: bool) -> None:
    if value:
        console.print(f"codebase-index {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-V", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Build and query a local full-text index of a source tree."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


async def _run_build(index: CodebaseIndex, overrides: dict[str, Any]) -> BuildResult:
    build = index.build(overrides)

    # Ctrl-C asks the build to stop at its next checkpoint
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, build.cancel)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Scanning workspace...", total=100)
        async for event in build:
            description = f"{event.phase.value.capitalize()} {event.processed_files}/{event.total_files}"
            if event.current_file:
                description += f" [dim]{escape(event.current_file)}[/dim]"
            progress.update(task, completed=event.percentage, description=description)

    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.remove_signal_handler(signal.SIGINT)
    return await build.result()


@app.command()
def index(
    workspace: WorkspaceArg = Path("."),
    data_dir: DataDirOpt = None,
    batch_size: Annotated[int | None, typer.Option("--batch-size", help="Files per batch")] = None,
    chunk_size: Annotated[
        int | None, typer.Option("--chunk-size", help="Chunk size in characters")
    ] = None,
    chunk_overlap: Annotated[
        int | None, typer.Option("--chunk-overlap", help="Chunk overlap in characters")
    ] = None,
    max_file_size_kb: Annotated[
        int | None, typer.Option("--max-file-size-kb", help="Skip files larger than this")
    ] = None,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", "-x", help="Glob to exclude (can repeat, replaces defaults)"),
    ] = None,
    include_ext: Annotated[
        list[str] | None,
        typer.Option("--ext", "-e", help="Extension to include (can repeat, replaces defaults)"),
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Build or rebuild the index for a workspace."""
    overrides: dict[str, Any] = {
        "batch_size": batch_size,
        "chunk_size": chunk_size,
        "chunk_overlap": chunk_overlap,
        "max_file_size_kb": max_file_size_kb,
        "exclude_patterns": tuple(exclude) if exclude else None,
        "include_extensions": tuple(include_ext) if include_ext else None,
    }

    codebase = CodebaseIndex.open(workspace, data_dir)
    try:
        result = asyncio.run(_run_build(codebase, overrides))
    except ValueError as exc:
        console.print(f"[red]Invalid options: {exc}[/red]")
        raise typer.Exit(2) from exc
    finally:
        codebase.close()

    if json_output:
        console.print_json(data=result.to_dict())
    elif result.success:
        console.print(
            f"[green]Indexed {result.file_count} files with {result.document_count} chunks "
            f"in {result.build_time_ms}ms[/green]"
        )
        console.print(f"Index path: {result.index_file_path}")
    elif result.error_code == ErrorCode.CANCELLED.value:
        console.print("[yellow]Index build cancelled[/yellow]")
    else:
        console.print(f"[red]Index build failed ({result.error_code}): {result.error_message}[/red]")

    if not result.success:
        raise typer.Exit(1)


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query")],
    workspace: WorkspaceArg = Path("."),
    data_dir: DataDirOpt = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of results")] = 10,
    threshold: Annotated[
        float, typer.Option("--threshold", help="Minimum relative score (0-1)")
    ] = 0.0,
    ext: Annotated[
        list[str] | None,
        typer.Option("--ext", "-e", help="Only files with this extension (can repeat)"),
    ] = None,
    path: Annotated[
        list[str] | None,
        typer.Option("--path", "-p", help="Only files matching this glob (can repeat)"),
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Search the workspace index."""
    from codebase_index.searcher import format_human_output, format_json_output

    codebase = CodebaseIndex.open(workspace, data_dir)
    try:
        response = codebase.search(
            query,
            SearchOptions(
                limit=limit,
                threshold=threshold,
                filter_extensions=ext or [],
                filter_paths=path or [],
            ),
        )
    except SearchError as exc:
        if json_output:
            console.print_json(data={**exc.to_dict(), "query": query})
        elif exc.code == ErrorCode.INDEX_NOT_FOUND:
            console.print("[yellow]No index found. Run 'codebase-index index' first.[/yellow]")
        else:
            console.print(f"[red]Error: {exc.message}[/red]")
        raise typer.Exit(1) from exc
    finally:
        codebase.close()

    if json_output:
        format_json_output(response)
    else:
        format_human_output(response)


@app.command()
def status(
    workspace: WorkspaceArg = Path("."),
    data_dir: DataDirOpt = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show index statistics."""
    codebase = CodebaseIndex.open(workspace, data_dir)
    try:
        current = codebase.get_status()
    finally:
        codebase.close()

    if json_output:
        console.print_json(data=current.to_dict())
        return

    style = "green" if current.state == IndexState.READY else "yellow"
    console.print(f"State: [{style}]{current.state.value}[/{style}]")
    console.print(f"Documents indexed: {current.document_count}")
    console.print(f"Files indexed: {current.file_count}")
    console.print(f"Index path: {current.index_file_path or codebase.index_path}")
    if current.last_build_time:
        console.print(f"Last indexed: {current.last_build_time}")
    if current.error_message:
        console.print(f"[red]Error: {current.error_message}[/red]")


@app.command()
def clear(
    workspace: WorkspaceArg = Path("."),
    data_dir: DataDirOpt = None,
) -> None:
    """Delete the index for a workspace."""
    codebase = CodebaseIndex.open(workspace, data_dir)
    try:
        codebase.clear_index()
    finally:
        codebase.close()
    console.print("[green]Index cleared[/green]")


if __name__ == "__main__":
    app()
