"""CLI entry point for NoteLens.

Commands:
    notelens init     — Create the ~/.notelens directory structure
    notelens index    — Embed notes into the vector store (incremental by default)
    notelens search   — Semantic search over indexed notes
    notelens related  — Notes similar to an indexed note
    notelens stats    — Show vector store statistics
    notelens clear    — Drop every stored embedding
    notelens watch    — Watch the notes folder and re-index on save
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from notelens import __version__
from notelens.errors import NoteLensError

if TYPE_CHECKING:
    from notelens.config import Settings
    from notelens.vector.embedding_service import EmbeddingService
    from notelens.vector.indexing import VectorIndexingService
    from notelens.vector.store import ChromaVectorStore
    from notelens.vector.types import SimilarNote

console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load(ctx: click.Context) -> Settings:
    from notelens.config import load_settings

    try:
        return load_settings(ctx.obj.get("config_path"))
    except ValueError as exc:
        console.print(f"[red]✗[/red] Invalid configuration: {exc}")
        console.print("  Run [bold]notelens init[/bold] or set NOTELENS_NOTES__PATH.")
        sys.exit(1)


def _create_services(
    settings: Settings,
) -> tuple[EmbeddingService, ChromaVectorStore, VectorIndexingService]:
    """Wire one embedder, one store and one indexing service for this process."""
    from notelens.vector.embedding_service import EmbeddingService, create_embedder
    from notelens.vector.indexing import VectorIndexingService
    from notelens.vector.store import ChromaVectorStore

    embedder = create_embedder(settings.embedding)
    embedding_service = EmbeddingService.from_config(embedder, settings.embedding)
    store = ChromaVectorStore(settings.store)
    indexing = VectorIndexingService(
        embedding_service, store, batch_size=settings.indexing.batch_size
    )
    return embedding_service, store, indexing


def _print_results(results: list[SimilarNote]) -> None:
    from notelens.vector.search import similarity_label

    if not results:
        console.print("[dim]No matching notes.[/dim]")
        return

    table = Table(show_header=True, header_style="bold magenta", box=None)
    table.add_column("Score", justify="right")
    table.add_column("Note")
    table.add_column("Folder")
    table.add_column("Tags")
    table.add_column("Match", style="dim")
    for r in results:
        table.add_row(
            f"{r.similarity:.2f}",
            f"[cyan]{r.metadata.title}[/cyan]\n[dim]{r.note_id}[/dim]",
            r.metadata.folder or "",
            " ".join(f"#{t}" for t in r.metadata.tags),
            similarity_label(r.similarity),
        )
    console.print(table)


@click.group()
@click.version_option(__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("-c", "--config", type=click.Path(exists=True), help="Config file path")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str | None) -> None:
    """NoteLens — local semantic search for markdown notes."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Initialize ~/.notelens directory structure."""
    from notelens.config import NOTELENS_HOME

    notes_dir = NOTELENS_HOME / "notes"
    data_dir = NOTELENS_HOME / "data"
    notes_dir.mkdir(parents=True, exist_ok=True)
    data_dir.mkdir(parents=True, exist_ok=True)

    settings = _load(ctx)
    settings.store.persist_dir.mkdir(parents=True, exist_ok=True)

    console.print(f"[green]✓[/green] NoteLens initialized at {NOTELENS_HOME}")
    console.print(f"  notes:  {settings.notes.path}")
    console.print(f"  store:  {settings.store.persist_dir}")


@cli.command()
@click.option("--force", is_flag=True, help="Re-embed notes that are already indexed")
@click.option("--batch-size", default=None, type=int, help="Notes per batch")
@click.pass_context
def index(ctx: click.Context, force: bool, batch_size: int | None) -> None:
    """Embed notes into the vector store."""
    from notelens.notes import NoteParser

    settings = _load(ctx)
    parser = NoteParser(settings.notes)
    _, store, indexing = _create_services(settings)

    with console.status("Parsing notes..."):
        notes = parser.iter_notes()

    progress = Progress(
        TextColumn("[bold blue]Indexing"),
        BarColumn(),
        MofNCompleteColumn(),
        TextColumn("{task.description}"),
        console=console,
    )

    async def _run() -> None:
        task_id = progress.add_task("", total=None)

        def _on_progress(processed: int, total: int, current: str | None) -> None:
            progress.update(task_id, completed=processed, total=total, description=current or "")

        with progress:
            result = await indexing.index_all(
                notes,
                batch_size=batch_size,
                force_reindex=force,
                on_progress=_on_progress,
            )

        console.print(
            f"[green]✓[/green] Indexed {result.stored} of {result.total} notes"
            f" ({len(notes) - result.total} already up to date)"
        )
        if result.failed:
            console.print(f"[yellow]![/yellow] {len(result.failed)} notes failed:")
            for note_id in result.failed:
                console.print(f"  [yellow]{note_id}[/yellow]")
        stats = await store.get_stats()
        console.print(f"  Store: {stats.total_count} embeddings, {stats.dimensions} dimensions")

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Indexing interrupted; completed batches are kept.[/yellow]")
    except NoteLensError as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)


@cli.command()
@click.argument("query")
@click.option("--limit", default=None, type=int, help="Maximum number of results")
@click.option("--threshold", default=None, type=float, help="Minimum similarity (-1 to 1)")
@click.option("--tag", "tags", multiple=True, help="Only notes with this tag (repeatable)")
@click.option("--folder", "folders", multiple=True, help="Only notes in this folder (repeatable)")
@click.pass_context
def search(
    ctx: click.Context,
    query: str,
    limit: int | None,
    threshold: float | None,
    tags: tuple[str, ...],
    folders: tuple[str, ...],
) -> None:
    """Semantic search over indexed notes."""
    from notelens.vector.search import SemanticSearch

    settings = _load(ctx)
    embedding_service, store, _ = _create_services(settings)
    engine = SemanticSearch(embedding_service, store, settings.search)

    async def _run() -> list[SimilarNote]:
        return await engine.search(
            query, limit=limit, threshold=threshold, tags=tags, folders=folders
        )

    try:
        with console.status("Searching..."):
            results = asyncio.run(_run())
    except NoteLensError as exc:
        console.print(f"[red]✗[/red] Search failed: {exc}")
        sys.exit(1)

    _print_results(results)


@cli.command()
@click.argument("note_id")
@click.option("--limit", default=None, type=int, help="Maximum number of results")
@click.option("--threshold", default=None, type=float, help="Minimum similarity (-1 to 1)")
@click.pass_context
def related(ctx: click.Context, note_id: str, limit: int | None, threshold: float | None) -> None:
    """Show notes similar to an indexed note."""
    from notelens.vector.search import SemanticSearch

    settings = _load(ctx)
    embedding_service, store, _ = _create_services(settings)
    engine = SemanticSearch(embedding_service, store, settings.search)

    try:
        results = asyncio.run(engine.related_by_id(note_id, limit=limit, threshold=threshold))
    except NoteLensError as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)

    _print_results(results)


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show vector store statistics."""
    from notelens.vector.store import ChromaVectorStore

    settings = _load(ctx)
    store = ChromaVectorStore(settings.store)
    s = asyncio.run(store.get_stats())

    console.print("\n[bold]NoteLens Statistics[/bold]\n")
    console.print(f"[bold]Store:[/bold] {settings.store.persist_dir}")
    console.print(f"  Embeddings: {s.total_count}")
    console.print(f"  Dimensions: {s.dimensions}")
    console.print(f"  Estimated size: {s.estimated_storage_bytes / 1024:.1f} KB")
    if s.last_updated is not None:
        updated = datetime.fromtimestamp(s.last_updated).strftime("%Y-%m-%d %H:%M:%S")
        console.print(f"  Last updated: {updated}")
    console.print(f"[bold]Model:[/bold] {settings.embedding.model}")


@cli.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def clear(ctx: click.Context, yes: bool) -> None:
    """Drop every stored embedding."""
    from notelens.vector.store import ChromaVectorStore

    settings = _load(ctx)
    if not yes:
        click.confirm("Delete all stored embeddings?", abort=True)

    store = ChromaVectorStore(settings.store)
    asyncio.run(store.clear())
    console.print("[green]✓[/green] Vector store cleared")


@cli.command()
@click.pass_context
def watch(ctx: click.Context) -> None:
    """Watch the notes folder and re-index notes as they are saved."""
    from notelens.notes import AutoIndexHandler, NoteParser, NoteWatcher

    settings = _load(ctx)
    parser = NoteParser(settings.notes)
    embedding_service, _, indexing = _create_services(settings)
    handler = AutoIndexHandler(settings.watch, parser, indexing)
    watcher = NoteWatcher(settings.notes, on_change=handler.handle_change)

    console.print(f"[green]✓[/green] Watching {settings.notes.path}")
    console.print(f"  Debounce: {settings.watch.debounce_ms}ms")

    async def _run_watch() -> None:
        with console.status("Loading embedding model..."):
            await embedding_service.initialize()
        watcher.start()
        try:
            while True:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            pass
        finally:
            watcher.stop()

    try:
        asyncio.run(_run_watch())
    except KeyboardInterrupt:
        watcher.stop()
        console.print(
            f"\n[yellow]Watcher stopped.[/yellow] {handler.indexed_count} indexed,"
            f" {handler.removed_count} removed"
        )
    except NoteLensError as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
