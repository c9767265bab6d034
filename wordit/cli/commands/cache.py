"""Cache command for artifact cache management."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from wordit.config import get_settings
from wordit.exceptions import ConfigurationError
from wordit.storage.cache import CacheCoordinator
from wordit.utils.fs import format_size

cache_app = typer.Typer(help="Artifact cache management.")
console = Console()

CacheDirOption = Annotated[
    Path | None,
    typer.Option("--cache-dir", help="Artifact cache directory. Overrides the configured one."),
]


def _coordinator(cache_dir: Path | None) -> CacheCoordinator:
    try:
        config = get_settings().cache
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e
    if cache_dir is not None:
        config = config.model_copy(update={"directory": str(cache_dir)})
    return CacheCoordinator.from_config(config)


@cache_app.command("list")
def list_entries(cache_dir: CacheDirOption = None) -> None:
    """List cached artifacts, most recently used first."""
    coordinator = _coordinator(cache_dir)
    entries = asyncio.run(coordinator.entries())

    if not entries:
        console.print(f"[yellow]No cached artifacts in {coordinator.store.root}[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Document", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Content Hash")
    table.add_column("Modified")

    for entry in entries:
        table.add_row(
            entry.document_id,
            format_size(entry.size),
            entry.content_hash[:12] if entry.content_hash else "-",
            entry.modified.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(table)
    console.print(f"\n{len(entries)} artifact(s) in {coordinator.store.root}")


@cache_app.command("clear")
def clear(
    doc_id: Annotated[
        str | None,
        typer.Option("--doc-id", "-d", help="Only drop this document's artifact."),
    ] = None,
    cache_dir: CacheDirOption = None,
) -> None:
    """Delete one or all cached artifacts."""
    coordinator = _coordinator(cache_dir)

    async def run() -> int:
        if doc_id is not None:
            return int(await coordinator.invalidate(doc_id))
        return len(await coordinator.evict(0))

    removed = asyncio.run(run())
    if doc_id is not None and not removed:
        console.print(f"[yellow]No cached artifact for {doc_id}[/yellow]")
        return
    console.print(f"[green]Removed {removed} artifact(s)[/green]")


@cache_app.command("evict")
def evict(
    max_entries: Annotated[
        int,
        typer.Option("--max-entries", "-n", min=0, help="Number of most recently used artifacts to keep."),
    ],
    cache_dir: CacheDirOption = None,
) -> None:
    """Evict least recently used artifacts beyond a bound."""
    coordinator = _coordinator(cache_dir)
    evicted = asyncio.run(coordinator.evict(max_entries))
    for document_id in evicted:
        console.print(f"  [dim]evicted[/dim] {document_id}")
    console.print(f"[green]Evicted {len(evicted)} artifact(s)[/green]")
