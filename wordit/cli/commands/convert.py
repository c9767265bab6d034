"""Convert command for a single document."""

import asyncio
import time
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from wordit.config import WorditSettings, get_settings
from wordit.config.constants import DOCX_EXTENSION
from wordit.core.supervisor import DEFAULT_SOURCE_ID, GenerationSupervisor
from wordit.exceptions import ConfigurationError, GenerationTimeoutError, WorditError
from wordit.storage.cache import CacheCoordinator
from wordit.utils.fs import atomic_write, ensure_directory, format_size, safe_filename
from wordit.utils.logging import get_logger, setup_task_logging

console = Console()
log = get_logger(__name__)


def convert(
    input_file: Annotated[
        Path,
        typer.Argument(
            help="HTML file to convert.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ],
    doc_id: Annotated[
        str | None,
        typer.Option("--doc-id", "-d", help="Document identity used for caching. Defaults to the file name."),
    ] = None,
    source_id: Annotated[
        str,
        typer.Option("--source-id", "-s", help="Source namespace of the document's images."),
    ] = DEFAULT_SOURCE_ID,
    title: Annotated[
        str | None,
        typer.Option("--title", "-t", help="Document title. Defaults to the file name."),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Directory to copy the artifact to.",
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
        ),
    ] = None,
    cache_dir: Annotated[
        Path | None,
        typer.Option("--cache-dir", help="Artifact cache directory. Overrides the configured one."),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", min=0.001, help="Generation deadline in seconds."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Drop the cached artifact before generating."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output."),
    ] = False,
) -> None:
    """Convert an HTML document to a Word artifact.

    Examples:
        wordit convert page.html
        wordit convert page.html --doc-id 42 --title "Release notes" -o ./out
        wordit convert page.html --timeout 10 --force
    """
    try:
        settings = get_settings()
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    task_id, log_path = setup_task_logging(log_dir=settings.log_dir, prefix="convert", verbose=verbose)
    if verbose:
        log.info("Logs will be saved to", log_file=str(log_path))
    log.info("Task Configuration", task_id=task_id, config=settings.model_dump())

    document_id = doc_id or input_file.stem
    output_dir = output or input_file.parent
    markup = input_file.read_text(encoding="utf-8")

    if cache_dir is not None:
        settings = settings.model_copy(
            update={"cache": settings.cache.model_copy(update={"directory": str(cache_dir)})}
        )

    log.info("Starting conversion", input_file=str(input_file), document_id=document_id, source_id=source_id)
    start = time.perf_counter()
    try:
        data = asyncio.run(
            _generate(
                settings,
                document_id=document_id,
                markup=markup,
                source_id=source_id,
                title=title or input_file.stem,
                timeout=timeout,
                force=force,
            )
        )
    except GenerationTimeoutError as e:
        log.error("Task Failed", error=str(e))
        console.print(f"[bold red]Timed out:[/bold red] {escape(str(e))}")
        raise typer.Exit(2) from e
    except WorditError as e:
        log.error("Task Failed", error=str(e), exc_info=True)
        console.print(f"[bold red]Conversion failed:[/bold red] {escape(str(e))}")
        raise typer.Exit(1) from e

    ensure_directory(output_dir)
    output_path = output_dir / f"{safe_filename(document_id) or 'document'}{DOCX_EXTENSION}"
    with atomic_write(output_path, "wb") as f:
        f.write(data)

    duration = time.perf_counter() - start
    log.info("Task Completed Successfully", output_path=str(output_path), size=len(data))
    console.print("[bold green]Conversion completed![/bold green]")
    console.print(f"  Output: {output_path}")
    console.print(f"  Size: {format_size(len(data))}")
    console.print(f"  Time: {duration:.2f}s")


async def _generate(
    settings: WorditSettings,
    *,
    document_id: str,
    markup: str,
    source_id: str,
    title: str,
    timeout: float | None,
    force: bool,
) -> bytes:
    coordinator = CacheCoordinator.from_config(settings.cache)
    if force:
        await coordinator.invalidate(document_id)

    async with GenerationSupervisor(settings, coordinator=coordinator, timeout=timeout) as supervisor:
        return await supervisor.generate_artifact(document_id, markup, source_id, title)
