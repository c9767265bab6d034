"""Main CLI application using Typer."""

from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console

from wordit import __version__
from wordit.cli.commands.cache import cache_app
from wordit.cli.commands.convert import convert

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="wordit",
    help="Rich document markup to Word (.docx) conversion with artifact caching.",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)

console = Console()

app.command(name="convert", help="Convert an HTML document to a Word artifact.")(convert)
app.add_typer(cache_app, name="cache")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]WordIt[/bold blue] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """WordIt - rich document markup to Word conversion.

    Sanitizes HTML with embedded cards, resolves its images concurrently,
    assembles a .docx package and caches it per document identity.
    """
    pass


if __name__ == "__main__":
    app()
