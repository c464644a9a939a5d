"""CLI interface for mdqa.

Typer-based command-line interface with Rich output formatting.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from mdqa import __version__, pipeline
from mdqa.chunk import MarkdownChunker
from mdqa.config import CONFIG_FILE, default_config, load_config, save_config
from mdqa.exceptions import MdqaError

if TYPE_CHECKING:
    from mdqa.config import MdqaConfig
    from mdqa.types import Answer, ScoredChunk

__all__ = ["app"]

app = typer.Typer(
    name="mdqa",
    help="Ask questions about a markdown document, answered from its own text.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()

_PREVIEW_CHARS = 80

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help=f"Config file (default: ./{CONFIG_FILE} if present)"),
]
TopKOption = Annotated[
    int | None,
    typer.Option("--top-k", "-k", help="Number of passages to retrieve"),
]


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show log output"),
    ] = False,
) -> None:
    """mdqa: question answering over a single markdown document."""
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
            force=True,
        )


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]{message}[/red]")
    return typer.Exit(code=1)


def _resolve_config(path: Path | None) -> MdqaConfig:
    """Load ``path``, else ``./mdqa.toml`` when present, else defaults."""
    if path is None:
        candidate = Path(CONFIG_FILE)
        if not candidate.exists():
            return default_config()
        path = candidate
    try:
        return load_config(path)
    except MdqaError as e:
        raise _fail(str(e)) from e


def _read_document(path: Path) -> str:
    if not path.is_file():
        raise _fail(f"File not found: {path}")
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise _fail(f"Cannot read {path}: {e}") from e


def _print_progress(done: int, total: int) -> None:
    console.print(f"[dim]Embedded {done}/{total} chunks[/dim]")


def _format_pill(result: ScoredChunk) -> str:
    return f"{result.chunk.heading_path} ({result.similarity * 100:.1f}%)"


@app.command()
def version() -> None:
    """Show mdqa version."""
    console.print(f"mdqa {__version__}")


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing config file"),
    ] = False,
) -> None:
    """Write a default mdqa.toml in the current directory."""
    path = Path(CONFIG_FILE)
    if path.exists() and not force:
        console.print(
            f"[yellow]{CONFIG_FILE} already exists.[/yellow] Use [bold]--force[/bold] to overwrite."
        )
        raise typer.Exit(code=1)

    try:
        save_config(default_config(), path)
    except OSError as e:
        raise _fail(f"Failed to write {path}: {e}") from e

    console.print(f"[green]Wrote default config[/green] to {path}")


@app.command()
def chunks(
    path: Annotated[Path, typer.Argument(help="Markdown file to chunk")],
    config_path: ConfigOption = None,
) -> None:
    """Show how a document is split into chunks."""
    config = _resolve_config(config_path)
    text = _read_document(path)

    try:
        result = MarkdownChunker().chunk(text, config)
    except MdqaError as e:
        raise _fail(str(e)) from e

    if not result:
        console.print("[yellow]No content to index.[/yellow]")
        return

    table = Table(title=f"{path.name}: {len(result)} chunks")
    table.add_column("id", style="dim")
    table.add_column("heading")
    table.add_column("words", justify="right")
    table.add_column("preview")
    for chunk in result:
        preview = chunk.text.replace("\n", " ")
        if len(preview) > _PREVIEW_CHARS:
            preview = preview[: _PREVIEW_CHARS - 1] + "…"
        table.add_row(
            str(chunk.id),
            escape(chunk.heading_path),
            str(len(chunk.text.split())),
            escape(preview),
        )
    console.print(table)


async def _run_search(
    config: MdqaConfig, text: str, name: str, query: str, top_k: int | None
) -> list[ScoredChunk]:
    pipe = pipeline.build_pipeline(config, with_generator=False)
    await pipe.index_document(text, name=name, on_progress=_print_progress)
    return await pipe.search(query, top_k)


@app.command()
def search(
    path: Annotated[Path, typer.Argument(help="Markdown file to search")],
    query: Annotated[str, typer.Argument(help="Search query")],
    top_k: TopKOption = None,
    config_path: ConfigOption = None,
) -> None:
    """Rank the document's passages by similarity to a query."""
    config = _resolve_config(config_path)
    text = _read_document(path)

    try:
        results = asyncio.run(_run_search(config, text, path.name, query, top_k))
    except MdqaError as e:
        raise _fail(str(e)) from e

    for rank, result in enumerate(results, start=1):
        console.print(f"\n[bold]{rank}. {escape(_format_pill(result))}[/bold]")
        console.print(escape(result.chunk.text))


async def _run_ask(
    config: MdqaConfig,
    text: str,
    name: str,
    question: str,
    top_k: int | None,
    mode: str,
) -> Answer:
    pipe = pipeline.build_pipeline(config, with_generator=mode == "generative")
    await pipe.index_document(text, name=name, on_progress=_print_progress)

    def _on_fragment(fragment: str) -> None:
        console.print(fragment, end="", markup=False, highlight=False)

    return await pipe.ask(question, mode=mode, top_k=top_k, on_fragment=_on_fragment)


@app.command()
def ask(
    path: Annotated[Path, typer.Argument(help="Markdown file to ask about")],
    question: Annotated[str, typer.Argument(help="Question to answer")],
    top_k: TopKOption = None,
    generate: Annotated[
        bool | None,
        typer.Option(
            "--generate/--extractive",
            help="Answer with a generative model or from the document's sentences",
        ),
    ] = None,
    config_path: ConfigOption = None,
) -> None:
    """Answer a question from the document."""
    config = _resolve_config(config_path)
    text = _read_document(path)
    if generate is None:
        mode = config.answer.mode
    else:
        mode = "generative" if generate else "extractive"

    try:
        answer = asyncio.run(_run_ask(config, text, path.name, question, top_k, mode))
    except (MdqaError, ValueError) as e:
        raise _fail(str(e)) from e

    if answer.mode == "generative":
        # Already streamed fragment by fragment
        console.print()
    else:
        if answer.fell_back:
            console.print(
                f"\n[yellow]Generation unavailable ({escape(answer.fallback_reason)}); "
                "showing an extractive answer.[/yellow]"
            )
        console.print(f"\n{escape(answer.text)}")

    if answer.sources:
        pills = "  ".join(f"[cyan]{escape(_format_pill(s))}[/cyan]" for s in answer.sources)
        console.print(f"\n[dim]Sources:[/dim] {pills}")
