"""Typer-based CLI for reading coverage exports."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from . import __version__
from .cli_config import config_app
from .config_manager import load_config
from .errors import CorruptCoverageError, CoverageNotFoundError, EmptyCoverageError, LoadError
from .render import annotate_source, render_bar, summary_table, score_color
from .storage import CoverageStore

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="📊 cover-annotate: line coverage from binary coverage exports.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(config_app, name="config")

EXPORT_HELP = "Coverage export file. Defaults to the configured default_export."


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"cover-annotate v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log decoding details to stderr."),
):
    """cover-annotate: inspect line coverage recorded in a coverage export."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err_console, show_path=False)],
        )


def _open_store(export: Optional[Path], default_export: str) -> CoverageStore:
    path = export or Path(default_export)
    store = CoverageStore()
    try:
        store.load(path)
    except CoverageNotFoundError:
        console.print(f"[yellow]No coverage export at {path}.[/yellow] Run your tests with coverage first.")
        raise typer.Exit(code=0)
    except CorruptCoverageError as exc:
        console.print(f"[red]✗[/red] Corrupt coverage export: {exc}")
        raise typer.Exit(code=1)
    except LoadError as exc:
        console.print(f"[red]✗[/red] Could not read coverage export: {exc}")
        raise typer.Exit(code=1)
    return store


@app.command("summary")
def summary(export: Optional[Path] = typer.Argument(None, help=EXPORT_HELP)):
    """Show line coverage for every module in the export."""
    settings = load_config()
    store = _open_store(export, settings["default_export"])
    rows = store.summary()
    if not rows:
        console.print("No line coverage recorded.")
        raise typer.Exit(code=0)

    console.print(summary_table(rows, settings["low_threshold"], settings["high_threshold"]))
    missing = sorted(store.modules_without_data())
    if missing:
        console.print(f"[dim]{len(missing)} module(s) without line data: {', '.join(missing)}[/dim]")


@app.command("modules")
def modules(export: Optional[Path] = typer.Argument(None, help=EXPORT_HELP)):
    """List modules present in the export."""
    store = _open_store(export, load_config()["default_export"])
    names = store.modules()
    if not names:
        typer.echo("No modules in export.")
        raise typer.Exit(code=0)

    without_data = store.modules_without_data()
    for name in names:
        suffix = "  (no line data)" if name in without_data else ""
        typer.echo(f"{name}{suffix}")


@app.command("lines")
def lines(
    module: str = typer.Argument(..., help="Module name."),
    export: Optional[Path] = typer.Argument(None, help=EXPORT_HELP),
):
    """Print `line hits` pairs for a module in recorded order."""
    store = _open_store(export, load_config()["default_export"])
    if not store.has_module(module):
        console.print(f"[yellow]Module '{module}' is not in the export.[/yellow]")
        raise typer.Exit(code=0)

    hits = store.covered_lines(module)
    if not hits:
        console.print(f"[yellow]No coverage data for module '{module}'.[/yellow]")
        raise typer.Exit(code=0)
    for line, count in hits:
        typer.echo(f"{line} {count}")


@app.command("percent")
def percent(
    module: str = typer.Argument(..., help="Module name."),
    export: Optional[Path] = typer.Argument(None, help=EXPORT_HELP),
):
    """Print the line coverage percentage of a module."""
    store = _open_store(export, load_config()["default_export"])
    try:
        value = store.percentage(module)
    except EmptyCoverageError as exc:
        console.print(f"[yellow]{exc}.[/yellow]")
        raise typer.Exit(code=0)
    typer.echo(str(value))


@app.command("annotate")
def annotate(
    module: str = typer.Argument(..., help="Module name."),
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source file of the module."),
    export: Optional[Path] = typer.Argument(None, help=EXPORT_HELP),
):
    """Print a source file with hit/miss markers from the export."""
    settings = load_config()
    store = _open_store(export, settings["default_export"])
    try:
        value = store.percentage(module)
    except EmptyCoverageError as exc:
        console.print(f"[yellow]{exc}.[/yellow]")
        raise typer.Exit(code=0)

    low, high = settings["low_threshold"], settings["high_threshold"]
    source_lines = source.read_text(encoding="utf-8", errors="replace").splitlines()
    console.print(
        Panel.fit(
            render_bar(value, low, high),
            title=f"[bold]{module}[/bold]",
            border_style=score_color(value, low, high),
        )
    )
    console.print(
        annotate_source(
            source_lines,
            store.line_hits(module),
            settings["hit_marker"],
            settings["miss_marker"],
        ),
        end="",
    )


@app.command("dump")
def dump(export: Optional[Path] = typer.Argument(None, help=EXPORT_HELP)):
    """Print every decoded term of the export."""
    store = _open_store(export, load_config()["default_export"])
    for term in store.terms:
        typer.echo(str(term))
