"""`cova config` commands for report settings."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from . import config
from .config_manager import coerce_value, load_config, save_config

console = Console()

config_app = typer.Typer(
    help="⚙️  Configuration: export path, thresholds and markers.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@config_app.command("show")
def show_config():
    """Show the effective report configuration."""
    settings = load_config()
    table = Table(title=f"Settings ({config.CONFIG_FILE})", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in settings.items():
        table.add_row(key, str(value))
    console.print(table)


@config_app.command("set")
def set_config(
    key: str = typer.Argument(..., help="Setting name, e.g. default_export or low_threshold."),
    value: str = typer.Argument(..., help="New value."),
):
    """Persist one report setting to config.toml."""
    if key not in config.DEFAULT_REPORT_CONFIG:
        known = ", ".join(sorted(config.DEFAULT_REPORT_CONFIG))
        console.print(f"[red]✗[/red] Unknown setting '{key}'. Known settings: {known}")
        raise typer.Exit(code=1)
    try:
        coerced = coerce_value(key, value)
    except ValueError:
        console.print(f"[red]✗[/red] '{value}' is not a valid value for {key}")
        raise typer.Exit(code=1)

    save_config(**{key: coerced})
    console.print(f"[green]✓[/green] {key} = {coerced}")
