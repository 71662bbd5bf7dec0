"""Rich renderables for coverage summaries and annotated source."""

from __future__ import annotations

from typing import Dict, Iterable, List

from rich.table import Table
from rich.text import Text

from .models import ModuleSummary


def score_color(percentage: float, low: int = 60, high: int = 80) -> str:
    if percentage >= high:
        return "green"
    elif percentage >= low:
        return "yellow"
    return "red"


def render_bar(percentage: float, low: int = 60, high: int = 80) -> str:
    """Render a simple text progress bar."""
    filled = int(percentage / 10)
    empty = 10 - filled
    bar = "█" * filled + "░" * empty
    color = score_color(percentage, low, high)
    return f"[{color}]{bar}[/{color}] {percentage:.0f}%"


def summary_table(rows: Iterable[ModuleSummary], low: int = 60, high: int = 80) -> Table:
    table = Table(title="Line Coverage", show_header=True, show_lines=False)
    table.add_column("Module", style="cyan", min_width=18)
    table.add_column("Lines", justify="right")
    table.add_column("Coverage", width=24)

    for row in rows:
        table.add_row(row.module, f"{row.covered}/{row.total}", render_bar(row.percentage, low, high))
    return table


def annotate_source(
    source_lines: List[str],
    line_hits: Dict[int, int],
    hit_marker: str = "+",
    miss_marker: str = "-",
) -> Text:
    """Prefix every source line with a hit/miss marker and its hit count.

    Lines without coverage information get a blank gutter.
    """
    width = max((len(str(h)) for h in line_hits.values()), default=1)
    text = Text()
    for number, line in enumerate(source_lines, start=1):
        hits = line_hits.get(number)
        if hits is None:
            gutter = " " * (width + 2)
            style = "dim"
        elif hits > 0:
            gutter = f"{hit_marker} {hits:>{width}}"
            style = "green"
        else:
            gutter = f"{miss_marker} {0:>{width}}"
            style = "red"
        text.append(f"{gutter} {number:>4} ", style=style)
        text.append(line.rstrip("\n") + "\n")
    return text
