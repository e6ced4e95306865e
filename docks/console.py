"""
Console output: logging setup, spinners, tables and error rendering.

Everything shares one rich Console (on stderr for status/log lines) so
spinners and log records do not garble each other. Results go to stdout.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterable, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from docks.errors import DocksError

console = Console(stderr=True)
out = Console()


def configure_logging(verbose: bool = False) -> None:
    """Route stdlib logging through rich (DEBUG with --verbose, else INFO)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose)],
        force=True,
    )


@contextmanager
def status(message: str) -> Iterator[None]:
    """Show a spinner with *message* while the block runs."""
    with console.status(message, spinner="line"):
        yield


def render_table(
    columns: list[str], rows: Iterable[Iterable[Any]], title: str | None = None
) -> Table:
    """Build a table; ``None`` cells are rendered as ``-``."""
    table = Table(title=title, show_header=True, header_style="bold")
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*("-" if cell is None else str(cell) for cell in row))
    return table


def success(message: str) -> None:
    out.print(f"[green]✓[/green] {message}")


def render_error(error: DocksError) -> None:
    """Print *error* as ``✘ message``, red for errors, yellow for warnings."""
    colour = "yellow" if error.level == "warning" else "red"
    console.print(f"[{colour}]✘[/{colour}] {error}", highlight=False)
