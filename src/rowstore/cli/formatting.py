"""Rich formatting helpers for the rowstore CLI.

Provides functions that format store results for terminal display.
Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from rowstore.models.query import Row
    from rowstore.operations.maintenance import InitResult, MigrationResult


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def _cell(value: object) -> str:
    if isinstance(value, str):
        return escape(value)
    return escape(json.dumps(value, ensure_ascii=False))


def format_rows(rows: list[Row], console: Console) -> None:
    """Display rows as a table; columns are the union of keys in first-seen order."""
    if not rows:
        console.print("[dim]No rows.[/dim]")
        return

    columns: list[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    for column in columns:
        table.add_column(escape(column))
    for row in rows:
        table.add_row(*(_cell(row[c]) if c in row else "[dim]-[/dim]" for c in columns))

    console.print(table)
    console.print(f"[dim]{len(rows)} row(s)[/dim]")


def format_rows_json(rows: list[Row] | Row | None, console: Console) -> None:
    """Emit rows as pretty-printed JSON (no markup, no highlighting)."""
    console.print(json.dumps(rows, indent=2, ensure_ascii=False), markup=False, highlight=False, soft_wrap=True)


def format_init_result(result: InitResult, console: Console) -> None:
    for name in result.created:
        console.print(f"  [green]created[/green]  {escape(name)}")
    for name in result.existing:
        console.print(f"  [dim]exists[/dim]   {escape(name)}")
    console.print(f"Tables ready: {len(result.created) + len(result.existing)} "
                  f"(created: {len(result.created)}, existing: {len(result.existing)})")


def format_migration_result(result: MigrationResult, console: Console) -> None:
    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Table", style="cyan")
    table.add_column("Rows", justify="right", style="green")
    for name, count in result.row_counts.items():
        table.add_row(escape(name), str(count))
    console.print(table)
    console.print(
        f"Migrated {result.total_rows} row(s) from {escape(str(result.source_dir))} "
        f"(truncate={'yes' if result.truncated else 'no'})"
    )


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {escape(message)}", highlight=False)
