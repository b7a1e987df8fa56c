"""rowstore rows -- query a table."""

from __future__ import annotations

import json

import click

from rowstore.cli.formatting import format_rows, format_rows_json, get_console
from rowstore.models.query import Filter


def parse_where(expression: str) -> Filter:
    """Parse ``COLUMN:OP:VALUE``.  VALUE is read as JSON when it parses, else as text."""
    parts = expression.split(":", 2)
    if len(parts) != 3 or not parts[0].strip() or not parts[1].strip():
        raise click.BadParameter(f"expected COLUMN:OP:VALUE, got '{expression}'", param_hint="--where")
    column, op, raw = parts
    try:
        value = json.loads(raw)
    except ValueError:
        value = raw
    return Filter(column=column, op=op, value=value)


@click.command()
@click.argument("table")
@click.option("--where", "-w", "where", multiple=True, help="Filter COLUMN:OP:VALUE (op: eq, neq, lt). Repeatable.")
@click.option("--order", "order_column", default=None, help="Column to order by.")
@click.option("--desc", is_flag=True, help="Order descending.")
@click.option("--columns", "-c", default="*", show_default=True, help="Comma-separated projection.")
@click.option("--single", is_flag=True, help="Return only the first matching row.")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")
@click.pass_context
def rows(
    ctx: click.Context,
    table: str,
    where: tuple[str, ...],
    order_column: str | None,
    desc: bool,
    columns: str,
    single: bool,
    as_json: bool,
) -> None:
    """List rows of TABLE."""
    from rowstore.cli import _run_with_store

    filters = [parse_where(expression) for expression in where]
    order_by = {"column": order_column, "ascending": not desc} if order_column else None

    result = _run_with_store(
        ctx,
        lambda store: store.list_rows(table, filters=filters, order_by=order_by, columns=columns, single=single),
    )

    console = get_console()
    if as_json:
        format_rows_json(result, console)
    elif single:
        format_rows([result] if result is not None else [], console)
    else:
        format_rows(result, console)
