"""rowstore init -- make sure tables exist on the active backend."""

from __future__ import annotations

import click

from rowstore.cli.formatting import format_init_result, get_console


@click.command()
@click.argument("tables", nargs=-1, required=True)
@click.pass_context
def init(ctx: click.Context, tables: tuple[str, ...]) -> None:
    """Create TABLES if they do not exist yet.

    On the json backend an empty table file is written (a malformed file is
    replaced); on the sql backend CREATE TABLE IF NOT EXISTS is issued.
    """
    from rowstore.cli import _run_with_store
    from rowstore.operations.maintenance import init_tables

    result = _run_with_store(ctx, lambda store: init_tables(store.repository, tables))
    format_init_result(result, get_console())
