"""rowstore migrate -- copy JSON table files into the SQL backend."""

from __future__ import annotations

import click

from rowstore.cli.formatting import format_migration_result, get_console


@click.command()
@click.argument("tables", nargs=-1)
@click.option(
    "--source",
    "-s",
    default="data",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Directory holding table-<name>.json files.",
)
@click.option(
    "--truncate/--no-truncate",
    default=True,
    show_default=True,
    help="Delete existing rows in each target table first.",
)
@click.option("--batch-size", default=200, show_default=True, type=click.IntRange(min=1), help="Rows per INSERT.")
@click.pass_context
def migrate(ctx: click.Context, tables: tuple[str, ...], source: str, truncate: bool, batch_size: int) -> None:
    """Migrate TABLES (default: every table file in --source) to SQL.

    All tables are loaded in one transaction; on any error nothing is
    written.
    """
    from rowstore.cli import _run_with_store
    from rowstore.operations.maintenance import migrate_json_to_sql
    from rowstore.storage.sql import SqlTableRepository

    async def action(store):  # type: ignore[no-untyped-def]
        repository = store.repository
        if not isinstance(repository, SqlTableRepository):
            raise click.UsageError("migrate requires the sql backend (set DB_BACKEND=sql and DATABASE_URL)")
        return await migrate_json_to_sql(
            source, repository, list(tables) or None, truncate=truncate, batch_size=batch_size
        )

    result = _run_with_store(ctx, action)
    format_migration_result(result, get_console())
