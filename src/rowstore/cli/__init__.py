"""rowstore CLI -- terminal interface for inspecting and maintaining table stores.

This module is NEVER imported from rowstore/__init__.py.
It is only loaded via the ``rowstore`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

try:
    import click
except ImportError:
    raise ImportError(
        "CLI dependencies not installed. Install with: pip install rowstore[cli]"
    ) from None

from rowstore.cli.formatting import format_error, get_console

if TYPE_CHECKING:
    from rowstore.models.config import StoreConfig
    from rowstore.store import RowStore

T = TypeVar("T")


@click.group()
@click.option(
    "--backend",
    default=None,
    help="Storage backend: json or sql (default: from DB_BACKEND / auto).",
)
@click.option(
    "--data-dir",
    default=None,
    envvar="ROWSTORE_DATA_DIR",
    help="Directory of table files for the json backend.",
)
@click.option(
    "--database-url",
    default=None,
    envvar="DATABASE_URL",
    help="Async SQLAlchemy URL for the sql backend.",
)
@click.option(
    "--table-prefix",
    default=None,
    help="Physical table prefix for the sql backend.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    backend: str | None,
    data_dir: str | None,
    database_url: str | None,
    table_prefix: str | None,
) -> None:
    """rowstore: schema-less tables over JSON files or SQL."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "DB_BACKEND": backend,
        "ROWSTORE_DATA_DIR": data_dir,
        "DATABASE_URL": database_url,
        "MYSQL_TABLE_PREFIX": table_prefix,
    }


def _get_config(ctx: click.Context) -> "StoreConfig":
    """Resolve the store configuration: environment overlaid with CLI options."""
    from rowstore.models.config import StoreConfig

    env = dict(os.environ)
    for key, value in ctx.obj["overrides"].items():
        if value is not None:
            env[key] = value
    return StoreConfig.from_env(env)


def _run_with_store(ctx: click.Context, action: Callable[["RowStore"], Awaitable[T]]) -> T:
    """Open the configured store, run *action* on it, and close it.

    Formats exceptions as CLI errors and exits with status 1.
    """
    from rowstore.store import RowStore

    console = get_console()

    async def runner() -> T:
        async with RowStore.from_config(_get_config(ctx)) as store:
            return await action(store)

    try:
        return asyncio.run(runner())
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None


# Register subcommands after cli group is defined
from rowstore.cli.commands.backend import backend  # noqa: E402
from rowstore.cli.commands.init import init  # noqa: E402
from rowstore.cli.commands.migrate import migrate  # noqa: E402
from rowstore.cli.commands.rows import rows  # noqa: E402

cli.add_command(backend)
cli.add_command(init)
cli.add_command(migrate)
cli.add_command(rows)
