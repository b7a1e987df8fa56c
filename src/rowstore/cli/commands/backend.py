"""rowstore backend -- show which backend the current configuration selects."""

from __future__ import annotations

import click
from rich.markup import escape

from rowstore.cli.formatting import format_error, get_console


@click.command()
@click.pass_context
def backend(ctx: click.Context) -> None:
    """Show the resolved backend and where it stores tables."""
    from rowstore.cli import _get_config

    console = get_console()
    try:
        config = _get_config(ctx)
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None
    console.print(f"Backend: [cyan]{escape(config.describe())}[/cyan]", highlight=False)
