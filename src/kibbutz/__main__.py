"""CLI entry point for kibbutz."""

from __future__ import annotations

import click

from kibbutz.cli.commands.config import config
from kibbutz.cli.commands.mcp import mcp
from kibbutz.version import get_kibbutz_version


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """Relay MCP tool calls to the kibbutz Chrome extension."""
    if version:
        click.echo(f"kibbutz {get_kibbutz_version()}")
        ctx.exit(0)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(mcp)
cli.add_command(config)


@cli.command("version")
def version_cmd() -> None:
    """Show version and exit."""
    click.echo(f"kibbutz {get_kibbutz_version()}")


if __name__ == "__main__":
    cli()
