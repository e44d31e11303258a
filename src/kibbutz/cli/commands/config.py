"""Config file commands."""

from __future__ import annotations

import click

from kibbutz.config import ConfigError, KibbutzConfig
from kibbutz.paths import get_config_path


@click.group()
def config() -> None:
    """Inspect or create the kibbutz config file."""


@config.command("path")
def config_path() -> None:
    """Print the location of the config file."""
    click.echo(str(get_config_path()))


@config.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file with defaults")
def config_init(force: bool) -> None:
    """Write a config file populated with the default settings."""
    path = get_config_path()
    if path.exists() and not force:
        raise click.ClickException(f"Config already exists at {path} (use --force to overwrite)")
    KibbutzConfig().save(path)
    click.secho(f"Wrote {path}", fg="green")


@config.command("show")
def config_show() -> None:
    """Print the effective configuration, including environment overrides."""
    try:
        loaded = KibbutzConfig.load()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(loaded.model_dump_json(indent=2))


__all__ = ["config"]
