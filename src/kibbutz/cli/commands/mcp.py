"""MCP server command."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError

from kibbutz.config import LOG_LEVELS, ConfigError, KibbutzConfig


def apply_overrides(
    config: KibbutzConfig,
    *,
    host: str | None = None,
    port: int | None = None,
    pairing_timeout: float | None = None,
    chrome_path: str | None = None,
    log_level: str | None = None,
) -> KibbutzConfig:
    """Return *config* with command-line values layered on top."""
    relay: dict[str, Any] = {}
    if host is not None:
        relay["host"] = host
    if port is not None:
        relay["port"] = port
    if pairing_timeout is not None:
        relay["pairing_timeout_seconds"] = pairing_timeout

    data = config.model_dump()
    data["relay"].update(relay)
    if chrome_path is not None:
        data["peer"]["chrome_path"] = chrome_path
    if log_level is not None:
        data["logging"]["level"] = log_level
    return KibbutzConfig.model_validate(data)


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file to read instead of the default location",
)
@click.option("--host", default=None, help="Interface the extension channel server binds")
@click.option(
    "--port",
    type=click.IntRange(0, 65535),
    default=None,
    help="Port for the extension channel server (0 lets the OS pick)",
)
@click.option(
    "--pairing-timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds to wait for the extension after opening it",
)
@click.option("--chrome-path", default=None, help="Chrome executable used to open the extension")
@click.option(
    "--log-level",
    type=click.Choice(sorted(LOG_LEVELS), case_sensitive=False),
    default=None,
    help="Log level for stderr and the log file",
)
def mcp(
    config_path: Path | None,
    host: str | None,
    port: int | None,
    pairing_timeout: float | None,
    chrome_path: str | None,
    log_level: str | None,
) -> None:
    """Run the MCP server (STDIO transport).

    This command is typically launched by an MCP host such as an AI desktop
    app. Tools are relayed to the kibbutz Chrome extension, which is opened
    automatically the first time a tool needs it.
    """
    try:
        config = apply_overrides(
            KibbutzConfig.load(config_path),
            host=host,
            port=port,
            pairing_timeout=pairing_timeout,
            chrome_path=chrome_path,
            log_level=log_level,
        )
    except (ConfigError, ValidationError) as exc:
        raise click.ClickException(str(exc)) from exc

    from kibbutz.mcp.server import main as mcp_main

    mcp_main(config)


__all__ = ["apply_overrides", "mcp"]
