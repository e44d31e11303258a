"""Unit tests for the kibbutz command line."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from kibbutz.__main__ import cli
from kibbutz.cli.commands.mcp import apply_overrides
from kibbutz.config import KibbutzConfig

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.unit


@pytest.fixture
def config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("KIBBUTZ_CONFIG_DIR", str(tmp_path))
    return tmp_path


def test_version_flag_and_command_agree() -> None:
    runner = CliRunner()

    flag = runner.invoke(cli, ["--version"])
    command = runner.invoke(cli, ["version"])

    assert flag.exit_code == 0
    assert flag.output.startswith("kibbutz ")
    assert command.output == flag.output


def test_config_path_prints_location(config_dir: Path) -> None:
    result = CliRunner().invoke(cli, ["config", "path"])

    assert result.exit_code == 0
    assert result.output.strip() == str(config_dir / "config.toml")


def test_config_init_refuses_to_overwrite_without_force(config_dir: Path) -> None:
    runner = CliRunner()

    first = runner.invoke(cli, ["config", "init"])
    second = runner.invoke(cli, ["config", "init"])
    forced = runner.invoke(cli, ["config", "init", "--force"])

    assert first.exit_code == 0
    assert (config_dir / "config.toml").exists()
    assert second.exit_code == 1
    assert "already exists" in second.output
    assert forced.exit_code == 0


def test_config_show_reports_effective_settings(
    config_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    (config_dir / "config.toml").write_text("[relay]\nport = 7000\n", encoding="utf-8")
    monkeypatch.setenv("KIBBUTZ_LOG_LEVEL", "error")

    result = CliRunner().invoke(cli, ["config", "show"])

    assert result.exit_code == 0
    shown = json.loads(result.output)
    assert shown["relay"]["port"] == 7000
    assert shown["logging"]["level"] == "ERROR"


@pytest.mark.usefixtures("config_dir")
def test_mcp_command_passes_overridden_config() -> None:
    with patch("kibbutz.mcp.server.main") as server_main:
        result = CliRunner().invoke(
            cli,
            [
                "mcp",
                "--port",
                "9100",
                "--pairing-timeout",
                "3.5",
                "--chrome-path",
                "/usr/bin/chromium",
                "--log-level",
                "debug",
            ],
        )

    assert result.exit_code == 0, result.output
    (config,), _ = server_main.call_args
    assert config.relay.port == 9100
    assert config.relay.pairing_timeout_seconds == 3.5
    assert config.peer.chrome_path == "/usr/bin/chromium"
    assert config.logging.level == "DEBUG"


def test_mcp_command_rejects_broken_config(config_dir: Path) -> None:
    (config_dir / "config.toml").write_text("not toml [", encoding="utf-8")

    with patch("kibbutz.mcp.server.main") as server_main:
        result = CliRunner().invoke(cli, ["mcp"])

    assert result.exit_code == 1
    assert "Invalid TOML" in result.output
    server_main.assert_not_called()


def test_mcp_command_rejects_zero_timeout() -> None:
    result = CliRunner().invoke(cli, ["mcp", "--pairing-timeout", "0"])

    assert result.exit_code == 2


def test_apply_overrides_leaves_unspecified_values() -> None:
    base = KibbutzConfig.model_validate({"relay": {"port": 1234, "host": "0.0.0.0"}})

    merged = apply_overrides(base, pairing_timeout=9.0)

    assert merged.relay.port == 1234
    assert merged.relay.host == "0.0.0.0"
    assert merged.relay.pairing_timeout_seconds == 9.0
    assert base.relay.pairing_timeout_seconds == 2.0
