"""Configuration loader for kibbutz."""

from __future__ import annotations

import os
import tempfile
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomlkit
from pydantic import BaseModel, Field, ValidationError, field_validator

from kibbutz.paths import get_config_path
from kibbutz.relay.launcher import DEFAULT_EXTENSION_ID, DEFAULT_EXTENSION_PAGE
from kibbutz.relay.pairing import DEFAULT_PAIRING_TIMEOUT

if TYPE_CHECKING:
    from collections.abc import Mapping

LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Environment variable -> (section, key)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "KIBBUTZ_HOST": ("relay", "host"),
    "KIBBUTZ_PORT": ("relay", "port"),
    "KIBBUTZ_PAIRING_TIMEOUT": ("relay", "pairing_timeout_seconds"),
    "KIBBUTZ_CHROME_PATH": ("peer", "chrome_path"),
    "KIBBUTZ_LOG_LEVEL": ("logging", "level"),
}


class ConfigError(ValueError):
    """Raised when the config file cannot be parsed or validated."""


def atomic_write(path: Path, content: str) -> None:
    """Write file atomically to avoid partial/corrupt writes."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        Path(tmp_path).replace(path)
    except Exception:
        Path(tmp_path).unlink(missing_ok=True)
        raise


class RelayConfig(BaseModel):
    """Listener and pairing settings."""

    host: str = Field(default="127.0.0.1", description="Interface the channel server binds")
    port: int = Field(default=0, ge=0, le=65535, description="Listening port (0 = OS picks)")
    pairing_timeout_seconds: float = Field(
        default=DEFAULT_PAIRING_TIMEOUT,
        gt=0,
        description="Seconds to wait for the peer to connect after launching it",
    )
    max_message_bytes: int = Field(
        default=4 * 1024 * 1024,
        gt=0,
        description="Largest inbound data-channel frame accepted",
    )


class PeerConfig(BaseModel):
    """How the browser extension peer is launched."""

    extension_id: str = Field(default=DEFAULT_EXTENSION_ID)
    page: str = Field(default=DEFAULT_EXTENSION_PAGE, description="Pairing page in the extension")
    troubleshooting_page: str = Field(default="KIBBUTZ-MCP.html")
    chrome_path: str | None = Field(
        default=None,
        description="Chrome executable (None = discover from the platform install location)",
    )

    @field_validator("chrome_path", mode="before")
    @classmethod
    def blank_chrome_path_is_unset(cls, value: object) -> object:
        match value:
            case str() as path if not path.strip():
                return None
            case _:
                return value

    @property
    def troubleshooting_url(self) -> str:
        return f"chrome-extension://{self.extension_id}/{self.troubleshooting_page}"


class LoggingConfig(BaseModel):
    """Log output settings."""

    level: str = Field(default="WARNING")
    file: bool = Field(default=True, description="Also write logs to the kibbutz log file")

    @field_validator("level", mode="before")
    @classmethod
    def validate_level(cls, value: object) -> str:
        match value:
            case str() as level if level.strip().upper() in LOG_LEVELS:
                return level.strip().upper()
            case _:
                msg = f"Unknown log level: {value!r}"
                raise ValueError(msg)


class MCPConfig(BaseModel):
    """MCP server settings."""

    server_name: str = Field(default="kibbutz-mcp", description="Name advertised to MCP hosts")


class KibbutzConfig(BaseModel):
    """Root configuration model."""

    relay: RelayConfig = Field(default_factory=RelayConfig)
    peer: PeerConfig = Field(default_factory=PeerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    mcp: MCPConfig = Field(default_factory=MCPConfig)

    @classmethod
    def load(
        cls,
        config_path: Path | None = None,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> KibbutzConfig:
        """Load configuration from TOML, then apply ``KIBBUTZ_*`` environment overrides.

        Raises:
            ConfigError: If the file is not valid TOML or fails validation.
        """
        if config_path is None:
            config_path = get_config_path()

        data: dict[str, Any] = {}
        if config_path.exists():
            try:
                with open(config_path, "rb") as f:
                    data = tomllib.load(f)
            except tomllib.TOMLDecodeError as exc:
                msg = f"Invalid TOML in {config_path}: {exc}"
                raise ConfigError(msg) from exc

        _apply_env_overrides(data, os.environ if environ is None else environ)

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            msg = f"Invalid configuration in {config_path}: {exc}"
            raise ConfigError(msg) from exc

    def save(self, path: Path) -> None:
        """Serialize current config to TOML file.

        Args:
            path: Path to write config file (created if missing)
        """
        doc = tomlkit.document()
        for section, model in (
            ("relay", self.relay),
            ("peer", self.peer),
            ("logging", self.logging),
            ("mcp", self.mcp),
        ):
            table = tomlkit.table()
            for key, value in model.model_dump().items():
                if value is not None:
                    table[key] = value
            doc[section] = table

        atomic_write(path, tomlkit.dumps(doc))


def _apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> None:
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or not raw.strip():
            continue
        table = data.setdefault(section, {})
        if isinstance(table, dict):
            table[key] = raw.strip()


__all__ = [
    "ConfigError",
    "KibbutzConfig",
    "LoggingConfig",
    "MCPConfig",
    "PeerConfig",
    "RelayConfig",
    "atomic_write",
]
