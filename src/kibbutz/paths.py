"""Platform path helpers for kibbutz configuration and logs."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_config_dir, user_log_dir

_APP_NAME = "kibbutz"


def get_config_dir() -> Path:
    """Get the config directory (config.toml)."""
    override = os.environ.get("KIBBUTZ_CONFIG_DIR")
    if override:
        return Path(override)
    return Path(user_config_dir(_APP_NAME))


def get_log_dir() -> Path:
    """Get the directory for the relay log file."""
    override = os.environ.get("KIBBUTZ_LOG_DIR")
    if override:
        return Path(override)
    return Path(user_log_dir(_APP_NAME))


def get_config_path() -> Path:
    """Get the path to the main config file."""
    return get_config_dir() / "config.toml"


def get_log_path() -> Path:
    """Get the path to the relay log file."""
    return get_log_dir() / "kibbutz.log"


__all__ = ["get_config_dir", "get_config_path", "get_log_dir", "get_log_path"]
