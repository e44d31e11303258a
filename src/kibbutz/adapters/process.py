"""Subprocess adapter for launching detached helper processes."""

from __future__ import annotations

import os
import subprocess
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path


def _normalize_cwd(cwd: str | Path | None) -> str | None:
    if cwd is None:
        return None
    return str(cwd)


def _normalize_env(env: Mapping[str, str] | None) -> dict[str, str] | None:
    if env is None:
        return None
    return dict(env)


def spawn_detached(
    command: Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    windows_creationflags: int = 0,
) -> subprocess.Popen[bytes]:
    """Spawn a detached subprocess that outlives the caller, with stdio discarded."""
    if os.name == "nt":
        return subprocess.Popen(
            list(command),
            cwd=_normalize_cwd(cwd),
            env=_normalize_env(env),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            close_fds=True,
            creationflags=windows_creationflags,
        )
    return subprocess.Popen(
        list(command),
        cwd=_normalize_cwd(cwd),
        env=_normalize_env(env),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        close_fds=True,
        start_new_session=True,
    )


def reap_in_background(process: subprocess.Popen[bytes]) -> threading.Thread:
    """Wait on *process* from a daemon thread so it never lingers as a zombie."""
    reaper = threading.Thread(
        target=process.wait,
        name=f"kibbutz-reap-{process.pid}",
        daemon=True,
    )
    reaper.start()
    return reaper


__all__ = ["reap_in_background", "spawn_detached"]
