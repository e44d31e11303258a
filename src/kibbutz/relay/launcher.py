"""Peer launchers: start the browser extension page that pairs with the relay."""

from __future__ import annotations

import logging
import os
import platform
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urlencode

from kibbutz.adapters.process import reap_in_background, spawn_detached
from kibbutz.relay.errors import PeerLaunchError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION_ID = "bpfjmggaaiigpfahhmpmacfhlemnhhip"
DEFAULT_EXTENSION_PAGE = "kibbutz-mcp.html"

_LINUX_CHROME = "/opt/google/chrome/chrome"
_MACOS_CHROME = "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
_WINDOWS_CHROME_SUFFIX = Path("Google") / "Chrome" / "Application" / "chrome.exe"


class PeerLauncher(Protocol):
    """Starts the peer so that it connects back to the relay.

    Launching is fire-and-forget: success is only observed through the
    resulting control/data connections.
    """

    def launch(self, port: int, token: str) -> None: ...


def _windows_search_roots(environ: Mapping[str, str]) -> list[Path]:
    roots = [
        environ.get("LOCALAPPDATA"),
        environ.get("PROGRAMFILES"),
        environ.get("PROGRAMFILES(X86)"),
    ]
    home_drive = environ.get("HOMEDRIVE")
    if home_drive:
        roots.append(os.path.join(home_drive, "Program Files"))
        roots.append(os.path.join(home_drive, "Program Files (x86)"))
    return [Path(root) for root in roots if root]


def find_chrome_executable(
    system: str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    exists: Callable[[Path], bool] = Path.exists,
) -> str:
    """Return the Google Chrome executable path for the current platform.

    Linux and macOS use the vendor install location; Windows probes the usual
    per-user and machine-wide install roots.

    Raises:
        PeerLaunchError: If no executable is known for the platform.
    """
    system = system or platform.system()
    env = os.environ if environ is None else environ

    if system == "Linux":
        return _LINUX_CHROME
    if system == "Darwin":
        return _MACOS_CHROME
    if system == "Windows":
        for root in _windows_search_roots(env):
            candidate = root / _WINDOWS_CHROME_SUFFIX
            if exists(candidate):
                return str(candidate)

    raise PeerLaunchError(
        code="CHROME_NOT_FOUND",
        message=f"Chrome executable not found for platform: {system}",
        hint="Install Google Chrome or set peer.chrome_path in the kibbutz config.",
    )


def build_extension_url(extension_id: str, page: str, port: int, token: str) -> str:
    """Build the extension page URL carrying the relay port and pairing token."""
    query = urlencode({"wsPort": str(port), "token": token})
    return f"chrome-extension://{extension_id}/{page}?{query}"


class ChromeExtensionLauncher:
    """Opens the extension page in Chrome, detached from the relay process."""

    def __init__(
        self,
        *,
        extension_id: str = DEFAULT_EXTENSION_ID,
        page: str = DEFAULT_EXTENSION_PAGE,
        chrome_path: str | None = None,
        spawn: Callable[[Sequence[str]], object] | None = None,
    ) -> None:
        self._extension_id = extension_id
        self._page = page
        self._chrome_path = chrome_path
        self._spawn = spawn or _spawn_browser

    def executable(self) -> str:
        return self._chrome_path or find_chrome_executable()

    def launch(self, port: int, token: str) -> None:
        """Spawn Chrome on the pairing URL.

        Raises:
            PeerLaunchError: If Chrome cannot be located or started.
        """
        executable = self.executable()
        url = build_extension_url(self._extension_id, self._page, port, token)
        try:
            self._spawn([executable, url])
        except OSError as exc:
            raise PeerLaunchError(
                code="LAUNCH_FAILED",
                message=f"Failed to start {executable}: {exc}",
                hint="Check that the Chrome path is correct and executable.",
            ) from exc
        logger.info("Launched peer via %s on port %d", executable, port)


def _spawn_browser(command: Sequence[str]) -> subprocess.Popen[bytes]:
    creationflags = 0
    if os.name == "nt":
        creationflags |= getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
        creationflags |= getattr(subprocess, "CREATE_NO_WINDOW", 0)
    process = spawn_detached(command, windows_creationflags=creationflags)
    reap_in_background(process)
    return process


__all__ = [
    "DEFAULT_EXTENSION_ID",
    "DEFAULT_EXTENSION_PAGE",
    "ChromeExtensionLauncher",
    "PeerLauncher",
    "build_extension_url",
    "find_chrome_executable",
]
