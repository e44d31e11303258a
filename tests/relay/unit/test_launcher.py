"""Unit tests for Chrome discovery and the extension launcher."""

from __future__ import annotations

import threading
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

import pytest

from kibbutz.relay.errors import PeerLaunchError
from kibbutz.relay.launcher import (
    DEFAULT_EXTENSION_ID,
    DEFAULT_EXTENSION_PAGE,
    ChromeExtensionLauncher,
    build_extension_url,
    find_chrome_executable,
)

pytestmark = pytest.mark.unit


class TestFindChromeExecutable:
    def test_linux_uses_vendor_location(self) -> None:
        assert find_chrome_executable("Linux") == "/opt/google/chrome/chrome"

    def test_macos_uses_application_bundle(self) -> None:
        assert (
            find_chrome_executable("Darwin")
            == "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
        )

    def test_windows_probes_install_roots_in_order(self) -> None:
        environ = {
            "LOCALAPPDATA": "C:/Users/me/AppData/Local",
            "PROGRAMFILES": "C:/Program Files",
        }
        present = Path("C:/Program Files") / "Google" / "Chrome" / "Application" / "chrome.exe"
        probed: list[Path] = []

        def exists(path: Path) -> bool:
            probed.append(path)
            return path == present

        found = find_chrome_executable("Windows", environ=environ, exists=exists)

        assert found == str(present)
        assert probed == [
            Path("C:/Users/me/AppData/Local") / "Google" / "Chrome" / "Application" / "chrome.exe",
            present,
        ]

    def test_windows_without_install_raises(self) -> None:
        with pytest.raises(PeerLaunchError) as exc_info:
            find_chrome_executable(
                "Windows",
                environ={"PROGRAMFILES": "C:/Program Files"},
                exists=lambda path: False,
            )

        assert exc_info.value.code == "CHROME_NOT_FOUND"

    def test_unknown_platform_raises(self) -> None:
        with pytest.raises(PeerLaunchError, match="FreeBSD"):
            find_chrome_executable("FreeBSD")


def test_extension_url_carries_port_and_token() -> None:
    url = build_extension_url(DEFAULT_EXTENSION_ID, DEFAULT_EXTENSION_PAGE, 51234, "abc123")
    parts = urlsplit(url)

    assert parts.scheme == "chrome-extension"
    assert parts.netloc == DEFAULT_EXTENSION_ID
    assert parts.path == f"/{DEFAULT_EXTENSION_PAGE}"
    assert parse_qs(parts.query) == {"wsPort": ["51234"], "token": ["abc123"]}


class TestChromeExtensionLauncher:
    def test_launch_spawns_chrome_with_pairing_url(self) -> None:
        spawned: list[list[str]] = []
        launcher = ChromeExtensionLauncher(
            extension_id="ext",
            page="pair.html",
            chrome_path="/usr/bin/chrome",
            spawn=lambda command: spawned.append(list(command)),
        )

        launcher.launch(8080, "secret")

        assert spawned == [
            ["/usr/bin/chrome", "chrome-extension://ext/pair.html?wsPort=8080&token=secret"]
        ]

    def test_spawn_failure_becomes_launch_error(self) -> None:
        def spawn(command: object) -> None:
            raise FileNotFoundError("no such file")

        launcher = ChromeExtensionLauncher(chrome_path="/missing/chrome", spawn=spawn)

        with pytest.raises(PeerLaunchError) as exc_info:
            launcher.launch(1, "t")

        assert exc_info.value.code == "LAUNCH_FAILED"
        assert "/missing/chrome" in str(exc_info.value)

    def test_configured_path_wins_over_discovery(self) -> None:
        launcher = ChromeExtensionLauncher(chrome_path="/custom/chrome")

        assert launcher.executable() == "/custom/chrome"

    def test_default_spawn_reaps_the_browser_process(
        self,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        exited = threading.Event()
        spawned: list[list[str]] = []

        class FinishedProcess:
            pid = 4242

            def wait(self) -> int:
                exited.set()
                return 0

        def fake_spawn_detached(command: list[str], **kwargs: object) -> FinishedProcess:
            del kwargs
            spawned.append(list(command))
            return FinishedProcess()

        monkeypatch.setattr("kibbutz.relay.launcher.spawn_detached", fake_spawn_detached)
        launcher = ChromeExtensionLauncher(chrome_path="/usr/bin/chrome")

        launcher.launch(8080, "secret")

        assert len(spawned) == 1
        assert exited.wait(timeout=2.0)
