"""Pytest fixtures for kibbutz tests."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest
from hypothesis import Phase, Verbosity, settings

_TEST_BASE_DIR = Path(tempfile.mkdtemp(prefix="kibbutz-tests-"))
os.environ["KIBBUTZ_CONFIG_DIR"] = str(_TEST_BASE_DIR / "config")
os.environ["KIBBUTZ_LOG_DIR"] = str(_TEST_BASE_DIR / "logs")

from kibbutz.relay.state import RelayState  # noqa: E402

settings.register_profile(
    "ci",
    max_examples=100,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)
settings.register_profile(
    "dev",
    max_examples=20,
    deadline=500,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))


@pytest.fixture(autouse=True)
def _clear_kibbutz_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer KIBBUTZ_* overrides from leaking into tests."""
    for name in (
        "KIBBUTZ_HOST",
        "KIBBUTZ_PORT",
        "KIBBUTZ_PAIRING_TIMEOUT",
        "KIBBUTZ_CHROME_PATH",
        "KIBBUTZ_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def relay_state() -> RelayState:
    """Relay state with a bound port, as after the channel server starts."""
    state = RelayState()
    state.bind_port(43210)
    return state
