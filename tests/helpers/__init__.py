"""Shared test helpers."""

from tests.helpers.fakes import FakeChannel, RecordingLauncher
from tests.helpers.wait import wait_until

__all__ = ["FakeChannel", "RecordingLauncher", "wait_until"]
