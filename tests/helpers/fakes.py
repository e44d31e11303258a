"""In-memory fakes for relay tests."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from kibbutz.relay.errors import ChannelClosedError

if TYPE_CHECKING:
    from collections.abc import Callable


class FakeChannel:
    """In-memory stand-in for a peer connection."""

    def __init__(
        self,
        name: str = "channel",
        *,
        on_send: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.name = name
        self.sent: list[str] = []
        self.terminated = False
        self.fail_sends = False
        self._on_send = on_send

    def __repr__(self) -> str:
        return f"FakeChannel({self.name!r})"

    @property
    def is_open(self) -> bool:
        return not self.terminated

    @property
    def sent_frames(self) -> list[dict[str, Any]]:
        return [json.loads(raw) for raw in self.sent]

    async def send(self, text: str) -> None:
        if self.terminated or self.fail_sends:
            raise ChannelClosedError("fake channel closed")
        self.sent.append(text)
        if self._on_send is not None:
            self._on_send(json.loads(text))

    def terminate(self) -> None:
        self.terminated = True


class RecordingLauncher:
    """Peer launcher that records launches and optionally runs a callback."""

    def __init__(
        self,
        on_launch: Callable[[int, str], None] | None = None,
        *,
        error: Exception | None = None,
    ) -> None:
        self.calls: list[tuple[int, str]] = []
        self._on_launch = on_launch
        self._error = error

    def launch(self, port: int, token: str) -> None:
        self.calls.append((port, token))
        if self._error is not None:
            raise self._error
        if self._on_launch is not None:
            self._on_launch(port, token)


__all__ = ["FakeChannel", "RecordingLauncher"]
