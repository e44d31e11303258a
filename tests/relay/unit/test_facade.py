"""Unit tests for the relay facade."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from kibbutz.relay.facade import RelayFacade
from kibbutz.relay.pairing import PairingManager
from kibbutz.relay.state import ControlClosed, ControlOpened, DataOpened, RelayState, ReplyReceived
from tests.helpers import FakeChannel, RecordingLauncher

pytestmark = pytest.mark.unit

TROUBLESHOOTING = "chrome-extension://test-extension/HELP.html"


class FakePeer:
    """Launcher whose peer connects on the next loop turn and may answer calls."""

    def __init__(self, state: RelayState, answer: Any = None, *, replies: bool = True) -> None:
        self.state = state
        self.answer = answer
        self.replies = replies
        self.controls: list[FakeChannel] = []
        self.datas: list[FakeChannel] = []
        self.launcher = RecordingLauncher(self._connect)

    def _reply(self, frame: dict[str, Any]) -> None:
        if self.replies:
            self.state.handle(ReplyReceived(frame["id"], self.answer))

    def _connect(self, port: int, token: str) -> None:
        del port, token

        def open_channels() -> None:
            control = FakeChannel(f"control-{len(self.controls)}")
            data = FakeChannel(f"data-{len(self.datas)}", on_send=self._reply)
            self.controls.append(control)
            self.datas.append(data)
            self.state.handle(ControlOpened(control))
            self.state.handle(DataOpened(data))

        asyncio.get_running_loop().call_soon(open_channels)


def _facade(state: RelayState, launcher: RecordingLauncher, timeout: float = 1.0) -> RelayFacade:
    pairing = PairingManager(state, launcher, timeout=timeout)
    return RelayFacade(state, pairing, troubleshooting_url=TROUBLESHOOTING)


async def test_unreachable_peer_returns_soft_failure(relay_state: RelayState) -> None:
    launcher = RecordingLauncher()
    facade = _facade(relay_state, launcher, timeout=0.05)

    response = await facade.call("SNAPSHOT_MCP", {})

    assert response.is_error is True
    assert response.text.startswith("Connection failed:")
    assert TROUBLESHOOTING in response.text
    assert len(launcher.calls) == 1


async def test_unexpected_launcher_error_returns_soft_failure(relay_state: RelayState) -> None:
    launcher = RecordingLauncher(error=ValueError("embedded null byte"))
    facade = _facade(relay_state, launcher)

    response = await facade.call("SNAPSHOT_MCP", {})

    assert response.is_error is True
    assert response.text.startswith("Connection failed:")


async def test_paired_call_relays_frame_and_returns_result(relay_state: RelayState) -> None:
    peer = FakePeer(relay_state, answer={"closed": [5]})
    facade = _facade(relay_state, peer.launcher)

    response = await facade.call("CLOSE_TABS_MCP", {"tabIds": [5]})

    assert response.is_error is False
    assert json.loads(response.text) == {"closed": [5]}
    assert response.text == json.dumps({"closed": [5]}, indent=2)

    (frame,) = peer.datas[0].sent_frames
    assert frame["message"] == "CLOSE_TABS_MCP"
    assert frame["args"] == {"tabIds": [5]}
    assert isinstance(frame["id"], str) and frame["id"]
    assert len(relay_state.correlator) == 0


async def test_paired_calls_do_not_relaunch(relay_state: RelayState) -> None:
    peer = FakePeer(relay_state, answer=[])
    facade = _facade(relay_state, peer.launcher)

    await facade.call("SNAPSHOT_MCP")
    await facade.call("SNAPSHOT_MCP")

    assert len(peer.launcher.calls) == 1
    assert [frame["args"] for frame in peer.datas[0].sent_frames] == [{}, {}]


async def test_concurrent_first_calls_launch_once(relay_state: RelayState) -> None:
    peer = FakePeer(relay_state, answer={"ok": True})
    facade = _facade(relay_state, peer.launcher)

    first, second = await asyncio.gather(
        facade.call("PIN_TABS_MCP", {"tabIds": [1]}),
        facade.call("UNPIN_TABS_MCP", {"tabIds": [2]}),
    )

    assert not first.is_error and not second.is_error
    assert len(peer.launcher.calls) == 1


async def test_missing_result_is_rendered_as_null(relay_state: RelayState) -> None:
    peer = FakePeer(relay_state, answer=None)
    facade = _facade(relay_state, peer.launcher)

    response = await facade.call("UNGROUPS_MCP", {"groupIds": [3]})

    assert response.is_error is False
    assert response.text == "null"


async def test_control_drop_fails_in_flight_call_then_repairs(relay_state: RelayState) -> None:
    peer = FakePeer(relay_state, answer={"tabs": []}, replies=False)
    facade = _facade(relay_state, peer.launcher)

    in_flight = asyncio.create_task(facade.call("SNAPSHOT_MCP", {}))
    while not (peer.datas and peer.datas[0].sent):
        await asyncio.sleep(0)

    relay_state.handle(ControlClosed(peer.controls[0]))
    lost = await in_flight

    assert lost.is_error is True
    assert lost.text.startswith("Connection lost:")
    assert "Extension channel closed" in lost.text
    assert peer.datas[0].terminated

    peer.replies = True
    recovered = await facade.call("SNAPSHOT_MCP", {})

    assert recovered.is_error is False
    assert json.loads(recovered.text) == {"tabs": []}
    assert len(peer.launcher.calls) == 2


async def test_send_failure_returns_connection_lost(relay_state: RelayState) -> None:
    control = FakeChannel("control")
    data = FakeChannel("data")
    data.fail_sends = True
    relay_state.handle(ControlOpened(control))
    relay_state.handle(DataOpened(data))
    relay_state.ensure_token()
    launcher = RecordingLauncher()
    facade = _facade(relay_state, launcher)

    response = await facade.call("CLOSE_TABS_MCP", {"tabIds": [9]})

    assert response.is_error is True
    assert response.text.startswith("Connection lost:")
    assert len(relay_state.correlator) == 0
    assert launcher.calls == []
