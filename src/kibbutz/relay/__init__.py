"""Pairing-and-relay engine between the MCP host and the browser extension."""

from __future__ import annotations

from kibbutz.relay.contracts import RelayReply, RelayRequest, ToolTextResponse
from kibbutz.relay.correlator import RequestCorrelator
from kibbutz.relay.errors import ChannelClosedError, PeerLaunchError, RelayError
from kibbutz.relay.facade import RelayFacade
from kibbutz.relay.host import RelayHost, RelayHostStatus
from kibbutz.relay.launcher import ChromeExtensionLauncher, PeerLauncher
from kibbutz.relay.pairing import PairingManager
from kibbutz.relay.server import ChannelServer
from kibbutz.relay.state import RelayState

__all__ = [
    "ChannelClosedError",
    "ChannelServer",
    "ChromeExtensionLauncher",
    "PairingManager",
    "PeerLaunchError",
    "PeerLauncher",
    "RelayError",
    "RelayFacade",
    "RelayHost",
    "RelayHostStatus",
    "RelayReply",
    "RelayRequest",
    "RelayState",
    "RequestCorrelator",
    "ToolTextResponse",
]
