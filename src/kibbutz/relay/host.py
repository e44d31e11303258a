"""Relay host: owns the relay state and wires server, pairing and facade together."""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING

from kibbutz.relay.facade import DEFAULT_TROUBLESHOOTING_URL, RelayFacade
from kibbutz.relay.pairing import DEFAULT_PAIRING_TIMEOUT, PairingManager
from kibbutz.relay.server import ChannelServer
from kibbutz.relay.state import RelayState

if TYPE_CHECKING:
    from kibbutz.relay.launcher import PeerLauncher

logger = logging.getLogger(__name__)


class RelayHostStatus(enum.Enum):
    """Lifecycle of the relay host."""

    STOPPED = "stopped"
    RUNNING = "running"
    CLOSED = "closed"


class RelayHost:
    """Manages the lifecycle of one relay.

    Owns:
    - ``RelayState`` (secret, port, connection slots, pending calls)
    - ``ChannelServer`` (the ``/ping`` and ``/mcp`` listener)
    - ``PairingManager`` and ``RelayFacade``

    A host is started once and closed once; after ``stop()`` no further
    calls are relayed.

    Usage::

        host = RelayHost(ChromeExtensionLauncher())
        await host.start()
        result = await host.facade.call("SNAPSHOT_MCP", {})
        await host.stop()
    """

    def __init__(
        self,
        launcher: PeerLauncher,
        *,
        host: str | None = None,
        port: int = 0,
        pairing_timeout: float = DEFAULT_PAIRING_TIMEOUT,
        max_message_bytes: int | None = None,
        troubleshooting_url: str = DEFAULT_TROUBLESHOOTING_URL,
    ) -> None:
        self._state = RelayState()
        server_kwargs: dict[str, int] = {}
        if max_message_bytes is not None:
            server_kwargs["max_message_bytes"] = max_message_bytes
        self._server = ChannelServer(self._state, host=host, port=port, **server_kwargs)
        self._pairing = PairingManager(self._state, launcher, timeout=pairing_timeout)
        self._facade = RelayFacade(
            self._state,
            self._pairing,
            troubleshooting_url=troubleshooting_url,
        )
        self._status = RelayHostStatus.STOPPED

    @property
    def status(self) -> RelayHostStatus:
        return self._status

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def server(self) -> ChannelServer:
        return self._server

    @property
    def pairing(self) -> PairingManager:
        return self._pairing

    @property
    def facade(self) -> RelayFacade:
        return self._facade

    @property
    def port(self) -> int | None:
        return self._state.port

    async def start(self) -> int:
        """Start listening for the peer; returns the bound port."""
        if self._status != RelayHostStatus.STOPPED:
            msg = f"Cannot start relay host in state {self._status.value}"
            raise RuntimeError(msg)
        port = await self._server.start()
        self._status = RelayHostStatus.RUNNING
        return port

    def terminate_connections(self) -> None:
        """Hard-close live channels and stop relaying (signal-handler safe)."""
        self._state.shutdown()

    async def stop(self, *, reason: str = "shutdown requested") -> None:
        """Close channels, cancel pairing and release the listener."""
        if self._status == RelayHostStatus.CLOSED:
            return
        # Shutting the server down first cancels the pairing waiter, so waiting
        # callers get a failed pairing instead of a cancellation.
        await self._server.stop()
        await self._pairing.aclose()
        self._status = RelayHostStatus.CLOSED
        logger.info("Relay host stopped: %s", reason)


__all__ = ["RelayHost", "RelayHostStatus"]
