"""Relay facade: the single entry point used by the MCP tool catalog."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from kibbutz.relay.contracts import RelayRequest, ToolTextResponse
from kibbutz.relay.errors import ChannelClosedError

if TYPE_CHECKING:
    from kibbutz.relay.pairing import PairingManager
    from kibbutz.relay.state import RelayState

logger = logging.getLogger(__name__)

DEFAULT_TROUBLESHOOTING_URL = (
    "chrome-extension://bpfjmggaaiigpfahhmpmacfhlemnhhip/KIBBUTZ-MCP.html"
)


class RelayFacade:
    """Forwards opaque ``(message, args)`` calls to the paired peer.

    ``call`` never raises for peer-unreachable conditions: it returns a
    ``ToolTextResponse`` with ``is_error`` set and a troubleshooting pointer.
    """

    def __init__(
        self,
        state: RelayState,
        pairing: PairingManager,
        *,
        troubleshooting_url: str = DEFAULT_TROUBLESHOOTING_URL,
    ) -> None:
        self._state = state
        self._pairing = pairing
        self._troubleshooting_url = troubleshooting_url

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def pairing(self) -> PairingManager:
        return self._pairing

    def connection_failed(self) -> ToolTextResponse:
        return ToolTextResponse.failure(
            "Connection failed: The MCP server cannot reach the Chrome extension. "
            f"Open {self._troubleshooting_url} for troubleshooting."
        )

    def connection_lost(self, error: BaseException) -> ToolTextResponse:
        return ToolTextResponse.failure(
            f"Connection lost: {error}. "
            f"Open {self._troubleshooting_url} for troubleshooting."
        )

    async def call(self, message: str, args: dict[str, Any] | None = None) -> ToolTextResponse:
        """Relay one call to the peer and wait for its reply.

        Args:
            message: Message name understood by the peer.
            args: JSON-serialisable arguments.

        Returns:
            The peer's result as text, or a soft-failure response.
        """
        state = self._state
        if state.token is None or not state.is_paired:
            paired = await self._pairing.ensure_paired()
            if not paired:
                logger.debug("Pairing did not complete before relaying %s", message)

        data = state.data
        if not state.is_paired or data is None:
            return self.connection_failed()

        request = RelayRequest(message=message, args=args or {})
        reply = state.correlator.expect(request.id)
        try:
            await data.send(request.to_frame())
        except ChannelClosedError as exc:
            state.correlator.discard(request.id)
            if reply.done():
                reply.exception()
            else:
                reply.cancel()
            logger.info("Data channel closed while sending %s", message)
            return self.connection_lost(exc)

        try:
            result = await reply
        except ChannelClosedError as exc:
            logger.info("Call %s (%s) failed: %s", request.id, message, exc)
            return self.connection_lost(exc)
        return ToolTextResponse.success(result)


__all__ = ["DEFAULT_TROUBLESHOOTING_URL", "RelayFacade"]
