"""WebSocket listener that terminates the control and data channels.

Two upgrade endpoints share one listening socket:

- ``/ping`` (control): the ``Sec-WebSocket-Protocol`` header must carry the
  shared secret, otherwise the upgrade is answered with ``401``.
- ``/mcp`` (data): accepted only while a control channel is live, otherwise
  answered with ``403``. Trust is inherited from the control channel.

Every other path is dropped at the transport without any HTTP response.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from pydantic import ValidationError
from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from kibbutz.relay.contracts import RelayReply
from kibbutz.relay.errors import ChannelClosedError
from kibbutz.relay.state import (
    ControlClosed,
    ControlOpened,
    DataClosed,
    DataOpened,
    ReplyReceived,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from websockets.asyncio.server import Server
    from websockets.http11 import Request, Response
    from websockets.typing import Subprotocol

    from kibbutz.relay.state import RelayState

logger = logging.getLogger(__name__)

CONTROL_PATH = "/ping"
DATA_PATH = "/mcp"
_LOCALHOST = "127.0.0.1"
_DEFAULT_MAX_MESSAGE_BYTES = 4 * 1024 * 1024  # 4 MiB per frame


def is_authorized(offered: str | None, token: str | None) -> bool:
    """Whether a control upgrade presenting *offered* matches the shared secret."""
    return token is not None and offered == token


class WebSocketChannel:
    """Adapts a ``websockets`` server connection to the relay ``Channel`` protocol."""

    def __init__(self, connection: ServerConnection) -> None:
        self._connection = connection
        self._terminated = False

    @property
    def connection(self) -> ServerConnection:
        return self._connection

    @property
    def is_open(self) -> bool:
        return not self._terminated and self._connection.state is State.OPEN

    async def send(self, text: str) -> None:
        try:
            await self._connection.send(text)
        except ConnectionClosed as exc:
            raise ChannelClosedError(str(exc)) from exc

    def terminate(self) -> None:
        if self._terminated:
            return
        self._terminated = True
        transport = self._connection.transport
        if transport is not None:
            transport.abort()


class ChannelServer:
    """Accepts the peer's control and data connections.

    Connection events are translated into ``RelayState`` events; the state
    object decides what survives.

    Usage::

        state = RelayState()
        server = ChannelServer(state)
        port = await server.start()
        ...
        await server.stop()
    """

    def __init__(
        self,
        state: RelayState,
        *,
        host: str | None = None,
        port: int = 0,
        max_message_bytes: int = _DEFAULT_MAX_MESSAGE_BYTES,
    ) -> None:
        self._state = state
        self._host = host or _LOCALHOST
        self._requested_port = port
        self._max_message_bytes = max_message_bytes
        self._server: Server | None = None

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def port(self) -> int | None:
        """Bound port, available after ``start()``."""
        return self._state.port

    @property
    def is_running(self) -> bool:
        return self._server is not None

    async def start(self) -> int:
        """Bind the listener and record the OS-assigned port on the relay state.

        Returns:
            The bound port.
        """
        if self._server is not None:
            msg = "Channel server is already running"
            raise RuntimeError(msg)

        self._server = await serve(
            self._handle_connection,
            self._host,
            self._requested_port,
            process_request=self._process_request,
            select_subprotocol=self._select_subprotocol,
            max_size=self._max_message_bytes,
        )
        sockets = list(self._server.sockets)
        bound_port: int = sockets[0].getsockname()[1] if sockets else self._requested_port
        self._state.bind_port(bound_port)
        logger.info("Channel server listening on %s:%d", self._host, bound_port)
        return bound_port

    async def stop(self) -> None:
        """Terminate live channels and close the listener."""
        self._state.shutdown()
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Channel server stopped")

    # -- handshake ----------------------------------------------------------

    def _process_request(
        self,
        connection: ServerConnection,
        request: Request,
    ) -> Response | None:
        """Gate upgrades by path before the WebSocket handshake completes."""
        path = urlsplit(request.path).path
        if self._state.closed:
            return connection.respond(HTTPStatus.SERVICE_UNAVAILABLE, "Relay is shutting down\n")

        if path == CONTROL_PATH:
            offered = ", ".join(request.headers.get_all("Sec-WebSocket-Protocol")) or None
            if not is_authorized(offered, self._state.token):
                logger.warning("Rejected control connection: invalid or missing token")
                return connection.respond(HTTPStatus.UNAUTHORIZED, "Unauthorized\n")
            return None

        if path == DATA_PATH:
            if not self._state.control_live:
                logger.info("Rejected data connection: no live control channel")
                return connection.respond(HTTPStatus.FORBIDDEN, "Forbidden\n")
            return None

        logger.debug("Dropped connection for unknown path %s", path)
        # Aborting first discards the status line websockets writes after this returns.
        transport = connection.transport
        if transport is not None:
            transport.abort()
        return connection.respond(HTTPStatus.NOT_FOUND, "")

    @staticmethod
    def _select_subprotocol(
        connection: ServerConnection,
        subprotocols: Sequence[Subprotocol],
    ) -> Subprotocol | None:
        """Echo the first offered subprotocol so browser clients accept the handshake."""
        del connection
        return subprotocols[0] if subprotocols else None

    # -- connection lifecycle -----------------------------------------------

    async def _handle_connection(self, connection: ServerConnection) -> None:
        path = urlsplit(connection.request.path).path if connection.request else ""
        channel = WebSocketChannel(connection)
        if path == CONTROL_PATH:
            await self._run_control(channel)
        elif path == DATA_PATH:
            await self._run_data(channel)
        else:
            channel.terminate()

    async def _run_control(self, channel: WebSocketChannel) -> None:
        self._state.handle(ControlOpened(channel))
        try:
            async for _ in channel.connection:
                # The control channel only proves liveness; frames are ignored.
                pass
        except ConnectionClosed:
            logger.debug("Control connection dropped", exc_info=True)
        finally:
            self._state.handle(ControlClosed(channel))

    async def _run_data(self, channel: WebSocketChannel) -> None:
        self._state.handle(DataOpened(channel))
        if self._state.data is not channel:
            return
        try:
            async for raw in channel.connection:
                self._process_frame(raw)
        except ConnectionClosed:
            logger.debug("Data connection dropped", exc_info=True)
        finally:
            self._state.handle(DataClosed(channel))

    def _process_frame(self, raw: str | bytes) -> None:
        """Parse one inbound data frame and hand matching replies to the state."""
        try:
            reply = RelayReply.model_validate_json(raw)
        except ValidationError:
            logger.debug("Dropping malformed frame on data channel")
            return
        self._state.handle(ReplyReceived(reply.id, reply.result))


__all__ = [
    "CONTROL_PATH",
    "DATA_PATH",
    "ChannelServer",
    "WebSocketChannel",
    "is_authorized",
]
