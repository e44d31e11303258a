"""Relay state object and the event handler that mutates it.

Every change to the connection slots, the pending-call table and the pairing
wait goes through :meth:`RelayState.handle`, which runs synchronously on the
event loop. Handlers never await, so no locking is needed.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from kibbutz.relay.correlator import RequestCorrelator
from kibbutz.relay.errors import ChannelClosedError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

_TOKEN_BYTES = 16


@runtime_checkable
class Channel(Protocol):
    """One live duplex connection to the peer."""

    @property
    def is_open(self) -> bool: ...

    async def send(self, text: str) -> None: ...

    def terminate(self) -> None:
        """Drop the connection immediately, without a closing handshake."""
        ...


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ControlOpened:
    channel: Channel


@dataclass(frozen=True, slots=True)
class ControlClosed:
    channel: Channel


@dataclass(frozen=True, slots=True)
class DataOpened:
    channel: Channel


@dataclass(frozen=True, slots=True)
class DataClosed:
    channel: Channel


@dataclass(frozen=True, slots=True)
class ReplyReceived:
    call_id: str
    result: Any


type RelayEvent = ControlOpened | ControlClosed | DataOpened | DataClosed | ReplyReceived
type EventListener = Callable[[RelayEvent], None]


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class RelayState:
    """Process-wide relay state shared by the server, pairing manager and facade.

    Owns:
    - the shared secret (``token``) and the listening ``port``
    - the control and data connection slots
    - the pending-call table
    - the single pairing waiter
    """

    def __init__(self, correlator: RequestCorrelator | None = None) -> None:
        self._token: str | None = None
        self._port: int | None = None
        self.control: Channel | None = None
        self.data: Channel | None = None
        self.correlator = correlator or RequestCorrelator()
        self.pairing_waiter: asyncio.Future[None] | None = None
        self.closed = False
        self._listeners: list[EventListener] = []

    # -- secret and port ----------------------------------------------------

    @property
    def token(self) -> str | None:
        """Shared secret the peer must present on the control endpoint."""
        return self._token

    @token.setter
    def token(self, value: str) -> None:
        if self._token is not None and value != self._token:
            msg = "Shared secret is already set and cannot change"
            raise RuntimeError(msg)
        self._token = value

    def ensure_token(self) -> str:
        """Return the shared secret, creating it on first use."""
        if self._token is None:
            self._token = secrets.token_hex(_TOKEN_BYTES)
            logger.debug("Generated pairing token")
        return self._token

    @property
    def port(self) -> int | None:
        """Port the channel server is listening on, once bound."""
        return self._port

    def bind_port(self, port: int) -> None:
        if self._port is not None and port != self._port:
            msg = f"Listening port already bound to {self._port}"
            raise RuntimeError(msg)
        self._port = port

    # -- derived state ------------------------------------------------------

    @property
    def control_live(self) -> bool:
        return self.control is not None and self.control.is_open

    @property
    def data_live(self) -> bool:
        return self.data is not None and self.data.is_open

    @property
    def is_paired(self) -> bool:
        """Whether both channels are up and the relay has not been shut down."""
        return not self.closed and self.control_live and self.data_live

    def add_listener(self, listener: EventListener) -> None:
        """Observe handled events (diagnostics and tests)."""
        self._listeners.append(listener)

    # -- event handling -----------------------------------------------------

    def handle(self, event: RelayEvent) -> None:
        """Apply one state-transition event."""
        if isinstance(event, ControlOpened):
            self._on_control_opened(event.channel)
        elif isinstance(event, ControlClosed):
            self._on_control_closed(event.channel)
        elif isinstance(event, DataOpened):
            self._on_data_opened(event.channel)
        elif isinstance(event, DataClosed):
            self._on_data_closed(event.channel)
        elif isinstance(event, ReplyReceived):
            if not self.correlator.resolve(event.call_id, event.result):
                logger.debug("Dropping reply for unknown call id %s", event.call_id)
        else:
            msg = f"Unknown relay event: {event!r}"
            raise TypeError(msg)

        for listener in self._listeners:
            listener(event)

    def _on_control_opened(self, channel: Channel) -> None:
        previous = self.control
        if previous is not None and previous is not channel:
            logger.info("Evicting previous control connection")
            self.control = None
            previous.terminate()
        self.control = channel
        logger.info("Control channel connected")

    def _on_control_closed(self, channel: Channel) -> None:
        if self.control is not channel:
            return
        self.control = None
        logger.info("Control channel closed")
        data = self.data
        if data is not None:
            self.data = None
            data.terminate()
        self.correlator.fail_all(ChannelClosedError())

    def _on_data_opened(self, channel: Channel) -> None:
        if not self.control_live:
            logger.warning("Data channel opened without a live control channel; dropping it")
            channel.terminate()
            return
        previous = self.data
        if previous is not None and previous is not channel:
            logger.info("Evicting previous data connection")
            self.data = None
            previous.terminate()
            self.correlator.fail_all(ChannelClosedError())
        self.data = channel
        logger.info("Data channel connected")
        self._release_pairing_waiter()

    def _on_data_closed(self, channel: Channel) -> None:
        if self.data is not channel:
            return
        self.data = None
        logger.info("Data channel closed")
        self.correlator.fail_all(ChannelClosedError())

    def _release_pairing_waiter(self) -> None:
        waiter = self.pairing_waiter
        self.pairing_waiter = None
        if waiter is not None and not waiter.done():
            waiter.set_result(None)

    # -- teardown -----------------------------------------------------------

    def terminate_connections(self) -> None:
        """Hard-close both channels and fail whatever is still pending."""
        data, control = self.data, self.control
        self.data = None
        self.control = None
        if data is not None:
            data.terminate()
        if control is not None:
            control.terminate()
        self.correlator.fail_all(ChannelClosedError())

    def shutdown(self) -> None:
        """Stop relaying for the rest of the process lifetime."""
        self.closed = True
        self.terminate_connections()
        waiter = self.pairing_waiter
        self.pairing_waiter = None
        if waiter is not None and not waiter.done():
            waiter.cancel()


__all__ = [
    "Channel",
    "ControlClosed",
    "ControlOpened",
    "DataClosed",
    "DataOpened",
    "RelayEvent",
    "RelayState",
    "ReplyReceived",
]
