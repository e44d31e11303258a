"""Pairing manager: launch the peer on demand and wait for its data channel."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from kibbutz.relay.errors import PeerLaunchError

if TYPE_CHECKING:
    from kibbutz.relay.launcher import PeerLauncher
    from kibbutz.relay.state import RelayState

logger = logging.getLogger(__name__)

DEFAULT_PAIRING_TIMEOUT = 2.0


class PairingManager:
    """Coalesces concurrent pairing requests into one launch-and-wait attempt.

    At most one attempt is in flight. Callers arriving while it runs join it
    and are released together when the data channel appears or the timeout
    expires. Failure is reported as ``False``, never raised.
    """

    def __init__(
        self,
        state: RelayState,
        launcher: PeerLauncher,
        *,
        timeout: float = DEFAULT_PAIRING_TIMEOUT,
    ) -> None:
        self._state = state
        self._launcher = launcher
        self._timeout = timeout
        self._attempt: asyncio.Task[bool] | None = None
        self._launch_count = 0

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def launch_count(self) -> int:
        """Number of times the peer launcher has been invoked."""
        return self._launch_count

    @property
    def in_progress(self) -> bool:
        return self._attempt is not None and not self._attempt.done()

    async def ensure_paired(self) -> bool:
        """Wait until the data channel is up, launching the peer if needed.

        Returns:
            ``True`` if the relay is paired when the wait ends.
        """
        self._state.ensure_token()
        if self._state.is_paired:
            return True

        if self._attempt is None or self._attempt.done():
            self._attempt = asyncio.create_task(self._attempt_pairing(), name="kibbutz-pairing")

        # Shield so one cancelled caller does not abort the shared attempt.
        return await asyncio.shield(self._attempt)

    async def _attempt_pairing(self) -> bool:
        state = self._state
        token = state.ensure_token()
        port = state.port
        if state.closed or port is None:
            logger.warning("Cannot pair: channel server is not listening")
            return False

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()
        state.pairing_waiter = waiter
        try:
            try:
                self._launch_count += 1
                self._launcher.launch(port, token)
            except (PeerLaunchError, OSError) as exc:
                logger.warning("Peer launch failed: %s", exc)
                return False
            except Exception:
                logger.exception("Peer launcher raised unexpectedly")
                return False

            try:
                await asyncio.wait_for(waiter, timeout=self._timeout)
            except TimeoutError:
                logger.warning("Timed out after %.1fs waiting for the peer to pair", self._timeout)
                return False
            except asyncio.CancelledError:
                if waiter.cancelled() and not _current_task_cancelling():
                    # The relay shut down while we were waiting.
                    return False
                raise
            return state.is_paired
        finally:
            if state.pairing_waiter is waiter:
                state.pairing_waiter = None
            if not waiter.done():
                waiter.cancel()

    async def aclose(self) -> None:
        """Cancel an in-flight attempt, if any."""
        attempt = self._attempt
        self._attempt = None
        if attempt is not None and not attempt.done():
            attempt.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await attempt


def _current_task_cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


__all__ = ["DEFAULT_PAIRING_TIMEOUT", "PairingManager"]
