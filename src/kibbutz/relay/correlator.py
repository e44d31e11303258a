"""Pending-call table that pairs outbound relay frames with their replies."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

    SuccessCallback = Callable[[Any], None]
    FailureCallback = Callable[[BaseException], None]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PendingCall:
    """Completion callbacks for one outstanding relayed call."""

    call_id: str
    on_success: SuccessCallback
    on_failure: FailureCallback


class RequestCorrelator:
    """Maps call identifiers to pending completions.

    The table knows nothing about sockets: the channel layer feeds it replies
    via :meth:`resolve` and tears it down via :meth:`fail_all` when a channel
    closes.

    Usage::

        correlator = RequestCorrelator()
        future = correlator.expect(call_id)
        ...
        correlator.resolve(call_id, {"closed": [5]})
        result = await future
    """

    def __init__(self) -> None:
        self._pending: dict[str, PendingCall] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._pending

    def register(
        self,
        call_id: str,
        on_success: SuccessCallback,
        on_failure: FailureCallback,
    ) -> None:
        """Add a pending entry.

        Raises:
            ValueError: If *call_id* is already pending.
        """
        if call_id in self._pending:
            msg = f"Call id already pending: {call_id}"
            raise ValueError(msg)
        self._pending[call_id] = PendingCall(call_id, on_success, on_failure)

    def expect(self, call_id: str) -> asyncio.Future[Any]:
        """Register *call_id* and return a future settled by its completion."""
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()

        def _succeed(result: Any) -> None:
            if not future.done():
                future.set_result(result)

        def _fail(error: BaseException) -> None:
            if not future.done():
                future.set_exception(error)

        self.register(call_id, _succeed, _fail)
        return future

    def resolve(self, call_id: str, result: Any) -> bool:
        """Complete *call_id* with *result*; unknown ids are ignored."""
        pending = self._pending.pop(call_id, None)
        if pending is None:
            return False
        pending.on_success(result)
        return True

    def discard(self, call_id: str) -> None:
        """Forget *call_id* without settling it."""
        self._pending.pop(call_id, None)

    def fail_all(self, error: BaseException) -> int:
        """Fail every pending call with *error* and empty the table.

        The table is cleared before any callback runs, so callbacks may
        register new calls or call back into the correlator.
        """
        pending = list(self._pending.values())
        self._pending.clear()
        for entry in pending:
            try:
                entry.on_failure(error)
            except Exception:
                logger.exception("Failure callback raised for call %s", entry.call_id)
        if pending:
            logger.debug("Failed %d pending call(s): %s", len(pending), error)
        return len(pending)


__all__ = ["PendingCall", "RequestCorrelator"]
