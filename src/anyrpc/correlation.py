"""Correlation of outbound calls with their responses.

Each channel owns one CorrelationTable. Every call that expects a response
gets a PendingCall: a one-shot future raced by several completion sources
(response arrival, timeout, channel close, cancellation of the awaiting
task). Whichever source gets there first removes the entry and releases
the timer; every later source is a no-op.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from typing import Any

from .protocol import (
    FIRE_AND_FORGET_ID,
    CallId,
    CallTimeoutError,
    RemoteError,
    WrappedResponse,
)

logger = logging.getLogger(__name__)

# Largest integer that survives a round trip through an IEEE double, so ids
# stay exact for JSON peers that only have floating point numbers.
MAX_CALL_ID = 2**53 - 1


class CallIdAllocator:
    """Per-channel monotonic call id counter.

    Ids start at 1 and only increase. `observe()` lets the counter jump past
    ids seen on inbound calls so two peers generating ids into one shared
    numeric space do not collide. After MAX_CALL_ID the counter wraps to 1,
    skipping any id that is still pending.
    """

    def __init__(self, is_pending: Callable[[CallId], bool] | None = None) -> None:
        self._counter = 0
        self._is_pending = is_pending or (lambda _call_id: False)

    @property
    def last(self) -> CallId:
        """The most recently issued (or observed) id."""
        return self._counter

    def next(self) -> CallId:
        """Allocate the next free id."""
        while True:
            self._counter += 1
            if self._counter > MAX_CALL_ID:
                self._counter = 1
            if self._counter != FIRE_AND_FORGET_ID and not self._is_pending(self._counter):
                return self._counter

    def observe(self, call_id: CallId) -> None:
        """Rebase past an id used by the peer."""
        if 0 < call_id <= MAX_CALL_ID and call_id > self._counter:
            self._counter = call_id


class PendingCall:
    """An outstanding call awaiting its response."""

    __slots__ = ("call_id", "method", "timeout", "future", "_timer", "_on_done")

    def __init__(
        self,
        call_id: CallId,
        method: str,
        timeout: float,
        on_done: Callable[[PendingCall], None],
    ) -> None:
        loop = asyncio.get_running_loop()
        self.call_id = call_id
        self.method = method
        self.timeout = timeout
        self.future: asyncio.Future[Any] = loop.create_future()
        self._on_done = on_done
        self._timer: asyncio.TimerHandle | None = loop.call_later(timeout, self._expire)
        # Removal happens before the result is set; this hook covers
        # cancellation of the awaiting task
        self.future.add_done_callback(lambda _f: self._release())

    @property
    def done(self) -> bool:
        return self.future.done()

    def resolve(self, response: WrappedResponse) -> bool:
        """Complete with a response. Returns False if already completed."""
        if self.future.done():
            return False
        self._release()
        if response.success:
            self.future.set_result(response.payload)
        else:
            self.future.set_exception(RemoteError.from_payload(response.payload, self.method))
        return True

    def fail(self, exc: BaseException) -> bool:
        """Complete with an error. Returns False if already completed."""
        if self.future.done():
            return False
        self._release()
        self.future.set_exception(exc)
        return True

    def cancel(self) -> bool:
        """Drop the call without a result. Returns False if already completed."""
        if self.future.done():
            return False
        self._release()
        self.future.cancel()
        return True

    def _expire(self) -> None:
        self._timer = None
        if self.fail(CallTimeoutError(self.method, self.call_id, self.timeout)):
            logger.debug(f"Call timed out: {self.method} (id={self.call_id})")

    def _release(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._on_done(self)


class CorrelationTable:
    """Registry of calls awaiting a response on one channel."""

    def __init__(self) -> None:
        self._pending: dict[CallId, PendingCall] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._pending

    def __iter__(self) -> Iterator[PendingCall]:
        return iter(list(self._pending.values()))

    def register(self, call_id: CallId, method: str, timeout: float) -> PendingCall:
        """Start tracking a call and its timeout.

        Raises:
            ValueError: If the id is the fire-and-forget sentinel or is
                already pending
        """
        if call_id == FIRE_AND_FORGET_ID:
            raise ValueError("Fire-and-forget calls are not tracked")
        if call_id in self._pending:
            raise ValueError(f"Call id already pending: {call_id}")

        pending = PendingCall(call_id, method, timeout, self._remove)
        self._pending[call_id] = pending
        return pending

    def resolve(self, response: WrappedResponse) -> bool:
        """Hand a response to its pending call.

        Returns:
            True if a pending call took the response, False for unknown or
            late responses
        """
        pending = self._pending.get(response.call_id)
        if pending is None:
            logger.debug(f"No pending call for response id={response.call_id}")
            return False
        return pending.resolve(response)

    def discard(self, call_id: CallId) -> bool:
        """Stop tracking a call without completing it for the caller.

        Returns:
            True if the call was still pending, False if it had already
            completed or was never registered
        """
        pending = self._pending.get(call_id)
        if pending is None:
            return False
        return pending.cancel()

    def fail_all(self, exc: BaseException) -> int:
        """Fail every pending call with the given error."""
        count = 0
        for pending in self:
            if pending.fail(exc):
                count += 1
        return count

    def _remove(self, pending: PendingCall) -> None:
        # Only drop the entry if it still belongs to this call
        if self._pending.get(pending.call_id) is pending:
            del self._pending[pending.call_id]
