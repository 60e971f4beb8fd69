"""
Timer services for the promise engine.

The engine never owns an event loop. Everything it defers goes through a
``TimerService`` - the ``scheduleAfter(delay, callback)`` collaborator - which
runs a callback once, no earlier than ``delay`` seconds from now.

Reference services:
- BlockingTimer: wall-clock heap driven explicitly with ``run()``
- SimulationTimer: same heap on a virtual clock that jumps instead of sleeping
- AsyncioTimer: delegates to the running asyncio event loop

Example:
    >>> from dopromise import Promise
    >>> from dopromise.scheduling import SimulationTimer, set_timer
    >>>
    >>> timer = SimulationTimer()
    >>> set_timer(timer)
    >>> p = Promise.resolve(1).then(lambda v: v + 1)
    >>> timer.run_until_settled(p)
    (2, <PromiseState.FULFILLED: 'fulfilled'>)
"""

from __future__ import annotations

import asyncio
import contextvars
import heapq
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from loguru import logger

from dopromise.utils import reason_to_exception

if TYPE_CHECKING:
    from dopromise.promise import Promise, PromiseState


def _coerce_finite_float(value: float, *, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise TypeError(f"{name} must be float, got {type(value).__name__}")
    coerced = float(value)
    if math.isnan(coerced) or math.isinf(coerced):
        raise ValueError(f"{name} must be finite, got {value!r}")
    return coerced


def _coerce_delay(value: float) -> float:
    return max(0.0, _coerce_finite_float(value, name="delay"))


# ============================================================================
# Timer Service Protocol
# ============================================================================


class TimerService(Protocol):
    """Runs ``callback`` once, no earlier than ``delay`` seconds from now."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> Any:
        ...


# ============================================================================
# Heap-backed timers
# ============================================================================


@dataclass(frozen=True, order=True)
class TimerEntry:
    due: float
    sequence: int
    callback: Callable[[], Any] = field(compare=False)


class TimerQueue:
    """Min-heap of callbacks ordered by due time, FIFO among equal times."""

    def __init__(self) -> None:
        self._sequence = 0
        self._items: list[TimerEntry] = []

    def push(self, due: float, callback: Callable[[], Any]) -> TimerEntry:
        self._sequence += 1
        entry = TimerEntry(due=due, sequence=self._sequence, callback=callback)
        heapq.heappush(self._items, entry)
        return entry

    def pop(self) -> TimerEntry:
        return heapq.heappop(self._items)

    def peek_due(self) -> float | None:
        return self._items[0].due if self._items else None

    def empty(self) -> bool:
        return not self._items

    def __len__(self) -> int:
        return len(self._items)


class BlockingTimer:
    """Wall-clock timer driven by the caller.

    Callbacks are queued by due time and only run inside ``step``/``run``,
    which block the calling thread until the next callback is due.
    """

    def __init__(
        self,
        *,
        now: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._now = now
        self._sleep = sleep
        self._queue = TimerQueue()

    @property
    def current_time(self) -> float:
        return self._now()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerEntry:
        seconds = _coerce_delay(delay)
        entry = self._queue.push(self._now() + seconds, callback)
        logger.debug("Timer callback #{} due in {}s", entry.sequence, seconds)
        return entry

    def _wait_until(self, due: float) -> None:
        remaining = due - self._now()
        if remaining > 0:
            self._sleep(remaining)

    def step(self) -> bool:
        """Run the earliest callback, waiting for it if needed.

        Returns ``False`` when nothing is scheduled.
        """

        if self._queue.empty():
            return False
        entry = self._queue.pop()
        self._wait_until(entry.due)
        entry.callback()
        return True

    def run(self) -> int:
        """Run callbacks until none remain. Returns how many ran."""

        count = 0
        while self.step():
            count += 1
        return count

    def run_for(self, seconds: float) -> int:
        """Run every callback due within ``seconds`` from now."""

        deadline = self._now() + _coerce_delay(seconds)
        count = 0
        while True:
            due = self._queue.peek_due()
            if due is None or due > deadline:
                break
            self.step()
            count += 1
        self._wait_until(deadline)
        return count

    def run_until_settled(self, promise: Promise[Any]) -> tuple[Any, PromiseState]:
        """Run callbacks until ``promise`` settles or nothing is left to run.

        Returns the promise's ``(result, state)`` pair; a promise that can
        never settle comes back still pending.
        """

        from dopromise.promise import PromiseState

        while promise.state is PromiseState.PENDING and self.step():
            pass
        return promise.result, promise.state

    def __len__(self) -> int:
        return len(self._queue)


@dataclass
class SimClock:
    _mut_current_time: float = 0.0

    def __post_init__(self) -> None:
        self._mut_current_time = _coerce_finite_float(
            self._mut_current_time,
            name="current_time",
        )

    @property
    def current_time(self) -> float:
        return self._mut_current_time

    def advance_to(self, target_time: float) -> float:
        if target_time > self._mut_current_time:
            self._mut_current_time = target_time
        return self.current_time


class SimulationTimer(BlockingTimer):
    """Deterministic timer on a virtual clock.

    Waiting jumps the clock straight to the next due time, so a test can run
    a ten-second ``sleep`` instantly while still observing ordering by time.
    """

    def __init__(self, start_time: float = 0.0) -> None:
        self._clock = SimClock(_mut_current_time=start_time)
        super().__init__(now=lambda: self._clock.current_time)

    def _wait_until(self, due: float) -> None:
        self._clock.advance_to(due)


# ============================================================================
# asyncio
# ============================================================================


class AsyncioTimer:
    """Timer service backed by an asyncio event loop.

    Uses ``loop`` when given, otherwise the loop running at scheduling time.
    Zero delays go through ``call_soon`` so they keep submission order. Callbacks
    run in an empty context, never in the one active when they were scheduled.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> asyncio.Handle:
        seconds = _coerce_delay(delay)
        loop = self._get_loop()
        if seconds == 0:
            return loop.call_soon(callback, context=contextvars.Context())
        return loop.call_later(seconds, callback, context=contextvars.Context())


def to_future(
    promise: Promise[Any],
    *,
    loop: asyncio.AbstractEventLoop | None = None,
) -> asyncio.Future[Any]:
    """Mirror ``promise`` into an awaitable asyncio future.

    Non-exception rejection reasons surface as ``RejectionError``.
    """

    target_loop = loop if loop is not None else asyncio.get_running_loop()
    future: asyncio.Future[Any] = target_loop.create_future()

    def on_fulfilled(value: Any) -> None:
        if not future.done():
            future.set_result(value)

    def on_rejected(reason: Any) -> None:
        if not future.done():
            future.set_exception(reason_to_exception(reason))

    promise.then(on_fulfilled, on_rejected)
    return future


# ============================================================================
# Process-wide timer
# ============================================================================

_timer: TimerService | None = None


def get_timer() -> TimerService:
    """Return the process-wide timer, creating it from configuration once."""

    global _timer
    if _timer is None:
        from dopromise.config import create_timer, timer_backend

        backend = timer_backend()
        _timer = create_timer(backend)
        logger.debug("Created {} timer service", backend)
    return _timer


def set_timer(timer: TimerService | None) -> TimerService | None:
    """Install ``timer`` as the process-wide service and return the previous one.

    ``None`` drops the current service; the next ``get_timer()`` call builds a
    fresh one from configuration.
    """

    global _timer
    previous, _timer = _timer, timer
    return previous


def run_until_settled(promise: Promise[Any]) -> tuple[Any, PromiseState]:
    """Drive the process-wide timer until ``promise`` settles."""

    timer = get_timer()
    if not isinstance(timer, BlockingTimer):
        raise TypeError(
            f"run_until_settled needs a BlockingTimer, got {type(timer).__name__}; "
            "with AsyncioTimer use `await to_future(promise)`"
        )
    return timer.run_until_settled(promise)


__all__ = [
    "AsyncioTimer",
    "BlockingTimer",
    "SimClock",
    "SimulationTimer",
    "TimerEntry",
    "TimerQueue",
    "TimerService",
    "get_timer",
    "run_until_settled",
    "set_timer",
    "to_future",
]
