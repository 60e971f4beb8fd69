"""Microtask queue simulated on top of a delay-based timer service.

Continuations are drained FIFO by a single zero-delay timer callback. Anything
enqueued while draining runs in the same callback, so chains of promise
reactions complete before control returns to any other timer callback.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from typing import Any

from loguru import logger

from dopromise.scheduling import TimerService, get_timer

Microtask = Callable[[], Any]


class _Trigger:
    """Zero-delay timer callback that drains its queue.

    Arming is idempotent: while a callback is outstanding or running, further
    ``start`` calls do nothing.
    """

    def __init__(self, queue: MicrotaskQueue) -> None:
        self._queue = queue
        self.armed = False

    def start(self) -> None:
        if self.armed:
            return
        self.armed = True
        self._queue.timer.call_later(0, self._fire)

    def _fire(self) -> None:
        try:
            ran = self._queue.drain()
            logger.debug("Drained {} microtasks", ran)
        finally:
            self.armed = False
            if len(self._queue):
                self.start()


class MicrotaskQueue:
    def __init__(self, timer: TimerService | None = None) -> None:
        self._timer = timer
        self._items: deque[Microtask] = deque()
        self._trigger: _Trigger | None = None

    @property
    def timer(self) -> TimerService:
        return self._timer if self._timer is not None else get_timer()

    def enqueue(self, fn: Microtask) -> None:
        if self._trigger is None:
            self._trigger = _Trigger(self)
        self._items.append(fn)
        self._trigger.start()

    def drain(self) -> int:
        """Run queued continuations until the queue is empty.

        Returns the number run. An exception from a continuation propagates;
        the continuations behind it stay queued.
        """

        ran = 0
        while self._items:
            self._items.popleft()()
            ran += 1
        return ran

    def __len__(self) -> int:
        return len(self._items)


_queue: MicrotaskQueue | None = None


def get_microtask_queue() -> MicrotaskQueue:
    global _queue
    if _queue is None:
        _queue = MicrotaskQueue()
    return _queue


def set_microtask_queue(queue: MicrotaskQueue | None) -> MicrotaskQueue | None:
    """Replace the process-wide queue, returning the previous one."""

    global _queue
    previous, _queue = _queue, queue
    return previous


def enqueue(fn: Microtask) -> None:
    get_microtask_queue().enqueue(fn)


__all__ = [
    "Microtask",
    "MicrotaskQueue",
    "enqueue",
    "get_microtask_queue",
    "set_microtask_queue",
]
