"""Tests for the timer services."""

from __future__ import annotations

import asyncio
import math
from collections.abc import Generator
from typing import Any

import pytest

from dopromise import Promise, PromiseState, async_, await_, current_task, sleep
from dopromise.errors import AwaitOutsideTaskError, RejectionError
from dopromise.microtask import MicrotaskQueue, set_microtask_queue
from dopromise.scheduling import (
    AsyncioTimer,
    BlockingTimer,
    SimClock,
    SimulationTimer,
    TimerQueue,
    get_timer,
    run_until_settled,
    set_timer,
    to_future,
)


class TestTimerQueue:
    def test_pops_by_due_time_then_submission_order(self) -> None:
        queue = TimerQueue()
        queue.push(2.0, lambda: "late")
        queue.push(1.0, lambda: "first")
        queue.push(1.0, lambda: "second")

        assert [queue.pop().callback() for _ in range(3)] == ["first", "second", "late"]
        assert queue.empty()

    def test_peek_due(self) -> None:
        queue = TimerQueue()
        assert queue.peek_due() is None

        queue.push(3.5, lambda: None)
        assert queue.peek_due() == 3.5


class TestBlockingTimer:
    def _fake_clock(self) -> tuple[list[float], list[float], BlockingTimer]:
        now = [100.0]
        sleeps: list[float] = []

        def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)
            now[0] += seconds

        return now, sleeps, BlockingTimer(now=lambda: now[0], sleep=fake_sleep)

    def test_sleeps_until_each_callback_is_due(self) -> None:
        now, sleeps, timer = self._fake_clock()
        ran: list[str] = []

        timer.call_later(1.5, lambda: ran.append("b"))
        timer.call_later(0.5, lambda: ran.append("a"))

        assert timer.run() == 2
        assert ran == ["a", "b"]
        assert sleeps == [0.5, 1.0]
        assert now[0] == 101.5

    def test_step_without_work(self) -> None:
        _now, _sleeps, timer = self._fake_clock()

        assert timer.step() is False

    def test_negative_delay_counts_as_zero(self) -> None:
        _now, sleeps, timer = self._fake_clock()

        timer.call_later(-5, lambda: None)
        timer.run()

        assert sleeps == []

    @pytest.mark.parametrize("delay", [math.nan, math.inf])
    def test_rejects_non_finite_delay(self, delay: float) -> None:
        _now, _sleeps, timer = self._fake_clock()

        with pytest.raises(ValueError, match="delay must be finite"):
            timer.call_later(delay, lambda: None)

    @pytest.mark.parametrize("delay", ["1", True, None])
    def test_rejects_non_numeric_delay(self, delay: object) -> None:
        _now, _sleeps, timer = self._fake_clock()

        with pytest.raises(TypeError, match="delay must be float"):
            timer.call_later(delay, lambda: None)  # type: ignore[arg-type]


class TestSimulationTimer:
    def test_clock_jumps_instead_of_sleeping(self) -> None:
        timer = SimulationTimer()
        seen: list[float] = []

        timer.call_later(10, lambda: seen.append(timer.current_time))
        timer.run()

        assert seen == [10.0]

    def test_start_time(self) -> None:
        assert SimulationTimer(start_time=5).current_time == 5.0

    def test_run_for_stops_at_deadline(self) -> None:
        timer = SimulationTimer()
        ran: list[str] = []
        timer.call_later(1, lambda: ran.append("one"))
        timer.call_later(5, lambda: ran.append("five"))

        assert timer.run_for(2) == 1
        assert ran == ["one"]
        assert timer.current_time == 2.0
        assert len(timer) == 1

    def test_run_until_settled(self, timer: SimulationTimer) -> None:
        promise = sleep(3).then(lambda _: "woke")

        assert timer.run_until_settled(promise) == ("woke", PromiseState.FULFILLED)
        assert timer.current_time == pytest.approx(3.0)

    def test_run_until_settled_leaves_unsettled_pending(self, timer: SimulationTimer) -> None:
        promise, _resolve, _reject = Promise.with_resolvers()

        assert timer.run_until_settled(promise) == (promise.result, PromiseState.PENDING)

    def test_sim_clock_never_moves_backwards(self) -> None:
        clock = SimClock(_mut_current_time=4.0)

        assert clock.advance_to(2.0) == 4.0
        assert clock.advance_to(6.0) == 6.0


class TestProcessWideTimer:
    def test_module_run_until_settled(self, timer: SimulationTimer) -> None:
        promise = Promise.resolve(1).then(lambda v: v + 1)

        assert run_until_settled(promise) == (2, PromiseState.FULFILLED)

    def test_module_run_until_settled_requires_blocking_timer(self) -> None:
        set_timer(AsyncioTimer())

        with pytest.raises(TypeError, match="needs a BlockingTimer"):
            run_until_settled(Promise.resolve(1))

    def test_timer_is_built_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOPROMISE_TIMER", "simulation")
        set_timer(None)

        created = get_timer()

        assert isinstance(created, SimulationTimer)
        assert get_timer() is created

    def test_set_timer_returns_previous(self, timer: SimulationTimer) -> None:
        replacement = SimulationTimer()

        assert set_timer(replacement) is timer
        assert get_timer() is replacement


class TestAsyncioTimer:
    @pytest.mark.asyncio
    async def test_sleep_on_event_loop(self) -> None:
        set_timer(AsyncioTimer())
        set_microtask_queue(MicrotaskQueue())

        promise = sleep(0.01).then(lambda _: "done")

        assert await to_future(promise) == "done"

    @pytest.mark.asyncio
    async def test_zero_delays_keep_submission_order(self) -> None:
        timer = AsyncioTimer()
        done = asyncio.get_running_loop().create_future()
        order: list[int] = []

        timer.call_later(0, lambda: order.append(1))
        timer.call_later(0, lambda: order.append(2))
        timer.call_later(0, lambda: done.set_result(None))
        await done

        assert order == [1, 2]

    @pytest.mark.asyncio
    async def test_to_future_raises_rejection(self) -> None:
        set_timer(AsyncioTimer())
        set_microtask_queue(MicrotaskQueue())

        with pytest.raises(RejectionError) as info:
            await to_future(Promise.reject("nope"))

        assert info.value.reason == "nope"

    @pytest.mark.asyncio
    async def test_to_future_keeps_exception_reasons(self) -> None:
        set_timer(AsyncioTimer())
        set_microtask_queue(MicrotaskQueue())

        with pytest.raises(KeyError):
            await to_future(Promise.reject(KeyError("k")))

    @pytest.mark.asyncio
    async def test_reactions_armed_inside_a_task_run_outside_it(self) -> None:
        set_timer(AsyncioTimer())
        set_microtask_queue(MicrotaskQueue())
        settled = Promise.resolve("x")
        seen: list[Any] = []

        def handler(_: Any) -> None:
            seen.append(current_task())
            seen.append(settled())
            try:
                await_(settled)
            except AwaitOutsideTaskError:
                seen.append("raised")

        @async_
        def body() -> Generator[Any, Any, str]:
            Promise.resolve(1).then(handler)
            yield from await_(sleep(0.01))
            return "ok"

        assert await to_future(body()) == "ok"
        assert seen == [None, ("x", PromiseState.FULFILLED), "raised"]
