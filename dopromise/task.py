"""
Async adapter: drive generator functions as promise-returning functions.

A function decorated with ``@async_`` is a generator function whose ``yield``
points are await points. Each call starts a single-shot ``Task`` that advances
the generator; every yielded value is coerced to a promise and the task resumes
when it settles, receiving the value or having the rejection raised at the
``yield``.

Usage:
    @async_
    def load_profile(user_id):
        response = yield from await_(fetch(f"https://api.example.com/u/{user_id}"))
        if not response.ok:
            raise LookupError(user_id)
        yield from await_(sleep(0.1))
        return response.body

    load_profile(42).then(print, print)

``yield promise`` is equivalent to ``yield from await_(promise)``; the helper
adds the check that it runs inside a task.
"""

from __future__ import annotations

import inspect
import types
from collections.abc import Callable, Generator
from contextvars import ContextVar
from dataclasses import dataclass
from functools import partial
from typing import Any, Generic, ParamSpec, TypeVar

from loguru import logger

from dopromise.errors import AwaitOutsideTaskError
from dopromise.promise import Promise, PromiseState
from dopromise.utils import exception_to_reason, reason_to_exception

P = ParamSpec("P")
T = TypeVar("T")

_current_task: ContextVar[Task | None] = ContextVar("dopromise_current_task", default=None)


def current_task() -> Task | None:
    """The task whose generator is executing right now, if any."""

    return _current_task.get()


class Task:
    """One run of an async function.

    Owns the generator and the promise returned to the caller. Resumption is
    driven exclusively by reactions on the promises the body yields.
    """

    def __init__(self, func: Callable[..., Any], name: str | None = None) -> None:
        self._func = func
        self.name = name or getattr(func, "__qualname__", None) or type(func).__name__
        self._generator: Generator[Any, Any, Any] | None = None
        self.promise, self._resolve, self._reject = Promise.with_resolvers()

    @property
    def done(self) -> bool:
        return self.promise.state is not PromiseState.PENDING

    def start(self, *args: Any, **kwargs: Any) -> Promise[Any]:
        try:
            outcome = self._func(*args, **kwargs)
        except Exception as exc:
            logger.debug("Task {} failed before starting: {!r}", self.name, exc)
            self._reject(exception_to_reason(exc))
            return self.promise

        if not inspect.isgenerator(outcome):
            self._resolve(outcome)
            return self.promise

        self._generator = outcome
        logger.debug("Task {} started", self.name)
        self._resume(PromiseState.FULFILLED, None)
        return self.promise

    def _resume(self, state: PromiseState, payload: Any) -> None:
        generator = self._generator
        assert generator is not None
        token = _current_task.set(self)
        try:
            if state is PromiseState.REJECTED:
                yielded = generator.throw(reason_to_exception(payload))
            else:
                yielded = generator.send(payload)
        except StopIteration as stop:
            logger.debug("Task {} finished", self.name)
            self._resolve(stop.value)
            return
        except Exception as exc:
            logger.debug("Task {} raised {!r}", self.name, exc)
            self._reject(exception_to_reason(exc))
            return
        finally:
            _current_task.reset(token)

        Promise.resolve(yielded).then(
            partial(self._resume, PromiseState.FULFILLED),
            partial(self._resume, PromiseState.REJECTED),
        )

    def __repr__(self) -> str:
        return f"Task({self.name!r}, {self.promise!r})"


@dataclass
class AsyncFunction(Generic[P, T]):
    """Callable wrapper returned by :func:`async_`.

    Keeps the wrapped function's metadata and signature, and binds like a
    function when used as a method.
    """

    func: Callable[P, Any]

    def __post_init__(self) -> None:
        wrapped = getattr(self.func, "__wrapped__", self.func)

        try:
            signature = inspect.signature(wrapped)
        except (TypeError, ValueError):
            signature = None
        if signature is not None:
            self.__signature__ = signature  # type: ignore[attr-defined]

        for attr in ("__name__", "__qualname__", "__doc__", "__module__"):
            value = getattr(wrapped, attr, None)
            if value is not None:
                setattr(self, attr, value)

    @property
    def original_func(self) -> Callable[P, Any]:
        return self.func

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return types.MethodType(self, instance)

    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> Promise[T]:
        return Task(self.func).start(*args, **kwargs)


def async_(func: Callable[P, Any]) -> AsyncFunction[P, Any]:
    """Turn a generator function into a function returning a promise.

    Plain (non-generator) functions are accepted too; they run to completion
    immediately and their return value resolves the promise.
    """

    return AsyncFunction(func)


def _suspend(value: Any) -> Generator[Any, Any, Any]:
    return (yield value)


def await_(value: Any) -> Generator[Any, Any, Any]:
    """Suspend the running task until ``value`` settles.

    Use as ``result = yield from await_(value)``. Raises
    ``AwaitOutsideTaskError`` straight away when no task is running.
    """

    if _current_task.get() is None:
        raise AwaitOutsideTaskError()
    return _suspend(value)


__all__ = [
    "AsyncFunction",
    "Task",
    "async_",
    "await_",
    "current_task",
]
