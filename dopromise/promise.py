"""
The Promise state machine.

A promise starts pending and settles exactly once, as fulfilled with a value
or rejected with a reason. Handlers registered with ``then`` never run
synchronously: settlement hands each reaction to the microtask queue, in
registration order.

Example:
    >>> from dopromise import Promise
    >>>
    >>> p = Promise(lambda resolve, reject: resolve(21))
    >>> doubled = p.then(lambda v: v * 2)
    >>> doubled.catch(print)
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from functools import partial, wraps
from typing import TYPE_CHECKING, Any, Generic, NamedTuple, TypeVar

from loguru import logger

from dopromise._vendor import UNDEFINED
from dopromise.errors import ChainingCycleError, NotAPromiseError
from dopromise.microtask import get_microtask_queue
from dopromise.utils import as_handler, is_thenable

if TYPE_CHECKING:
    from collections.abc import Generator

    from dopromise.task import AsyncFunction

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])

Settle = Callable[..., None]
Executor = Callable[[Settle, Settle], Any]


class PromiseState(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class Reaction:
    """A registered continuation: optional handlers plus the derived promise's settle pair."""

    resolve: Settle
    reject: Settle
    on_fulfilled: Callable[[Any], Any] | None = None
    on_rejected: Callable[[Any], Any] | None = None

    def handler_for(self, state: PromiseState) -> Callable[[Any], Any] | None:
        if state is PromiseState.FULFILLED:
            return self.on_fulfilled
        return self.on_rejected

    def settle_for(self, state: PromiseState) -> Settle:
        if state is PromiseState.FULFILLED:
            return self.resolve
        return self.reject


class Resolvers(NamedTuple, Generic[T]):
    promise: Promise[T]
    resolve: Settle
    reject: Settle


def _requires_promise(method: F) -> F:
    @wraps(method)
    def checked(self: Any, *args: Any, **kwargs: Any) -> Any:
        if not isinstance(self, Promise):
            raise NotAPromiseError(self, method.__name__)
        return method(self, *args, **kwargs)

    return checked  # type: ignore[return-value]


class Promise(Generic[T]):
    """Deferred value with a one-shot Pending -> Fulfilled/Rejected transition.

    ``executor(resolve, reject)`` runs synchronously inside the constructor.
    An exception escaping it rejects the promise. Both settle functions take
    an optional argument; calling them with none stores ``UNDEFINED``.
    """

    __slots__ = ("_state", "_result", "_reactions", "__weakref__")

    def __init__(self, executor: Executor) -> None:
        self._state = PromiseState.PENDING
        self._result: Any = UNDEFINED
        self._reactions: deque[Reaction] = deque()

        try:
            executor(self._resolve, self._reject)
        except Exception as exc:
            self._reject(exc)

    # ------------------------------------------------------------------
    # settlement
    # ------------------------------------------------------------------

    def _resolve(self, value: Any = UNDEFINED) -> None:
        if self._state is not PromiseState.PENDING:
            return
        if value is self:
            logger.debug("Chaining cycle detected for {!r}", self)
            self._reject(ChainingCycleError())
        elif is_thenable(value):
            get_microtask_queue().enqueue(partial(self._adopt, value))
        else:
            self._settle(PromiseState.FULFILLED, value)

    def _reject(self, reason: Any = UNDEFINED) -> None:
        if self._state is not PromiseState.PENDING:
            return
        self._settle(PromiseState.REJECTED, reason)

    def _adopt(self, thenable: Any) -> None:
        try:
            thenable.then(self._resolve, self._reject)
        except Exception as exc:
            self._reject(exc)

    def _settle(self, state: PromiseState, result: Any) -> None:
        self._state = state
        self._result = result
        self._execute()

    def _execute(self) -> None:
        if self._state is PromiseState.PENDING:
            return
        queue = get_microtask_queue()
        # Reactions appended by a handler while this loop runs are drained too.
        while self._reactions:
            queue.enqueue(partial(self._react, self._reactions.popleft()))

    def _react(self, reaction: Reaction) -> None:
        handler = reaction.handler_for(self._state)
        if handler is None:
            reaction.settle_for(self._state)(self._result)
            return
        try:
            value = handler(self._result)
        except Exception as exc:
            reaction.reject(exc)
            return
        reaction.resolve(value)

    # ------------------------------------------------------------------
    # inspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> PromiseState:
        return self._state

    @property
    def result(self) -> Any:
        """Fulfilment value or rejection reason; ``UNDEFINED`` while pending."""
        return self._result

    def __call__(self) -> tuple[Any, PromiseState] | Generator[Any, Any, Any]:
        """Inspect outside an async task, await inside one.

        Outside a task returns ``(result, state)``. Inside a running task
        returns the suspension of ``await_(self)``, so the body writes
        ``value = yield from promise()``.
        """

        from dopromise.task import await_, current_task

        if current_task() is None:
            return self._result, self._state
        return await_(self)

    def __repr__(self) -> str:
        if self._state is PromiseState.PENDING:
            return f"Promise <{self._state}>"
        return f"Promise <{self._state}> -- {self._result!r}"

    # ------------------------------------------------------------------
    # chaining
    # ------------------------------------------------------------------

    @_requires_promise
    def then(
        self,
        on_fulfilled: Callable[[Any], Any] | None = None,
        on_rejected: Callable[[Any], Any] | None = None,
    ) -> Promise[Any]:
        """Register handlers and return the derived promise.

        A missing (or non-callable) handler passes the settlement through to
        the derived promise unchanged.
        """

        def register(resolve: Settle, reject: Settle) -> None:
            self._reactions.append(
                Reaction(
                    resolve=resolve,
                    reject=reject,
                    on_fulfilled=as_handler(on_fulfilled),
                    on_rejected=as_handler(on_rejected),
                )
            )
            self._execute()

        return Promise(register)

    next = then

    @_requires_promise
    def catch(self, on_rejected: Callable[[Any], Any] | None = None) -> Promise[Any]:
        return self.then(None, on_rejected)

    @_requires_promise
    def finally_(self, on_finally: Callable[[], Any] | None = None) -> Promise[T]:
        """Run ``on_finally()`` on either outcome and pass the settlement through.

        An exception raised by ``on_finally`` rejects the derived promise in
        place of the original outcome.
        """

        handler = as_handler(on_finally)

        def register(resolve: Settle, reject: Settle) -> None:
            def run(settle: Settle, result: Any) -> None:
                if handler is not None:
                    try:
                        handler()
                    except Exception as exc:
                        reject(exc)
                        return
                settle(result)

            self.then(partial(run, resolve), partial(run, reject))

        return Promise(register)

    # ------------------------------------------------------------------
    # static construction
    # ------------------------------------------------------------------

    @classmethod
    def with_resolvers(cls) -> Resolvers[Any]:
        """Return a pending promise together with its own settle functions."""

        captured: list[Settle] = []
        promise = cls(lambda resolve, reject: captured.extend((resolve, reject)))
        resolve, reject = captured
        return Resolvers(promise, resolve, reject)

    @classmethod
    def resolve(cls, value: Any = UNDEFINED) -> Promise[Any]:
        """Coerce ``value`` to a promise; an engine promise is returned as-is."""

        if isinstance(value, Promise):
            return value
        return cls(lambda resolve, _reject: resolve(value))

    @classmethod
    def reject(cls, reason: Any = UNDEFINED) -> Promise[Any]:
        return cls(lambda _resolve, reject: reject(reason))

    @staticmethod
    def is_promise(value: Any) -> bool:
        return is_promise(value)

    # Facades onto the other modules, so ``Promise`` alone exposes the API.

    @staticmethod
    def all(iterable: Iterable[Any]) -> Promise[Any]:
        from dopromise.combinators import all_

        return all_(iterable)

    @staticmethod
    def all_settled(iterable: Iterable[Any]) -> Promise[Any]:
        from dopromise.combinators import all_settled

        return all_settled(iterable)

    @staticmethod
    def any(iterable: Iterable[Any]) -> Promise[Any]:
        from dopromise.combinators import any_

        return any_(iterable)

    @staticmethod
    def race(iterable: Iterable[Any]) -> Promise[Any]:
        from dopromise.combinators import race

        return race(iterable)

    @staticmethod
    def async_(fn: Callable[..., Any]) -> AsyncFunction[Any]:
        from dopromise.task import async_

        return async_(fn)

    @staticmethod
    def await_(value: Any) -> Generator[Any, Any, Any]:
        from dopromise.task import await_

        return await_(value)

    @staticmethod
    def sleep(seconds: float = 0) -> Promise[Any]:
        from dopromise.io import sleep

        return sleep(seconds)

    @staticmethod
    def fetch(url: str, **options: Any) -> Promise[Any]:
        from dopromise.io import fetch

        return fetch(url, **options)

    @staticmethod
    def fetch_img(url: str) -> Promise[Any]:
        from dopromise.io import fetch_img

        return fetch_img(url)


def is_promise(value: Any) -> bool:
    """True only for the engine's own promises; foreign thenables do not count."""

    return isinstance(value, Promise)


__all__ = [
    "Executor",
    "Promise",
    "PromiseState",
    "Reaction",
    "Resolvers",
    "Settle",
    "is_promise",
]
