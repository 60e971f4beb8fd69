"""Aggregate combinators over keyed collections of promises.

Inputs are either a mapping, whose keys are kept, or any other iterable, keyed
by position. Every element is coerced with ``Promise.resolve`` first, so plain
values and foreign thenables mix freely with promises. Result mappings are
``FrozenDict`` instances in input key order.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from dopromise._vendor import FrozenDict
from dopromise.errors import AggregateError
from dopromise.promise import Promise, PromiseState


def _keyed_items(iterable: Iterable[Any] | Mapping[Any, Any]) -> list[tuple[Any, Any]]:
    if isinstance(iterable, Mapping):
        return list(iterable.items())
    return list(enumerate(iterable))


def _collect(keys: list[Any], values: dict[Any, Any]) -> FrozenDict:
    return FrozenDict((key, values[key]) for key in keys)


def all_(iterable: Iterable[Any] | Mapping[Any, Any]) -> Promise[FrozenDict]:
    """Fulfil with every value once all fulfil; reject with the first rejection."""

    promise, resolve, reject = Promise.with_resolvers()
    items = _keyed_items(iterable)
    keys = [key for key, _ in items]
    values: dict[Any, Any] = {}
    pending = len(items)

    def fulfilled(key: Any, value: Any) -> None:
        nonlocal pending
        values[key] = value
        pending -= 1
        if pending == 0:
            resolve(_collect(keys, values))

    for key, item in items:
        Promise.resolve(item).then(lambda value, key=key: fulfilled(key, value), reject)

    if pending == 0:
        resolve(FrozenDict())

    return promise


def all_settled(iterable: Iterable[Any] | Mapping[Any, Any]) -> Promise[FrozenDict]:
    """Fulfil with a status record per key once every element settled. Never rejects."""

    promise, resolve, _reject = Promise.with_resolvers()
    items = _keyed_items(iterable)
    keys = [key for key, _ in items]
    outcomes: dict[Any, Any] = {}
    pending = len(items)

    def record(key: Any, outcome: FrozenDict) -> None:
        outcomes[key] = outcome

    def settled() -> None:
        nonlocal pending
        pending -= 1
        if pending == 0:
            resolve(_collect(keys, outcomes))

    for key, item in items:
        Promise.resolve(item).then(
            lambda value, key=key: record(
                key, FrozenDict(status=PromiseState.FULFILLED.value, value=value)
            ),
            lambda reason, key=key: record(
                key, FrozenDict(status=PromiseState.REJECTED.value, reason=reason)
            ),
        ).finally_(settled)

    if pending == 0:
        resolve(FrozenDict())

    return promise


def any_(iterable: Iterable[Any] | Mapping[Any, Any]) -> Promise[Any]:
    """Fulfil with the first fulfilment; reject with ``AggregateError`` if all reject."""

    promise, resolve, reject = Promise.with_resolvers()
    items = _keyed_items(iterable)
    keys = [key for key, _ in items]
    reasons: dict[Any, Any] = {}
    pending = len(items)

    def rejected(key: Any, reason: Any) -> None:
        nonlocal pending
        reasons[key] = reason
        pending -= 1
        if pending == 0:
            reject(AggregateError(_collect(keys, reasons)))

    for key, item in items:
        Promise.resolve(item).then(resolve, lambda reason, key=key: rejected(key, reason))

    if pending == 0:
        reject(AggregateError())

    return promise


def race(iterable: Iterable[Any] | Mapping[Any, Any]) -> Promise[Any]:
    """Settle like the first element to settle. An empty input never settles."""

    promise, resolve, reject = Promise.with_resolvers()
    for _key, item in _keyed_items(iterable):
        Promise.resolve(item).then(resolve, reject)
    return promise


__all__ = [
    "all_",
    "all_settled",
    "any_",
    "race",
]
