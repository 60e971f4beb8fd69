"""
Utility functions for the dopromise library.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from dopromise.errors import RejectionError


def as_handler(candidate: Any) -> Callable[..., Any] | None:
    """Return ``candidate`` when it can be invoked as a handler, else ``None``.

    Plain functions, bound methods, classes and objects implementing
    ``__call__`` all qualify. Anything else (including ``None``) means
    "no handler" and the settlement passes through unchanged.
    """

    if callable(candidate):
        return candidate
    return None


def is_thenable(value: Any) -> bool:
    """True for objects exposing a callable ``then`` attribute.

    Classes are excluded: a ``then`` defined on a class is an unbound
    function, not a chaining capability of the value.
    """

    if isinstance(value, type):
        return False
    return callable(getattr(value, "then", None))


def reason_to_exception(reason: Any) -> BaseException:
    """Turn a rejection reason into something that can be raised."""

    if isinstance(reason, BaseException):
        return reason
    return RejectionError(reason)


def exception_to_reason(error: BaseException) -> Any:
    """Inverse of :func:`reason_to_exception`."""

    if isinstance(error, RejectionError):
        return error.reason
    return error


__all__ = [
    "as_handler",
    "exception_to_reason",
    "is_thenable",
    "reason_to_exception",
]
