from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from dopromise._vendor import FrozenDict


class PromiseError(Exception):
    """Base class for errors raised by the promise engine itself."""


class ChainingCycleError(PromiseError, TypeError):
    """Rejection reason used when a promise is resolved with itself."""

    def __init__(self, message: str = "Chaining cycle detected for promise") -> None:
        super().__init__(message)


class AggregateError(PromiseError):
    """Rejection reason of ``any_`` when every input rejected.

    ``reasons`` maps each input key to its rejection reason.
    """

    def __init__(self, reasons: Mapping[Any, Any] | None = None) -> None:
        self.reasons = FrozenDict(reasons or {})
        if self.reasons:
            message = f"All promises were rejected ({len(self.reasons)} reasons)"
        else:
            message = "All promises were rejected (no input promises)"
        super().__init__(message)


class RejectionError(PromiseError):
    """Carries a rejection reason that is not itself an exception.

    Raised wherever a rejection has to travel as an exception: thrown into an
    async task body, or out of an asyncio future bridge.
    """

    def __init__(self, reason: Any) -> None:
        self.reason = reason
        super().__init__(f"Promise rejected with {reason!r}")


class FetchError(PromiseError):
    """The fetch service could not complete a request for ``url``."""

    def __init__(self, url: str, reason: Any) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Fetch failed for {url!r}: {reason}")


class ImageLoadError(PromiseError):
    """The image service returned no image for ``url``."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Could not load image from {url!r}")


class PromiseUsageError(RuntimeError):
    """Programmer misuse of the engine. Raised at the call site, never absorbed."""


class AwaitOutsideTaskError(PromiseUsageError):
    """``await_`` was called while no async task is running."""

    def __init__(self) -> None:
        super().__init__(
            "await_() called outside of an async function\n"
            "Hint: decorate the generator function with @async_ and use "
            "`value = yield from await_(promise)` inside its body"
        )


class NotAPromiseError(PromiseUsageError, TypeError):
    """A chaining method was invoked on something that is not a Promise."""

    def __init__(self, receiver: Any, method: str) -> None:
        self.receiver = receiver
        super().__init__(
            f"Promise.{method}() called on {type(receiver).__name__}; "
            "create a Promise instance before chaining"
        )


__all__ = [
    "AggregateError",
    "AwaitOutsideTaskError",
    "ChainingCycleError",
    "FetchError",
    "ImageLoadError",
    "NotAPromiseError",
    "PromiseError",
    "PromiseUsageError",
    "RejectionError",
]
