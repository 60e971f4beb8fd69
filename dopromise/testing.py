"""Deterministic services for tests that exercise promises without real I/O."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from dopromise.microtask import MicrotaskQueue, set_microtask_queue
from dopromise.scheduling import SimulationTimer, get_timer, set_timer
from dopromise.services import FAILED_STATUS, FetchCallback, ImageCallback


@dataclass(frozen=True)
class StubResponse:
    """Canned outcome for one URL. A negative ``status`` reports a failure."""

    status: int = 200
    body: Any = b""
    headers: Mapping[str, str] = field(default_factory=dict)
    delay: float = 0.0


@dataclass(frozen=True)
class FetchRequest:
    url: str
    method: str
    body: bytes | str | None
    headers: Mapping[str, str] | None
    cache: str
    redirect: bool


@dataclass
class StubFetchService:
    """Fetch service answering from ``responses`` through the configured timer.

    Unknown URLs fail with ``FAILED_STATUS`` and a "no stub" reason.
    """

    responses: dict[str, StubResponse] = field(default_factory=dict)
    requests: list[FetchRequest] = field(default_factory=list)

    def respond(self, url: str, response: StubResponse) -> None:
        self.responses[url] = response

    def fail(self, url: str, reason: str, delay: float = 0.0) -> None:
        self.responses[url] = StubResponse(status=FAILED_STATUS, body=reason, delay=delay)

    def fetch_async(
        self,
        url: str,
        method: str,
        body: bytes | str | None,
        headers: Mapping[str, str] | None,
        cache: str,
        redirect: bool,
        callback: FetchCallback,
    ) -> Any:
        self.requests.append(FetchRequest(url, method, body, headers, cache, redirect))
        response = self.responses.get(url)
        if response is None:
            response = StubResponse(status=FAILED_STATUS, body=f"no stub for {url}")
        response_headers = None if response.status < 0 else dict(response.headers)
        return get_timer().call_later(
            response.delay,
            lambda: callback(response.status, response.body, response_headers),
        )


@dataclass
class StubImageService:
    """Image service handing out preloaded images; missing URLs yield ``None``."""

    images: dict[str, Any] = field(default_factory=dict)
    delay: float = 0.0
    requested: list[str] = field(default_factory=list)

    def load_image_async(self, url: str, callback: ImageCallback) -> Any:
        self.requested.append(url)
        image = self.images.get(url)
        return get_timer().call_later(self.delay, lambda: callback(image))


@contextmanager
def simulated(start_time: float = 0.0) -> Iterator[SimulationTimer]:
    """Install a fresh virtual-time timer and microtask queue for the block.

    The previous process-wide timer and queue are restored on exit.
    """

    timer = SimulationTimer(start_time)
    previous_timer = set_timer(timer)
    previous_queue = set_microtask_queue(MicrotaskQueue(timer))
    try:
        yield timer
    finally:
        set_microtask_queue(previous_queue)
        set_timer(previous_timer)


__all__ = [
    "FetchRequest",
    "StubFetchService",
    "StubImageService",
    "StubResponse",
    "simulated",
]
