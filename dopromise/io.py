"""Promise wrappers around the timer, fetch and image services."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from dopromise._vendor import FrozenDict
from dopromise.errors import FetchError, ImageLoadError
from dopromise.promise import Promise, Settle
from dopromise.scheduling import get_timer
from dopromise.services import (
    DEFAULT_CACHE_MODE,
    FetchService,
    ImageService,
    get_fetch_service,
    get_image_service,
)


@dataclass(frozen=True)
class Response:
    """Fulfilment value of :func:`fetch`."""

    url: str
    ok: bool
    status: int
    body: Any
    headers: FrozenDict = field(default_factory=FrozenDict)


def sleep(seconds: float = 0) -> Promise[Any]:
    """Promise fulfilled with ``UNDEFINED`` after ``seconds``.

    Negative delays count as zero; a non-numeric delay rejects the promise.
    """

    return Promise(lambda resolve, _reject: get_timer().call_later(seconds, resolve))


def fetch(
    url: str,
    *,
    method: str = "GET",
    body: bytes | str | None = None,
    headers: Mapping[str, str] | None = None,
    cache: str = DEFAULT_CACHE_MODE,
    redirect: bool = True,
    service: FetchService | None = None,
) -> Promise[Response]:
    """Request ``url`` and fulfil with a :class:`Response`.

    Any HTTP status fulfils; ``Response.ok`` tells 2xx apart. Only a request
    that produced no status at all rejects, with :class:`FetchError`.
    """

    def executor(resolve: Settle, reject: Settle) -> None:
        def on_complete(status: int, payload: Any, response_headers: Mapping[str, str] | None) -> None:
            if status < 0:
                logger.debug("fetch {} {} failed: {}", method, url, payload)
                reject(FetchError(url, payload))
                return
            logger.debug("fetch {} {} -> {}", method, url, status)
            resolve(
                Response(
                    url=url,
                    ok=200 <= status < 300,
                    status=status,
                    body=payload,
                    headers=FrozenDict(response_headers or {}),
                )
            )

        fetch_service = service if service is not None else get_fetch_service()
        fetch_service.fetch_async(url, method.upper(), body, headers, cache, redirect, on_complete)

    return Promise(executor)


def fetch_img(url: str, *, service: ImageService | None = None) -> Promise[Any]:
    """Load an image; rejects with :class:`ImageLoadError` when none comes back."""

    def executor(resolve: Settle, reject: Settle) -> None:
        def on_image(image: Any) -> None:
            if image is None:
                reject(ImageLoadError(url))
            else:
                resolve(image)

        image_service = service if service is not None else get_image_service()
        image_service.load_image_async(url, on_image)

    return Promise(executor)


__all__ = [
    "Response",
    "fetch",
    "fetch_img",
    "sleep",
]
