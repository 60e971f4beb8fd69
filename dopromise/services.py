"""External I/O services consumed by the promise wrappers in ``dopromise.io``.

Both services are callback based and know nothing about promises:

- ``FetchService.fetch_async`` reports ``callback(status, body, headers)``;
  a negative status means the request failed and ``body`` holds the reason.
- ``ImageService.load_image_async`` reports ``callback(image)`` or
  ``callback(None)``.

The real implementations run on the asyncio event loop, so pair them with
``AsyncioTimer`` as the engine's timer service.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from io import BytesIO
from typing import Any, Protocol

import httpx
from loguru import logger
from PIL import Image

DEFAULT_TIMEOUT = 30.0
DEFAULT_CACHE_MODE = "protocolCachePolicy"
FAILED_STATUS = -1

# Request cache policies and the Cache-Control directive each one sends.
CACHE_CONTROL_BY_MODE: Mapping[str, str | None] = {
    "protocolCachePolicy": None,
    "reloadIgnoringLocalCacheData": "no-cache",
    "reloadIgnoringLocalAndRemoteCacheData": "no-cache, no-store",
    "reloadRevalidatingCacheData": "max-age=0",
    "returnCacheDataElseLoad": "max-stale",
    "returnCacheDataDontLoad": "only-if-cached",
}

FetchCallback = Callable[[int, Any, "Mapping[str, str] | None"], None]
ImageCallback = Callable[["Image.Image | None"], None]


class FetchService(Protocol):
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
        ...


class ImageService(Protocol):
    def load_image_async(self, url: str, callback: ImageCallback) -> Any:
        ...


def build_request_headers(
    headers: Mapping[str, str] | None,
    cache: str,
) -> dict[str, str]:
    """Merge caller headers with the Cache-Control directive for ``cache``."""

    if cache not in CACHE_CONTROL_BY_MODE:
        raise ValueError(
            f"cache must be one of {sorted(CACHE_CONTROL_BY_MODE)}, got {cache!r}"
        )
    request_headers = dict(headers or {})
    directive = CACHE_CONTROL_BY_MODE[cache]
    if directive is not None:
        request_headers.setdefault("Cache-Control", directive)
    return request_headers


class HttpxFetchService:
    """Fetch service running ``httpx.AsyncClient`` requests as asyncio tasks."""

    def __init__(
        self,
        *,
        timeout: float | None = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport
        self._loop = loop

    def fetch_async(
        self,
        url: str,
        method: str,
        body: bytes | str | None,
        headers: Mapping[str, str] | None,
        cache: str,
        redirect: bool,
        callback: FetchCallback,
    ) -> asyncio.Task[None]:
        request_headers = build_request_headers(headers, cache)
        loop = self._loop if self._loop is not None else asyncio.get_running_loop()
        return loop.create_task(
            self._request(url, method, body, request_headers, redirect, callback)
        )

    async def _request(
        self,
        url: str,
        method: str,
        body: bytes | str | None,
        headers: dict[str, str],
        redirect: bool,
        callback: FetchCallback,
    ) -> None:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=redirect,
                transport=self._transport,
            ) as client:
                response = await client.request(method, url, content=body, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("{} {} failed: {!r}", method, url, exc)
            callback(FAILED_STATUS, str(exc), None)
            return
        logger.debug("{} {} -> {}", method, url, response.status_code)
        callback(response.status_code, response.content, dict(response.headers))


def decode_image(data: bytes) -> Image.Image:
    with BytesIO(data) as buffer:
        image = Image.open(buffer)
        return image.copy()


class PillowImageService:
    """Image service that downloads through a fetch service and decodes with Pillow."""

    def __init__(self, fetch_service: FetchService | None = None) -> None:
        self._fetch_service = fetch_service

    def load_image_async(self, url: str, callback: ImageCallback) -> Any:
        def on_response(status: int, body: Any, _headers: Mapping[str, str] | None) -> None:
            if not 200 <= status < 300 or not isinstance(body, bytes | bytearray):
                logger.debug("No image at {} (status {})", url, status)
                callback(None)
                return
            try:
                image = decode_image(bytes(body))
            except (OSError, ValueError) as exc:
                logger.debug("Could not decode image from {}: {!r}", url, exc)
                callback(None)
                return
            callback(image)

        service = self._fetch_service if self._fetch_service is not None else get_fetch_service()
        return service.fetch_async(url, "GET", None, None, DEFAULT_CACHE_MODE, True, on_response)


# ============================================================================
# Process-wide services
# ============================================================================

_fetch_service: FetchService | None = None
_image_service: ImageService | None = None


def get_fetch_service() -> FetchService:
    global _fetch_service
    if _fetch_service is None:
        _fetch_service = HttpxFetchService()
    return _fetch_service


def set_fetch_service(service: FetchService | None) -> FetchService | None:
    global _fetch_service
    previous, _fetch_service = _fetch_service, service
    return previous


def get_image_service() -> ImageService:
    global _image_service
    if _image_service is None:
        _image_service = PillowImageService()
    return _image_service


def set_image_service(service: ImageService | None) -> ImageService | None:
    global _image_service
    previous, _image_service = _image_service, service
    return previous


__all__ = [
    "CACHE_CONTROL_BY_MODE",
    "DEFAULT_CACHE_MODE",
    "FAILED_STATUS",
    "FetchCallback",
    "FetchService",
    "HttpxFetchService",
    "ImageCallback",
    "ImageService",
    "PillowImageService",
    "build_request_headers",
    "decode_image",
    "get_fetch_service",
    "get_image_service",
    "set_fetch_service",
    "set_image_service",
]
