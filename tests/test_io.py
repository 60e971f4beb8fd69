"""Tests for sleep, fetch and fetch_img against deterministic services."""

from __future__ import annotations

from typing import Any

import pytest

from dopromise import UNDEFINED, Promise, PromiseState, Response, fetch, fetch_img, sleep
from dopromise.errors import FetchError, ImageLoadError
from dopromise.scheduling import SimulationTimer
from dopromise.testing import StubFetchService, StubImageService, StubResponse


class TestSleep:
    def test_resolves_with_undefined_after_delay(self, timer: SimulationTimer) -> None:
        promise = sleep(2.5)

        assert timer.run_until_settled(promise) == (UNDEFINED, PromiseState.FULFILLED)
        assert timer.current_time == 2.5

    def test_default_delay_is_zero(self, timer: SimulationTimer) -> None:
        timer.run_until_settled(sleep())

        assert timer.current_time == 0.0

    def test_invalid_delay_rejects(self) -> None:
        reason, state = sleep("soon")()  # type: ignore[arg-type]

        assert state is PromiseState.REJECTED
        assert isinstance(reason, TypeError)

    def test_static_facade(self, timer: SimulationTimer) -> None:
        assert timer.run_until_settled(Promise.sleep(1)) == (UNDEFINED, PromiseState.FULFILLED)


class TestFetch:
    def test_successful_response(self, timer: SimulationTimer, fetch_stub: StubFetchService) -> None:
        fetch_stub.respond(
            "https://example.test/data",
            StubResponse(status=200, body=b'{"ok": true}', headers={"content-type": "application/json"}, delay=0.2),
        )

        response, state = timer.run_until_settled(fetch("https://example.test/data"))

        assert state is PromiseState.FULFILLED
        assert isinstance(response, Response)
        assert response.ok
        assert response.status == 200
        assert response.body == b'{"ok": true}'
        assert response.headers == {"content-type": "application/json"}
        assert timer.current_time == pytest.approx(0.2)

    @pytest.mark.parametrize(("status", "ok"), [(199, False), (204, True), (299, True), (300, False), (404, False)])
    def test_ok_tracks_2xx(
        self,
        timer: SimulationTimer,
        fetch_stub: StubFetchService,
        status: int,
        ok: bool,
    ) -> None:
        fetch_stub.respond("https://example.test/", StubResponse(status=status))

        response, state = timer.run_until_settled(fetch("https://example.test/"))

        assert state is PromiseState.FULFILLED
        assert response.status == status
        assert response.ok is ok

    def test_failure_rejects_with_fetch_error(self, timer: SimulationTimer, fetch_stub: StubFetchService) -> None:
        fetch_stub.fail("https://down.test/", "connection refused")

        reason, state = timer.run_until_settled(fetch("https://down.test/"))

        assert state is PromiseState.REJECTED
        assert isinstance(reason, FetchError)
        assert reason.url == "https://down.test/"
        assert reason.reason == "connection refused"

    def test_request_options_reach_the_service(self, timer: SimulationTimer, fetch_stub: StubFetchService) -> None:
        fetch_stub.respond("https://example.test/post", StubResponse(status=201))

        timer.run_until_settled(
            fetch(
                "https://example.test/post",
                method="post",
                body="payload",
                headers={"X-Token": "abc"},
                cache="reloadIgnoringLocalCacheData",
                redirect=False,
            )
        )

        [request] = fetch_stub.requests
        assert request.method == "POST"
        assert request.body == "payload"
        assert request.headers == {"X-Token": "abc"}
        assert request.cache == "reloadIgnoringLocalCacheData"
        assert request.redirect is False

    def test_explicit_service_wins(self, timer: SimulationTimer, fetch_stub: StubFetchService) -> None:
        other = StubFetchService()
        other.respond("https://example.test/", StubResponse(status=202))

        response, _state = timer.run_until_settled(fetch("https://example.test/", service=other))

        assert response.status == 202
        assert fetch_stub.requests == []

    def test_service_error_rejects(self) -> None:
        class Broken:
            def fetch_async(self, *args: Any) -> None:
                raise ConnectionError("no network")

        reason, state = fetch("https://example.test/", service=Broken())()

        assert state is PromiseState.REJECTED
        assert isinstance(reason, ConnectionError)


class TestFetchImg:
    def test_image_fulfils(self, timer: SimulationTimer, image_stub: StubImageService) -> None:
        image = object()
        image_stub.images["https://example.test/cat.png"] = image

        assert timer.run_until_settled(fetch_img("https://example.test/cat.png")) == (
            image,
            PromiseState.FULFILLED,
        )
        assert image_stub.requested == ["https://example.test/cat.png"]

    def test_missing_image_rejects(self, timer: SimulationTimer, image_stub: StubImageService) -> None:
        reason, state = timer.run_until_settled(Promise.fetch_img("https://example.test/none.png"))

        assert state is PromiseState.REJECTED
        assert isinstance(reason, ImageLoadError)
        assert reason.url == "https://example.test/none.png"
