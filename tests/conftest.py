"""
Pytest configuration for dopromise tests.

Every test runs against a fresh virtual-time timer and microtask queue, so
timers and pending continuations never leak between tests.
"""

from collections.abc import Iterator

import pytest

from dopromise.scheduling import SimulationTimer
from dopromise.services import set_fetch_service, set_image_service
from dopromise.testing import StubFetchService, StubImageService, simulated


@pytest.fixture(autouse=True)
def timer() -> Iterator[SimulationTimer]:
    """Process-wide SimulationTimer installed for the duration of a test."""

    previous_fetch = set_fetch_service(None)
    previous_image = set_image_service(None)
    try:
        with simulated() as simulation:
            yield simulation
    finally:
        set_fetch_service(previous_fetch)
        set_image_service(previous_image)


@pytest.fixture
def fetch_stub() -> StubFetchService:
    stub = StubFetchService()
    set_fetch_service(stub)
    return stub


@pytest.fixture
def image_stub() -> StubImageService:
    stub = StubImageService()
    set_image_service(stub)
    return stub
