"""Environment-driven configuration for dopromise.

``DOPROMISE_DEBUG``
    ``1``/``true``/``yes`` enables the library's loguru output.
``DOPROMISE_TIMER``
    Backend for the process-wide timer service: ``blocking`` (default),
    ``simulation`` or ``asyncio``.
"""

from __future__ import annotations

import os
from typing import Literal

from dopromise.scheduling import AsyncioTimer, BlockingTimer, SimulationTimer, TimerService

TimerBackend = Literal["blocking", "simulation", "asyncio"]

ENV_DEBUG = "DOPROMISE_DEBUG"
ENV_TIMER = "DOPROMISE_TIMER"
DEFAULT_TIMER_BACKEND: TimerBackend = "blocking"

_VALID_BACKENDS: tuple[TimerBackend, ...] = ("blocking", "simulation", "asyncio")


def debug_enabled() -> bool:
    return os.environ.get(ENV_DEBUG, "").lower() in ("1", "true", "yes")


def timer_backend() -> str:
    return os.environ.get(ENV_TIMER, DEFAULT_TIMER_BACKEND).strip().lower()


def create_timer(backend: str) -> TimerService:
    """Build a timer service from its backend name."""

    if backend not in _VALID_BACKENDS:
        raise ValueError(
            f"{ENV_TIMER} must be one of 'blocking', 'simulation', or 'asyncio', "
            f"got {backend!r}"
        )
    if backend == "simulation":
        return SimulationTimer()
    if backend == "asyncio":
        return AsyncioTimer()
    return BlockingTimer()


__all__ = [
    "DEFAULT_TIMER_BACKEND",
    "ENV_DEBUG",
    "ENV_TIMER",
    "TimerBackend",
    "create_timer",
    "debug_enabled",
    "timer_backend",
]
