"""
Small vendored value types shared across dopromise.

These live here rather than in the engine modules so that every layer
(promise core, combinators, services) can import them without cycles.
"""

from __future__ import annotations

from typing import Final

from frozendict import frozendict


class Undefined:
    """Singleton standing in for a settlement that carried no value.

    ``resolve()`` and ``reject()`` called without an argument store this
    marker. It is distinct from ``None`` so an explicit ``None`` payload is
    preserved as-is.
    """

    __slots__ = ()
    _instance: Undefined | None = None

    def __new__(cls) -> Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "UNDEFINED"


UNDEFINED: Final[Undefined] = Undefined()


# =========================================================
# Frozen Dict
# =========================================================
FrozenDict = frozendict

__all__ = [
    "FrozenDict",
    "UNDEFINED",
    "Undefined",
]
