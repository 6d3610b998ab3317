"""
Ok / Err values for outcomes that are expected to fail sometimes.

A migration unit failing is normal operation: the runner records it and
decides whether to continue. Those outcomes travel as ``Ok`` / ``Err``.
Faults the caller cannot act on (a dropped connection) are still raised.

Examples:
    >>> Ok(2).map(lambda x: x * 21).unwrap()
    42
    >>> try_result(lambda: int("nope")).is_err()
    True
    >>> Err(ValueError("bad")).unwrap_or(0)
    0

Tags:
    result-type, error-handling, buildxpert
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """The operation produced ``value``."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Ok(f(self.value))

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        return self

    def and_then(self, f: Callable[[T], Result[U]]) -> Result[U]:
        return f(self.value)


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """The operation failed with ``error``; ``unwrap()`` re-raises it."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Err(self.error)

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        return Err(f(self.error))

    def and_then(self, f: Callable[[T], Result[U]]) -> Result[U]:
        return Err(self.error)


Result = Ok[T] | Err[T]


def try_result(f: Callable[[], T]) -> Result[T]:
    """Call ``f()`` and capture a raised ``Exception`` as ``Err``."""
    try:
        return Ok(f())
    except Exception as exc:
        return Err(exc)


__all__ = ["Ok", "Err", "Result", "try_result"]
