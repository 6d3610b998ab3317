"""Migration units and their outcomes.

A unit is one idempotent schema change: a function that receives a
``Connection`` and issues DDL/DML through it. The function may raise, or
report failure by returning ``Err`` (or ``False``); both end up as an
``Err(UnitExecutionError)`` from ``MigrationUnit.apply``. A lost database
connection is not a unit failure and propagates unchanged.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any

from buildxpert.core.errors import DatabaseConnectionError, ErrorContext, UnitExecutionError
from buildxpert.core.hashing import compute_hash
from buildxpert.core.protocols import Connection
from buildxpert.core.result import Err, Ok, Result

UnitFunction = Callable[[Connection], Any]


class UnitState(str, Enum):
    """Lifecycle of one unit within one runner invocation.

    ``UnitResult`` only ever carries a terminal state; ``PENDING`` and
    ``RUNNING`` name the phases before a unit reaches one.
    """

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (UnitState.SUCCEEDED, UnitState.FAILED, UnitState.SKIPPED)


@dataclass(frozen=True, slots=True)
class Succeeded:
    duration_ms: int

    kind = "success"
    success = True


@dataclass(frozen=True, slots=True)
class Failed:
    reason: str
    duration_ms: int
    error_type: str = "UnitExecutionError"

    kind = "failure"
    success = False


MigrationOutcome = Succeeded | Failed


@dataclass(frozen=True)
class MigrationUnit:
    """
    One registered schema change.

    Attributes:
        id: Three-digit identifier, also the ledger primary key
        name: Short human-readable name
        description: What the change does
        function: Callable taking a ``Connection``
        required: Failure of a required unit halts the batch
    """

    id: str
    name: str
    description: str
    function: UnitFunction = field(repr=False, compare=False)
    required: bool = True

    @cached_property
    def checksum(self) -> str:
        """Fingerprint of the function source, used to flag edited units."""
        try:
            source = inspect.getsource(self.function)
        except (OSError, TypeError):
            source = getattr(self.function, "__qualname__", repr(self.function))
        return compute_hash(self.id, source)

    @property
    def kind(self) -> str:
        return "required" if self.required else "optional"

    def _failure(self, message: str, cause: Exception | None = None) -> Err[None]:
        context = ErrorContext(migration_id=self.id, migration_name=self.name)
        return Err(UnitExecutionError(message, context=context, cause=cause))

    def apply(self, conn: Connection) -> Result[None]:
        """Run the unit function and normalise whatever it reports."""
        try:
            returned = self.function(conn)
        except DatabaseConnectionError:
            raise
        except Exception as exc:
            return self._failure(str(exc) or type(exc).__name__, cause=exc)

        if isinstance(returned, Err):
            error = returned.error
            if isinstance(error, UnitExecutionError):
                return Err(error)
            return self._failure(str(error) or type(error).__name__, cause=error)
        if returned is False:
            return self._failure(f"migration {self.id} reported failure")
        return Ok(None)


__all__ = [
    "Failed",
    "MigrationOutcome",
    "MigrationUnit",
    "Succeeded",
    "UnitFunction",
    "UnitState",
]
