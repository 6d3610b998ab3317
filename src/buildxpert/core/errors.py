"""
Structured error types for BuildXpert database tooling.

Every error raised by ``buildxpert`` code carries a category, a retryable
flag, structured context (which migration, which table, which SQLSTATE) and
an optional chained cause. Callers branch on the error *type*, never on
message text or driver-specific codes.

Manifesto:
    - **Typed hierarchy:** One class per failure mode the runner reacts to
    - **Explicit variants:** ``TableNotFoundError`` instead of checking
      SQLSTATE ``42P01`` at call sites
    - **Rich context:** Errors carry migration ids and SQL state for logging
    - **Error chaining:** The driver exception is kept as ``cause``

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────────┐
        │                      BuildXpertError                          │
        │        (category, retryable, context, cause)                  │
        ├───────────────────────────────────────────────────────────────┤
        │  DatabaseError        ValidationError      MigrationError     │
        │  (DATABASE)           (VALIDATION)         (MIGRATION)        │
        │     │                     │                    │              │
        │  QueryError           MigrationIdError     UnitExecutionError │
        │  TableNotFoundError   RegistryError        LedgerWriteError   │
        │  DatabaseConnection-                                          │
        │    Error                                                      │
        │                                                               │
        │  ConfigError          LockContentionError                     │
        │  (CONFIG)             (LOCK)                                  │
        └───────────────────────────────────────────────────────────────┘

Examples:
    >>> err = LockContentionError("another migration process is running")
    >>> err.category
    <ErrorCategory.LOCK: 'LOCK'>
    >>> err.with_context(lock_key=42).context.lock_key
    42

Guardrails:
    ❌ DON'T: Inspect ``str(exc)`` to decide what happened
    ✅ DO: ``except TableNotFoundError``

    ❌ DON'T: Swallow the driver exception
    ✅ DO: Pass it as ``cause=``

Tags:
    error-handling, exception-hierarchy, migrations, buildxpert
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and reporting."""

    DATABASE = "DATABASE"  # Query failure, missing relation, lost connection
    VALIDATION = "VALIDATION"  # Bad migration id, bad registry entry
    CONFIG = "CONFIG"  # Missing or invalid settings
    MIGRATION = "MIGRATION"  # Unit execution, ledger bookkeeping
    LOCK = "LOCK"  # Advisory lock contention
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Where an error happened.

    ``to_dict()`` keeps only the fields that are set. Keys without a
    dedicated field land in ``metadata`` and are flattened into the dict.
    """

    migration_id: str | None = None
    migration_name: str | None = None
    lock_key: int | None = None
    table: str | None = None
    sql_state: str | None = None  # five-character SQLSTATE from the driver

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "metadata" and getattr(self, f.name) is not None
        }
        data.update(self.metadata)
        return data


class BuildXpertError(Exception):
    """
    Root of every error raised by buildxpert.

    Subclasses pick a ``default_category`` and ``default_retryable``; both
    can be overridden per instance. ``cause`` is chained as ``__cause__`` so
    tracebacks show the driver error underneath.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category if category is not None else self.default_category
        self.retryable = self.default_retryable if retryable is None else retryable
        self.context = context if context is not None else ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> BuildXpertError:
        """
        Attach context and return ``self``.

        Known ``ErrorContext`` fields are set directly; other keys go to
        ``metadata``::

            raise QueryError("insert failed").with_context(migration_id="022", attempt=2)
        """
        known = {f.name for f in fields(self.context)} - {"metadata"}
        for key, value in kwargs.items():
            if key in known:
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialisable form for JSON output and log events."""
        data: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context = self.context.to_dict()
        if context:
            data["context"] = context
        if self.cause is not None:
            data["cause"] = str(self.cause)
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(BuildXpertError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class QueryError(DatabaseError):
    """SQL statement rejected by the database."""

    pass


class TableNotFoundError(DatabaseError):
    """
    The statement referenced a relation that does not exist.

    Raised by the ``Database`` capability for PostgreSQL SQLSTATE ``42P01``
    and SQLite's ``no such table``. The ledger relies on this variant to
    treat a missing bookkeeping table as "nothing executed yet".
    """

    pass


class DatabaseConnectionError(DatabaseError):
    """Connection to the database could not be established or was lost."""

    default_retryable = True


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(BuildXpertError):
    """Input failed validation. Never retryable."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class MigrationIdError(ValidationError):
    """A migration id is malformed or not registered."""

    def __init__(self, migration_id: str, valid_ids: Sequence[str], reason: str | None = None):
        self.migration_id = migration_id
        self.valid_ids = list(valid_ids)
        detail = reason or "is not a registered migration"
        message = f"Migration id {migration_id!r} {detail}. Valid ids: {', '.join(self.valid_ids) or '(none)'}"
        super().__init__(message, context=ErrorContext(migration_id=migration_id))


class RegistryError(ValidationError):
    """A migration unit could not be registered."""

    pass


# =============================================================================
# CONFIG ERRORS
# =============================================================================


class ConfigError(BuildXpertError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# MIGRATION ERRORS
# =============================================================================


class MigrationError(BuildXpertError):
    """Migration execution or bookkeeping error."""

    default_category = ErrorCategory.MIGRATION
    default_retryable = False


class UnitExecutionError(MigrationError):
    """A migration unit raised or reported failure."""

    pass


class LedgerWriteError(MigrationError):
    """Recording an outcome in the execution ledger failed."""

    pass


# =============================================================================
# LOCK ERRORS
# =============================================================================


class LockContentionError(BuildXpertError):
    """Another migration process holds the advisory lock."""

    default_category = ErrorCategory.LOCK
    default_retryable = False


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """True when retrying the failed operation may succeed."""
    if isinstance(error, BuildXpertError):
        return error.retryable
    return isinstance(error, (ConnectionError, BrokenPipeError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Category for any exception, including ones raised outside buildxpert."""
    if isinstance(error, BuildXpertError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.DATABASE
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "BuildXpertError",
    "DatabaseError",
    "QueryError",
    "TableNotFoundError",
    "DatabaseConnectionError",
    "ValidationError",
    "MigrationIdError",
    "RegistryError",
    "ConfigError",
    "MigrationError",
    "UnitExecutionError",
    "LedgerWriteError",
    "LockContentionError",
    "is_retryable",
    "categorize_error",
]
