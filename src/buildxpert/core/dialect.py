"""SQL dialect helpers for the migration tooling.

The runner itself only speaks portable SQL; the few places where SQLite
and PostgreSQL disagree (catalog lookups, guarded ``ADD COLUMN``, advisory
locks) go through a ``Dialect`` so the ledger and lock gate never branch
on a backend string.

Architecture::

    ┌──────────────────────────────┐   ┌──────────────────────────────┐
    │ SQLiteDialect                │   │ PostgreSQLDialect            │
    │ sqlite_master lookup         │   │ information_schema lookup    │
    │ PRAGMA table_info + ADD      │   │ ADD COLUMN IF NOT EXISTS     │
    │ no advisory locks            │   │ pg_try_advisory_lock         │
    └──────────────────────────────┘   └──────────────────────────────┘

Examples:
    >>> get_dialect("postgresql").supports_advisory_locks
    True
    >>> SQLiteDialect().table_exists_query()
    "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?"

Tags:
    dialect, sql, sqlite, postgresql, buildxpert
"""

from __future__ import annotations

import re
from typing import Protocol, runtime_checkable

from buildxpert.core.errors import ConfigError, ValidationError
from buildxpert.core.protocols import Connection

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_identifier(name: str) -> str:
    """Validate a bare SQL identifier; table and column names are never bound parameters."""
    if not _IDENTIFIER.match(name):
        raise ValidationError(f"invalid SQL identifier: {name!r}")
    return name


@runtime_checkable
class Dialect(Protocol):
    """Backend-specific SQL fragments used by the ledger and lock gate."""

    @property
    def name(self) -> str: ...

    @property
    def supports_advisory_locks(self) -> bool: ...

    def table_exists_query(self) -> str: ...

    def add_column_if_missing(self, conn: Connection, table: str, column: str, ddl_type: str) -> bool: ...


class SQLiteDialect:
    """SQLite (3.24+ for ``ON CONFLICT ... DO UPDATE``)."""

    name = "sqlite"
    supports_advisory_locks = False

    def table_exists_query(self) -> str:
        return "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?"

    def add_column_if_missing(self, conn: Connection, table: str, column: str, ddl_type: str) -> bool:
        """Add ``column`` unless ``PRAGMA table_info`` already lists it.

        Returns True when the column was added.
        """
        table = quote_identifier(table)
        column = quote_identifier(column)
        conn.execute(f"PRAGMA table_info({table})")
        existing = {row[1] for row in conn.fetchall()}
        if column in existing:
            return False
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl_type}")
        return True


class PostgreSQLDialect:
    """PostgreSQL 9.6+."""

    name = "postgresql"
    supports_advisory_locks = True

    def table_exists_query(self) -> str:
        return (
            "SELECT 1 FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = ?"
        )

    def add_column_if_missing(self, conn: Connection, table: str, column: str, ddl_type: str) -> bool:
        table = quote_identifier(table)
        column = quote_identifier(column)
        conn.execute(
            "SELECT 1 FROM information_schema.columns "
            "WHERE table_schema = current_schema() AND table_name = ? AND column_name = ?",
            (table, column),
        )
        if conn.fetchone() is not None:
            return False
        conn.execute(f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {column} {ddl_type}")
        return True


_DIALECTS: dict[str, type] = {
    "sqlite": SQLiteDialect,
    "postgresql": PostgreSQLDialect,
}


def get_dialect(backend: str) -> Dialect:
    """Return the dialect for a backend name (``sqlite`` / ``postgresql``)."""
    try:
        return _DIALECTS[backend]()
    except KeyError:
        raise ConfigError(
            f"unsupported database backend {backend!r}; expected one of: {', '.join(sorted(_DIALECTS))}"
        ) from None


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "get_dialect",
    "quote_identifier",
]
