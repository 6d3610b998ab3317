"""
Canonical protocol definitions for buildxpert.

Migration units, the ledger and the lock gate depend on the *shape* of a
connection, not on SQLAlchemy. Anything matching ``Connection`` can be
handed to a unit, which is what lets tests drive the runner against a
throwaway SQLite file while production runs against PostgreSQL.

Architecture:
    ::

        Connection Protocol:
        ┌────────────────────────────────────────────────────────┐
        │ execute(sql, params)   → Execute single statement      │
        │ fetchone()             → One row of the last result    │
        │ fetchall()             → All rows of the last result   │
        │ scalar()               → First column of first row     │
        │ savepoint()            → Nested transaction scope      │
        │ mark_rollback_only()   → Discard the enclosing tx      │
        └────────────────────────────────────────────────────────┘

        Implementations:
        ┌────────────────────────────────────────────────────────┐
        │ buildxpert.core.database.SAConnectionBridge            │
        └────────────────────────────────────────────────────────┘

    Transactions are owned by ``Database.transaction()``. A ``Connection``
    has no ``commit()``: a unit never ends the transaction the runner
    records its outcome in.

Tags:
    protocol, connection, database, buildxpert
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """
    Minimal synchronous connection used inside one transaction.

    SQL uses ``?`` positional placeholders regardless of backend.

    Examples:
        >>> def add_city(conn: Connection) -> None:
        ...     conn.execute("ALTER TABLE addresses ADD COLUMN IF NOT EXISTS city TEXT")
        >>> conn.execute("SELECT name FROM users WHERE id = ?", (user_id,))
        >>> row = conn.fetchone()
    """

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute one SQL statement with optional parameters."""
        ...

    def fetchone(self) -> tuple[Any, ...] | None:
        """Fetch one row from the last statement."""
        ...

    def fetchall(self) -> list[tuple[Any, ...]]:
        """Fetch all rows from the last statement."""
        ...

    def scalar(self) -> Any:
        """First column of the first row of the last statement, or None."""
        ...

    def savepoint(self) -> AbstractContextManager[Any]:
        """Open a nested transaction that rolls back alone on error."""
        ...

    def mark_rollback_only(self) -> None:
        """Make the enclosing transaction roll back instead of committing."""
        ...


__all__ = ["Connection"]
