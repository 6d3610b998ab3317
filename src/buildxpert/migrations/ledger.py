"""
Execution ledger: the persisted record of which migration units ran.

One row per unit id. The first execution inserts the row, every later
execution updates it in place and bumps ``version``; nothing in the normal
flow deletes rows.

Architecture:
    ::

        migrations
        ┌────────────────────┬─────────────────────────────────────────┐
        │ id VARCHAR(10) PK  │ unit id ("001")                         │
        │ name, description  │ copied from the unit                    │
        │ executed_at        │ last execution                          │
        │ success            │ outcome of the last execution           │
        │ error_message      │ failure reason, NULL on success         │
        │ execution_time_ms  │ wall time of the unit function          │
        │ executed_by        │ user@host (added column)                │
        │ checksum           │ unit source fingerprint (added column)  │
        │ version            │ execution count (added column)          │
        └────────────────────┴─────────────────────────────────────────┘

    The last three columns were introduced after the table first shipped,
    so ``ensure_table`` adds them to existing tables instead of assuming a
    fresh schema.

Tags:
    migrations, ledger, bookkeeping, upsert, buildxpert
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from buildxpert.core.database import Database
from buildxpert.core.dialect import quote_identifier
from buildxpert.core.errors import (
    BuildXpertError,
    DatabaseConnectionError,
    ErrorContext,
    LedgerWriteError,
    TableNotFoundError,
)
from buildxpert.core.logging import get_logger
from buildxpert.core.protocols import Connection
from buildxpert.migrations.unit import MigrationOutcome, MigrationUnit

logger = get_logger(__name__)

DEFAULT_LEDGER_TABLE = "migrations"

# (column, type) pairs added after the original table definition
_ADDED_COLUMNS: tuple[tuple[str, str], ...] = (
    ("executed_by", "TEXT"),
    ("checksum", "VARCHAR(64)"),
    ("version", "INTEGER NOT NULL DEFAULT 1"),
)

_COLUMNS = (
    "id, name, description, executed_at, success, error_message, "
    "execution_time_ms, executed_by, checksum, version"
)


@dataclass(frozen=True)
class LedgerStatus:
    """What the ledger knows about one unit id."""

    executed: bool
    success: bool | None = None

    @property
    def needs_retry(self) -> bool:
        return self.executed and not self.success


@dataclass(frozen=True)
class LedgerEntry:
    """One ledger row."""

    id: str
    name: str
    description: str | None
    executed_at: datetime | None
    success: bool
    error_message: str | None
    execution_time_ms: int | None
    executed_by: str | None
    checksum: str | None
    version: int

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> LedgerEntry:
        executed_at = row.get("executed_at")
        if isinstance(executed_at, str):
            # SQLite hands CURRENT_TIMESTAMP back as text
            executed_at = datetime.fromisoformat(executed_at)
        return cls(
            id=row["id"],
            name=row["name"],
            description=row.get("description"),
            executed_at=executed_at,
            success=bool(row.get("success")),
            error_message=row.get("error_message"),
            execution_time_ms=row.get("execution_time_ms"),
            executed_by=row.get("executed_by"),
            checksum=row.get("checksum"),
            version=int(row.get("version") or 1),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "success": self.success,
            "error_message": self.error_message,
            "execution_time_ms": self.execution_time_ms,
            "executed_by": self.executed_by,
            "checksum": self.checksum,
            "version": self.version,
        }


class ExecutionLedger:
    """Reads and upserts ledger rows through a ``Database``."""

    def __init__(self, db: Database, table: str = DEFAULT_LEDGER_TABLE) -> None:
        self._db = db
        self._table = quote_identifier(table)

    @property
    def table(self) -> str:
        return self._table

    def exists(self) -> bool:
        return self._db.table_exists(self._table)

    def ensure_table(self) -> None:
        """Create the ledger table if absent and add any missing bookkeeping columns."""
        with self._db.transaction() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self._table} (
                    id VARCHAR(10) PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT,
                    executed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    success BOOLEAN DEFAULT TRUE,
                    error_message TEXT,
                    execution_time_ms INTEGER
                )
                """
            )
            added = [
                column
                for column, ddl_type in _ADDED_COLUMNS
                if conn.dialect.add_column_if_missing(conn, self._table, column, ddl_type)
            ]
        logger.info("ledger.ready", table=self._table, added_columns=added)

    def get_status(self, migration_id: str) -> LedgerStatus:
        """Ledger status for one id; a missing ledger table means nothing ran yet."""
        try:
            rows = self._db.query(f"SELECT success FROM {self._table} WHERE id = ?", (migration_id,))
        except TableNotFoundError:
            return LedgerStatus(executed=False)
        if not rows:
            return LedgerStatus(executed=False)
        return LedgerStatus(executed=True, success=bool(rows[0]["success"]))

    def record(
        self,
        unit: MigrationUnit,
        outcome: MigrationOutcome,
        *,
        executed_by: str | None = None,
        conn: Connection | None = None,
    ) -> None:
        """Upsert the outcome of one execution.

        With ``conn`` the write joins the caller's transaction; otherwise it
        runs in its own. Failures surface as ``LedgerWriteError``, except a
        lost connection, which propagates as ``DatabaseConnectionError``.
        """
        params = (
            unit.id,
            unit.name,
            unit.description,
            outcome.success,
            None if outcome.success else outcome.reason,
            outcome.duration_ms,
            executed_by,
            unit.checksum,
        )
        sql = f"""
            INSERT INTO {self._table} ({_COLUMNS})
            VALUES (?, ?, ?, CURRENT_TIMESTAMP, ?, ?, ?, ?, ?, 1)
            ON CONFLICT (id) DO UPDATE SET
                name = excluded.name,
                description = excluded.description,
                executed_at = CURRENT_TIMESTAMP,
                success = excluded.success,
                error_message = excluded.error_message,
                execution_time_ms = excluded.execution_time_ms,
                executed_by = excluded.executed_by,
                checksum = excluded.checksum,
                version = COALESCE({self._table}.version, 0) + 1
        """
        try:
            if conn is not None:
                conn.execute(sql, params)
            else:
                with self._db.transaction() as own:
                    own.execute(sql, params)
        except DatabaseConnectionError:
            raise
        except BuildXpertError as exc:
            raise LedgerWriteError(
                f"could not record migration {unit.id}: {exc.message}",
                context=ErrorContext(migration_id=unit.id, migration_name=unit.name, table=self._table),
                cause=exc,
            ) from exc

    def entries(self) -> list[LedgerEntry]:
        """All rows in execution order. Raises ``TableNotFoundError`` when the ledger does not exist."""
        rows = self._db.query(f"SELECT {_COLUMNS} FROM {self._table} ORDER BY executed_at, id")
        return [LedgerEntry.from_row(row) for row in rows]

    def get_entry(self, migration_id: str) -> LedgerEntry | None:
        try:
            rows = self._db.query(f"SELECT {_COLUMNS} FROM {self._table} WHERE id = ?", (migration_id,))
        except TableNotFoundError:
            return None
        return LedgerEntry.from_row(rows[0]) if rows else None


__all__ = [
    "DEFAULT_LEDGER_TABLE",
    "ExecutionLedger",
    "LedgerEntry",
    "LedgerStatus",
]
