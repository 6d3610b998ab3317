"""Advisory lock gate: at most one migration runner at a time.

WHY
───
Two runners interleaving DDL and ledger writes can leave the schema
half-migrated with a ledger that disagrees with it. Migrations are rare,
operator-triggered events, so the second runner fails immediately
instead of queueing behind the first and stalling a deploy.

ARCHITECTURE
────────────
::

    AdvisoryLockGate(db, key)
      ├── .acquire()        ─ non-blocking; LockContentionError if held
      ├── .release(handle)  ─ best effort, never raises
      ├── .held()           ─ acquire / yield / release in finally
      └── .is_locked()      ─ probe without keeping the lock

    PostgreSQL: pg_try_advisory_lock(key) on a dedicated connection that
                stays checked out until release (session-level lock).
    SQLite:     a row in _buildxpert_locks with an expiry, so a crashed
                holder stops blocking after ttl_seconds.

Lock key convention: ``advisory_lock_key("<app>.migrations")``, a stable
64-bit hash rather than a literal that could collide with another tool.

Example::

    gate = AdvisoryLockGate(db)
    with gate.held():
        run_migrations()
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from buildxpert.core.database import Database, SAConnectionBridge
from buildxpert.core.errors import ErrorContext, LockContentionError, QueryError
from buildxpert.core.hashing import advisory_lock_key
from buildxpert.core.logging import get_logger
from buildxpert.core.settings import default_executed_by

logger = get_logger(__name__)

MIGRATION_LOCK_NAME = "buildxpert.migrations"
MIGRATION_LOCK_KEY = advisory_lock_key(MIGRATION_LOCK_NAME)

LOCK_TABLE = "_buildxpert_locks"

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def _stamp(value: datetime) -> str:
    # fixed width so lexical order matches time order
    return value.strftime(_TIMESTAMP_FORMAT)


def _is_sqlite_busy(error: QueryError) -> bool:
    name = getattr(getattr(error.cause, "orig", None), "sqlite_errorname", None) or ""
    return name.startswith("SQLITE_BUSY") or "database is locked" in error.message


@contextmanager
def _no_busy_wait(conn: SAConnectionBridge) -> Iterator[None]:
    """Fail fast instead of waiting out the driver's busy timeout."""
    conn.execute("PRAGMA busy_timeout")
    previous = int(conn.scalar() or 0)
    conn.execute("PRAGMA busy_timeout = 0")
    try:
        yield
    finally:
        conn.execute(f"PRAGMA busy_timeout = {previous}")


@dataclass
class LockHandle:
    """A held lock. Pass it back to ``AdvisoryLockGate.release``."""

    key: int
    holder: str
    acquired_at: datetime
    connection: SAConnectionBridge | None = None
    released: bool = False


class AdvisoryLockGate:
    """Process-wide mutex for migration runs.

    Parameters
    ----------
    db
        Database whose backend provides the lock.
    key
        Signed 64-bit lock key shared by every runner of the application.
    holder
        Recorded as the lock owner where the backend can store it.
    ttl_seconds
        Expiry of lock rows on backends without advisory locks.
    """

    def __init__(
        self,
        db: Database,
        key: int = MIGRATION_LOCK_KEY,
        *,
        holder: str | None = None,
        ttl_seconds: int = 3600,
    ) -> None:
        self._db = db
        self._key = key
        self._holder = holder or default_executed_by()
        self._ttl = timedelta(seconds=ttl_seconds)

    @property
    def key(self) -> int:
        return self._key

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def acquire(self) -> LockHandle:
        """Take the lock or raise ``LockContentionError`` without waiting."""
        if self._db.dialect.supports_advisory_locks:
            handle = self._acquire_advisory()
        else:
            handle = self._acquire_row()
        logger.info("lock.acquired", lock_key=self._key, holder=self._holder, backend=self._db.backend)
        return handle

    def release(self, handle: LockHandle) -> None:
        """Give the lock back. Failures are logged, never raised."""
        if handle.released:
            return
        try:
            if handle.connection is not None:
                self._release_advisory(handle)
            else:
                self._release_row(handle)
        except Exception as exc:
            logger.warning("lock.release_failed", lock_key=handle.key, error=str(exc))
        else:
            logger.info("lock.released", lock_key=handle.key)
        finally:
            handle.released = True
            if handle.connection is not None:
                self._close_quietly(handle.connection)

    @contextmanager
    def held(self) -> Iterator[LockHandle]:
        handle = self.acquire()
        try:
            yield handle
        finally:
            self.release(handle)

    def is_locked(self) -> bool:
        """Check whether some process currently holds the lock."""
        if self._db.dialect.supports_advisory_locks:
            with self._db.connect() as conn:
                conn.execute("SELECT pg_try_advisory_lock(CAST(? AS BIGINT))", (self._key,))
                if not conn.scalar():
                    return True
                conn.execute("SELECT pg_advisory_unlock(CAST(? AS BIGINT))", (self._key,))
                return False
        if not self._db.table_exists(LOCK_TABLE):
            return False
        rows = self._db.query(
            f"SELECT holder FROM {LOCK_TABLE} WHERE lock_key = ? AND expires_at > ?",
            (self._key, _stamp(utcnow())),
        )
        return bool(rows)

    # ------------------------------------------------------------------
    # PostgreSQL advisory locks
    # ------------------------------------------------------------------

    def _acquire_advisory(self) -> LockHandle:
        conn = self._db.open_connection(autocommit=True)
        try:
            conn.execute("SELECT pg_try_advisory_lock(CAST(? AS BIGINT))", (self._key,))
            acquired = bool(conn.scalar())
        except BaseException:
            self._close_quietly(conn)
            raise
        if not acquired:
            self._close_quietly(conn)
            raise self._contention(holder=None)
        return LockHandle(key=self._key, holder=self._holder, acquired_at=utcnow(), connection=conn)

    def _release_advisory(self, handle: LockHandle) -> None:
        conn = handle.connection
        conn.execute("SELECT pg_advisory_unlock(CAST(? AS BIGINT))", (handle.key,))
        if not conn.scalar():
            logger.warning("lock.release_failed", lock_key=handle.key, error="lock was not held by this session")

    # ------------------------------------------------------------------
    # Lock rows (SQLite)
    # ------------------------------------------------------------------

    def _acquire_row(self) -> LockHandle:
        now = utcnow()
        try:
            with self._db.transaction() as conn, _no_busy_wait(conn):
                acquired, holder = self._claim_row(conn, now)
        except QueryError as exc:
            # another connection holds SQLite's write lock, i.e. a run is mid-unit
            if not _is_sqlite_busy(exc):
                raise
            raise self._contention(holder=None) from exc
        if not acquired:
            raise self._contention(holder=holder)
        return LockHandle(key=self._key, holder=self._holder, acquired_at=now)

    def _claim_row(self, conn: SAConnectionBridge, now: datetime) -> tuple[bool, str | None]:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {LOCK_TABLE} (
                lock_key INTEGER PRIMARY KEY,
                holder TEXT NOT NULL,
                acquired_at TEXT NOT NULL,
                expires_at TEXT NOT NULL
            )
            """
        )
        # Reap an expired holder first; the write also takes SQLite's write lock.
        conn.execute(
            f"DELETE FROM {LOCK_TABLE} WHERE lock_key = ? AND expires_at <= ?",
            (self._key, _stamp(now)),
        )
        conn.execute(
            f"INSERT INTO {LOCK_TABLE} (lock_key, holder, acquired_at, expires_at) "
            "VALUES (?, ?, ?, ?) ON CONFLICT (lock_key) DO NOTHING",
            (self._key, self._holder, _stamp(now), _stamp(now + self._ttl)),
        )
        if conn.rowcount == 1:
            return True, None
        conn.execute(f"SELECT holder FROM {LOCK_TABLE} WHERE lock_key = ?", (self._key,))
        return False, conn.scalar()

    def _release_row(self, handle: LockHandle) -> None:
        with self._db.transaction() as conn:
            conn.execute(
                f"DELETE FROM {LOCK_TABLE} WHERE lock_key = ? AND holder = ? AND acquired_at = ?",
                (handle.key, handle.holder, _stamp(handle.acquired_at)),
            )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _contention(self, holder: str | None) -> LockContentionError:
        logger.warning("lock.contention", lock_key=self._key, holder=holder)
        message = "another migration process is running"
        if holder:
            message = f"{message} (held by {holder})"
        return LockContentionError(
            message,
            context=ErrorContext(lock_key=self._key, metadata={"holder": holder} if holder else {}),
        )

    @staticmethod
    def _close_quietly(conn: SAConnectionBridge) -> None:
        try:
            conn.close()
        except Exception as exc:
            logger.warning("lock.connection_close_failed", error=str(exc))


__all__ = [
    "LOCK_TABLE",
    "MIGRATION_LOCK_KEY",
    "MIGRATION_LOCK_NAME",
    "AdvisoryLockGate",
    "LockHandle",
]
