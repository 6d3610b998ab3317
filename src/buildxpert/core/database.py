"""
Database capability for the migration tooling.

``Database`` is the one object that owns a SQLAlchemy ``Engine``. The
runner, ledger and lock gate receive it explicitly instead of reaching for
a module-level pool, and they talk to it through the ``Connection``
protocol, so none of them import SQLAlchemy.

Architecture:
    ::

        Database.from_url("postgresql://...")
            │
            ├── transaction()   → SAConnectionBridge (BEGIN ... COMMIT/ROLLBACK)
            ├── with_transaction(fn) → Result, Err rolls back
            ├── connect()       → SAConnectionBridge (autocommit, always closed)
            ├── query(sql)      → list[dict]
            └── ping(), table_exists(name), masked_url

        driver error ──► translate_error()
            42P01 / "no such table"  → TableNotFoundError
            lost / refused connection → DatabaseConnectionError
            anything else             → QueryError

Transactional DDL:
    PostgreSQL runs most DDL inside the enclosing transaction, but some
    statements (``CREATE INDEX CONCURRENTLY``, ``ALTER TYPE ... ADD VALUE``
    on older servers) cannot be rolled back. pysqlite commits implicitly
    around DDL unless the engine emits its own ``BEGIN``, which
    ``from_url`` arranges. Rolling back a failed unit therefore undoes its
    changes only as far as the backend allows.

Examples:
    >>> db = Database.from_url("sqlite:///buildxpert.db")
    >>> with db.transaction() as conn:
    ...     conn.execute("CREATE TABLE IF NOT EXISTS t (id INTEGER)")
    >>> db.query("SELECT COUNT(*) AS n FROM t")
    [{'n': 0}]

Tags:
    database, sqlalchemy, transaction, connection, buildxpert
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Connection as SAConnection
from sqlalchemy.engine import Engine, make_url

from buildxpert.core.dialect import Dialect, get_dialect
from buildxpert.core.errors import (
    ConfigError,
    DatabaseConnectionError,
    DatabaseError,
    QueryError,
    TableNotFoundError,
)
from buildxpert.core.logging import get_logger
from buildxpert.core.result import Err

logger = get_logger(__name__)

UNDEFINED_TABLE = "42P01"

# Class 08 is connection exceptions; 57P0x are admin/crash shutdowns.
_CONNECTION_STATES = ("57P01", "57P02", "57P03")
_SQLITE_CONNECTION_ERRORS = frozenset({"SQLITE_CANTOPEN", "SQLITE_NOTADB"})
_MISSING_TABLE = re.compile(r'relation "(?P<pg>[^"]+)" does not exist|no such table: (?P<sqlite>[\w.]+)')


# ── Error translation ────────────────────────────────────────────────────


def _sql_state(exc: BaseException) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _is_connection_failure(exc: BaseException, state: str | None) -> bool:
    if getattr(exc, "connection_invalidated", False):
        return True
    if state is not None:
        return state.startswith("08") or state in _CONNECTION_STATES
    if not isinstance(exc, (sa_exc.OperationalError, sa_exc.InterfaceError)):
        return False
    sqlite_name = getattr(getattr(exc, "orig", None), "sqlite_errorname", None)
    if sqlite_name is not None:
        return sqlite_name in _SQLITE_CONNECTION_ERRORS
    # psycopg reports refused/dropped connections without a SQLSTATE
    return True


def translate_error(exc: BaseException, sql: str | None = None) -> DatabaseError:
    """Map a SQLAlchemy/driver exception onto the buildxpert hierarchy."""
    orig = getattr(exc, "orig", None)
    message = str(orig if orig is not None else exc).strip()
    message = message.splitlines()[0] if message else type(exc).__name__
    state = _sql_state(exc)
    match = _MISSING_TABLE.search(message)

    table = None
    if state == UNDEFINED_TABLE or (state is None and match is not None):
        error: DatabaseError = TableNotFoundError(message, cause=exc)  # type: ignore[arg-type]
        if match is not None:
            table = match.group("pg") or match.group("sqlite")
    elif _is_connection_failure(exc, state):
        error = DatabaseConnectionError(message, cause=exc)  # type: ignore[arg-type]
    else:
        error = QueryError(message, cause=exc)  # type: ignore[arg-type]

    error.with_context(sql_state=state, table=table)
    if sql is not None:
        error.with_context(statement=" ".join(sql.split())[:200])
    return error


@contextmanager
def _translating(sql: str | None = None) -> Iterator[None]:
    try:
        yield
    except sa_exc.SQLAlchemyError as exc:
        raise translate_error(exc, sql) from exc


def _bind_positional(sql: str, params: Sequence[Any]) -> tuple[Any, dict[str, Any]]:
    """Rewrite ``?`` placeholders (outside string literals) to ``:pN`` binds."""
    if not params:
        return text(sql), {}
    pieces: list[str] = []
    index = 0
    in_literal = False
    for ch in sql:
        if ch == "'":
            in_literal = not in_literal
        elif ch == "?" and not in_literal:
            pieces.append(f":p{index}")
            index += 1
            continue
        pieces.append(ch)
    if index != len(params):
        raise QueryError(f"statement has {index} placeholders but {len(params)} parameters were given")
    return text("".join(pieces)), {f"p{i}": value for i, value in enumerate(params)}


# ── Connection bridge ────────────────────────────────────────────────────


class SAConnectionBridge:
    """Adapter that makes a SQLAlchemy ``Connection`` satisfy ``buildxpert.core.protocols.Connection``.

    Statements use ``?`` placeholders; driver errors surface as
    ``DatabaseError`` subclasses.
    """

    def __init__(self, connection: SAConnection, dialect: Dialect) -> None:
        self._connection = connection
        self._last_result: Any = None
        self.dialect = dialect
        self.rollback_only = False

    # --- execute ---

    def execute(self, sql: str, params: Sequence[Any] = ()) -> SAConnectionBridge:
        stmt, bound = _bind_positional(sql, params)
        with _translating(sql):
            self._last_result = self._connection.execute(stmt, bound)
        return self

    # --- fetch ---

    def _rows_available(self) -> bool:
        return self._last_result is not None and self._last_result.returns_rows

    def fetchone(self) -> tuple[Any, ...] | None:
        if not self._rows_available():
            return None
        row = self._last_result.fetchone()
        return tuple(row) if row is not None else None

    def fetchall(self) -> list[tuple[Any, ...]]:
        if not self._rows_available():
            return []
        return [tuple(r) for r in self._last_result.fetchall()]

    def scalar(self) -> Any:
        row = self.fetchone()
        return row[0] if row else None

    def mappings(self) -> list[dict[str, Any]]:
        """All remaining rows of the last statement as dicts."""
        if not self._rows_available():
            return []
        return [dict(r) for r in self._last_result.mappings().fetchall()]

    @property
    def rowcount(self) -> int:
        if self._last_result is None:
            return -1
        return self._last_result.rowcount

    # --- transaction control ---

    @contextmanager
    def savepoint(self) -> Iterator[SAConnectionBridge]:
        with _translating():
            nested = self._connection.begin_nested()
        try:
            yield self
        except BaseException:
            if nested.is_active:
                with _translating():
                    nested.rollback()
            raise
        with _translating():
            nested.commit()

    def mark_rollback_only(self) -> None:
        self.rollback_only = True

    def has_table(self, name: str) -> bool:
        self.execute(self.dialect.table_exists_query(), (name,))
        return self.fetchone() is not None

    def close(self) -> None:
        self._connection.close()

    @property
    def closed(self) -> bool:
        return self._connection.closed


# ── Engine factory ───────────────────────────────────────────────────────


def normalize_url(url: str) -> str:
    """Resolve bare paths to SQLite and pin PostgreSQL URLs to psycopg 3."""
    if "://" not in url:
        return f"sqlite:///{url}"
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = "postgresql+psycopg://" + url[len("postgresql://"):]
    return url


def _install_sqlite_transactions(engine: Engine) -> None:
    """Let SQLAlchemy, not pysqlite, decide where transactions begin."""

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection: Any, _rec: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn: SAConnection) -> None:
        conn.exec_driver_sql("BEGIN")


class Database:
    """Explicitly constructed database capability handed to the runner."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._dialect = get_dialect(engine.dialect.name)

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False, **kwargs: Any) -> Database:
        """Create a ``Database`` from a URL (``sqlite:///...``, ``postgresql://...``)."""
        resolved = normalize_url(url)
        try:
            make_url(resolved)
            if resolved.startswith("sqlite"):
                kwargs.setdefault("connect_args", {"check_same_thread": False})
                engine = create_engine(resolved, echo=echo, **kwargs)
                _install_sqlite_transactions(engine)
            else:
                kwargs.setdefault("pool_pre_ping", True)
                engine = create_engine(resolved, echo=echo, **kwargs)
        except (sa_exc.ArgumentError, sa_exc.NoSuchModuleError) as exc:
            raise ConfigError(f"invalid database URL: {exc}", cause=exc) from exc
        return cls(engine)

    # --- properties ---

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def backend(self) -> str:
        return self._dialect.name

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    @property
    def masked_url(self) -> str:
        return self._engine.url.render_as_string(hide_password=True)

    # --- connections ---

    def open_connection(self, *, autocommit: bool = True) -> SAConnectionBridge:
        """Check out a dedicated connection; the caller must ``close()`` it.

        ``autocommit`` applies to PostgreSQL. SQLite connections stay
        transactional and anything not committed is rolled back on close,
        so writes belong in ``transaction()``.
        """
        with _translating():
            sa_conn = self._engine.connect()
        if autocommit and self.backend != "sqlite":
            try:
                sa_conn.execution_options(isolation_level="AUTOCOMMIT")
            except sa_exc.SQLAlchemyError as exc:
                sa_conn.close()
                raise translate_error(exc) from exc
        return SAConnectionBridge(sa_conn, self._dialect)

    @contextmanager
    def connect(self, *, autocommit: bool = True) -> Iterator[SAConnectionBridge]:
        """Dedicated connection, always returned to the pool on exit."""
        bridge = self.open_connection(autocommit=autocommit)
        try:
            yield bridge
        finally:
            bridge.close()

    @contextmanager
    def transaction(self) -> Iterator[SAConnectionBridge]:
        """One transaction: commit on normal exit, roll back on error or when marked rollback-only."""
        with _translating():
            sa_conn = self._engine.connect()
        try:
            with _translating():
                trans = sa_conn.begin()
            bridge = SAConnectionBridge(sa_conn, self._dialect)
            try:
                yield bridge
            except BaseException:
                self._rollback_quietly(trans)
                raise
            with _translating():
                if bridge.rollback_only:
                    trans.rollback()
                else:
                    trans.commit()
        finally:
            sa_conn.close()

    @staticmethod
    def _rollback_quietly(trans: Any) -> None:
        # the exception already propagating is the one the caller needs
        if not trans.is_active:
            return
        try:
            trans.rollback()
        except sa_exc.SQLAlchemyError as exc:
            logger.warning("database.rollback_failed", error=str(exc))

    def with_transaction(self, fn: Callable[[SAConnectionBridge], Any]) -> Any:
        """Run ``fn(conn)`` in a transaction; an ``Err`` return rolls it back."""
        with self.transaction() as conn:
            result = fn(conn)
            if isinstance(result, Err):
                conn.mark_rollback_only()
        return result

    # --- convenience ---

    def query(self, sql: str, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        """Run one statement in its own transaction and return rows as dicts."""
        with self.transaction() as conn:
            conn.execute(sql, params or ())
            return conn.mappings()

    def ping(self) -> bool:
        """``SELECT 1``; raises ``DatabaseConnectionError`` when unreachable."""
        with self.connect() as conn:
            conn.execute("SELECT 1")
            return conn.scalar() == 1

    def table_exists(self, name: str) -> bool:
        with self.connect() as conn:
            return conn.has_table(name)

    def dispose(self) -> None:
        self._engine.dispose()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *args: Any) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return f"Database(backend={self.backend!r}, url={self.masked_url!r})"


__all__ = [
    "Database",
    "SAConnectionBridge",
    "normalize_url",
    "translate_error",
]
