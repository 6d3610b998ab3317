"""BuildXpert Core -- primitives shared by the migration tooling.

Architecture::

    Layer 1 -- Type System & Errors
        errors.py          Structured error hierarchy (BuildXpertError)
        result.py          Result[T] envelope (Ok / Err / try_result)
        protocols.py       Connection protocol

    Layer 2 -- Database
        dialect.py         SQLite / PostgreSQL differences
        database.py        Database capability over a SQLAlchemy engine

    Layer 3 -- Infrastructure
        hashing.py         Checksums and advisory lock keys
        logging.py         structlog configuration
        settings.py        pydantic-settings configuration
"""

from buildxpert.core.database import Database, SAConnectionBridge
from buildxpert.core.errors import (
    BuildXpertError,
    ConfigError,
    DatabaseConnectionError,
    DatabaseError,
    ErrorCategory,
    LedgerWriteError,
    LockContentionError,
    MigrationError,
    MigrationIdError,
    QueryError,
    RegistryError,
    TableNotFoundError,
    UnitExecutionError,
    ValidationError,
)
from buildxpert.core.protocols import Connection
from buildxpert.core.result import Err, Ok, Result, try_result

__all__ = [
    "BuildXpertError",
    "ConfigError",
    "Connection",
    "Database",
    "DatabaseConnectionError",
    "DatabaseError",
    "Err",
    "ErrorCategory",
    "LedgerWriteError",
    "LockContentionError",
    "MigrationError",
    "MigrationIdError",
    "Ok",
    "QueryError",
    "RegistryError",
    "Result",
    "SAConnectionBridge",
    "TableNotFoundError",
    "UnitExecutionError",
    "ValidationError",
    "try_result",
]
