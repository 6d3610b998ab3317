"""
Shared pytest fixtures and configuration for buildxpert tests.

This module provides:
- File-backed SQLite ``Database`` fixtures (real SQL, no server needed)
- Factories for throwaway migration units and registries
- structlog reset between tests

PostgreSQL tests live in ``tests/integration`` and are skipped unless
``BUILDXPERT_TEST_DATABASE_URL`` points at a disposable database.
"""

import sys
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import structlog

# Ensure buildxpert package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from buildxpert.core.database import Database
from buildxpert.migrations.registry import MigrationRegistry
from buildxpert.migrations.unit import MigrationUnit


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo configure_logging() calls made by the code under test."""
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'buildxpert.db'}"


@pytest.fixture
def db(sqlite_url: str) -> Generator[Database, None, None]:
    database = Database.from_url(sqlite_url)
    yield database
    database.dispose()


# =============================================================================
# Migration Unit Factories
# =============================================================================


def create_table(table: str) -> Callable:
    """Unit function that creates ``table`` (idempotent)."""

    def apply(conn):
        conn.execute(f"CREATE TABLE IF NOT EXISTS {table} (id INTEGER PRIMARY KEY, note TEXT)")

    return apply


def fail_with(message: str, *, after_table: str | None = None) -> Callable:
    """Unit function that raises ``RuntimeError(message)``, optionally after creating a table."""

    def apply(conn):
        if after_table:
            conn.execute(f"CREATE TABLE {after_table} (id INTEGER PRIMARY KEY)")
        raise RuntimeError(message)

    return apply


@pytest.fixture
def make_unit() -> Callable[..., MigrationUnit]:
    """Build a ``MigrationUnit``; defaults to creating table ``t_<id>``."""

    def _make(unit_id: str, *, required: bool = True, function: Callable | None = None) -> MigrationUnit:
        return MigrationUnit(
            id=unit_id,
            name=f"Unit {unit_id}",
            description=f"Test unit {unit_id}",
            function=function or create_table(f"t_{unit_id}"),
            required=required,
        )

    return _make


@pytest.fixture
def create_table_fn() -> Callable[[str], Callable]:
    return create_table


@pytest.fixture
def fail_with_fn() -> Callable[..., Callable]:
    return fail_with


@pytest.fixture
def simple_registry(make_unit) -> MigrationRegistry:
    """Three units: 001 required, 002 optional, 003 required."""
    return MigrationRegistry(
        [
            make_unit("001"),
            make_unit("002", required=False),
            make_unit("003"),
        ]
    )
