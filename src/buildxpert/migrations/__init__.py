"""Ordered, ledger-tracked schema migrations.

Architecture::

    unit.py       MigrationUnit, UnitState, Succeeded / Failed outcomes
    registry.py   MigrationRegistry (ordered, id-validated)
    ledger.py     ExecutionLedger (``migrations`` bookkeeping table)
    lock.py       AdvisoryLockGate (one runner at a time)
    runner.py     MigrationRunner, RunReport, StatusReport
    units/        the BuildXpert changelog
"""

from buildxpert.migrations.ledger import ExecutionLedger, LedgerEntry, LedgerStatus
from buildxpert.migrations.lock import MIGRATION_LOCK_KEY, AdvisoryLockGate, LockHandle
from buildxpert.migrations.registry import MIGRATION_ID_PATTERN, MigrationRegistry, default_registry
from buildxpert.migrations.runner import MigrationRunner, RunReport, StatusReport, UnitResult
from buildxpert.migrations.unit import Failed, MigrationOutcome, MigrationUnit, Succeeded, UnitState

__all__ = [
    "MIGRATION_ID_PATTERN",
    "MIGRATION_LOCK_KEY",
    "AdvisoryLockGate",
    "ExecutionLedger",
    "Failed",
    "LedgerEntry",
    "LedgerStatus",
    "LockHandle",
    "MigrationOutcome",
    "MigrationRegistry",
    "MigrationRunner",
    "MigrationUnit",
    "RunReport",
    "StatusReport",
    "Succeeded",
    "UnitResult",
    "UnitState",
    "default_registry",
]
