"""Migration runner.

Takes the advisory lock, makes sure the ledger exists, and walks the
registry in order. Each unit runs in its own transaction:

    PENDING ──► RUNNING ──► SUCCEEDED   (recorded inside the unit's transaction)
       │                └─► FAILED      (rolled back, recorded separately)
       └──────────────────► SKIPPED     (optional + --skip-optional, or already done)

A failed required unit halts the batch; a failed optional unit is logged
and the batch continues. Failed units are retried on the next invocation.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from buildxpert.core.database import Database
from buildxpert.core.errors import (
    BuildXpertError,
    DatabaseConnectionError,
    DatabaseError,
    ErrorContext,
    LedgerWriteError,
    LockContentionError,
    TableNotFoundError,
    UnitExecutionError,
)
from buildxpert.core.hashing import advisory_lock_key
from buildxpert.core.logging import LogContext, get_logger
from buildxpert.core.result import Err, Result
from buildxpert.core.settings import MigrateSettings, default_executed_by
from buildxpert.migrations.ledger import ExecutionLedger, LedgerEntry
from buildxpert.migrations.lock import AdvisoryLockGate
from buildxpert.migrations.registry import MigrationRegistry
from buildxpert.migrations.unit import Failed, MigrationOutcome, MigrationUnit, Succeeded, UnitState

logger = get_logger(__name__)

SKIP_OPTIONAL = "optional unit skipped"
SKIP_DONE = "already executed"


@dataclass
class UnitResult:
    """What happened to one unit during one invocation."""

    unit: MigrationUnit
    state: UnitState
    outcome: MigrationOutcome | None = None
    skip_reason: str | None = None
    ledger_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.unit.id,
            "name": self.unit.name,
            "required": self.unit.required,
            "state": self.state.value,
        }
        if self.outcome is not None:
            data["duration_ms"] = self.outcome.duration_ms
            if isinstance(self.outcome, Failed):
                data["error"] = self.outcome.reason
                data["error_type"] = self.outcome.error_type
        if self.skip_reason:
            data["skip_reason"] = self.skip_reason
        if self.ledger_error:
            data["ledger_error"] = self.ledger_error
        return data


@dataclass
class RunReport:
    """Result of ``run_all`` / ``run_specific``."""

    results: list[UnitResult] = field(default_factory=list)
    halted_at: str | None = None
    error: BuildXpertError | None = None

    def _in_state(self, state: UnitState) -> list[UnitResult]:
        return [r for r in self.results if r.state is state]

    @property
    def executed(self) -> list[UnitResult]:
        return self._in_state(UnitState.SUCCEEDED)

    @property
    def skipped(self) -> list[UnitResult]:
        return self._in_state(UnitState.SKIPPED)

    @property
    def failed(self) -> list[UnitResult]:
        return self._in_state(UnitState.FAILED)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def success(self) -> bool:
        """No run-level error and every required unit that ran succeeded."""
        if self.error is not None:
            return False
        return not any(r.unit.required for r in self.failed)

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "executed": len(self.executed),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
            "total": self.total,
            "halted_at": self.halted_at,
            "error": self.error.to_dict() if self.error is not None else None,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class StatusReport:
    """Ledger contents joined with the registry."""

    ledger_exists: bool
    entries: list[LedgerEntry] = field(default_factory=list)
    pending: list[MigrationUnit] = field(default_factory=list)
    drifted: list[str] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def to_dict(self) -> dict[str, Any]:
        return {
            "ledger_exists": self.ledger_exists,
            "entries": [e.to_dict() for e in self.entries],
            "pending": [u.id for u in self.pending],
            "drifted": self.drifted,
            "unknown": self.unknown,
        }


def _elapsed_ms(started: float) -> int:
    return int(round((time.perf_counter() - started) * 1000))


class MigrationRunner:
    """Applies registered migration units under the advisory lock.

    Example::

        db = Database.from_url(settings.database_url)
        runner = MigrationRunner(db, default_registry())
        report = runner.run_all(skip_optional=True)
        sys.exit(report.exit_code)
    """

    def __init__(
        self,
        db: Database,
        registry: MigrationRegistry,
        *,
        ledger: ExecutionLedger | None = None,
        lock_gate: AdvisoryLockGate | None = None,
        executed_by: str | None = None,
    ) -> None:
        self._db = db
        self._registry = registry
        self._executed_by = executed_by or default_executed_by()
        self._ledger = ledger or ExecutionLedger(db)
        self._lock_gate = lock_gate or AdvisoryLockGate(db, holder=self._executed_by)

    @classmethod
    def from_settings(
        cls,
        db: Database,
        registry: MigrationRegistry,
        settings: MigrateSettings,
    ) -> MigrationRunner:
        return cls(
            db,
            registry,
            ledger=ExecutionLedger(db, settings.ledger_table),
            lock_gate=AdvisoryLockGate(
                db,
                advisory_lock_key(settings.lock_name),
                holder=settings.executed_by,
                ttl_seconds=settings.lock_ttl_seconds,
            ),
            executed_by=settings.executed_by,
        )

    @property
    def registry(self) -> MigrationRegistry:
        return self._registry

    @property
    def ledger(self) -> ExecutionLedger:
        return self._ledger

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def plan(self, *, skip_optional: bool = False) -> list[MigrationUnit]:
        """Units in execution order, without touching the database."""
        return [u for u in self._registry if u.required or not skip_optional]

    def run_all(self, *, force: bool = False, skip_optional: bool = False) -> RunReport:
        """Run every registered unit that is not already recorded as successful."""
        return self._run(list(self._registry), force=force, skip_optional=skip_optional)

    def run_specific(self, migration_id: str, *, force: bool = False) -> RunReport:
        """Run one unit. The id is validated before the database is touched."""
        validated = self._registry.validate_id(migration_id)
        if validated.is_err():
            logger.error("runner.invalid_id", migration_id=migration_id, valid_ids=self._registry.ids)
            return RunReport(error=validated.error)
        unit = self._registry.get(validated.unwrap())
        return self._run([unit], force=force, skip_optional=False)

    def status(self) -> StatusReport:
        """Ledger contents; never creates the ledger table."""
        try:
            entries = self._ledger.entries()
        except TableNotFoundError:
            return StatusReport(ledger_exists=False, pending=list(self._registry))

        by_id = {e.id: e for e in entries}
        pending = [u for u in self._registry if not (u.id in by_id and by_id[u.id].success)]
        drifted = [
            u.id
            for u in self._registry
            if u.id in by_id
            and by_id[u.id].success
            and by_id[u.id].checksum
            and by_id[u.id].checksum != u.checksum
        ]
        unknown = [e.id for e in entries if e.id not in self._registry]
        return StatusReport(
            ledger_exists=True,
            entries=entries,
            pending=pending,
            drifted=drifted,
            unknown=unknown,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run(self, units: Sequence[MigrationUnit], *, force: bool, skip_optional: bool) -> RunReport:
        report = RunReport()
        try:
            handle = self._lock_gate.acquire()
        except LockContentionError as exc:
            report.error = exc
            return report

        try:
            self._ledger.ensure_table()
            for unit in units:
                result = self._run_unit(unit, force=force, skip_optional=skip_optional)
                report.results.append(result)
                if result.state is UnitState.FAILED and unit.required:
                    report.halted_at = unit.id
                    remaining = len(units) - len(report.results)
                    logger.error("runner.halted", migration_id=unit.id, remaining=remaining)
                    break
        finally:
            self._lock_gate.release(handle)

        logger.info(
            "runner.finished",
            executed=len(report.executed),
            skipped=len(report.skipped),
            failed=len(report.failed),
            total=report.total,
            success=report.success,
        )
        return report

    def _run_unit(self, unit: MigrationUnit, *, force: bool, skip_optional: bool) -> UnitResult:
        with LogContext(migration_id=unit.id):
            if skip_optional and not unit.required:
                logger.info("migration.skipped", reason=SKIP_OPTIONAL)
                return UnitResult(unit, UnitState.SKIPPED, skip_reason=SKIP_OPTIONAL)

            status = self._ledger.get_status(unit.id)
            if status.executed and status.success and not force:
                logger.info("migration.skipped", reason=SKIP_DONE)
                return UnitResult(unit, UnitState.SKIPPED, skip_reason=SKIP_DONE)

            logger.info(
                "migration.started",
                name=unit.name,
                required=unit.required,
                retry=status.needs_retry,
                force=force,
            )
            started = time.perf_counter()
            applied, ledger_error = self._apply_in_transaction(unit, started)
            duration_ms = _elapsed_ms(started)

            if applied.is_ok():
                logger.info("migration.succeeded", name=unit.name, duration_ms=duration_ms)
                return UnitResult(
                    unit,
                    UnitState.SUCCEEDED,
                    Succeeded(duration_ms),
                    ledger_error=ledger_error,
                )

            error = applied.error
            cause = getattr(error, "cause", None)
            outcome = Failed(
                reason=getattr(error, "message", None) or str(error),
                duration_ms=duration_ms,
                error_type=type(cause or error).__name__,
            )
            ledger_error = self._record_failure(unit, outcome)
            log = logger.error if unit.required else logger.warning
            log(
                "migration.failed",
                name=unit.name,
                required=unit.required,
                error=outcome.reason,
                error_type=outcome.error_type,
                duration_ms=duration_ms,
            )
            return UnitResult(unit, UnitState.FAILED, outcome, ledger_error=ledger_error)

    def _apply_in_transaction(self, unit: MigrationUnit, started: float) -> tuple[Result[None], str | None]:
        """Apply ``unit`` and record its success in the same transaction."""
        ledger_error = None
        try:
            with self._db.transaction() as conn:
                applied = unit.apply(conn)
                if applied.is_err():
                    conn.mark_rollback_only()
                else:
                    try:
                        with conn.savepoint():
                            self._ledger.record(
                                unit,
                                Succeeded(_elapsed_ms(started)),
                                executed_by=self._executed_by,
                                conn=conn,
                            )
                    except DatabaseConnectionError:
                        raise
                    except (LedgerWriteError, DatabaseError) as exc:
                        ledger_error = str(exc)
                        logger.error("ledger.write_failed", outcome="success", error=ledger_error)
        except DatabaseConnectionError:
            raise
        except DatabaseError as exc:
            # the unit ran but its transaction could not be committed
            applied = Err(
                UnitExecutionError(
                    exc.message,
                    context=ErrorContext(migration_id=unit.id, migration_name=unit.name),
                    cause=exc,
                )
            )
            ledger_error = None
        return applied, ledger_error

    def _record_failure(self, unit: MigrationUnit, outcome: Failed) -> str | None:
        """Record a failure in its own transaction; bookkeeping errors are logged only."""
        try:
            self._ledger.record(unit, outcome, executed_by=self._executed_by)
        except LedgerWriteError as exc:
            logger.error("ledger.write_failed", outcome="failure", error=str(exc))
            return str(exc)
        return None


__all__ = [
    "MigrationRunner",
    "RunReport",
    "StatusReport",
    "UnitResult",
]
