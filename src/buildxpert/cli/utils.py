"""
CLI utility helpers: settings loading and output formatting.
"""

from __future__ import annotations

import json
from typing import Any, NoReturn

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.table import Table

from buildxpert.core.errors import BuildXpertError, ConfigError
from buildxpert.core.settings import MigrateSettings
from buildxpert.migrations.runner import RunReport, StatusReport
from buildxpert.migrations.unit import Failed, MigrationUnit

console = Console()
err_console = Console(stderr=True)


# ── Settings helper ──────────────────────────────────────────────────────


def load_settings(database: str | None = None) -> MigrateSettings:
    """Settings from the environment, with ``--database`` taking precedence."""
    overrides: dict[str, Any] = {}
    if database:
        overrides["database_url"] = database
    try:
        return MigrateSettings(**overrides)
    except PydanticValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc.errors()[0]['msg']}", cause=exc) from exc


# ── Output helpers ───────────────────────────────────────────────────────


def fail(error: BuildXpertError) -> NoReturn:
    """Print a typed error and exit 1."""
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    raise typer.Exit(code=1)


def output_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_plan(units: list[MigrationUnit], *, skip_optional: bool = False) -> None:
    """The ordered list of units a run would consider."""
    table = Table(title="Migration Plan", show_lines=False, pad_edge=False)
    table.add_column("ID")
    table.add_column("Name", overflow="fold")
    table.add_column("Kind")
    table.add_column("Description", overflow="fold")
    for unit in units:
        kind = "[bold]required[/bold]" if unit.required else "[dim]optional[/dim]"
        table.add_row(unit.id, unit.name, kind, unit.description)
    console.print(table)
    if skip_optional:
        console.print("[dim]Optional migrations will be skipped.[/dim]")


def print_report(report: RunReport) -> None:
    """Summary of one run: counts, failures with reasons, executed units with timings."""
    if report.error is not None and not report.results:
        err_console.print(f"[bold red]Error[/bold red] ({report.error.category.value}): {report.error.message}")
        return

    console.print()
    console.print("[bold]Migration Summary[/bold]")
    console.print(f"  [green]Executed[/green]: {len(report.executed)}")
    console.print(f"  [yellow]Skipped[/yellow]:  {len(report.skipped)}")
    console.print(f"  [red]Failed[/red]:   {len(report.failed)}")
    console.print(f"  Total:    {report.total}")

    if report.failed:
        console.print()
        console.print("[bold red]Failed migrations:[/bold red]")
        for result in report.failed:
            reason = result.outcome.reason if isinstance(result.outcome, Failed) else "unknown error"
            kind = "required" if result.unit.required else "optional"
            console.print(f"  {result.unit.id} {result.unit.name} ({kind}): {reason}")

    if report.executed:
        console.print()
        console.print("[bold green]Executed migrations:[/bold green]")
        for result in report.executed:
            duration = result.outcome.duration_ms if result.outcome is not None else 0
            console.print(f"  {result.unit.id} {result.unit.name} ({duration}ms)")

    console.print()
    if report.halted_at is not None:
        console.print(f"[bold red]Stopped at required migration {report.halted_at}.[/bold red]")
    elif report.success:
        console.print("[bold green]All required migrations completed successfully.[/bold green]")
    else:
        console.print("[bold red]Migration run failed.[/bold red]")


def print_status(status: StatusReport) -> None:
    """Ledger contents as a table."""
    if status.is_empty:
        console.print("No migrations executed yet.")
        return

    table = Table(title="Migration Status", show_lines=False, pad_edge=False)
    table.add_column("ID")
    table.add_column("Name", overflow="fold")
    table.add_column("Status")
    table.add_column("Executed At")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Version", justify="right")
    table.add_column("Error", overflow="fold")
    for entry in status.entries:
        state = "[green]success[/green]" if entry.success else "[red]failed[/red]"
        executed_at = entry.executed_at.strftime("%Y-%m-%d %H:%M:%S") if entry.executed_at else "-"
        table.add_row(
            entry.id,
            entry.name,
            state,
            executed_at,
            str(entry.execution_time_ms if entry.execution_time_ms is not None else "-"),
            str(entry.version),
            entry.error_message or "",
        )
    console.print(table)

    if status.pending:
        console.print(f"[yellow]Pending[/yellow]: {', '.join(u.id for u in status.pending)}")
    if status.drifted:
        console.print(f"[yellow]Changed since execution[/yellow]: {', '.join(status.drifted)}")
    if status.unknown:
        console.print(f"[dim]Not in registry[/dim]: {', '.join(status.unknown)}")
