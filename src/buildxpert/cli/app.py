"""
Typer application for ``buildxpert-migrate``.

    buildxpert-migrate                 run all pending migrations
    buildxpert-migrate 022             run migration 022 only
    buildxpert-migrate --status        show the ledger, execute nothing
    buildxpert-migrate --list          show the migration plan
"""

from __future__ import annotations

import typer

from buildxpert import __version__
from buildxpert.cli.utils import (
    console,
    fail,
    load_settings,
    output_json,
    print_plan,
    print_report,
    print_status,
)
from buildxpert.core.database import Database
from buildxpert.core.errors import BuildXpertError
from buildxpert.core.logging import configure_logging
from buildxpert.migrations.registry import default_registry
from buildxpert.migrations.runner import MigrationRunner

app = typer.Typer(
    name="buildxpert-migrate",
    help="Run BuildXpert database migrations.",
    rich_markup_mode="rich",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"buildxpert-migrate {__version__}")
        raise typer.Exit()


@app.command()
def migrate(
    migration_id: str | None = typer.Argument(
        None,
        metavar="[MIGRATION_ID]",
        help="Three-digit id of a single migration to run (e.g. 022).",
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Re-run even if already executed successfully."),
    skip_optional: bool = typer.Option(False, "--skip-optional", help="Skip migrations marked optional."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging and print the plan first."),
    status: bool = typer.Option(False, "--status", help="Show executed migrations without running anything."),
    list_plan: bool = typer.Option(False, "--list", help="Show the migration plan and exit."),
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL (overrides settings)."),
    json_out: bool = typer.Option(False, "--json", help="JSON output."),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Run pending migrations in registry order under the advisory lock."""
    try:
        settings = load_settings(database)
    except BuildXpertError as exc:
        fail(exc)

    level = "DEBUG" if verbose else settings.log_level
    if json_out and not verbose:
        # keep stdout parseable; warnings and errors still reach stderr
        level = "WARNING" if level in ("DEBUG", "INFO") else level
    configure_logging(level=level, json_format=settings.json_logs, service=settings.app_name)

    registry = default_registry()

    if list_plan:
        units = [u for u in registry if u.required or not skip_optional]
        if json_out:
            output_json([{"id": u.id, "name": u.name, "required": u.required} for u in units])
        else:
            print_plan(units, skip_optional=skip_optional)
        return

    if migration_id is not None and not status:
        validated = registry.validate_id(migration_id)
        if validated.is_err():
            fail(validated.error)

    try:
        db = Database.from_url(settings.database_url)
    except BuildXpertError as exc:
        fail(exc)

    try:
        if not json_out:
            console.print(f"Database: [cyan]{db.masked_url}[/cyan]")
        db.ping()

        runner = MigrationRunner.from_settings(db, registry, settings)

        if status:
            status_report = runner.status()
            if json_out:
                output_json(status_report.to_dict())
            else:
                print_status(status_report)
            return

        if verbose and not json_out:
            if migration_id is None:
                print_plan(runner.plan(skip_optional=skip_optional), skip_optional=skip_optional)
            else:
                print_plan([registry.get(migration_id)])

        if migration_id is not None:
            report = runner.run_specific(migration_id, force=force)
        else:
            report = runner.run_all(force=force, skip_optional=skip_optional)
    except BuildXpertError as exc:
        fail(exc)
    finally:
        db.dispose()

    if json_out:
        output_json(report.to_dict())
    else:
        print_report(report)
    raise typer.Exit(code=report.exit_code)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
