"""Tests for the buildxpert-migrate command via CliRunner.

The changelog is swapped for small SQLite-compatible registries; the
database is a file under tmp_path passed with ``--database``.
"""

from __future__ import annotations

import importlib
import json

import pytest
from typer.testing import CliRunner

from buildxpert import __version__
from buildxpert.cli.app import app
from buildxpert.migrations.registry import MigrationRegistry

runner = CliRunner()
cli_module = importlib.import_module("buildxpert.cli.app")


def _flat(output: str) -> str:
    """Collapse Rich's line wrapping."""
    return " ".join(output.split())


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path / "cli.db"


@pytest.fixture
def db_args(db_path):
    return ["--database", f"sqlite:///{db_path}"]


@pytest.fixture
def use_registry(monkeypatch):
    def _use(registry: MigrationRegistry) -> None:
        # the package re-exports the Typer object as `app`, shadowing the submodule
        monkeypatch.setattr(cli_module, "default_registry", lambda: registry)

    return _use


@pytest.fixture(autouse=True)
def _simple_changelog(use_registry, simple_registry):
    use_registry(simple_registry)


# ─── Informational flags ────────────────────────────────────────────────


class TestInfo:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"buildxpert-migrate {__version__}" in result.output

    def test_list(self, db_args, db_path):
        result = runner.invoke(app, ["--list", *db_args])
        assert result.exit_code == 0
        assert "Migration Plan" in result.output
        assert "001" in result.output
        assert not db_path.exists()

    def test_list_json_skip_optional(self, db_args):
        result = runner.invoke(app, ["--list", "--skip-optional", "--json", *db_args])
        assert result.exit_code == 0
        assert [u["id"] for u in json.loads(result.stdout)] == ["001", "003"]

    def test_status_on_fresh_database(self, db_args):
        result = runner.invoke(app, ["--status", *db_args])
        assert result.exit_code == 0
        assert "no migrations executed yet" in result.output.lower()

    def test_status_json_after_run(self, db_args):
        assert runner.invoke(app, db_args).exit_code == 0

        result = runner.invoke(app, ["--status", "--json", *db_args])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["ledger_exists"] is True
        assert [e["id"] for e in data["entries"]] == ["001", "002", "003"]
        assert data["pending"] == []


# ─── Running migrations ─────────────────────────────────────────────────


class TestRun:
    def test_run_all(self, db_args):
        result = runner.invoke(app, db_args)
        assert result.exit_code == 0
        text = _flat(result.output)
        assert "Migration Summary" in text
        assert "Executed: 3" in text
        assert "All required migrations completed successfully." in text

    def test_second_run_skips(self, db_args):
        runner.invoke(app, db_args)
        result = runner.invoke(app, db_args)
        assert result.exit_code == 0
        assert "Skipped: 3" in _flat(result.output)

    def test_run_all_json(self, db_args):
        result = runner.invoke(app, ["--json", *db_args])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert data["executed"] == 3
        assert [r["id"] for r in data["results"]] == ["001", "002", "003"]

    def test_run_specific(self, db_args):
        result = runner.invoke(app, ["--json", "002", *db_args])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [r["id"] for r in data["results"]] == ["002"]

    def test_skip_optional(self, db_args):
        result = runner.invoke(app, ["--skip-optional", "--json", *db_args])
        assert result.exit_code == 0
        states = {r["id"]: r["state"] for r in json.loads(result.stdout)["results"]}
        assert states == {"001": "succeeded", "002": "skipped", "003": "succeeded"}

    def test_force(self, db_args):
        runner.invoke(app, db_args)
        result = runner.invoke(app, ["--force", "--json", *db_args])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["executed"] == 3

    def test_verbose_prints_plan(self, db_args):
        result = runner.invoke(app, ["--verbose", *db_args])
        assert result.exit_code == 0
        assert "Migration Plan" in result.output


# ─── Failures ───────────────────────────────────────────────────────────


class TestFailures:
    @pytest.mark.parametrize("bad", ["20", "abc", "0001"])
    def test_malformed_id(self, db_args, db_path, bad):
        result = runner.invoke(app, [bad, *db_args])
        assert result.exit_code == 1
        text = _flat(result.output)
        assert "three digits" in text
        assert "001, 002, 003" in text
        assert not db_path.exists()

    def test_unknown_id(self, db_args, db_path):
        result = runner.invoke(app, ["099", *db_args])
        assert result.exit_code == 1
        assert "not a registered migration" in _flat(result.output)
        assert not db_path.exists()

    def test_required_failure_exits_nonzero(self, db_args, use_registry, make_unit, fail_with_fn):
        use_registry(
            MigrationRegistry(
                [
                    make_unit("001"),
                    make_unit("002", function=fail_with_fn("duplicate column")),
                    make_unit("003"),
                ]
            )
        )
        result = runner.invoke(app, db_args)
        assert result.exit_code == 1
        text = _flat(result.output)
        assert "duplicate column" in text
        assert "Stopped at required migration 002." in text

    def test_optional_failure_exits_zero(self, db_args, use_registry, make_unit, fail_with_fn):
        use_registry(
            MigrationRegistry(
                [
                    make_unit("001"),
                    make_unit("002", required=False, function=fail_with_fn("disk full")),
                    make_unit("003"),
                ]
            )
        )
        result = runner.invoke(app, db_args)
        assert result.exit_code == 0
        text = _flat(result.output)
        assert "Failed: 1" in text
        assert "disk full" in text

    def test_unreachable_database(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'no' / 'such' / 'dir.db'}"
        result = runner.invoke(app, ["--database", url])
        assert result.exit_code == 1
        assert "Error (DATABASE)" in _flat(result.output)
