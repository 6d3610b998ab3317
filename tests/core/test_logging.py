"""Tests for buildxpert.core.logging."""

import json

from buildxpert.core.logging import LogContext, bind_context, clear_context, configure_logging, get_logger


def _events(captured: str) -> list[dict]:
    return [json.loads(line) for line in captured.splitlines() if line.startswith("{")]


class TestConfigureLogging:
    def test_json_events_go_to_stderr(self, capsys):
        configure_logging(level="INFO", json_format=True, service="migrate-test")
        get_logger("buildxpert.tests").info("migration.started", migration_id="001")

        captured = capsys.readouterr()
        assert captured.out == ""
        (event,) = _events(captured.err)
        assert event["event"] == "migration.started"
        assert event["migration_id"] == "001"
        assert event["log.level"] == "info"
        assert event["service.name"] == "migrate-test"
        assert event["logger_name"] == "buildxpert.tests"
        assert "@timestamp" in event

    def test_level_filtering(self, capsys):
        configure_logging(level="WARNING", json_format=True)
        log = get_logger("buildxpert.tests")
        log.info("ledger.ready")
        log.warning("lock.contention")

        assert [e["event"] for e in _events(capsys.readouterr().err)] == ["lock.contention"]

    def test_log_context_is_scoped(self, capsys):
        configure_logging(level="INFO", json_format=True)
        log = get_logger("buildxpert.tests")
        with LogContext(migration_id="022"):
            log.info("migration.started")
        log.info("runner.finished")

        inside, outside = _events(capsys.readouterr().err)
        assert inside["migration_id"] == "022"
        assert "migration_id" not in outside

    def test_bind_and_clear(self, capsys):
        configure_logging(level="INFO", json_format=True)
        bind_context(run="abc")
        get_logger().info("first")
        clear_context()
        get_logger().info("second")

        first, second = _events(capsys.readouterr().err)
        assert first["run"] == "abc"
        assert "run" not in second


class TestModuleLevelLoggers:
    def test_logger_created_before_configure_follows_later_config(self, capsys):
        log = get_logger("buildxpert.early")
        configure_logging(level="INFO", json_format=True)
        log.info("ledger.ready")

        (event,) = _events(capsys.readouterr().err)
        assert event["event"] == "ledger.ready"
        assert event["logger_name"] == "buildxpert.early"

    def test_auto_format_is_json_when_stderr_is_not_a_tty(self, capsys):
        configure_logging(level="INFO", json_format=None)
        get_logger("buildxpert.tests").info("runner.finished", total=3)

        (event,) = _events(capsys.readouterr().err)
        assert event["total"] == 3
