"""Tests for the migration lock gate (SQLite lock rows)."""

import pytest

from buildxpert.core.errors import LockContentionError
from buildxpert.migrations.lock import LOCK_TABLE, MIGRATION_LOCK_KEY, AdvisoryLockGate


class TestLockRows:
    def test_acquire_and_release(self, db):
        gate = AdvisoryLockGate(db, holder="runner-a")
        handle = gate.acquire()
        assert handle.key == MIGRATION_LOCK_KEY
        assert handle.holder == "runner-a"
        assert gate.is_locked()

        gate.release(handle)
        assert handle.released
        assert not gate.is_locked()

    def test_second_holder_is_rejected(self, db):
        first = AdvisoryLockGate(db, holder="runner-a")
        second = AdvisoryLockGate(db, holder="runner-b")

        handle = first.acquire()
        with pytest.raises(LockContentionError) as excinfo:
            second.acquire()
        assert "another migration process is running" in excinfo.value.message
        assert "runner-a" in excinfo.value.message
        assert excinfo.value.context.lock_key == MIGRATION_LOCK_KEY

        first.release(handle)
        second.release(second.acquire())

    def test_distinct_keys_do_not_contend(self, db):
        a = AdvisoryLockGate(db, 1, holder="a")
        b = AdvisoryLockGate(db, 2, holder="b")
        with a.held(), b.held():
            assert a.is_locked() and b.is_locked()

    def test_held_releases_on_error(self, db):
        gate = AdvisoryLockGate(db, holder="runner-a")
        with pytest.raises(RuntimeError):
            with gate.held():
                raise RuntimeError("boom")
        assert not gate.is_locked()

    def test_expired_row_is_reclaimed(self, db):
        crashed = AdvisoryLockGate(db, holder="crashed", ttl_seconds=0)
        crashed.acquire()  # never released

        survivor = AdvisoryLockGate(db, holder="survivor")
        handle = survivor.acquire()
        rows = db.query(f"SELECT holder FROM {LOCK_TABLE}")
        assert rows == [{"holder": "survivor"}]
        survivor.release(handle)

    def test_stale_release_does_not_drop_new_holder(self, db):
        crashed = AdvisoryLockGate(db, holder="runner", ttl_seconds=0)
        stale = crashed.acquire()

        fresh_gate = AdvisoryLockGate(db, holder="runner")
        fresh = fresh_gate.acquire()

        crashed.release(stale)
        assert fresh_gate.is_locked()
        fresh_gate.release(fresh)

    def test_release_is_idempotent(self, db):
        gate = AdvisoryLockGate(db, holder="runner-a")
        handle = gate.acquire()
        gate.release(handle)
        gate.release(handle)
        assert not gate.is_locked()

    def test_release_never_raises(self, db):
        gate = AdvisoryLockGate(db, holder="runner-a")
        handle = gate.acquire()
        db.query(f"DROP TABLE {LOCK_TABLE}")
        gate.release(handle)
        assert handle.released

    def test_is_locked_without_table(self, db):
        assert not AdvisoryLockGate(db).is_locked()
        assert not db.table_exists(LOCK_TABLE)

    def test_open_write_transaction_counts_as_contention(self, db):
        with db.transaction() as conn:
            conn.execute("CREATE TABLE busy_writer (id INTEGER)")
            with pytest.raises(LockContentionError) as excinfo:
                AdvisoryLockGate(db, holder="runner-b").acquire()
        assert excinfo.value.message == "another migration process is running"

        gate = AdvisoryLockGate(db, holder="runner-b")
        gate.release(gate.acquire())
        with db.transaction() as conn:
            conn.execute("PRAGMA busy_timeout")
            assert conn.scalar() > 0
