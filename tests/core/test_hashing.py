"""Tests for buildxpert.core.hashing."""

from buildxpert.core.hashing import advisory_lock_key, compute_hash


class TestComputeHash:
    def test_deterministic(self):
        assert compute_hash("a", 1) == compute_hash("a", 1)

    def test_order_matters(self):
        assert compute_hash("a", "b") != compute_hash("b", "a")

    def test_length(self):
        assert len(compute_hash("x")) == 32
        assert len(compute_hash("x", length=64)) == 64


class TestAdvisoryLockKey:
    def test_stable_for_name(self):
        assert advisory_lock_key("buildxpert.migrations") == advisory_lock_key("buildxpert.migrations")

    def test_distinct_names_distinct_keys(self):
        assert advisory_lock_key("buildxpert.migrations") != advisory_lock_key("other.migrations")

    def test_fits_signed_bigint(self):
        for name in ("a", "buildxpert.migrations", "z" * 100):
            key = advisory_lock_key(name)
            assert -(2**63) <= key < 2**63
