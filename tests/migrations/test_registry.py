"""Tests for MigrationRegistry and the BuildXpert changelog."""

import pytest

from buildxpert.core.errors import MigrationIdError, RegistryError
from buildxpert.migrations.registry import MigrationRegistry, default_registry


class TestRegistry:
    def test_registration_order_is_iteration_order(self, make_unit):
        registry = MigrationRegistry([make_unit("010"), make_unit("002"), make_unit("005")])
        assert registry.ids == ["010", "002", "005"]
        assert len(registry) == 3
        assert "002" in registry
        assert "004" not in registry

    def test_duplicate_id_rejected(self, make_unit):
        with pytest.raises(RegistryError, match="registered twice"):
            MigrationRegistry([make_unit("001"), make_unit("001")])

    @pytest.mark.parametrize("bad", ["1", "0001", "abc", "01a", ""])
    def test_malformed_id_rejected(self, make_unit, bad):
        with pytest.raises(RegistryError):
            MigrationRegistry([make_unit(bad)])

    def test_get_and_required_units(self, simple_registry):
        assert simple_registry.get("002").required is False
        assert simple_registry.get("999") is None
        assert [u.id for u in simple_registry.required_units()] == ["001", "003"]


class TestValidateId:
    def test_known_id(self, simple_registry):
        assert simple_registry.validate_id("003").unwrap() == "003"

    @pytest.mark.parametrize("bad", ["20", "0200", "abc", "02 ", "022\n", ""])
    def test_malformed(self, simple_registry, bad):
        result = simple_registry.validate_id(bad)
        assert isinstance(result.error, MigrationIdError)
        assert "three digits" in result.error.message
        assert result.error.valid_ids == ["001", "002", "003"]

    def test_unknown(self, simple_registry):
        error = simple_registry.validate_id("099").error
        assert isinstance(error, MigrationIdError)
        assert "not a registered migration" in error.message
        assert "001, 002, 003" in error.message


class TestDefaultRegistry:
    def test_changelog_order(self):
        assert default_registry().ids == ["001", "016", "018", "020", "021", "022", "024", "031", "036"]

    def test_required_flags(self):
        required = {u.id for u in default_registry().required_units()}
        assert required == {"001", "016", "018", "036"}

    def test_units_are_described(self):
        for unit in default_registry():
            assert unit.name
            assert unit.description
            assert callable(unit.function)
