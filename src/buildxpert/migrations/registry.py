"""Ordered registry of migration units.

Registration order is execution order. There is no dependency graph and
no sorting: a unit that relies on a table created by an earlier unit
simply has to be registered after it, like entries in a changelog.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator

from buildxpert.core.errors import MigrationIdError, RegistryError
from buildxpert.core.result import Err, Ok, Result
from buildxpert.migrations.unit import MigrationUnit

MIGRATION_ID_PATTERN = re.compile(r"^\d{3}$")


class MigrationRegistry:
    """Immutable, ordered collection of ``MigrationUnit`` keyed by id.

    Example::

        registry = MigrationRegistry([
            MigrationUnit("001", "core tables", "Create users, bookings, ...", create_core_tables),
            MigrationUnit("020", "address city", "Add city to addresses", add_city, required=False),
        ])
        registry.validate_id("20")   # Err(MigrationIdError)
        registry.get("020").required  # False
    """

    def __init__(self, units: Iterable[MigrationUnit] = ()) -> None:
        ordered: list[MigrationUnit] = []
        by_id: dict[str, MigrationUnit] = {}
        for unit in units:
            if not isinstance(unit.id, str) or not MIGRATION_ID_PATTERN.fullmatch(unit.id):
                raise RegistryError(f"migration id {unit.id!r} must be exactly three digits")
            if unit.id in by_id:
                raise RegistryError(f"migration id {unit.id!r} is registered twice")
            by_id[unit.id] = unit
            ordered.append(unit)
        self._units = tuple(ordered)
        self._by_id = by_id

    def __iter__(self) -> Iterator[MigrationUnit]:
        return iter(self._units)

    def __len__(self) -> int:
        return len(self._units)

    def __contains__(self, migration_id: object) -> bool:
        return migration_id in self._by_id

    def __repr__(self) -> str:
        return f"MigrationRegistry({', '.join(self.ids)})"

    @property
    def ids(self) -> list[str]:
        return [unit.id for unit in self._units]

    def get(self, migration_id: str) -> MigrationUnit | None:
        return self._by_id.get(migration_id)

    def required_units(self) -> list[MigrationUnit]:
        return [unit for unit in self._units if unit.required]

    def validate_id(self, raw: str) -> Result[str]:
        """Check a user-supplied id against the fixed format and the registry."""
        if not isinstance(raw, str) or not MIGRATION_ID_PATTERN.fullmatch(raw):
            return Err(MigrationIdError(str(raw), self.ids, reason="must be exactly three digits (e.g. 001)"))
        if raw not in self._by_id:
            return Err(MigrationIdError(raw, self.ids))
        return Ok(raw)


def default_registry() -> MigrationRegistry:
    """The BuildXpert changelog."""
    from buildxpert.migrations.units import UNITS

    return MigrationRegistry(UNITS)


__all__ = ["MIGRATION_ID_PATTERN", "MigrationRegistry", "default_registry"]
