"""021: indexes behind location-based provider sorting."""

from buildxpert.core.protocols import Connection
from buildxpert.migrations.unit import MigrationUnit

INDEXES = (
    ("idx_addresses_state_lower", "LOWER(TRIM(COALESCE(state, '')))"),
    ("idx_addresses_city_lower", "LOWER(TRIM(COALESCE(city, '')))"),
    (
        "idx_addresses_city_state_lower",
        "LOWER(TRIM(COALESCE(city, ''))), LOWER(TRIM(COALESCE(state, '')))",
    ),
    ("idx_addresses_user_type", "user_id, type"),
)


def add_location_indexes(conn: Connection) -> None:
    for name, expression in INDEXES:
        conn.execute(f"CREATE INDEX IF NOT EXISTS {name} ON addresses({expression})")


UNIT = MigrationUnit(
    id="021",
    name="Add Location Indexes",
    description="Adds case-insensitive city/state indexes on addresses for location sorting",
    function=add_location_indexes,
    required=False,
)
