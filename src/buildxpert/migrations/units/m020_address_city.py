"""020: city column on addresses."""

from buildxpert.core.protocols import Connection
from buildxpert.migrations.unit import MigrationUnit


def add_city_to_addresses(conn: Connection) -> None:
    conn.execute(
        "SELECT 1 FROM information_schema.columns WHERE table_name = ? AND column_name = ?",
        ("addresses", "city"),
    )
    if conn.fetchone() is None:
        conn.execute("ALTER TABLE addresses ADD COLUMN city TEXT")


UNIT = MigrationUnit(
    id="020",
    name="Add City to Addresses",
    description="Adds city column to the addresses table",
    function=add_city_to_addresses,
    required=False,
)
