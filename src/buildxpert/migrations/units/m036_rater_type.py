"""036: let the user and the provider each rate the same booking.

The single-column UNIQUE on ``ratings.booking_id`` meant a provider's
rating blocked the customer's. It is replaced by a unique index on
``(booking_id, rater_type)``; existing ratings are backfilled as ``user``.
"""

from buildxpert.core.protocols import Connection
from buildxpert.migrations.unit import MigrationUnit


def _quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def add_rater_type_to_ratings(conn: Connection) -> None:
    conn.execute(
        """
        SELECT constraint_name
        FROM information_schema.table_constraints
        WHERE table_name = ? AND constraint_type = 'UNIQUE' AND constraint_name LIKE ?
        """,
        ("ratings", "%booking_id%"),
    )
    for (constraint_name,) in conn.fetchall():
        conn.execute(f"ALTER TABLE ratings DROP CONSTRAINT IF EXISTS {_quote(constraint_name)}")

    conn.execute(
        "ALTER TABLE ratings ADD COLUMN IF NOT EXISTS rater_type TEXT CHECK (rater_type IN ('user', 'provider'))"
    )
    conn.execute("UPDATE ratings SET rater_type = 'user' WHERE rater_type IS NULL")
    conn.execute("ALTER TABLE ratings ALTER COLUMN rater_type SET NOT NULL")
    conn.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_ratings_booking_rater_unique ON ratings(booking_id, rater_type)"
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_ratings_rater_type ON ratings(rater_type)")


UNIT = MigrationUnit(
    id="036",
    name="Add Rater Type to Ratings",
    description="Adds ratings.rater_type so user and provider can each rate a booking",
    function=add_rater_type_to_ratings,
    required=True,
)
