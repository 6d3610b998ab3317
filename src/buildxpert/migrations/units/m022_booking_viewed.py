"""022: unread badge for booking status updates."""

from buildxpert.core.protocols import Connection
from buildxpert.migrations.unit import MigrationUnit


def add_booking_viewed_column(conn: Connection) -> None:
    conn.execute("ALTER TABLE bookings ADD COLUMN IF NOT EXISTS is_viewed_by_user BOOLEAN DEFAULT TRUE")
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_bookings_user_viewed
            ON bookings(user_id, is_viewed_by_user)
            WHERE is_viewed_by_user = FALSE
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_bookings_user_status_viewed
            ON bookings(user_id, status, is_viewed_by_user)
            WHERE status IN ('accepted', 'cancelled', 'completed') AND is_viewed_by_user = FALSE
        """
    )
    # existing bookings count as seen
    conn.execute("UPDATE bookings SET is_viewed_by_user = TRUE WHERE is_viewed_by_user IS NULL")


UNIT = MigrationUnit(
    id="022",
    name="Add Booking Viewed Column",
    description="Adds is_viewed_by_user to bookings to track unread status updates",
    function=add_booking_viewed_column,
    required=False,
)
