"""024: date-based notification cleanup."""

from buildxpert.core.protocols import Connection
from buildxpert.migrations.unit import MigrationUnit


def add_notification_created_at_index(conn: Connection) -> None:
    conn.execute("CREATE INDEX IF NOT EXISTS idx_notifications_created_at ON notifications(created_at)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_notifications_user_created_at ON notifications(user_id, created_at)"
    )


UNIT = MigrationUnit(
    id="024",
    name="Add Notification created_at Index",
    description="Indexes notifications.created_at for the cleanup service",
    function=add_notification_created_at_index,
    required=False,
)
