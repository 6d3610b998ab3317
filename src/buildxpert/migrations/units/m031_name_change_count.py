"""031: limit how often a user can change their display name."""

from buildxpert.core.protocols import Connection
from buildxpert.migrations.unit import MigrationUnit


def add_name_change_count(conn: Connection) -> None:
    conn.execute(
        """
        SELECT 1 FROM information_schema.columns
        WHERE table_schema = current_schema() AND table_name = ? AND column_name = ?
        """,
        ("users", "name_change_count"),
    )
    if conn.fetchone() is None:
        conn.execute("ALTER TABLE users ADD COLUMN name_change_count INTEGER DEFAULT 0 NOT NULL")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_users_name_change_count ON users(name_change_count)")


UNIT = MigrationUnit(
    id="031",
    name="Add Name Change Count",
    description="Adds users.name_change_count (limit: 2 changes per user)",
    function=add_name_change_count,
    required=False,
)
