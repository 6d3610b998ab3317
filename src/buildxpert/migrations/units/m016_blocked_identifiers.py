"""016: phone numbers and emails barred from registering for a role."""

from buildxpert.core.protocols import Connection
from buildxpert.migrations.unit import MigrationUnit


def create_blocked_identifiers_table(conn: Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS blocked_identifiers (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            identifier_type VARCHAR(20) NOT NULL CHECK (identifier_type IN ('phone', 'email')),
            identifier_value VARCHAR(255) NOT NULL,
            role VARCHAR(50) NOT NULL,
            reason TEXT,
            metadata JSONB DEFAULT '{}'::jsonb,
            blocked_by UUID REFERENCES users(id) ON DELETE SET NULL,
            blocked_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT blocked_identifiers_unique UNIQUE (identifier_type, identifier_value, role)
        )
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_blocked_identifiers_lookup
            ON blocked_identifiers (identifier_type, identifier_value, role)
        """
    )


UNIT = MigrationUnit(
    id="016",
    name="Add Blocked Identifiers Table",
    description="Creates blocked_identifiers table for barring phone numbers and emails per role",
    function=create_blocked_identifiers_table,
    required=True,
)
