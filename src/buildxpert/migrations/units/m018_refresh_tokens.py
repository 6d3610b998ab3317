"""018: rotating refresh tokens paired with short-lived access tokens."""

from buildxpert.core.protocols import Connection
from buildxpert.migrations.unit import MigrationUnit

INDEXES = (
    ("idx_refresh_tokens_user_id", "user_id"),
    ("idx_refresh_tokens_token_hash", "token_hash"),
    ("idx_refresh_tokens_token_jti", "token_jti"),
    ("idx_refresh_tokens_access_token_jti", "access_token_jti"),
    ("idx_refresh_tokens_family_id", "family_id"),
    ("idx_refresh_tokens_expires_at", "expires_at"),
    ("idx_refresh_tokens_is_revoked", "is_revoked"),
    ("idx_refresh_tokens_user_active", "user_id, is_revoked, expires_at"),
)


def add_refresh_tokens_table(conn: Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS refresh_tokens (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token_hash TEXT NOT NULL UNIQUE,
            token_jti UUID NOT NULL UNIQUE,
            access_token_jti UUID NOT NULL,
            device_name TEXT,
            device_type TEXT,
            ip_address INET,
            user_agent TEXT,
            is_revoked BOOLEAN DEFAULT FALSE,
            revoked_at TIMESTAMP WITH TIME ZONE,
            revoked_reason TEXT,
            expires_at TIMESTAMP WITH TIME ZONE NOT NULL,
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
            last_used_at TIMESTAMP WITH TIME ZONE,
            family_id UUID,
            CONSTRAINT refresh_tokens_expires_at_check CHECK (expires_at > created_at)
        )
        """
    )
    for name, columns in INDEXES:
        conn.execute(f"CREATE INDEX IF NOT EXISTS {name} ON refresh_tokens({columns})")


UNIT = MigrationUnit(
    id="018",
    name="Add Refresh Tokens Table",
    description="Creates refresh_tokens table for token rotation (15 minute access, 7 day refresh)",
    function=add_refresh_tokens_table,
    required=True,
)
