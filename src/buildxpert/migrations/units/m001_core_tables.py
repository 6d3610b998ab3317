"""001: users, addresses, services, provider profiles, bookings, ratings, notifications."""

from buildxpert.core.protocols import Connection
from buildxpert.migrations.unit import MigrationUnit

TABLES = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        full_name TEXT NOT NULL,
        email TEXT UNIQUE,
        phone TEXT NOT NULL,
        password TEXT NOT NULL,
        profile_pic_url TEXT DEFAULT '',
        created_at TIMESTAMP DEFAULT NOW(),
        role TEXT CHECK (role IN ('user', 'provider', 'admin')) NOT NULL DEFAULT 'user',
        is_verified BOOLEAN DEFAULT FALSE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS addresses (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id UUID REFERENCES users(id) ON DELETE CASCADE,
        type TEXT CHECK (type IN ('home', 'office', 'other')) DEFAULT 'home',
        state TEXT,
        city TEXT,
        full_address TEXT,
        pincode TEXT,
        created_at TIMESTAMP DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS services_master (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        name TEXT UNIQUE NOT NULL,
        category TEXT,
        is_paid BOOLEAN DEFAULT TRUE,
        created_at TIMESTAMP DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS provider_profiles (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id UUID UNIQUE REFERENCES users(id) ON DELETE CASCADE,
        years_of_experience INT,
        service_description TEXT,
        is_engineering_provider BOOLEAN DEFAULT FALSE,
        engineering_certificate_url TEXT DEFAULT '',
        created_at TIMESTAMP DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS provider_services (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        provider_id UUID REFERENCES provider_profiles(id) ON DELETE CASCADE,
        service_id UUID REFERENCES services_master(id),
        service_charge_value DECIMAL,
        service_charge_unit TEXT,
        working_proof_urls TEXT[] DEFAULT '{}',
        payment_status TEXT CHECK (payment_status IN ('active', 'expired', 'pending')) DEFAULT 'pending',
        payment_start_date DATE,
        payment_end_date DATE,
        created_at TIMESTAMP DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS bookings (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id UUID REFERENCES users(id),
        provider_service_id UUID REFERENCES provider_services(id),
        selected_service TEXT,
        appointment_date DATE,
        appointment_time TEXT,
        address TEXT,
        description TEXT,
        status TEXT CHECK (status IN ('pending', 'accepted', 'rejected', 'completed', 'cancelled'))
            DEFAULT 'pending',
        rejection_reason TEXT,
        cancellation_reason TEXT,
        report_reason TEXT,
        report_description TEXT,
        created_at TIMESTAMP DEFAULT NOW(),
        updated_at TIMESTAMP DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ratings (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        booking_id UUID UNIQUE REFERENCES bookings(id),
        rating INTEGER CHECK (rating BETWEEN 1 AND 5),
        review TEXT,
        created_at TIMESTAMP DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id UUID REFERENCES users(id),
        title TEXT,
        message TEXT,
        is_read BOOLEAN DEFAULT FALSE,
        role TEXT CHECK (role IN ('user', 'provider', 'admin')) DEFAULT 'user',
        translation_key TEXT,
        translation_params JSONB,
        created_at TIMESTAMP DEFAULT NOW()
    )
    """,
)

# (index name, table, columns)
INDEXES = (
    ("idx_users_phone", "users", "phone"),
    ("idx_users_email", "users", "email"),
    ("idx_users_role", "users", "role"),
    ("idx_addresses_user_id", "addresses", "user_id"),
    ("idx_addresses_type", "addresses", "type"),
    ("idx_services_master_name", "services_master", "name"),
    ("idx_services_master_category", "services_master", "category"),
    ("idx_provider_profiles_user_id", "provider_profiles", "user_id"),
    ("idx_provider_services_provider_id", "provider_services", "provider_id"),
    ("idx_provider_services_service_id", "provider_services", "service_id"),
    ("idx_provider_services_payment_status", "provider_services", "payment_status"),
    ("idx_bookings_user_id", "bookings", "user_id"),
    ("idx_bookings_provider_service_id", "bookings", "provider_service_id"),
    ("idx_bookings_status", "bookings", "status"),
    ("idx_bookings_appointment_date", "bookings", "appointment_date"),
    ("idx_ratings_booking_id", "ratings", "booking_id"),
    ("idx_notifications_user_id", "notifications", "user_id"),
    ("idx_notifications_role", "notifications", "role"),
    ("idx_notifications_is_read", "notifications", "is_read"),
)


def create_core_tables(conn: Connection) -> None:
    for ddl in TABLES:
        conn.execute(ddl)
    for name, table, columns in INDEXES:
        conn.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {table}({columns})")


UNIT = MigrationUnit(
    id="001",
    name="Create Core Tables",
    description="Creates fundamental application tables (users, addresses, services, etc.)",
    function=create_core_tables,
    required=True,
)
