"""The BuildXpert schema changelog, in execution order.

Append new units at the end; never reorder or delete entries. Ids are
kept from the original changelog, which has gaps (005 and others were
folded into neighbouring changes or retired).
"""

from buildxpert.migrations.units import (
    m001_core_tables,
    m016_blocked_identifiers,
    m018_refresh_tokens,
    m020_address_city,
    m021_location_indexes,
    m022_booking_viewed,
    m024_notification_created_at,
    m031_name_change_count,
    m036_rater_type,
)

UNITS = (
    m001_core_tables.UNIT,
    m016_blocked_identifiers.UNIT,
    m018_refresh_tokens.UNIT,
    m020_address_city.UNIT,
    m021_location_indexes.UNIT,
    m022_booking_viewed.UNIT,
    m024_notification_created_at.UNIT,
    m031_name_change_count.UNIT,
    m036_rater_type.UNIT,
)

__all__ = ["UNITS"]
