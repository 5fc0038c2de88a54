"""
Database base models and utilities.

This module re-exports the declarative Base and provides column types
shared by the models.
"""

from datetime import datetime, timezone

from sqlalchemy import types

# Re-export Base from core.database for backward compatibility
from core.database import Base  # type: ignore[reportUnusedImport]


class UTCDateTime(types.TypeDecorator):
    """
    Timezone-aware timestamp stored in UTC.

    PostgreSQL keeps the offset natively (TIMESTAMP WITH TIME ZONE); SQLite
    drops it, so values are normalized to UTC before binding and tagged as
    UTC again when loaded. Naive values are rejected.
    """

    impl = types.DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # type: ignore[no-untyped-def]
        if value is None:
            return value
        if not isinstance(value, datetime):
            raise TypeError(f"Expected datetime, got {type(value).__name__}")
        if value.tzinfo is None:
            raise ValueError("Naive datetime cannot be stored; attach a timezone first")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):  # type: ignore[no-untyped-def]
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
