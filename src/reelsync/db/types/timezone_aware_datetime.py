"""Timezone-aware datetime type for SQLAlchemy."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, TypeDecorator

SQLITE_DATETIME_NOW = "datetime('now')"


class TimezoneAwareDatetime(TypeDecorator[datetime]):
    """Store aware datetimes as naive UTC in SQLite and read them back as aware UTC.

    Binding a naive datetime raises ``TypeError`` so that local wall-clock
    times can never reach the database by accident.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(
        self, value: datetime | None, dialect: Any
    ) -> datetime | None:
        """Normalise an aware datetime to naive UTC for storage.

        Args:
            value: The datetime value to store.
            dialect: The SQL dialect being used.

        Returns:
            UTC datetime without tzinfo, or None.

        Raises:
            TypeError: If the datetime is naive.
        """
        if value is None:
            return None
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            raise TypeError("tzinfo is required")
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(
        self, value: datetime | None, dialect: Any
    ) -> datetime | None:
        """Attach UTC to a datetime read from SQLite."""
        if value is None:
            return None
        return value.replace(tzinfo=UTC)
