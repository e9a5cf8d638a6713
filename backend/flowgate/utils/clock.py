"""Time helpers.

Timestamps are stored as naive UTC datetimes so comparisons behave the same
on SQLite, MySQL and PostgreSQL.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def isoformat(value: datetime | None) -> str | None:
    """Render a stored timestamp as an ISO-8601 string with a ``Z`` suffix."""

    if value is None:
        return None
    return value.isoformat() + "Z"
