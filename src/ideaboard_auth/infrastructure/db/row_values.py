"""Coercion helpers for values read back from SQLAlchemy rows."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID


def as_uuid(value: Any) -> UUID:
    """Return `value` as UUID whether the driver produced UUID or text."""

    return value if isinstance(value, UUID) else UUID(str(value))


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes returned by SQLite."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def as_optional_utc(value: datetime | None) -> datetime | None:
    """Apply `as_utc` to nullable timestamp columns."""

    return None if value is None else as_utc(value)
