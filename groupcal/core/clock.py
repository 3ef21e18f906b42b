"""Naive wall-clock helpers.

All timestamps are stored and compared as naive UTC datetimes. SQLite
drops tzinfo on round-trip, so mixing aware and naive values would fail
comparisons.
"""
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Current UTC time without tzinfo."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive(value: datetime | None) -> datetime | None:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
