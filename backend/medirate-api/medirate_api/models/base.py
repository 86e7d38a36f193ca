"""SQLAlchemy base model.

All timestamps are stored as naive UTC datetimes.
"""
from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    """Serialize an optional datetime for JSON responses."""
    return value.isoformat() if value else None


def as_naive_utc(value):
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
