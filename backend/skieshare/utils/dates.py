from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.utcnow()


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Timestamps are stored as naive UTC; convert aware inputs on the way in."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
