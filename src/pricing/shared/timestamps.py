"""UTC helpers so naive and aware datetimes compare safely."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def within(now: datetime, start: datetime | None, end: datetime | None) -> bool:
    """True when ``now`` lies in ``[start, end]``; both bounds are optional."""
    now = as_utc(now)
    start = as_utc(start)
    end = as_utc(end)
    if start is not None and start > now:
        return False
    if end is not None and end < now:
        return False
    return True
