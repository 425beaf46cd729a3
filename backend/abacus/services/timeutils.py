"""UTC date and time helpers shared by the sync engine."""

from datetime import UTC, date, datetime, time, timedelta


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_midnight(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def floor_hour(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0)


def days_between(start: date, end: date) -> list[date]:
    """Days in the half-open range [start, end)."""
    return [start + timedelta(days=i) for i in range((end - start).days)]


def parse_timestamp(value: str | int | float | None) -> datetime | None:
    """Parse ISO 8601 strings or epoch-millisecond values into UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
        return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_utc(parsed)
