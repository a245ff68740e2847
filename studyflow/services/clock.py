"""Timezone helpers. Storage is UTC; calendar bucketing uses the user's zone."""
from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from studyflow.exceptions import ValidationError


def as_utc(value: datetime) -> datetime:
    """Normalize to aware UTC. Naive values (SQLite round-trips) are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_timezone(name: str | None) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone: {name}") from exc


def local_datetime(value: datetime, tz: tzinfo) -> datetime:
    return as_utc(value).astimezone(tz)


def local_date(value: datetime, tz: tzinfo) -> date:
    return local_datetime(value, tz).date()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
