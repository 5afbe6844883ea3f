"""Local-time helpers. Stored datetimes are naive UTC; days are counted in settings.timezone."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from app.config import settings


def local_zone() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def utc_now() -> datetime:
    return datetime.utcnow()


def to_local(value: datetime) -> datetime:
    """Convert a stored datetime (naive means UTC) to the local zone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(local_zone())


def to_utc_naive(value: datetime) -> datetime:
    """Normalize an incoming datetime for storage; naive input is read as local time."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=local_zone())
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def local_day(value: datetime | None = None) -> str:
    """Calendar day (YYYY-MM-DD) of a stored datetime in the local zone."""
    return to_local(value or utc_now()).date().isoformat()


def local_today() -> date:
    return to_local(utc_now()).date()


def day_bounds(start: date, end: date | None = None) -> tuple[datetime, datetime]:
    """UTC bounds [start-of-day, end-of-day] for an inclusive range of local days."""
    end = end or start
    zone = local_zone()
    lower = datetime.combine(start, time.min, tzinfo=zone)
    upper = datetime.combine(end, time.max, tzinfo=zone)
    return (
        lower.astimezone(timezone.utc).replace(tzinfo=None),
        upper.astimezone(timezone.utc).replace(tzinfo=None),
    )


def month_range(day: date | None = None) -> tuple[date, date]:
    """First and last local day of the month containing `day` (default: today)."""
    day = day or local_today()
    first = day.replace(day=1)
    next_month = (first + timedelta(days=32)).replace(day=1)
    return first, next_month - timedelta(days=1)
