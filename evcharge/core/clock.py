"""Time helpers shared by the booking and time slot services.

All instants are stored and compared in UTC. Calendar days are always
station-local days in the configured time zone.
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from ..config import get_settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    SQLite hands back naive datetimes for ``DateTime(timezone=True)``
    columns; those are already UTC wall-clock values.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def station_timezone(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or get_settings().timezone)


def local_today(now: datetime, tz: ZoneInfo) -> date:
    return as_utc(now).astimezone(tz).date()


def local_to_utc(day: date, at: time, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, at, tzinfo=tz).astimezone(timezone.utc)


def local_day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC ``[start, end)`` of the local calendar ``day``."""
    start = local_to_utc(day, time.min, tz)
    end = local_to_utc(day + timedelta(days=1), time.min, tz)
    return start, end


def format_local(value: datetime, tz: ZoneInfo) -> str:
    return as_utc(value).astimezone(tz).strftime("%Y %b %d, %H:%M")
