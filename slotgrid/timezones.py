"""Business-local wall clock <-> UTC conversions.

Every other module goes through here; nothing reads the host timezone.
"""
from __future__ import annotations

import datetime as dt
import logging

import pytz

logger = logging.getLogger(__name__)

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def get_timezone(name: str | None) -> dt.tzinfo:
    if not name:
        return pytz.UTC
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown timezone %r, using UTC", name)
        return pytz.UTC


def parse_date(value: str | dt.date) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(value.strip()[:10])


def parse_wall_clock(value: str | dt.time) -> dt.time:
    if isinstance(value, dt.time):
        return value
    hours, minutes = value.strip().split(":")[:2]
    return dt.time(int(hours), int(minutes))


def wall_clock_minutes(value: str | dt.time) -> int:
    t = parse_wall_clock(value)
    return t.hour * 60 + t.minute


def format_wall_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_instant(value: str | dt.datetime) -> dt.datetime:
    """Parse an ISO 8601 instant. Naive values are taken as UTC."""
    if isinstance(value, dt.datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = dt.datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=pytz.UTC)
    return parsed.astimezone(pytz.UTC)


def to_utc_instant(date: str | dt.date, wall_clock: str | dt.time, timezone: str | None) -> dt.datetime:
    tz = get_timezone(timezone)
    naive = dt.datetime.combine(parse_date(date), parse_wall_clock(wall_clock))
    # is_dst=False: ambiguous/non-existent wall clock times resolve to standard time.
    local = tz.localize(naive, is_dst=False)
    return local.astimezone(pytz.UTC)


def to_business_local_date(instant: dt.datetime, timezone: str | None) -> str:
    tz = get_timezone(timezone)
    return parse_instant(instant).astimezone(tz).date().isoformat()


def to_business_wall_clock(instant: dt.datetime, timezone: str | None) -> str:
    tz = get_timezone(timezone)
    local = parse_instant(instant).astimezone(tz)
    return f"{local.hour:02d}:{local.minute:02d}"


def local_day_bounds(date: str | dt.date, timezone: str | None) -> tuple[dt.datetime, dt.datetime]:
    day = parse_date(date)
    start = to_utc_instant(day, dt.time(0, 0), timezone)
    end = to_utc_instant(day + dt.timedelta(days=1), dt.time(0, 0), timezone)
    return start, end


def business_today(now: dt.datetime, timezone: str | None) -> dt.date:
    return dt.date.fromisoformat(to_business_local_date(now, timezone))


def weekday_name(date: str | dt.date) -> str:
    return _WEEKDAYS[parse_date(date).weekday()]


def utc_now() -> dt.datetime:
    return dt.datetime.now(tz=pytz.UTC)
