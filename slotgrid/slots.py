"""
Time slot generation.

Turns the business hours of one weekday into the ordered list of 15-minute
wall-clock labels shown on the calendar grid.
"""
from __future__ import annotations

import datetime as dt

from slotgrid.domain import SLOT_MINUTES, BusinessHours, DayHours
from slotgrid.timezones import format_wall_clock, wall_clock_minutes, weekday_name

# Used only when no business hours are known at all, so the calendar stays usable.
FALLBACK_OPEN = "08:00"
FALLBACK_CLOSE = "22:00"


def _labels_between(open_minutes: int, close_minutes: int, breaks: list[tuple[int, int]]) -> list[str]:
    labels: list[str] = []
    for minutes in range(open_minutes, close_minutes, SLOT_MINUTES):
        slot_end = minutes + SLOT_MINUTES
        in_break = any(minutes < b_end and slot_end > b_start for b_start, b_end in breaks)
        if not in_break:
            labels.append(format_wall_clock(minutes))
    return labels


def generate_day_slots(day_hours: DayHours | None) -> list[str]:
    if day_hours is None or not day_hours.is_open:
        return []
    if day_hours.open_time is None or day_hours.close_time is None:
        return []

    breaks = [(wall_clock_minutes(b.start), wall_clock_minutes(b.end)) for b in day_hours.breaks]
    return _labels_between(
        wall_clock_minutes(day_hours.open_time),
        wall_clock_minutes(day_hours.close_time),
        breaks,
    )


def generate_slots(date: str | dt.date, business_hours: BusinessHours | None) -> list[str]:
    """
    Slot labels for `date`, open time inclusive, close time exclusive.

    Returns [] when the weekday is closed or has no entry. Returns the
    08:00-22:00 fallback grid when `business_hours` is None.
    """
    if business_hours is None:
        return _labels_between(wall_clock_minutes(FALLBACK_OPEN), wall_clock_minutes(FALLBACK_CLOSE), [])

    return generate_day_slots(business_hours.for_weekday(weekday_name(date)))


def slot_end_label(label: str) -> str:
    return format_wall_clock(wall_clock_minutes(label) + SLOT_MINUTES)
