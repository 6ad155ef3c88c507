from __future__ import annotations

import datetime as dt

from slotgrid.domain import BreakWindow, BusinessHours, DayHours
from slotgrid.slots import generate_slots, slot_end_label


def _hours(**days: DayHours) -> BusinessHours:
    return BusinessHours(days=days, timezone="UTC")


def _open(open_time: str, close_time: str, *breaks: tuple[str, str]) -> DayHours:
    return DayHours(
        is_open=True,
        open_time=dt.time.fromisoformat(open_time),
        close_time=dt.time.fromisoformat(close_time),
        breaks=tuple(BreakWindow(dt.time.fromisoformat(s), dt.time.fromisoformat(e)) for s, e in breaks),
    )


def test_lunch_break_is_removed() -> None:
    hours = _hours(monday=_open("09:00", "17:00", ("12:00", "13:00")))

    slots = generate_slots("2025-03-10", hours)  # Monday

    assert len(slots) == 28
    assert slots[0] == "09:00"
    assert slots[-1] == "16:45"
    assert "11:45" in slots
    assert "13:00" in slots
    assert not any("12:00" <= s < "13:00" for s in slots)


def test_close_time_is_exclusive() -> None:
    hours = _hours(monday=_open("09:00", "10:00"))
    assert generate_slots("2025-03-10", hours) == ["09:00", "09:15", "09:30", "09:45"]


def test_break_not_on_boundary_removes_overlapping_slots() -> None:
    hours = _hours(monday=_open("09:00", "10:00", ("09:20", "09:35")))
    # 09:15 and 09:30 both overlap the break.
    assert generate_slots("2025-03-10", hours) == ["09:00", "09:45"]


def test_closed_weekday_is_empty() -> None:
    hours = _hours(monday=_open("09:00", "17:00"), sunday=DayHours(is_open=False))
    assert generate_slots("2025-03-16", hours) == []


def test_missing_weekday_is_empty() -> None:
    hours = _hours(monday=_open("09:00", "17:00"))
    assert generate_slots("2025-03-11", hours) == []


def test_no_business_hours_uses_fallback_window() -> None:
    slots = generate_slots("2025-03-10", None)
    assert slots[0] == "08:00"
    assert slots[-1] == "21:45"
    assert len(slots) == 56


def test_generation_is_deterministic() -> None:
    hours = _hours(monday=_open("08:30", "12:00", ("10:00", "10:30")))
    assert generate_slots("2025-03-10", hours) == generate_slots(dt.date(2025, 3, 10), hours)


def test_slot_end_label() -> None:
    assert slot_end_label("09:45") == "10:00"
    assert slot_end_label("21:45") == "22:00"
