"""Day / week / month projections of the same appointment and closure data."""
from __future__ import annotations

import calendar
import datetime as dt
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from slotgrid.availability import ResolvedSlot, resolve_day
from slotgrid.domain import Appointment, BusinessHours, Closure
from slotgrid.slots import generate_slots
from slotgrid.timezones import business_today, to_business_local_date, to_business_wall_clock

logger = logging.getLogger(__name__)

MONTH_GRID_DAYS = 42


class ViewMode(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


def week_start(date: dt.date) -> dt.date:
    return date - dt.timedelta(days=date.weekday())


def month_grid(date: dt.date) -> list[dt.date]:
    # Always six Monday-first weeks for a stable layout.
    first = date.replace(day=1)
    start = week_start(first)
    return [start + dt.timedelta(days=i) for i in range(MONTH_GRID_DAYS)]


def visible_range(mode: ViewMode, anchor: dt.date) -> tuple[dt.date, dt.date]:
    if mode is ViewMode.DAY:
        return anchor, anchor
    if mode is ViewMode.WEEK:
        start = week_start(anchor)
        return start, start + dt.timedelta(days=6)
    days = month_grid(anchor)
    return days[0], days[-1]


def shift(mode: ViewMode, anchor: dt.date, direction: int) -> dt.date:
    if mode is ViewMode.DAY:
        return anchor + dt.timedelta(days=direction)
    if mode is ViewMode.WEEK:
        return anchor + dt.timedelta(days=7 * direction)

    month_index = anchor.year * 12 + (anchor.month - 1) + direction
    year, month = divmod(month_index, 12)
    month += 1
    day = min(anchor.day, calendar.monthrange(year, month)[1])
    return dt.date(year, month, day)


def bucket_by_local_date(appointments: Sequence[Appointment], timezone: str | None) -> dict[str, list[Appointment]]:
    buckets: dict[str, list[Appointment]] = {}
    for appointment in sorted(appointments, key=lambda a: a.start):
        buckets.setdefault(to_business_local_date(appointment.start, timezone), []).append(appointment)
    return buckets


@dataclass(frozen=True)
class AppointmentBlock:
    appointment: Appointment
    start_label: str
    start_index: int
    span_slots: int
    top: int
    height: int


@dataclass(frozen=True)
class CompactBlock:
    # Week columns show which appointment sits where, nothing more.
    appointment_id: str
    start_label: str
    start_index: int
    span_slots: int
    top: int
    height: int


@dataclass(frozen=True)
class DayLayout:
    date: dt.date
    slots: list[ResolvedSlot]
    blocks: list[AppointmentBlock]
    is_closed: bool


@dataclass(frozen=True)
class DayColumn:
    date: dt.date
    slots: list[ResolvedSlot]
    blocks: list[CompactBlock]
    height: int
    is_today: bool

    @property
    def is_closed(self) -> bool:
        return not self.slots


@dataclass(frozen=True)
class WeekLayout:
    start: dt.date
    columns: list[DayColumn]


@dataclass(frozen=True)
class AppointmentSummary:
    appointment_id: str
    start_label: str
    title: str


@dataclass(frozen=True)
class MonthCell:
    date: dt.date
    in_current_month: bool
    is_today: bool
    is_selected: bool
    summaries: list[AppointmentSummary]
    overflow: int


@dataclass(frozen=True)
class MonthLayout:
    month: dt.date
    cells: list[MonthCell]

    @property
    def weeks(self) -> list[list[MonthCell]]:
        return [self.cells[i:i + 7] for i in range(0, len(self.cells), 7)]


def _blocks_for_day(
    slots: Sequence[ResolvedSlot],
    day_appointments: Sequence[Appointment],
    timezone: str | None,
    slot_height: int,
) -> list[AppointmentBlock]:
    index_by_label = {s.label: i for i, s in enumerate(slots)}
    blocks = []
    for appointment in day_appointments:
        if not appointment.occupies_slots:
            continue
        label = to_business_wall_clock(appointment.start, timezone)
        index = index_by_label.get(label)
        if index is None:
            # Starts off-grid (outside hours or not on a slot boundary).
            logger.debug("Appointment %s at %s is not on the slot grid", appointment.id, label)
            continue
        span = appointment.span_slots
        blocks.append(
            AppointmentBlock(
                appointment=appointment,
                start_label=label,
                start_index=index,
                span_slots=span,
                top=index * slot_height,
                height=span * slot_height,
            )
        )
    return blocks


def _compact(block: AppointmentBlock) -> CompactBlock:
    return CompactBlock(
        appointment_id=block.appointment.id,
        start_label=block.start_label,
        start_index=block.start_index,
        span_slots=block.span_slots,
        top=block.top,
        height=block.height,
    )


def build_day(
    date: dt.date,
    business_hours: BusinessHours | None,
    appointments: Sequence[Appointment],
    closures: Sequence[Closure],
    timezone: str | None,
    now: dt.datetime,
    *,
    slot_height: int = 40,
) -> DayLayout:
    labels = generate_slots(date, business_hours)
    day_appointments = bucket_by_local_date(appointments, timezone).get(date.isoformat(), [])
    slots = resolve_day(date, labels, day_appointments, closures, timezone, now)
    return DayLayout(
        date=date,
        slots=slots,
        blocks=_blocks_for_day(slots, day_appointments, timezone, slot_height),
        is_closed=not labels,
    )


def build_week(
    anchor: dt.date,
    business_hours: BusinessHours | None,
    appointments: Sequence[Appointment],
    closures: Sequence[Closure],
    timezone: str | None,
    now: dt.datetime,
    *,
    slot_height: int = 40,
) -> WeekLayout:
    start = week_start(anchor)
    today = business_today(now, timezone)
    buckets = bucket_by_local_date(appointments, timezone)

    columns = []
    for offset in range(7):
        day = start + dt.timedelta(days=offset)
        # Each weekday has its own hours; a closed day contributes no height.
        labels = generate_slots(day, business_hours)
        day_appointments = buckets.get(day.isoformat(), [])
        slots = resolve_day(day, labels, day_appointments, closures, timezone, now)
        columns.append(
            DayColumn(
                date=day,
                slots=slots,
                blocks=[_compact(b) for b in _blocks_for_day(slots, day_appointments, timezone, slot_height)],
                height=len(slots) * slot_height,
                is_today=day == today,
            )
        )
    return WeekLayout(start=start, columns=columns)


def _summary(appointment: Appointment, timezone: str | None) -> AppointmentSummary:
    title = appointment.customer_name or appointment.service_name or appointment.id
    return AppointmentSummary(
        appointment_id=appointment.id,
        start_label=to_business_wall_clock(appointment.start, timezone),
        title=title,
    )


def build_month(
    anchor: dt.date,
    appointments: Sequence[Appointment],
    timezone: str | None,
    now: dt.datetime,
    *,
    selected: dt.date | None = None,
    preview_limit: int = 2,
) -> MonthLayout:
    today = business_today(now, timezone)
    buckets = bucket_by_local_date(appointments, timezone)

    cells = []
    for day in month_grid(anchor):
        day_appointments = [a for a in buckets.get(day.isoformat(), []) if a.occupies_slots]
        shown = day_appointments[:preview_limit]
        cells.append(
            MonthCell(
                date=day,
                in_current_month=day.month == anchor.month,
                is_today=day == today,
                is_selected=day == selected,
                summaries=[_summary(a, timezone) for a in shown],
                overflow=len(day_appointments) - len(shown),
            )
        )
    return MonthLayout(month=anchor.replace(day=1), cells=cells)
