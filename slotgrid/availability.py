"""
Availability Resolver

Classifies each slot of a day as empty, appointment start/continuation,
closed or past by intersecting the slot's UTC instant with the loaded
appointments and closures.

Precedence, highest first:
    1. an appointment starting exactly at the slot
    2. past slot (still shows an appointment that covers it)
    3. active closure containing the slot instant
    4. appointment covering the slot
    5. empty
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Iterable, Sequence

from slotgrid.domain import (
    Appointment,
    AppointmentContinue,
    AppointmentStart,
    ClosedSlot,
    Closure,
    EmptySlot,
    PastSlot,
    SlotState,
)
from slotgrid.timezones import to_utc_instant

EMPTY = EmptySlot()
PAST = PastSlot()


@dataclass(frozen=True)
class ResolvedSlot:
    label: str
    instant: dt.datetime
    state: SlotState

    @property
    def is_selectable(self) -> bool:
        return self.state.is_selectable


def _starting_at(instant: dt.datetime, appointments: Sequence[Appointment]) -> Appointment | None:
    return next((a for a in appointments if a.start == instant), None)


def _covering(instant: dt.datetime, appointments: Sequence[Appointment]) -> Appointment | None:
    return next((a for a in appointments if a.covers(instant)), None)


def _blocking(instant: dt.datetime, closures: Iterable[Closure]) -> Closure | None:
    # First match wins; input order is the server's order.
    return next((c for c in closures if c.blocks(instant)), None)


def classify_instant(
    instant: dt.datetime,
    appointments: Sequence[Appointment],
    closures: Sequence[Closure],
    now: dt.datetime,
) -> SlotState:
    """
    Classify one slot by its UTC instant.

    Args:
        instant: slot start in UTC
        appointments: appointments loaded for the visible range
        closures: all loaded closures; inactive ones are ignored
        now: current instant, aware

    Returns:
        exactly one SlotState variant
    """
    occupying = [a for a in appointments if a.occupies_slots]

    starting = _starting_at(instant, occupying)
    if starting is not None:
        return AppointmentStart(appointment=starting, span_slots=starting.span_slots)

    covering = _covering(instant, occupying)

    if instant < now:
        # Past-ness only disables new bookings, it never hides existing data.
        if covering is not None:
            return AppointmentContinue(appointment=covering)
        return PAST

    closure = _blocking(instant, closures)
    if closure is not None:
        return ClosedSlot(closure=closure)

    if covering is not None:
        return AppointmentContinue(appointment=covering)

    return EMPTY


def resolve_slot(
    date: str | dt.date,
    label: str,
    appointments: Sequence[Appointment],
    closures: Sequence[Closure],
    timezone: str | None,
    now: dt.datetime,
) -> SlotState:
    instant = to_utc_instant(date, label, timezone)
    return classify_instant(instant, appointments, closures, now)


def resolve_day(
    date: str | dt.date,
    labels: Sequence[str],
    appointments: Sequence[Appointment],
    closures: Sequence[Closure],
    timezone: str | None,
    now: dt.datetime,
) -> list[ResolvedSlot]:
    resolved = []
    for label in labels:
        instant = to_utc_instant(date, label, timezone)
        resolved.append(
            ResolvedSlot(
                label=label,
                instant=instant,
                state=classify_instant(instant, appointments, closures, now),
            )
        )
    return resolved


def is_slot_available(
    date: str | dt.date,
    label: str,
    appointments: Sequence[Appointment],
    closures: Sequence[Closure],
    timezone: str | None,
    now: dt.datetime,
) -> bool:
    return resolve_slot(date, label, appointments, closures, timezone, now).is_selectable
