"""
Closure Overlap Engine

Which days and slots a closure touches, what a proposed closure would affect,
and the form rules a closure must pass before it is submitted.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from slotgrid.domain import (
    SLOT_MINUTES,
    Appointment,
    AppointmentStatus,
    Closure,
    ClosureType,
    ClosureValidationError,
    ImpactPreview,
    NotificationChannel,
    RecurringFrequency,
)
from slotgrid.timezones import local_day_bounds, parse_wall_clock, to_utc_instant

REASON_MIN_LENGTH = 5
REASON_MAX_LENGTH = 200
MESSAGE_MAX_LENGTH = 500
RECURRING_INTERVAL_MAX = 12

# Appointments in these states are not disrupted by a closure.
_UNAFFECTED_STATUSES = frozenset({AppointmentStatus.CANCELED, AppointmentStatus.NO_SHOW})


def _intervals_overlap(a_start: dt.datetime, a_end: dt.datetime, b_start: dt.datetime, b_end: dt.datetime) -> bool:
    # Half-open intervals: touching ends do not overlap.
    return a_start < b_end and b_start < a_end


def overlaps_day(closure: Closure, date: str | dt.date, timezone: str | None) -> bool:
    day_start, day_end = local_day_bounds(date, timezone)
    return _intervals_overlap(closure.start, closure.end, day_start, day_end)


def closures_for_day(
    closures: Iterable[Closure],
    date: str | dt.date,
    timezone: str | None,
    *,
    active_only: bool = True,
) -> list[Closure]:
    return [
        c for c in closures
        if (c.is_active or not active_only) and overlaps_day(c, date, timezone)
    ]


def blocked_slots(
    closure: Closure,
    date: str | dt.date,
    labels: Sequence[str],
    timezone: str | None,
) -> set[str]:
    if not closure.is_active:
        return set()
    return {label for label in labels if closure.contains(to_utc_instant(date, label, timezone))}


def impact_preview(
    start: dt.datetime,
    end: dt.datetime,
    appointments: Iterable[Appointment],
) -> ImpactPreview:
    affected = [
        a for a in appointments
        if a.status not in _UNAFFECTED_STATUSES
        and _intervals_overlap(a.start, a.occupied_until, start, end)
    ]
    customers = {a.customer_id or f"appointment:{a.id}" for a in affected}
    return ImpactPreview(
        affected_appointments=len(affected),
        affected_customers=len(customers),
        estimated_revenue_loss=round(sum(a.price for a in affected), 2),
    )


def selection_to_range(
    date: str | dt.date,
    labels: Sequence[str],
    timezone: str | None,
) -> tuple[dt.datetime, dt.datetime]:
    """UTC [start, end) covered by a set of selected slot labels."""
    if not labels:
        raise ValueError("Selection is empty")
    ordered = sorted(labels, key=parse_wall_clock)
    start = to_utc_instant(date, ordered[0], timezone)
    end = to_utc_instant(date, ordered[-1], timezone) + dt.timedelta(minutes=SLOT_MINUTES)
    return start, end


def time_status(closure: Closure, now: dt.datetime) -> str:
    if now < closure.start:
        return "future"
    if now < closure.end:
        return "current"
    return "past"


def can_edit(closure: Closure, now: dt.datetime) -> bool:
    # Only scheduled, active closures may still be changed.
    return closure.is_active and time_status(closure, now) == "future"


@dataclass
class ClosureDraft:
    start: dt.datetime
    end: dt.datetime
    reason: str
    type: ClosureType = ClosureType.OTHER
    notify_customers: bool = False
    notification_channels: list[NotificationChannel] = field(default_factory=list)
    notification_message: str = ""
    affected_services: list[str] = field(default_factory=list)
    is_recurring: bool = False
    recurring_frequency: RecurringFrequency | None = None
    recurring_interval: int | None = None
    recurring_end_date: dt.datetime | None = None

    def to_payload(self) -> dict:
        payload: dict = {
            "startDate": _iso(self.start),
            "endDate": _iso(self.end),
            "reason": self.reason.strip(),
            "type": self.type.value,
            "notifyCustomers": self.notify_customers,
            "notificationChannels": [c.value for c in self.notification_channels],
            "isRecurring": self.is_recurring,
        }
        if self.notify_customers:
            payload["notificationMessage"] = self.notification_message.strip()
        if self.affected_services:
            payload["affectedServices"] = list(self.affected_services)
        if self.is_recurring:
            pattern: dict = {
                "frequency": self.recurring_frequency.value if self.recurring_frequency else None,
                "interval": self.recurring_interval,
            }
            if self.recurring_end_date is not None:
                pattern["endDate"] = _iso(self.recurring_end_date)
            payload["recurringPattern"] = pattern
        return payload


def _iso(value: dt.datetime) -> str:
    return value.astimezone(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def validate_closure(draft: ClosureDraft, now: dt.datetime) -> dict[str, str]:
    """Field-scoped errors for a closure form; empty dict when valid."""
    errors: dict[str, str] = {}

    if draft.start < now:
        errors["startDate"] = "Start date and time cannot be in the past"

    if draft.end < draft.start:
        errors["endDate"] = "End date must be on or after start date"

    reason = draft.reason.strip()
    if len(reason) < REASON_MIN_LENGTH:
        errors["reason"] = f"Reason must be at least {REASON_MIN_LENGTH} characters"
    elif len(reason) > REASON_MAX_LENGTH:
        errors["reason"] = f"Reason must be less than {REASON_MAX_LENGTH} characters"

    if draft.notify_customers:
        if not draft.notification_channels:
            errors["notificationChannels"] = "At least one notification channel must be selected"
        message = draft.notification_message.strip()
        if not message:
            errors["notificationMessage"] = "Notification message is required when notifying customers"
        elif len(message) > MESSAGE_MAX_LENGTH:
            errors["notificationMessage"] = f"Notification message must be less than {MESSAGE_MAX_LENGTH} characters"

    if draft.is_recurring:
        interval = draft.recurring_interval
        if draft.recurring_frequency is None or interval is None or interval <= 0:
            errors["recurringPattern"] = "Recurring pattern details are required for recurring closures"
        elif interval > RECURRING_INTERVAL_MAX:
            errors["recurringPattern"] = f"Interval cannot exceed {RECURRING_INTERVAL_MAX}"
        if draft.recurring_end_date is not None and draft.recurring_end_date <= draft.end:
            errors["recurringPattern.endDate"] = "Recurring end date must be after closure end date"

    return errors


def ensure_valid(draft: ClosureDraft, now: dt.datetime) -> None:
    errors = validate_closure(draft, now)
    if errors:
        raise ClosureValidationError(errors)
