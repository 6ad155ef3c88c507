from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Iterable, Mapping

from slotgrid.domain import (
    Appointment,
    AppointmentStatus,
    BreakWindow,
    BusinessHours,
    Closure,
    ClosureType,
    DayHours,
    NotificationChannel,
    NotificationSettings,
    PayloadError,
    RecurringFrequency,
    RecurringPattern,
)
from slotgrid.timezones import parse_instant, parse_wall_clock, to_utc_instant, wall_clock_minutes

logger = logging.getLogger(__name__)

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Older records use different spellings.
_STATUS_ALIASES = {"CANCELLED": "CANCELED", "NOSHOW": "NO_SHOW", "INPROGRESS": "IN_PROGRESS"}


def _enum(enum_cls: Any, raw: Any, field_name: str) -> Any:
    value = str(raw or "").strip().upper().replace("-", "_")
    value = _STATUS_ALIASES.get(value, value)
    try:
        return enum_cls(value)
    except ValueError as e:
        raise PayloadError(f"Unknown {field_name}: {raw!r}") from e


def _is_wall_clock(value: Any) -> bool:
    return isinstance(value, str) and len(value.strip()) <= 5 and ":" in value


def _appointment_instant(raw: Mapping[str, Any], key: str, timezone: str | None) -> dt.datetime | None:
    value = raw.get(key)
    if value is None or value == "":
        return None
    if _is_wall_clock(value):
        # "HH:MM" on the business-local `date`
        if not raw.get("date"):
            raise PayloadError(f"Appointment {raw.get('id')!r} has {key}={value!r} but no date")
        return to_utc_instant(str(raw["date"])[:10], value, timezone)
    return parse_instant(value)


def _customer_name(raw: Mapping[str, Any]) -> str | None:
    customer = raw.get("customer") or {}
    first = (customer.get("firstName") or "").strip()
    last = (customer.get("lastName") or "").strip()
    if first and last:
        return f"{first} {last}"
    if first:
        return first
    return customer.get("phoneNumber") or None


def parse_appointment(raw: Mapping[str, Any], timezone: str | None) -> Appointment:
    try:
        appointment_id = str(raw["id"])
        start = _appointment_instant(raw, "startTime", timezone)
        if start is None:
            raise PayloadError(f"Appointment {appointment_id!r} has no startTime")
        end = _appointment_instant(raw, "endTime", timezone)

        duration = raw.get("duration")
        if duration is None:
            if end is None:
                raise PayloadError(f"Appointment {appointment_id!r} has neither duration nor endTime")
            duration = int((end - start).total_seconds() // 60)
        duration = int(duration)
        if duration <= 0:
            raise PayloadError(f"Appointment {appointment_id!r} has non-positive duration {duration}")
        if end is None:
            end = start + dt.timedelta(minutes=duration)

        service = raw.get("service") or {}
        return Appointment(
            id=appointment_id,
            start=start,
            end=end,
            duration_minutes=duration,
            status=_enum(AppointmentStatus, raw.get("status"), "appointment status"),
            service_id=raw.get("serviceId") or service.get("id"),
            customer_id=raw.get("customerId") or (raw.get("customer") or {}).get("id"),
            price=float(raw.get("price") or 0),
            currency=str(raw.get("currency") or "TRY"),
            service_name=service.get("name"),
            customer_name=_customer_name(raw),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise PayloadError(f"Malformed appointment payload: {e}") from e


def _parse_recurring(raw: Mapping[str, Any] | None) -> RecurringPattern | None:
    if not raw:
        return None
    frequency = raw.get("frequency")
    end_date = raw.get("endDate")
    return RecurringPattern(
        frequency=_enum(RecurringFrequency, frequency, "recurring frequency") if frequency else None,
        interval=int(raw["interval"]) if raw.get("interval") is not None else None,
        end_date=parse_instant(end_date) if end_date else None,
        days_of_week=tuple(int(d) for d in raw.get("daysOfWeek") or ()),
        day_of_month=int(raw["dayOfMonth"]) if raw.get("dayOfMonth") is not None else None,
    )


def _parse_notification(raw: Mapping[str, Any]) -> NotificationSettings:
    settings = raw.get("notificationSettings") or raw
    channels = settings.get("notificationChannels") or settings.get("channels") or ()
    return NotificationSettings(
        notify_customers=bool(settings.get("notifyCustomers", False)),
        channels=tuple(_enum(NotificationChannel, c, "notification channel") for c in channels),
        message=str(settings.get("notificationMessage") or settings.get("message") or ""),
    )


def parse_closure(raw: Mapping[str, Any]) -> Closure:
    try:
        closure_id = str(raw["id"])
        start = parse_instant(raw["startDate"])
        # Open-ended closures end when they start; they block nothing.
        end = parse_instant(raw["endDate"]) if raw.get("endDate") else start
        if end < start:
            raise PayloadError(f"Closure {closure_id!r} ends before it starts")

        return Closure(
            id=closure_id,
            start=start,
            end=end,
            reason=str(raw.get("reason") or ""),
            type=_enum(ClosureType, raw.get("type") or "OTHER", "closure type"),
            is_active=bool(raw.get("isActive", True)),
            recurring_pattern=_parse_recurring(raw.get("recurringPattern")),
            notification=_parse_notification(raw),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise PayloadError(f"Malformed closure payload: {e}") from e


def _parse_day_hours(weekday: str, raw: Mapping[str, Any]) -> DayHours:
    is_open = bool(raw.get("isOpen", False))
    if not is_open:
        return DayHours(is_open=False)

    open_raw = raw.get("open") or raw.get("openTime")
    close_raw = raw.get("close") or raw.get("closeTime")
    if not open_raw or not close_raw:
        return DayHours(is_open=False)

    open_time = parse_wall_clock(open_raw)
    close_time = parse_wall_clock(close_raw)
    if close_time < open_time:
        raise PayloadError(f"{weekday}: close {close_raw} is before open {open_raw}")

    breaks = sorted(
        (
            BreakWindow(
                start=parse_wall_clock(b["startTime"]),
                end=parse_wall_clock(b["endTime"]),
                description=str(b.get("description") or ""),
            )
            for b in raw.get("breaks") or ()
        ),
        key=lambda b: b.start,
    )

    previous_end = wall_clock_minutes(open_time)
    for b in breaks:
        b_start, b_end = wall_clock_minutes(b.start), wall_clock_minutes(b.end)
        if b_end <= b_start:
            raise PayloadError(f"{weekday}: break {b.start}-{b.end} is empty or inverted")
        if b_start < previous_end or b_end > wall_clock_minutes(close_time):
            raise PayloadError(f"{weekday}: break {b.start}-{b.end} overlaps or leaves opening hours")
        previous_end = b_end

    return DayHours(is_open=True, open_time=open_time, close_time=close_time, breaks=tuple(breaks))


def parse_business_hours(raw: Mapping[str, Any] | None, timezone: str | None) -> BusinessHours | None:
    """None when the business has no hours configured at all."""
    if not raw:
        return None
    days: dict[str, DayHours] = {}
    try:
        for weekday in _WEEKDAYS:
            day_raw = raw.get(weekday)
            if day_raw is None:
                continue
            days[weekday] = _parse_day_hours(weekday, day_raw)
    except (KeyError, TypeError, ValueError) as e:
        raise PayloadError(f"Malformed business hours payload: {e}") from e
    return BusinessHours(days=days, timezone=timezone or "UTC")


def parse_many(records: Iterable[Mapping[str, Any]], parser: Any, *args: Any) -> list:
    """Parse a list of records, skipping (and logging) malformed ones."""
    parsed = []
    for record in records:
        try:
            parsed.append(parser(record, *args))
        except PayloadError as e:
            logger.warning("Skipping record id=%s (%s)", record.get("id") if isinstance(record, Mapping) else None, e)
    return parsed
