from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

# Fixed slot granularity of the calendar grid.
SLOT_MINUTES = 15


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"
    NO_SHOW = "NO_SHOW"


class ClosureType(str, Enum):
    VACATION = "VACATION"
    MAINTENANCE = "MAINTENANCE"
    EMERGENCY = "EMERGENCY"
    HOLIDAY = "HOLIDAY"
    STAFF_SHORTAGE = "STAFF_SHORTAGE"
    SICK_LEAVE = "SICK_LEAVE"
    OTHER = "OTHER"


class RecurringFrequency(str, Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class NotificationChannel(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    PUSH = "PUSH"


@dataclass(frozen=True)
class Appointment:
    """A booked appointment as returned by the appointment service.

    `start`/`end` are aware UTC datetimes. The slots it occupies are derived
    from `start` and `duration_minutes`, not from `end`.
    """

    id: str
    start: dt.datetime
    end: dt.datetime
    duration_minutes: int
    status: AppointmentStatus
    service_id: str | None = None
    customer_id: str | None = None
    price: float = 0.0
    currency: str = "TRY"
    service_name: str | None = None
    customer_name: str | None = None

    @property
    def occupied_until(self) -> dt.datetime:
        return self.start + dt.timedelta(minutes=self.duration_minutes)

    @property
    def span_slots(self) -> int:
        return max(1, math.ceil(self.duration_minutes / SLOT_MINUTES))

    @property
    def occupies_slots(self) -> bool:
        return self.status is not AppointmentStatus.CANCELED

    def covers(self, instant: dt.datetime) -> bool:
        return self.start <= instant < self.occupied_until


@dataclass(frozen=True)
class RecurringPattern:
    frequency: RecurringFrequency | None
    interval: int | None
    end_date: dt.datetime | None = None
    days_of_week: tuple[int, ...] = ()
    day_of_month: int | None = None


@dataclass(frozen=True)
class NotificationSettings:
    notify_customers: bool = False
    channels: tuple[NotificationChannel, ...] = ()
    message: str = ""


@dataclass(frozen=True)
class Closure:
    id: str
    start: dt.datetime
    end: dt.datetime
    reason: str
    type: ClosureType
    is_active: bool = True
    recurring_pattern: RecurringPattern | None = None
    notification: NotificationSettings = field(default_factory=NotificationSettings)

    def contains(self, instant: dt.datetime) -> bool:
        # Half-open: [start, end)
        return self.start <= instant < self.end

    def blocks(self, instant: dt.datetime) -> bool:
        return self.is_active and self.contains(instant)


@dataclass(frozen=True)
class BreakWindow:
    start: dt.time
    end: dt.time
    description: str = ""


@dataclass(frozen=True)
class DayHours:
    is_open: bool
    open_time: dt.time | None = None
    close_time: dt.time | None = None
    breaks: tuple[BreakWindow, ...] = ()


@dataclass(frozen=True)
class BusinessHours:
    # Keys are lower-case English weekday names ("monday" .. "sunday").
    days: Mapping[str, DayHours]
    timezone: str = "UTC"

    def for_weekday(self, weekday: str) -> DayHours | None:
        return self.days.get(weekday.lower())


@dataclass(frozen=True)
class ImpactPreview:
    affected_appointments: int
    affected_customers: int
    estimated_revenue_loss: float = 0.0


# Slot states: exactly one per slot.

@dataclass(frozen=True)
class EmptySlot:
    kind = "empty"
    is_selectable = True


@dataclass(frozen=True)
class AppointmentStart:
    appointment: Appointment
    span_slots: int

    kind = "appointment-start"
    is_selectable = False


@dataclass(frozen=True)
class AppointmentContinue:
    appointment: Appointment

    kind = "appointment-continue"
    is_selectable = False


@dataclass(frozen=True)
class ClosedSlot:
    closure: Closure

    kind = "closed"
    is_selectable = False


@dataclass(frozen=True)
class PastSlot:
    kind = "past"
    is_selectable = False


SlotState = EmptySlot | AppointmentStart | AppointmentContinue | ClosedSlot | PastSlot


class SlotgridError(RuntimeError):
    """Base class for calendar engine errors."""


class PayloadError(SlotgridError):
    """A record from an external collaborator could not be parsed."""


class ClosureValidationError(SlotgridError):
    """Closure form is invalid. Field-scoped, never sent to the server."""

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Invalid closure fields: {fields}")


class ConflictError(SlotgridError):
    """Server rejected a change because the data changed since the last fetch."""


class TransportError(SlotgridError):
    """Network, timeout, auth or server failure talking to the booking API."""

    def __init__(self, message: str, *, status_code: int | None = None, retryable: bool = True) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
