from __future__ import annotations

import datetime as dt
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

from slotgrid.availability import resolve_slot
from slotgrid.closures import ClosureDraft, ensure_valid, impact_preview, selection_to_range
from slotgrid.config import Settings
from slotgrid.domain import (
    Appointment,
    AppointmentStatus,
    BusinessHours,
    Closure,
    ClosureType,
    ConflictError,
    ImpactPreview,
    TransportError,
)
from slotgrid.selection import SelectionMachine, TimerFactory, TouchIntent
from slotgrid.timezones import business_today, utc_now
from slotgrid.views import (
    DayLayout,
    MonthLayout,
    ViewMode,
    WeekLayout,
    build_day,
    build_month,
    build_week,
    shift,
    visible_range,
)

logger = logging.getLogger(__name__)


class CalendarMode(str, Enum):
    BOOKING = "booking"
    BLOCKING = "blocking"


class BookingApi(Protocol):
    def iter_appointments(self, business_id: str, date_from: dt.date, date_to: dt.date, *, timezone: str | None = ...) -> Any: ...
    def get_closures(self) -> list[Closure]: ...
    def get_business_hours(self, business_id: str, *, default_timezone: str | None = ...) -> Any: ...
    def create_closure(self, draft: ClosureDraft) -> Closure | None: ...
    def delete_closure(self, closure_id: str) -> None: ...
    def update_appointment_status(self, appointment_id: str, status: AppointmentStatus) -> None: ...


@dataclass(frozen=True)
class FetchTicket:
    generation: int
    view_mode: ViewMode
    date_from: dt.date
    date_to: dt.date


@dataclass(frozen=True)
class ClosureRequest:
    """A confirmed selection handed to the closure form."""

    date: dt.date
    slots: tuple[str, ...]
    start: dt.datetime
    end: dt.datetime
    impact: ImpactPreview


class CalendarSession:
    """State of one calendar view: visible range, loaded data, selection.

    Only this object mutates the loaded appointments/closures and the
    selection; everything else reads layouts from it.
    """

    def __init__(
        self,
        api: BookingApi,
        settings: Settings,
        *,
        clock: Callable[[], dt.datetime] = utc_now,
        notify: Callable[[str], None] | None = None,
        on_book: Callable[[dt.date, str], None] | None = None,
        on_closure_requested: Callable[[ClosureRequest], None] | None = None,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self.api = api
        self.settings = settings
        self.clock = clock
        self._notify = notify
        self._on_book = on_book
        self._on_closure_requested = on_closure_requested

        self.timezone: str = settings.business_timezone
        self.business_hours: BusinessHours | None = None
        self.view_mode = ViewMode.DAY
        self.mode = CalendarMode.BOOKING
        self.anchor: dt.date = business_today(clock(), self.timezone)

        self.appointments: list[Appointment] = []
        self.closures: list[Closure] = []
        self.loading = False
        self.pending_closure: ClosureRequest | None = None

        self._lock = threading.Lock()
        self._generation = 0
        self._closed = False

        self.selection = SelectionMachine(
            on_confirm=self._on_selection_confirmed,
            debounce_seconds=settings.hover_debounce_ms / 1000,
            timer_factory=timer_factory,
        )

    # Loading

    def load_business(self) -> None:
        profile = self.api.get_business_hours(self.settings.business_id, default_timezone=self.settings.business_timezone)
        self.timezone = profile.timezone
        self.business_hours = profile.hours
        if profile.hours is None:
            logger.warning("Business %s has no hours configured, using fallback grid", self.settings.business_id)

    def begin_fetch(self) -> FetchTicket:
        date_from, date_to = visible_range(self.view_mode, self.anchor)
        with self._lock:
            self._generation += 1
            self.loading = True
            return FetchTicket(self._generation, self.view_mode, date_from, date_to)

    def is_current(self, ticket: FetchTicket) -> bool:
        return not self._closed and ticket.generation == self._generation

    def apply_fetch(self, ticket: FetchTicket, appointments: list[Appointment], closures: list[Closure]) -> bool:
        with self._lock:
            if not self.is_current(ticket):
                # A newer request superseded this one.
                logger.info("Discarding stale fetch %s (current %s)", ticket.generation, self._generation)
                return False
            self.appointments = list(appointments)
            self.closures = list(closures)
            self.loading = False

        logger.info(
            "Loaded %s %s..%s: appointments=%d closures=%d",
            ticket.view_mode.value,
            ticket.date_from,
            ticket.date_to,
            len(appointments),
            len(closures),
        )
        self._rebind_selection()
        return True

    def fetch(self, ticket: FetchTicket) -> bool:
        try:
            appointments = list(
                self.api.iter_appointments(
                    self.settings.business_id,
                    ticket.date_from,
                    ticket.date_to,
                    timezone=self.timezone,
                )
            )
            closures = self.api.get_closures()
        except (TransportError, ConflictError) as e:
            if self.is_current(ticket):
                self.loading = False
                self._report_failure("Calendar could not be loaded", e)
            raise
        return self.apply_fetch(ticket, appointments, closures)

    def refresh(self) -> bool:
        return self.fetch(self.begin_fetch())

    def _refetch(self, after: str) -> None:
        # Failures are already reported by fetch(); the caller's own outcome stands.
        try:
            self.refresh()
        except (TransportError, ConflictError):
            logger.warning("Refetch after %s failed", after, exc_info=True)

    # Navigation

    def set_view_mode(self, view_mode: ViewMode) -> None:
        if view_mode is self.view_mode:
            return
        self._cancel_selection("view change")
        self.view_mode = view_mode
        self.refresh()

    def set_date(self, date: dt.date) -> None:
        self._cancel_selection("date change")
        self.anchor = date
        self.refresh()

    def navigate(self, direction: int) -> None:
        self.set_date(shift(self.view_mode, self.anchor, direction))

    def go_today(self) -> None:
        self.set_date(business_today(self.clock(), self.timezone))

    def open_day(self, date: dt.date) -> None:
        # Month cell click.
        self._cancel_selection("open day")
        self.anchor = date
        self.view_mode = ViewMode.DAY
        self.refresh()

    def set_calendar_mode(self, mode: CalendarMode) -> None:
        if mode is not CalendarMode.BLOCKING:
            self._cancel_selection("mode change")
        self.mode = mode

    # Layouts

    def day_layout(self, date: dt.date | None = None) -> DayLayout:
        return build_day(
            date or self.anchor,
            self.business_hours,
            self.appointments,
            self.closures,
            self.timezone,
            self.clock(),
            slot_height=self.settings.slot_height_px,
        )

    def week_layout(self) -> WeekLayout:
        return build_week(
            self.anchor,
            self.business_hours,
            self.appointments,
            self.closures,
            self.timezone,
            self.clock(),
            slot_height=self.settings.slot_height_px,
        )

    def month_layout(self) -> MonthLayout:
        return build_month(
            self.anchor,
            self.appointments,
            self.timezone,
            self.clock(),
            selected=self.anchor,
            preview_limit=self.settings.month_cell_preview_limit,
        )

    def current_layout(self) -> DayLayout | WeekLayout | MonthLayout:
        if self.view_mode is ViewMode.WEEK:
            return self.week_layout()
        if self.view_mode is ViewMode.MONTH:
            return self.month_layout()
        return self.day_layout()

    # Slot input

    def _interactive(self) -> bool:
        return self.view_mode is ViewMode.DAY and not self._closed

    def press_slot(self, label: str) -> None:
        if not self._interactive():
            return

        if self.mode is CalendarMode.BOOKING:
            state = resolve_slot(self.anchor, label, self.appointments, self.closures, self.timezone, self.clock())
            if state.is_selectable and self._on_book is not None:
                self._on_book(self.anchor, label)
            return

        self.selection.press(label)

    def hover_slot(self, label: str) -> None:
        if self._interactive() and self.mode is CalendarMode.BLOCKING:
            self.selection.hover(label)

    def release_slot(self, label: str) -> None:
        if self._interactive() and self.mode is CalendarMode.BLOCKING:
            self.selection.release(label)

    def touch_start(self, label: str | None, x: float, y: float) -> None:
        if self._interactive() and self.mode is CalendarMode.BLOCKING:
            self.selection.touch_start(label, x, y)

    def touch_move(self, label: str | None, x: float, y: float) -> TouchIntent:
        if self._interactive() and self.mode is CalendarMode.BLOCKING:
            return self.selection.touch_move(label, x, y)
        return TouchIntent.IGNORE

    def touch_end(self, label: str | None) -> None:
        if not self._interactive():
            return
        if self.mode is CalendarMode.BLOCKING:
            self.selection.touch_end(label)
        elif label is not None:
            self.press_slot(label)

    def cancel_selection(self) -> None:
        self._cancel_selection("explicit cancel")

    def _cancel_selection(self, why: str) -> None:
        if self.selection.is_selecting:
            logger.info("Selection cancelled (%s)", why)
        self.selection.cancel()

    def _rebind_selection(self) -> None:
        if self.view_mode is ViewMode.DAY:
            self.selection.bind(self.day_layout().slots)
        else:
            self.selection.bind([])

    def _on_selection_confirmed(self, labels: list[str]) -> None:
        start, end = selection_to_range(self.anchor, labels, self.timezone)
        request = ClosureRequest(
            date=self.anchor,
            slots=tuple(labels),
            start=start,
            end=end,
            impact=impact_preview(start, end, self.appointments),
        )
        self.pending_closure = request
        if self._on_closure_requested is not None:
            self._on_closure_requested(request)

    # Mutations

    def preview_impact(self, start: dt.datetime, end: dt.datetime) -> ImpactPreview:
        return impact_preview(start, end, self.appointments)

    def new_closure_draft(self, reason: str = "", closure_type: ClosureType = ClosureType.OTHER) -> ClosureDraft:
        if self.pending_closure is None:
            raise RuntimeError("No confirmed selection to create a closure from")
        return ClosureDraft(
            start=self.pending_closure.start,
            end=self.pending_closure.end,
            reason=reason,
            type=closure_type,
        )

    def submit_closure(self, draft: ClosureDraft) -> Closure | None:
        # Validation errors stay local and block the request.
        ensure_valid(draft, self.clock())
        self.selection.cancel()
        try:
            created = self.api.create_closure(draft)
        except (TransportError, ConflictError) as e:
            self._report_failure("Closure could not be created", e)
            self._refetch("failed write")
            raise

        logger.info("Closure created %s..%s", draft.start.isoformat(), draft.end.isoformat())
        self.pending_closure = None
        self._refetch("closure created")
        return created

    def delete_closure(self, closure_id: str) -> None:
        try:
            self.api.delete_closure(closure_id)
        except (TransportError, ConflictError) as e:
            self._report_failure("Closure could not be deleted", e)
            self._refetch("failed write")
            raise
        logger.info("Closure %s deleted", closure_id)
        self._refetch("closure deleted")

    def update_appointment_status(self, appointment_id: str, status: AppointmentStatus) -> None:
        try:
            self.api.update_appointment_status(appointment_id, status)
        except (TransportError, ConflictError) as e:
            self._report_failure("Appointment status could not be updated", e)
            self._refetch("failed write")
            raise
        logger.info("Appointment %s -> %s", appointment_id, status.value)
        self._refetch("status update")

    def _report_failure(self, text: str, exc: Exception) -> None:
        logger.error("%s (%s: %s)", text, type(exc).__name__, exc)
        if self._notify is None:
            return
        try:
            self._notify(f"{text}: {exc}")
        except Exception:
            # Best-effort: a broken notifier must not hide the original error.
            logger.warning("Failed to deliver notification", exc_info=True)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._generation += 1
        self.selection.dispose()
