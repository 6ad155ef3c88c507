import argparse
import datetime as dt
import logging

from slotgrid.api_client import BookingApiClient
from slotgrid.config import Settings, load_settings
from slotgrid.session import CalendarMode, CalendarSession
from slotgrid.views import DayLayout, MonthLayout, ViewMode, WeekLayout


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def build_client(settings: Settings) -> BookingApiClient:
    return BookingApiClient(
        settings.api_base_url,
        token=settings.api_token,
        timeout_seconds=settings.http_timeout_seconds,
        retry_attempts=settings.fetch_retry_attempts,
    )


def render_day(layout: DayLayout) -> str:
    if layout.is_closed:
        return f"{layout.date.isoformat()}: closed"

    lines = [layout.date.isoformat()]
    for slot in layout.slots:
        state = slot.state
        detail = ""
        if state.kind == "appointment-start":
            a = state.appointment
            detail = f" {a.customer_name or a.id} ({a.status.value}, {state.span_slots} slots)"
        elif state.kind == "closed":
            detail = f" {state.closure.type.value}: {state.closure.reason}"
        lines.append(f"  {slot.label}  {state.kind}{detail}")
    return "\n".join(lines)


def render_week(layout: WeekLayout) -> str:
    lines = []
    for column in layout.columns:
        marker = "*" if column.is_today else " "
        if column.is_closed:
            lines.append(f"{marker}{column.date.isoformat()}  closed")
            continue
        ids = ", ".join(f"{b.start_label} {b.appointment_id}" for b in column.blocks) or "-"
        lines.append(f"{marker}{column.date.isoformat()}  {len(column.slots)} slots  {ids}")
    return "\n".join(lines)


def render_month(layout: MonthLayout) -> str:
    lines = [layout.month.strftime("%B %Y")]
    for week in layout.weeks:
        cells = []
        for cell in week:
            day = f"{cell.date.day:2d}" if cell.in_current_month else f"({cell.date.day})"
            extra = f"+{cell.overflow}" if cell.overflow else ""
            cells.append(f"{day}:{len(cell.summaries)}{extra}".ljust(9))
        lines.append(" ".join(cells))
    return "\n".join(lines)


def render(session: CalendarSession) -> str:
    layout = session.current_layout()
    if isinstance(layout, WeekLayout):
        return render_week(layout)
    if isinstance(layout, MonthLayout):
        return render_month(layout)
    return render_day(layout)


def main() -> int:
    parser = argparse.ArgumentParser(description="slotgrid: appointment calendar viewer")
    parser.add_argument("--view", choices=[m.value for m in ViewMode], default=ViewMode.DAY.value)
    parser.add_argument("--date", help="Anchor date, YYYY-MM-DD (default: today in business timezone)")
    parser.add_argument("--mode", choices=[m.value for m in CalendarMode], default=CalendarMode.BOOKING.value)
    args = parser.parse_args()

    _setup_logging()
    settings = load_settings()
    logger = logging.getLogger(__name__)

    with build_client(settings) as client:
        session = CalendarSession(client, settings, notify=lambda text: logger.warning("%s", text))
        try:
            session.load_business()
            session.set_calendar_mode(CalendarMode(args.mode))
            session.view_mode = ViewMode(args.view)
            if args.date:
                session.anchor = dt.date.fromisoformat(args.date)
            session.refresh()
            print(render(session))
            return 0
        except Exception as e:
            logger.error("Calendar failed (%s: %s)", type(e).__name__, e)
            raise
        finally:
            session.close()


if __name__ == "__main__":
    raise SystemExit(main())
