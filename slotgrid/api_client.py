from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterator, TypeVar

import httpx
from tenacity import RetryCallState, retry, retry_if_exception, stop_after_attempt, wait_exponential

from slotgrid.closures import ClosureDraft
from slotgrid.domain import (
    Appointment,
    AppointmentStatus,
    BusinessHours,
    Closure,
    ConflictError,
    PayloadError,
    TransportError,
)
from slotgrid.payloads import parse_appointment, parse_business_hours, parse_closure, parse_many

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class AppointmentPage:
    appointments: list[Appointment]
    total: int
    page: int
    total_pages: int


@dataclass(frozen=True)
class BusinessProfile:
    business_id: str
    timezone: str
    # None when the business never configured its hours.
    hours: BusinessHours | None


def _short_exc(retry_state: RetryCallState) -> str | None:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return None
    exc = retry_state.outcome.exception()
    if exc is None:
        return None
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _log_before_attempt(retry_state: RetryCallState) -> None:
    logger.debug("%s attempt %s", getattr(retry_state.fn, "__name__", "call"), retry_state.attempt_number)


def _log_after_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome is not None and retry_state.outcome.failed:
        logger.warning("Attempt %s failed (%s)", retry_state.attempt_number, _short_exc(retry_state))


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    if sleep_seconds is None:
        logger.info("Retrying after failure (%s)", _short_exc(retry_state))
        return
    logger.info(
        "Retrying in %.1f s, attempt %s (%s)",
        sleep_seconds,
        retry_state.attempt_number + 1,
        _short_exc(retry_state),
    )


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, TransportError) and exc.retryable


class BookingApiClient:
    """Request/response wrapper over the booking REST API.

    Every endpoint answers with a `{success, data?, error?}` envelope.
    Read calls are retried on transport failures; writes are not.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = 10.0,
        retry_attempts: int = 2,
        retry_wait_min: float = 1.0,
        retry_wait_max: float = 4.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )
        self.retry_attempts = retry_attempts
        self.retry_wait_min = retry_wait_min
        self.retry_wait_max = retry_wait_max

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> BookingApiClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # Transport

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"{method} {url} timed out") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        status = response.status_code
        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}

        error = body.get("error") if isinstance(body, dict) else None
        message = (error or {}).get("message") if isinstance(error, dict) else None
        code = (error or {}).get("code") if isinstance(error, dict) else None

        if status == 409 or code == "CONFLICT":
            raise ConflictError(message or f"{method} {url} conflicts with current data")
        if status in (401, 403):
            raise TransportError(message or f"{method} {url} not authorized", status_code=status, retryable=False)
        if status >= 500:
            raise TransportError(message or f"{method} {url} server error {status}", status_code=status)
        if status >= 400:
            raise TransportError(message or f"{method} {url} rejected with {status}", status_code=status, retryable=False)

        if not isinstance(body, dict) or not body.get("success", False):
            raise TransportError(message or f"{method} {url} returned an unsuccessful envelope", status_code=status, retryable=False)
        return body.get("data")

    def _with_retry(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        decorated = retry(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=1, min=self.retry_wait_min, max=self.retry_wait_max),
            retry=retry_if_exception(_is_retryable),
            before=_log_before_attempt,
            after=_log_after_attempt,
            before_sleep=_log_before_sleep,
            reraise=True,
        )(fn)
        return decorated(*args, **kwargs)

    def _get(self, url: str, params: dict[str, Any] | None = None) -> Any:
        return self._with_retry(self._request, "GET", url, params=params)

    # Appointments

    def get_appointments(
        self,
        business_id: str,
        date_from: dt.date,
        date_to: dt.date,
        *,
        timezone: str | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> AppointmentPage:
        data = self._get(
            f"/api/v1/appointments/business/{business_id}/date-range",
            params={
                "startDate": date_from.isoformat(),
                "endDate": date_to.isoformat(),
                "page": page,
                "limit": limit,
            },
        ) or {}
        records = data.get("appointments") if isinstance(data, dict) else data
        appointments = parse_many(records or [], parse_appointment, timezone)
        total = int(data.get("total", len(appointments))) if isinstance(data, dict) else len(appointments)
        total_pages = int(data.get("totalPages", 1)) if isinstance(data, dict) else 1
        return AppointmentPage(
            appointments=appointments,
            total=total,
            page=int(data.get("page", page)) if isinstance(data, dict) else page,
            total_pages=max(1, total_pages),
        )

    def iter_appointments(
        self,
        business_id: str,
        date_from: dt.date,
        date_to: dt.date,
        *,
        timezone: str | None = None,
        limit: int = 100,
    ) -> Iterator[Appointment]:
        page = 1
        while True:
            result = self.get_appointments(business_id, date_from, date_to, timezone=timezone, page=page, limit=limit)
            yield from result.appointments
            if page >= result.total_pages:
                return
            page += 1

    def update_appointment_status(self, appointment_id: str, status: AppointmentStatus) -> None:
        self._request("PATCH", f"/api/v1/appointments/{appointment_id}/status", json={"status": status.value})

    # Closures

    def get_closures(self) -> list[Closure]:
        data = self._get("/api/v1/closures/my") or []
        if isinstance(data, dict):
            data = data.get("closures") or []
        return parse_many(data, parse_closure)

    def create_closure(self, draft: ClosureDraft) -> Closure | None:
        data = self._request("POST", "/api/v1/closures/enhanced", json=draft.to_payload())
        if isinstance(data, dict) and data.get("id"):
            try:
                return parse_closure(data)
            except PayloadError:
                logger.warning("Closure created but response could not be parsed", exc_info=True)
        return None

    def delete_closure(self, closure_id: str) -> None:
        self._request("DELETE", f"/api/v1/closures/{closure_id}")

    # Business profile

    def get_business_hours(self, business_id: str, *, default_timezone: str | None = None) -> BusinessProfile:
        data = self._get(f"/api/v1/businesses/{business_id}") or {}
        timezone = data.get("timezone") or default_timezone or "UTC"
        return BusinessProfile(
            business_id=business_id,
            timezone=timezone,
            hours=parse_business_hours(data.get("businessHours"), timezone),
        )
