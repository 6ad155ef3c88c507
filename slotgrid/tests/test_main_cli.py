from __future__ import annotations

from unittest.mock import patch

import httpx
import pytest

import main
from slotgrid.api_client import BookingApiClient
from slotgrid.config import Settings
from slotgrid.domain import TransportError


def _settings() -> Settings:
    return Settings(
        api_base_url="https://api.example.test",
        business_id="biz-1",
        business_timezone="UTC",
        fetch_retry_attempts=1,
        hover_debounce_ms=0,
    )


def _args(view: str = "day", date: str | None = "2025-03-10", mode: str = "booking"):
    return type("Args", (), {"view": view, "date": date, "mode": mode})()


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/api/v1/businesses/biz-1":
        data = {
            "timezone": "UTC",
            "businessHours": {"monday": {"isOpen": True, "open": "09:00", "close": "10:00"}},
        }
    elif path == "/api/v1/closures/my":
        data = []
    elif path == "/api/v1/appointments/business/biz-1/date-range":
        data = {
            "appointments": [
                {
                    "id": "a1",
                    "startTime": "2025-03-10T09:00:00Z",
                    "duration": 30,
                    "status": "CONFIRMED",
                    "customer": {"firstName": "Ayse", "lastName": "Kaya"},
                }
            ],
            "totalPages": 1,
        }
    else:
        return httpx.Response(404)
    return httpx.Response(200, json={"success": True, "data": data})


def _client_for(handler):
    def build(settings: Settings) -> BookingApiClient:
        return BookingApiClient(
            settings.api_base_url,
            retry_attempts=settings.fetch_retry_attempts,
            transport=httpx.MockTransport(handler),
        )

    return build


def test_main_prints_day_view(capsys: pytest.CaptureFixture[str]) -> None:
    with (
        patch("main.load_settings", return_value=_settings()),
        patch("main.build_client", side_effect=_client_for(_handler)),
        patch("main.argparse.ArgumentParser.parse_args", return_value=_args()),
    ):
        assert main.main() == 0

    out = capsys.readouterr().out
    assert "2025-03-10" in out
    assert "09:00  appointment-start Ayse Kaya (CONFIRMED, 2 slots)" in out
    assert "09:15  appointment-continue" in out
    assert "09:45" in out
    assert "10:00" not in out


def test_main_prints_closed_day_in_week_view(capsys: pytest.CaptureFixture[str]) -> None:
    with (
        patch("main.load_settings", return_value=_settings()),
        patch("main.build_client", side_effect=_client_for(_handler)),
        patch("main.argparse.ArgumentParser.parse_args", return_value=_args(view="week")),
    ):
        assert main.main() == 0

    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 7
    assert "2025-03-10  4 slots  09:00 a1" in lines[0]
    assert lines[1].endswith("2025-03-11  closed")


def test_main_prints_month_grid(capsys: pytest.CaptureFixture[str]) -> None:
    with (
        patch("main.load_settings", return_value=_settings()),
        patch("main.build_client", side_effect=_client_for(_handler)),
        patch("main.argparse.ArgumentParser.parse_args", return_value=_args(view="month")),
    ):
        assert main.main() == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "March 2025"
    assert len(lines) == 7
    assert lines[1].startswith("(24):0")
    assert "10:1" in lines[3]


def test_main_reraises_when_api_is_down() -> None:
    def down(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    with (
        patch("main.load_settings", return_value=_settings()),
        patch("main.build_client", side_effect=_client_for(down)),
        patch("main.argparse.ArgumentParser.parse_args", return_value=_args()),
        patch("main.CalendarSession.close", autospec=True) as close,
    ):
        with pytest.raises(TransportError):
            main.main()

        close.assert_called_once()
