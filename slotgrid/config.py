from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _parse_int(name: str, default: str, *, minimum: int) -> int:
    raw = os.getenv(name, default).strip()
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected integer.") from e

    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}")
    return value


def _parse_base_url(raw: str) -> str:
    # BOOKING_API_URL=https://api.example.com/ and .../ without the slash are the same thing.
    url = raw.strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        raise RuntimeError(f"Invalid BOOKING_API_URL value: {raw!r}. Expected http(s) URL.")
    return url


@dataclass(frozen=True)
class Settings:
    api_base_url: str
    business_id: str

    api_token: str | None = None
    business_timezone: str = "Europe/Istanbul"

    http_timeout_seconds: float = 10.0

    # How many times a read call (appointments, closures, hours) is attempted on transport errors.
    fetch_retry_attempts: int = 2

    # Live selection preview delay while the pointer is moving.
    hover_debounce_ms: int = 25

    # Layout
    slot_height_px: int = 40
    month_cell_preview_limit: int = 2


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    api_token = os.getenv("BOOKING_API_TOKEN", "").strip() or None
    business_timezone = os.getenv("BUSINESS_TIMEZONE", "Europe/Istanbul").strip() or "Europe/Istanbul"

    timeout_raw = os.getenv("HTTP_TIMEOUT_SECONDS", "10").strip()
    try:
        http_timeout_seconds = float(timeout_raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid HTTP_TIMEOUT_SECONDS value: {timeout_raw!r}") from e
    if http_timeout_seconds <= 0:
        raise RuntimeError("HTTP_TIMEOUT_SECONDS must be > 0")

    return Settings(
        api_base_url=_parse_base_url(_require("BOOKING_API_URL")),
        business_id=_require("BUSINESS_ID"),
        api_token=api_token,
        business_timezone=business_timezone,
        http_timeout_seconds=http_timeout_seconds,
        fetch_retry_attempts=_parse_int("FETCH_RETRY_ATTEMPTS", "2", minimum=1),
        hover_debounce_ms=_parse_int("HOVER_DEBOUNCE_MS", "25", minimum=0),
        slot_height_px=_parse_int("SLOT_HEIGHT_PX", "40", minimum=1),
        month_cell_preview_limit=_parse_int("MONTH_CELL_PREVIEW_LIMIT", "2", minimum=0),
    )
