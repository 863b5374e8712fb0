# src/app/infra/db/rows.py
"""Row conversion helpers shared by the Supabase repositories."""
from __future__ import annotations

from datetime import datetime, timezone

import httpx
from supabase import PostgrestAPIError

# Errors the supabase client surfaces for failed requests.
STORAGE_ERRORS = (PostgrestAPIError, httpx.HTTPError, ConnectionError, TimeoutError)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None

    try:
        normalized = value.replace("Z", "+00:00") if value.endswith("Z") else value
        return datetime.fromisoformat(normalized)
    except ValueError:
        return None


def safe_int(value: object, default: int = 0) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def safe_str(value: object) -> str | None:
    return str(value) if value else None


def first_row(result) -> dict | None:
    data = getattr(result, "data", None)
    if isinstance(data, list):
        return data[0] if data else None
    return data or None
