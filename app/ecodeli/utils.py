from __future__ import annotations

from datetime import date, datetime
from typing import Any

from flask import request


def json_body() -> dict[str, Any]:
    """Request JSON body as a dict (empty dict on missing/invalid JSON)."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def iso(value: datetime | date | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def parse_datetime(raw: Any) -> datetime | None:
    """Parse an ISO-8601 string (trailing Z allowed) into a naive UTC datetime."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    s = str(raw).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError as e:
        raise ValueError(f"Invalid date: {raw}") from e
    if dt.tzinfo is not None:
        dt = (dt - dt.utcoffset()).replace(tzinfo=None)
    return dt


def parse_float(raw: Any, field: str) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{field} must be a number") from e


def parse_int(raw: Any, field: str) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{field} must be an integer") from e


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw or "").strip().lower() in ("1", "true", "yes", "on")


def clean_str(raw: Any, field: str) -> str | None:
    """Stripped text or None. Raises ValueError for non-string values."""
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValueError(f"{field} must be a string")
    return raw.strip() or None
