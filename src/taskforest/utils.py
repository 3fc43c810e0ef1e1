from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Optional

_DIGITS_RE = re.compile(r"(\d+)")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_iso(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        if not isinstance(value, str):
            value = str(value)
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
        # If a naive timestamp slips in, assume UTC to avoid crashes.
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError:
        return None


def _iso_date(value: Any) -> str:
    """Return the ``YYYY-MM-DD`` part of an ISO timestamp, or ``""``."""
    dt = _parse_iso(value)
    return dt.date().isoformat() if dt else ""


def _coerce_int(value: Any, default: int = 0) -> int:
    try:
        if value is None:
            return default
        if isinstance(value, bool):
            return int(value)
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def natural_id_key(task_id: str) -> tuple[Any, ...]:
    """Sort key that orders ``"2"`` before ``"10"`` and ``"5.2"`` before ``"5.10"``."""
    parts = _DIGITS_RE.split(str(task_id))
    return tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in parts if p != "")
