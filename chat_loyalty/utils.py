"""Shared utility helpers for chat-loyalty."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

_INT_RE = re.compile(r"[+-]?[0-9]+")
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
_INT64_DIGITS = 19


def now_utc() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def parse_timestamp(ts: str | None) -> datetime | None:
    """Parse a stored ISO timestamp string to timezone-aware datetime, or None."""
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except (ValueError, TypeError):
        return None


def parse_int(text: str) -> int | None:
    """Parse a base-10 int64 with an optional sign. Returns None if malformed.

    Stricter than ``int()``: no surrounding whitespace, no underscores,
    ASCII digits only, and values outside the signed 64-bit range are
    rejected rather than promoted.
    """
    if not _INT_RE.fullmatch(text):
        return None
    digits = text.lstrip("+-").lstrip("0")
    if len(digits) > _INT64_DIGITS:
        return None
    value = int(text)
    if not INT64_MIN <= value <= INT64_MAX:
        return None
    return value


def format_elapsed(delta: timedelta) -> str:
    """Render a duration rounded to the second, e.g. ``3h2m1s`` or ``45s``."""
    total = int(round(delta.total_seconds()))
    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"
