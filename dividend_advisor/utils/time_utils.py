"""
Date and time helpers.

The pipeline core never reads the clock: ``as_of_date`` is always passed in
by the caller.  These helpers exist for the edges — CLI defaults, audit
timestamps, and parsing provider dates.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def today_utc() -> date:
    """Today's date in UTC; used only for CLI defaults."""
    return utcnow().date()


def parse_provider_date(value: Optional[str]) -> Optional[date]:
    """Parse a ``YYYY-MM-DD`` provider date, returning ``None`` for blanks and sentinels.

    Providers emit ``"None"``, ``"-"`` or ``"0000-00-00"`` for unknown dates.
    """
    if value is None:
        return None
    text = value.strip()
    if not text or text in {"None", "-", "0000-00-00"}:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None
