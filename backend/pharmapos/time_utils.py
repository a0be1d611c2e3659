"""
Clock and calendar helpers.

Every stored timestamp is UTC without tzinfo. Business days (sales trend
buckets, expiry windows) are UTC calendar days; expiry dates are plain dates
with no time component.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today_utc() -> date:
    return utcnow().date()


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2025-03-01T09:30", "...Z" or "...+02:00" -> UTC-naive datetime.

    A naive string is taken to be UTC already. None or blank -> None.
    """
    s = _clean(value)
    if s is None:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Expiry dates: "YYYY-MM-DD", or a full timestamp truncated to its UTC day."""
    s = _clean(value)
    if s is None:
        return None
    if len(s) == 10:
        return date.fromisoformat(s)
    return parse_iso_datetime(s).date()


def utc_day_window(first_day: date, last_day: date) -> tuple[datetime, datetime]:
    """Half-open [start, end) covering whole UTC days first_day..last_day."""
    start = datetime.combine(first_day, datetime.min.time())
    end = datetime.combine(last_day + timedelta(days=1), datetime.min.time())
    return start, end


def expiry_cutoff(within_days: int, today: Optional[date] = None) -> date:
    """Last expiry date that still counts as expiring within the window."""
    return (today or today_utc()) + timedelta(days=within_days)


def days_until(day: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Whole days from today to day; negative once it has passed."""
    if day is None:
        return None
    return (day - (today or today_utc())).days


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a trailing 'Z', to the second. Naive input is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
