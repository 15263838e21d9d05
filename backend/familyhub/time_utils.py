from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def to_epoch(dt: datetime) -> int:
    """Unix timestamp (seconds) for a UTC-naive datetime."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def from_epoch(value: int | float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)


def add_months(dt: datetime, months: int) -> datetime:
    """
    Calendar month arithmetic. Day-of-month is clamped to the target month,
    so Jan 31 + 1 month is Feb 28 (or 29).
    """
    return dt + relativedelta(months=months)


def first_day_of_month(dt: datetime) -> datetime:
    """Midnight UTC on the first day of dt's calendar month."""
    return dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def days_until(target: datetime, now: datetime) -> int:
    """Whole days remaining until target, rounded up (0 or negative once passed)."""
    return math.ceil((target - now) / timedelta(days=1))
