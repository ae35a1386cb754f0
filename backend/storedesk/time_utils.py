from __future__ import annotations

import calendar
from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

PERIODS = ("day", "month", "year")


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

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse "YYYY-MM-DD" (a full datetime string is accepted and truncated)."""
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    if len(s) == 10:
        return date.fromisoformat(s)
    return parse_iso_datetime(s).date()


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


def local_today(tz: Optional[ZoneInfo] = None) -> date:
    """Calendar date right now in `tz` (UTC when omitted)."""
    return datetime.now(tz or timezone.utc).date()


def local_to_utc(dt: datetime, tz: Optional[ZoneInfo]) -> datetime:
    """Wall-clock time in `tz` -> UTC-naive."""
    if tz is None:
        return dt
    return dt.replace(tzinfo=tz).astimezone(timezone.utc).replace(tzinfo=None)


def utc_to_local(dt: datetime, tz: Optional[ZoneInfo]) -> datetime:
    """UTC-naive -> naive wall-clock time in `tz`."""
    if tz is None:
        return dt
    return dt.replace(tzinfo=timezone.utc).astimezone(tz).replace(tzinfo=None)


def period_window(
    reference: date | datetime,
    period: str,
    tz: Optional[ZoneInfo] = None,
) -> tuple[datetime, datetime]:
    """
    Inclusive [start, end] range for the day, month or year containing `reference`.

    The period follows the calendar of `tz` (UTC when omitted); both bounds
    are returned UTC-naive to match stored timestamps. end is the last
    representable microsecond of the period, so callers filter with
    >= start and <= end.
    """
    if isinstance(reference, datetime):
        reference = reference.date()

    if period == "day":
        first, last = reference, reference
    elif period == "month":
        days_in_month = calendar.monthrange(reference.year, reference.month)[1]
        first = reference.replace(day=1)
        last = reference.replace(day=days_in_month)
    elif period == "year":
        first = date(reference.year, 1, 1)
        last = date(reference.year, 12, 31)
    else:
        raise ValueError("period must be day, month, or year")

    start = datetime.combine(first, time.min)
    end = datetime.combine(last, time.max)
    return local_to_utc(start, tz), local_to_utc(end, tz)
