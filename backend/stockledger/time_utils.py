from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

"""
Timestamps are stored UTC-naive. Report periods are inclusive on both ends,
so a date-only end bound ("2025-04-12") stretches to the last microsecond of
that day.
"""

DATE_ONLY_LENGTH = len("YYYY-MM-DD")
LAST_MICROSECOND = timedelta(days=1) - timedelta(microseconds=1)


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_day_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """First and last instant of the UTC day containing ``moment``."""
    day_start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return day_start, day_start + LAST_MICROSECOND


def parse_iso_datetime(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO-8601 string to a UTC-naive datetime.

    None or "" gives None. Naive values are taken as UTC; "Z" and offsets
    are converted. With ``end_of_day`` a bare date means the end of that day.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    date_only = len(s) == DATE_ONLY_LENGTH
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    if date_only and end_of_day:
        dt = utc_day_bounds(dt)[1]
    return dt


def parse_period(start: Optional[str], end: Optional[str]) -> tuple[Optional[datetime], Optional[datetime]]:
    """Inclusive [start, end] from query strings; ValueError when malformed or reversed."""
    start_dt = parse_iso_datetime(start)
    end_dt = parse_iso_datetime(end, end_of_day=True)
    if start_dt is not None and end_dt is not None and start_dt > end_dt:
        raise ValueError("start is after end")
    return start_dt, end_dt


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
