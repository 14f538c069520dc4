from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

_DATE_ONLY_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def current_year() -> int:
    return utcnow().year


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is midnight UTC of that day
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def normalize_datetime(value) -> Optional[datetime]:
    """Accept a datetime or ISO string; return UTC-naive datetime (or None)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise ValueError("invalid datetime")


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


def parse_end_bound(value) -> tuple[Optional[datetime], bool]:
    """
    Upper bound for a date-range filter, as (bound, exclusive).

    A date-only "YYYY-MM-DD" covers that whole day, so it becomes the
    following midnight with exclusive=True. A full datetime is an
    inclusive bound.
    """
    if isinstance(value, str) and _DATE_ONLY_RE.fullmatch(value.strip()):
        return parse_iso_datetime(value) + timedelta(days=1), True
    return normalize_datetime(value), False
