from __future__ import annotations

from datetime import datetime
from typing import Optional


def ensure_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt


def to_iso(dt: datetime) -> str:
    ensure_aware(dt)
    # store as ISO 8601 with offset
    return dt.isoformat()


def from_iso(s: str) -> datetime:
    # LMS timestamps end in "Z"; fromisoformat only accepts it from 3.11 on
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s)


def parse_due(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return from_iso(value)
    except ValueError:
        return None


def has_time_component(value: Optional[str]) -> bool:
    return bool(value) and "T" in value


def same_due(a: Optional[str], b: Optional[str]) -> bool:
    """
    True when two stored due values denote the same moment.

    "2025-03-01T23:59:00Z" and "2025-03-01T23:59:00+00:00" are equal. Values that
    cannot be compared as aware datetimes fall back to string equality.
    """
    if a == b:
        return True
    da, db = parse_due(a), parse_due(b)
    if da is None or db is None:
        return False
    if da.tzinfo is None or db.tzinfo is None:
        return False
    return da == db
