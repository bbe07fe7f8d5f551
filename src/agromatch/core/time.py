"""
Timestamp helpers.

AgroMatch stores every `created_at` as a timezone-aware datetime so ordering works
when records come from mixed sources (JSON files, API payloads, tests).
"""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def now_utc() -> datetime:
    """Current time as an aware UTC datetime (the default clock for stores/services)."""
    return datetime.now(timezone.utc)


def ensure_tz(dt: datetime, tz_name: str = "UTC") -> datetime:
    """Ensure `dt` has tzinfo; attach `tz_name` if naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo(tz_name))
    return dt
