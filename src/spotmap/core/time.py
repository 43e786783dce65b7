"""
Timestamp helpers.

Spotmap treats all timestamps as timezone-aware UTC datetimes; naive values coming
back from a store are assumed to already be UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Render an ISO-8601 string (used when storing datetimes inside audit payloads)."""
    return ensure_utc(dt).isoformat()

