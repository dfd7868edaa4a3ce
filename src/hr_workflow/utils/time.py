"""Time helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_now_naive() -> datetime:
    """Current UTC wall-clock time without tzinfo, matching stored record datetimes."""
    return utc_now().replace(tzinfo=None)
