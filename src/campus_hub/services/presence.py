"""Presence derived from the heartbeat timestamp."""

from __future__ import annotations

from datetime import datetime, timedelta

from campus_hub.core.settings import settings
from campus_hub.db.time import as_utc, utcnow


def is_online(
    last_active_at: datetime | None,
    *,
    now: datetime | None = None,
    window_seconds: float | None = None,
) -> bool:
    """True when the last heartbeat falls inside the online window."""
    if last_active_at is None:
        return False
    window = timedelta(
        seconds=settings.online_window_seconds if window_seconds is None else window_seconds
    )
    current = as_utc(now) if now is not None else utcnow()
    return current - as_utc(last_active_at) <= window
