"""Clock helpers."""

from __future__ import annotations

from datetime import datetime, timedelta

from .config import TIMEZONE


def utc_now() -> datetime:
    """Return the current datetime in UTC."""
    return datetime.now(TIMEZONE)


def age_of(created_at: datetime, now: datetime) -> timedelta:
    """Return how long ago `created_at` was, relative to `now`."""
    return now - created_at


def is_expired(created_at: datetime, now: datetime, ttl: timedelta) -> bool:
    """True when more than `ttl` has passed since `created_at`."""
    return age_of(created_at, now) > ttl
