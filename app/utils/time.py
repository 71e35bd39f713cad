"""Utility functions for time handling.

All timestamps should be UTC and timezone-aware. Persist UTC timestamps as
ISO-8601 strings with timezone offsets (e.g., "+00:00") via iso_now() or
to_iso(). Wall-clock questions ("what minute is it, what day is it") are
answered in the single configured scheduling zone via local_clock().
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any

MINUTES_PER_DAY = 24 * 60


def utc_now() -> datetime:
    """Return current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def iso_now(*, timespec: str | None = None) -> str:
    """Return current UTC time as an ISO8601 string (timezone-aware)."""
    now = utc_now()
    if timespec:
        return now.isoformat(timespec=timespec)
    return now.isoformat()


def to_iso(dt: datetime | None) -> str | None:
    """Render an aware datetime as a UTC ISO8601 string."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def coerce_datetime(value: Any) -> datetime | None:
    """
    Coerce value to datetime, returning None on failure.

    Args:
        value: String, epoch milliseconds or datetime to coerce

    Returns:
        Datetime in timezone.utc or None if invalid
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw.replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    else:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed


@dataclass(frozen=True)
class LocalClock:
    """A single instant viewed in the scheduling timezone."""

    instant: datetime
    local: datetime

    @property
    def date_stamp(self) -> str:
        return self.local.strftime("%Y-%m-%d")

    @property
    def minutes(self) -> int:
        return self.local.hour * 60 + self.local.minute

    @property
    def hhmm(self) -> str:
        return self.local.strftime("%H:%M")

    def tomorrow_stamp(self) -> str:
        return (self.local.date() + timedelta(days=1)).isoformat()


def local_clock(now: datetime | None, tz: tzinfo) -> LocalClock:
    """
    Project ``now`` (UTC when naive, current time when None) onto ``tz``.

    Every trigger source goes through this so a cron running on UTC infra and
    an in-process worker agree on the date stamp and minute of day.
    """
    instant = coerce_datetime(now) if now is not None else utc_now()
    if instant is None:
        raise ValueError(f"Cannot interpret {now!r} as a point in time")
    return LocalClock(instant=instant, local=instant.astimezone(tz))
