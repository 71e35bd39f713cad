"""
Schedule Domain Entities
========================

Value objects shared by the evaluator, the duty-cycle engine, the
coordinator and the persistence layer:

- ScheduleEntry: one ``HH:MM`` + on/off pair in a device's list
- Action: a due entry resolved for a device on a specific date
- CalendarAssignment: date -> situation
- ManualOverride: recent hand-operation marker (informational)
- IntervalConfig: persisted duty-cycle configuration
"""

from __future__ import annotations

import datetime
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any

from app.domain.exceptions import MisconfiguredSchedule, ValidationError
from app.enums.schedules import ScheduleAction, Situation
from app.utils.time import coerce_datetime, to_iso

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
SITUATION_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 _-]{0,49}$")


def parse_hhmm(value: Any) -> int:
    """Parse ``HH:MM`` into minutes since midnight.

    Raises:
        MisconfiguredSchedule: when the value is not a valid wall-clock time
    """
    if not isinstance(value, str):
        raise MisconfiguredSchedule(f"time must be a string in HH:MM format, got {value!r}")
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise MisconfiguredSchedule(f"time must be in HH:MM format, got {value!r}")
    h, m = int(parts[0]), int(parts[1])
    if not (0 <= h <= 23):
        raise MisconfiguredSchedule(f"hour must be between 0 and 23, got {value!r}")
    if not (0 <= m <= 59):
        raise MisconfiguredSchedule(f"minute must be between 0 and 59, got {value!r}")
    return h * 60 + m


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def validate_date_stamp(value: str) -> str:
    """Return ``value`` if it is a real ``YYYY-MM-DD`` date."""
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValidationError("date must be in YYYY-MM-DD format", detail={"date": value})
    try:
        datetime.date.fromisoformat(value)
    except ValueError:
        raise ValidationError("date is not a valid calendar day", detail={"date": value}) from None
    return value


def validate_situation(value: str, *, allow_none: bool = False) -> str:
    """Normalize a situation name (built-in or custom routine)."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("situation must be a non-empty string")
    name = value.strip()
    if name.lower() in {s.value for s in Situation}:
        name = name.lower()
    if name == Situation.NONE.value and not allow_none:
        raise ValidationError("'none' is only valid as the default situation")
    if not SITUATION_PATTERN.match(name):
        raise ValidationError(
            "situation may contain letters, digits, spaces, '-' and '_' (max 50)",
            detail={"situation": value},
        )
    return name


def execution_marker_key(device_id: str, time: str, action: str, date_stamp: str) -> str:
    """Per-day dedup key for one (device, scheduled time, action)."""
    return f"{device_id}-{time}-{action}-{date_stamp}"


@dataclass(frozen=True)
class ScheduleEntry:
    """
    A single time-triggered action in a device's list.

    Attributes:
        time: Wall-clock time in HH:MM format (scheduling timezone)
        action: ScheduleAction.ON or ScheduleAction.OFF
    """

    time: str
    action: ScheduleAction

    def __post_init__(self):
        if isinstance(self.action, str) and not isinstance(self.action, ScheduleAction):
            try:
                object.__setattr__(self, "action", ScheduleAction(self.action.strip().lower()))
            except ValueError:
                raise MisconfiguredSchedule(f"unknown action {self.action!r}") from None
        elif not isinstance(self.action, ScheduleAction):
            raise MisconfiguredSchedule(f"unknown action {self.action!r}")
        # Normalizes "9:05" to "09:05" so marker keys are stable
        object.__setattr__(self, "time", format_hhmm(parse_hhmm(self.time)))

    @property
    def minutes(self) -> int:
        return parse_hhmm(self.time)

    def to_dict(self) -> dict[str, str]:
        return {"time": self.time, "action": self.action.value}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ScheduleEntry":
        if not isinstance(data, dict):
            raise MisconfiguredSchedule(f"schedule entry must be an object, got {data!r}")
        return ScheduleEntry(time=data.get("time"), action=data.get("action"))


@dataclass(frozen=True)
class Action:
    """A schedule entry that is due for ``device_id`` on ``date_stamp``."""

    device_id: str
    time: str
    action: ScheduleAction
    date_stamp: str

    @property
    def marker_key(self) -> str:
        return execution_marker_key(self.device_id, self.time, self.action.value, self.date_stamp)

    @property
    def target_on(self) -> bool:
        return self.action.is_on

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "time": self.time,
            "action": self.action.value,
            "date": self.date_stamp,
        }


@dataclass
class CalendarAssignment:
    date: str
    situation: str

    def __post_init__(self):
        validate_date_stamp(self.date)
        self.situation = validate_situation(self.situation)

    def to_dict(self) -> dict[str, str]:
        return {"date": self.date, "situation": self.situation}


@dataclass
class ManualOverride:
    """Marker that a device was hand-operated recently.

    Never blocks a scheduled action; it is cleared once one succeeds.
    """

    device_id: str
    until: datetime.datetime
    set_at: datetime.datetime

    def is_active(self, now: datetime.datetime) -> bool:
        return self.until > now

    def remaining_minutes(self, now: datetime.datetime) -> int:
        seconds = (self.until - now).total_seconds()
        return max(0, int((seconds + 59) // 60))

    def to_dict(self, now: datetime.datetime | None = None) -> dict[str, Any]:
        data = {
            "device_id": self.device_id,
            "until": to_iso(self.until),
            "set_at": to_iso(self.set_at),
        }
        if now is not None:
            data["active"] = self.is_active(now)
            data["remaining_minutes"] = self.remaining_minutes(now)
        return data

    @staticmethod
    def from_row(row: dict[str, Any]) -> "ManualOverride":
        return ManualOverride(
            device_id=row["device_id"],
            until=coerce_datetime(row["until_ts"]),
            set_at=coerce_datetime(row["set_at"]),
        )


@dataclass
class IntervalConfig:
    """
    Persisted duty-cycle configuration for the interval-mode device.

    Attributes:
        device_id: Device cycled by interval mode
        is_active: Whether the cycle is running
        on_duration: Minutes ON per cycle
        interval_duration: Minutes OFF per cycle
        start_time: Fixed cycle origin; never moves while active
        last_applied_state: Last state commanded (True=ON) or None
        last_command_at: When the last command was sent (debounce)
    """

    device_id: str
    is_active: bool = False
    on_duration: int = 3
    interval_duration: int = 20
    start_time: datetime.datetime | None = None
    last_applied_state: bool | None = None
    last_command_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = field(default=None, compare=False)

    def validate(self) -> None:
        if self.on_duration < 1 or self.interval_duration < 1:
            raise ValidationError(
                "on_duration and interval_duration must be at least 1 minute",
                detail={"on_duration": self.on_duration, "interval_duration": self.interval_duration},
            )
        if self.is_active and self.start_time is None:
            raise ValidationError("an active interval cycle needs a start time")

    @property
    def cycle_seconds(self) -> int:
        return (self.on_duration + self.interval_duration) * 60

    def stopped(self) -> "IntervalConfig":
        return replace(self, is_active=False, start_time=None, last_applied_state=None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "is_active": self.is_active,
            "on_duration": self.on_duration,
            "interval_duration": self.interval_duration,
            "start_time": to_iso(self.start_time),
            "last_applied_state": self.last_applied_state,
            "last_command_at": to_iso(self.last_command_at),
        }

    @staticmethod
    def from_row(row: dict[str, Any]) -> "IntervalConfig":
        last_state = row.get("last_applied_state")
        return IntervalConfig(
            device_id=row["device_id"],
            is_active=bool(row.get("is_active")),
            on_duration=int(row.get("on_duration") or 3),
            interval_duration=int(row.get("interval_duration") or 20),
            start_time=coerce_datetime(row.get("start_time")),
            last_applied_state=None if last_state is None else bool(last_state),
            last_command_at=coerce_datetime(row.get("last_command_at")),
            updated_at=coerce_datetime(row.get("updated_at")),
        )
