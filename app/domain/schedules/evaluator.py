"""
Schedule Evaluator
==================

Pure functions deciding which schedule entry, if any, applies right now.

Firing and display are separate questions:

- ``evaluate`` answers "which entry became due during the current minute
  and has not fired yet today". Entries whose minute has passed are never
  fired late, so a trigger that resumes after downtime does not replay a
  backlog of stale actions.
- ``find_active_entry`` answers "which entry describes the state the
  device should currently be in", wrapping past midnight so the last
  entry of yesterday's cycle is still active in the early morning.

Nothing here touches the store or a device.
"""

from __future__ import annotations

import logging
from collections.abc import Container, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from app.domain.exceptions import MisconfiguredSchedule
from app.domain.schedules.schedule_entity import Action, ScheduleEntry, execution_marker_key
from app.enums.schedules import ScheduleAction
from app.utils.time import MINUTES_PER_DAY

logger = logging.getLogger(__name__)


def parse_entries(raw_entries: Iterable[Any]) -> tuple[list[ScheduleEntry], list[MisconfiguredSchedule]]:
    """
    Convert raw entries into ScheduleEntry objects.

    Bad entries are skipped and returned as problems so that one typo does
    not disable the rest of a device's list.
    """
    entries: list[ScheduleEntry] = []
    problems: list[MisconfiguredSchedule] = []
    for raw in raw_entries or ():
        if isinstance(raw, ScheduleEntry):
            entries.append(raw)
            continue
        try:
            entries.append(ScheduleEntry.from_dict(raw))
        except MisconfiguredSchedule as exc:
            problems.append(exc)
    return entries, problems


def is_firing_candidate(entry_minutes: int, now_minutes: int) -> bool:
    """True when the entry falls inside the most recent one-minute tick."""
    return entry_minutes <= now_minutes and entry_minutes > now_minutes - 1


def evaluate(
    now_minutes: int,
    today_entries: Sequence[ScheduleEntry],
    already_fired_keys: Container[str],
    date_stamp: str,
    device_id: str,
) -> Action | None:
    """
    Determine the single action due for a device right now.

    Args:
        now_minutes: Minutes since midnight in the scheduling timezone
        today_entries: The device's list for today's situation, any order
        already_fired_keys: Execution marker keys already recorded
        date_stamp: Today's date (YYYY-MM-DD) in the scheduling timezone
        device_id: Device the list belongs to

    Returns:
        The due Action, or None when nothing is due or it already fired today
    """
    best: ScheduleEntry | None = None
    best_minutes = -1
    for entry in today_entries:
        minutes = entry.minutes
        if not is_firing_candidate(minutes, now_minutes):
            continue
        # Strictly greater keeps the earlier list position on ties
        if best is None or minutes > best_minutes:
            best = entry
            best_minutes = minutes

    if best is None:
        return None

    key = execution_marker_key(device_id, best.time, best.action.value, date_stamp)
    if key in already_fired_keys:
        logger.debug("Entry %s already fired today for %s", key, device_id)
        return None

    return Action(device_id=device_id, time=best.time, action=best.action, date_stamp=date_stamp)


def find_active_entry(now_minutes: int, entries: Sequence[ScheduleEntry]) -> ScheduleEntry | None:
    """
    Return the entry representing the device's current state.

    Picks the entry with the smallest non-negative distance into the past;
    entries later than now count as belonging to yesterday's cycle.
    """
    active: ScheduleEntry | None = None
    best_delta = MINUTES_PER_DAY + 1
    for entry in entries:
        minutes = entry.minutes
        if minutes <= now_minutes:
            delta = now_minutes - minutes
        else:
            delta = (MINUTES_PER_DAY - minutes) + now_minutes
        if delta < best_delta:
            active = entry
            best_delta = delta
    return active


@dataclass(frozen=True)
class UpcomingEvent:
    device_name: str
    time: str
    action: ScheduleAction
    minutes: int
    day_offset: int


@dataclass(frozen=True)
class NextAction:
    """The earliest upcoming group of events and its display string."""

    events: tuple[UpcomingEvent, ...]

    @property
    def time(self) -> str:
        return self.events[0].time

    @property
    def is_tomorrow(self) -> bool:
        return self.events[0].day_offset == 1

    @property
    def summary(self) -> str:
        suffix = " (Tomorrow)" if self.is_tomorrow else ""
        if len(self.events) == 1:
            event = self.events[0]
            return f"{event.device_name} {event.action.value.upper()} at {event.time}{suffix}"

        on_names = [e.device_name for e in self.events if e.action is ScheduleAction.ON]
        off_names = [e.device_name for e in self.events if e.action is ScheduleAction.OFF]
        parts = []
        if on_names:
            parts.append(f"{' + '.join(on_names)} ON")
        if off_names:
            parts.append(f"{' + '.join(off_names)} OFF")
        return f"{', '.join(parts)} at {self.time}{suffix}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time,
            "tomorrow": self.is_tomorrow,
            "summary": self.summary,
            "events": [
                {"device_name": e.device_name, "time": e.time, "action": e.action.value} for e in self.events
            ],
        }


def upcoming_actions(
    now_minutes: int,
    today: Sequence[tuple[str, Sequence[ScheduleEntry]]],
    tomorrow: Sequence[tuple[str, Sequence[ScheduleEntry]]] | None = None,
) -> NextAction | None:
    """
    Find the next group of scheduled events.

    Args:
        now_minutes: Minutes since midnight now
        today: (device name, entries) pairs for today's situation
        tomorrow: (device name, entries) pairs for tomorrow's situation,
            consulted only when nothing else is left today
    """
    events = [
        UpcomingEvent(name, entry.time, entry.action, entry.minutes, 0)
        for name, entries in today
        for entry in entries
        if entry.minutes > now_minutes
    ]
    if not events and tomorrow:
        events = [
            UpcomingEvent(name, entry.time, entry.action, entry.minutes, 1)
            for name, entries in tomorrow
            for entry in entries
        ]
    if not events:
        return None

    events.sort(key=lambda e: (e.day_offset, e.minutes))
    earliest = events[0].minutes
    return NextAction(events=tuple(e for e in events if e.minutes == earliest))
