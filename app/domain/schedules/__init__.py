"""
Schedule Domain Module
======================

Schedule domain model for calendar-driven device automation.

This module provides:
- ScheduleEntry / Action: time-triggered device actions
- CalendarAssignment, ManualOverride, IntervalConfig: persisted state
- evaluate / find_active_entry: firing and display logic
- compute_phase: interval-mode duty cycle
- ScheduleStore: Protocol for schedule persistence
"""
from app.domain.schedules.duty_cycle import DutyPhase, compute_phase
from app.domain.schedules.evaluator import (
    NextAction,
    evaluate,
    find_active_entry,
    parse_entries,
    upcoming_actions,
)
from app.domain.schedules.repository import (
    SETTING_DEFAULT_SITUATION,
    SETTING_INTERVAL_HEARTBEAT,
    DeviceScheduleMap,
    ScheduleStore,
)
from app.domain.schedules.schedule_entity import (
    Action,
    CalendarAssignment,
    IntervalConfig,
    ManualOverride,
    ScheduleEntry,
    execution_marker_key,
)

__all__ = [
    "Action",
    "CalendarAssignment",
    "DeviceScheduleMap",
    "DutyPhase",
    "IntervalConfig",
    "ManualOverride",
    "NextAction",
    "SETTING_DEFAULT_SITUATION",
    "SETTING_INTERVAL_HEARTBEAT",
    "ScheduleEntry",
    "ScheduleStore",
    "compute_phase",
    "evaluate",
    "execution_marker_key",
    "find_active_entry",
    "parse_entries",
    "upcoming_actions",
]
