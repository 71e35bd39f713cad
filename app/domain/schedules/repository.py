"""
Schedule Store Protocol
=======================

Defines the interface for the durable state shared by every trigger source.
Implementations must offer read-after-write consistency across processes;
every write is a last-writer-wins upsert keyed by a natural key.

Failures surface as ``StoreUnavailable``.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import Any, Protocol

from app.domain.schedules.schedule_entity import CalendarAssignment, IntervalConfig, ManualOverride

# Well-known settings keys
SETTING_DEFAULT_SITUATION = "default_situation"
SETTING_INTERVAL_HEARTBEAT = "interval_heartbeat"

# device_id -> situation -> [{"time": "HH:MM", "action": "on"|"off"}, ...]
DeviceScheduleMap = dict[str, dict[str, list[dict[str, Any]]]]


class ScheduleStore(Protocol):
    """Protocol for schedule persistence operations."""

    # ── Calendar ─────────────────────────────────────────────────────

    @abstractmethod
    def get_calendar_assignment(self, date: str) -> CalendarAssignment | None:
        """
        Get the situation assigned to a date.

        Args:
            date: Date in YYYY-MM-DD format

        Returns:
            CalendarAssignment if the day was assigned, None otherwise
        """
        ...

    @abstractmethod
    def upsert_calendar_assignment(self, date: str, situation: str) -> CalendarAssignment:
        """Assign a situation to a date, replacing any previous assignment."""
        ...

    @abstractmethod
    def upsert_calendar_assignments(self, assignments: list[CalendarAssignment]) -> int:
        """
        Assign several dates at once.

        Returns:
            Number of assignments written
        """
        ...

    @abstractmethod
    def delete_calendar_assignment(self, date: str) -> bool:
        """Remove a date's assignment. Returns True if one existed."""
        ...

    @abstractmethod
    def list_calendar_assignments(self, start: str | None = None, end: str | None = None) -> list[CalendarAssignment]:
        """List assignments in [start, end] (inclusive), ordered by date."""
        ...

    # ── Device schedules ─────────────────────────────────────────────

    @abstractmethod
    def get_device_schedules(self) -> DeviceScheduleMap:
        """
        Get every device's lists, keyed by device then situation.

        Entries in each list are ordered by time.
        """
        ...

    @abstractmethod
    def replace_device_schedules(self, device_id: str, situation: str, entries: list[dict[str, Any]]) -> None:
        """
        Replace one device's list for one situation.

        Args:
            device_id: Device the list belongs to
            situation: Situation name
            entries: Full replacement list; empty clears it
        """
        ...

    @abstractmethod
    def replace_all_device_schedules(self, schedules: DeviceScheduleMap) -> None:
        """Replace every list of every device present in ``schedules``."""
        ...

    # ── Manual overrides ─────────────────────────────────────────────

    @abstractmethod
    def get_manual_override(self, device_id: str) -> ManualOverride | None:
        """Get a device's override, expired or not."""
        ...

    @abstractmethod
    def set_manual_override(self, device_id: str, duration_minutes: int, now: datetime | None = None) -> ManualOverride:
        """
        Mark a device as hand-operated.

        Args:
            device_id: Device that was toggled
            duration_minutes: Minutes until the override lapses
            now: Override set time (defaults to current UTC time)

        Returns:
            The stored ManualOverride
        """
        ...

    @abstractmethod
    def clear_manual_override(self, device_id: str) -> bool:
        """Remove a device's override. Returns True if one existed."""
        ...

    @abstractmethod
    def list_manual_overrides(self) -> list[ManualOverride]:
        """List every stored override."""
        ...

    @abstractmethod
    def clear_all_manual_overrides(self) -> int:
        """Remove all overrides. Returns the number removed."""
        ...

    # ── Interval mode ────────────────────────────────────────────────

    @abstractmethod
    def get_interval_config(self, device_id: str) -> IntervalConfig | None:
        """Get the duty-cycle configuration for a device."""
        ...

    @abstractmethod
    def upsert_interval_config(self, config: IntervalConfig) -> IntervalConfig:
        """Persist the full duty-cycle configuration for ``config.device_id``."""
        ...

    # ── Settings ─────────────────────────────────────────────────────

    @abstractmethod
    def get_setting(self, key: str) -> str | None:
        """Get a setting value, None when unset."""
        ...

    @abstractmethod
    def set_setting(self, key: str, value: str) -> None:
        """Upsert a setting value."""
        ...

    # ── Execution markers ────────────────────────────────────────────

    @abstractmethod
    def has_execution_marker(self, key: str) -> bool:
        """Check whether a scheduled action already executed."""
        ...

    @abstractmethod
    def record_execution_marker(self, key: str, timestamp: datetime) -> bool:
        """
        Record that a scheduled action executed.

        The first write for a key wins and is never updated.

        Returns:
            True if this call created the marker, False if it already existed
        """
        ...

    @abstractmethod
    def release_execution_marker(self, key: str) -> None:
        """Remove a marker so a failed action can be retried."""
        ...

    @abstractmethod
    def purge_execution_markers(self, before: datetime) -> int:
        """Delete markers recorded before ``before``. Returns the count."""
        ...

    # ── Execution log ────────────────────────────────────────────────

    @abstractmethod
    def record_execution_log(
        self,
        device_id: str,
        action: str,
        scheduled_time: str | None,
        success: bool,
        *,
        source: str,
        error_message: str | None = None,
        executed_at: datetime | None = None,
    ) -> None:
        """Append a device command attempt to the execution history."""
        ...

    @abstractmethod
    def list_execution_log(self, limit: int = 50, device_id: str | None = None) -> list[dict[str, Any]]:
        """Most recent command attempts first."""
        ...

    @abstractmethod
    def purge_execution_log(self, before: datetime) -> int:
        """Delete log entries older than ``before``. Returns the count."""
        ...
