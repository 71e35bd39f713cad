"""
Schedule Store Repository
=========================

Concrete implementation of the ScheduleStore protocol using SQLite.
Wraps the operation mixins of SQLiteDatabaseHandler.

Reads are never cached: the web server, the in-process workers and a
cron-invoked CLI may all write to the same database, and every caller must
see the latest execution markers and heartbeat.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.domain.exceptions import ValidationError
from app.domain.schedules.repository import SETTING_DEFAULT_SITUATION, DeviceScheduleMap
from app.domain.schedules.schedule_entity import (
    CalendarAssignment,
    IntervalConfig,
    ManualOverride,
    validate_situation,
)
from app.utils.time import coerce_datetime, iso_now

if TYPE_CHECKING:
    from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

SNAPSHOT_VERSION = 1


class SQLiteScheduleStore:
    """
    Concrete implementation of ScheduleStore protocol.

    Wraps the database handler to provide repository pattern access.
    """

    def __init__(self, backend: "SQLiteDatabaseHandler") -> None:
        """
        Initialize with database backend.

        Args:
            backend: Database handler that implements the operation mixins
        """
        self._backend = backend

    # ==================== Calendar ====================

    def get_calendar_assignment(self, date: str) -> CalendarAssignment | None:
        return self._backend.get_calendar_assignment(date)

    def upsert_calendar_assignment(self, date: str, situation: str) -> CalendarAssignment:
        return self._backend.upsert_calendar_assignment(date, situation)

    def upsert_calendar_assignments(self, assignments: list[CalendarAssignment]) -> int:
        return self._backend.upsert_calendar_assignments(assignments)

    def delete_calendar_assignment(self, date: str) -> bool:
        return self._backend.delete_calendar_assignment(date)

    def list_calendar_assignments(self, start: str | None = None, end: str | None = None) -> list[CalendarAssignment]:
        return self._backend.list_calendar_assignments(start, end)

    # ==================== Device schedules ====================

    def get_device_schedules(self) -> DeviceScheduleMap:
        return self._backend.get_device_schedules()

    def replace_device_schedules(self, device_id: str, situation: str, entries: list[dict[str, Any]]) -> None:
        self._backend.replace_device_schedules(device_id, situation, entries)

    def replace_all_device_schedules(self, schedules: DeviceScheduleMap) -> None:
        self._backend.replace_all_device_schedules(schedules)

    # ==================== Manual overrides ====================

    def get_manual_override(self, device_id: str) -> ManualOverride | None:
        return self._backend.get_manual_override(device_id)

    def set_manual_override(self, device_id: str, duration_minutes: int, now: datetime | None = None) -> ManualOverride:
        return self._backend.set_manual_override(device_id, duration_minutes, now)

    def clear_manual_override(self, device_id: str) -> bool:
        return self._backend.clear_manual_override(device_id)

    def list_manual_overrides(self) -> list[ManualOverride]:
        return self._backend.list_manual_overrides()

    def clear_all_manual_overrides(self) -> int:
        return self._backend.clear_all_manual_overrides()

    # ==================== Interval mode ====================

    def get_interval_config(self, device_id: str) -> IntervalConfig | None:
        return self._backend.get_interval_config(device_id)

    def upsert_interval_config(self, config: IntervalConfig) -> IntervalConfig:
        return self._backend.upsert_interval_config(config)

    # ==================== Settings ====================

    def get_setting(self, key: str) -> str | None:
        return self._backend.get_setting(key)

    def set_setting(self, key: str, value: str) -> None:
        self._backend.set_setting(key, value)

    # ==================== Execution markers / log ====================

    def has_execution_marker(self, key: str) -> bool:
        return self._backend.has_execution_marker(key)

    def record_execution_marker(self, key: str, timestamp: datetime) -> bool:
        return self._backend.record_execution_marker(key, timestamp)

    def release_execution_marker(self, key: str) -> None:
        self._backend.release_execution_marker(key)

    def purge_execution_markers(self, before: datetime) -> int:
        return self._backend.purge_execution_markers(before)

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
        self._backend.record_execution_log(
            device_id,
            action,
            scheduled_time,
            success,
            source=source,
            error_message=error_message,
            executed_at=executed_at,
        )

    def list_execution_log(self, limit: int = 50, device_id: str | None = None) -> list[dict[str, Any]]:
        return self._backend.list_execution_log(limit, device_id)

    def purge_execution_log(self, before: datetime) -> int:
        return self._backend.purge_execution_log(before)

    # ==================== Backup ====================

    def export_snapshot(self, interval_device_ids: list[str] | None = None) -> dict[str, Any]:
        """
        Dump user-authored state (calendar, schedules, settings, interval
        configuration) as a JSON-serializable dict.
        """
        intervals = []
        for device_id in interval_device_ids or []:
            config = self.get_interval_config(device_id)
            if config is not None:
                intervals.append(config.to_dict())
        return {
            "version": SNAPSHOT_VERSION,
            "exported_at": iso_now(),
            "calendar": [a.to_dict() for a in self.list_calendar_assignments()],
            "device_schedules": self.get_device_schedules(),
            "settings": self._backend.list_settings(),
            "interval_mode": intervals,
        }

    def import_snapshot(self, data: dict[str, Any]) -> dict[str, int]:
        """
        Restore a snapshot produced by ``export_snapshot``.

        Calendar days and settings are upserted; every device present in the
        snapshot has its schedules replaced.

        Returns:
            Counts of restored items per section
        """
        if not isinstance(data, dict) or data.get("version") != SNAPSHOT_VERSION:
            version = data.get("version") if isinstance(data, dict) else None
            raise ValidationError("Unsupported snapshot format", detail={"version": version})

        calendar = [
            CalendarAssignment(date=item["date"], situation=item["situation"]) for item in data.get("calendar", [])
        ]
        schedules = data.get("device_schedules") or {}
        settings = dict(data.get("settings") or {})
        default = settings.get(SETTING_DEFAULT_SITUATION)
        if default is not None:
            settings[SETTING_DEFAULT_SITUATION] = validate_situation(default, allow_none=True)

        self.upsert_calendar_assignments(calendar)
        self.replace_all_device_schedules(schedules)
        for key, value in settings.items():
            self.set_setting(key, value)

        intervals = 0
        for item in data.get("interval_mode", []):
            self.upsert_interval_config(
                IntervalConfig(
                    device_id=item["device_id"],
                    is_active=bool(item.get("is_active")),
                    on_duration=int(item.get("on_duration", 3)),
                    interval_duration=int(item.get("interval_duration", 20)),
                    start_time=coerce_datetime(item.get("start_time")),
                    last_applied_state=item.get("last_applied_state"),
                    last_command_at=coerce_datetime(item.get("last_command_at")),
                )
            )
            intervals += 1

        return {
            "calendar": len(calendar),
            "devices": len(schedules),
            "settings": len(settings),
            "interval_mode": intervals,
        }
