"""
Scheduling Service
==================

Read/write facade over the schedule store for the HTTP API and the CLI.

Features:
- Calendar assignments (single day and bulk)
- Per-device schedule lists (per situation and bulk replace)
- Default situation setting
- Manual overrides and manual device power control
- "Today" overview: situation, currently active entry per device and the
  next upcoming action

Schedule execution itself lives in ExecutionCoordinator; this service never
fires scheduled entries.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from app.domain.exceptions import ConflictError, DeviceCommandFailed, ValidationError
from app.domain.schedules.evaluator import find_active_entry, parse_entries, upcoming_actions
from app.domain.schedules.repository import SETTING_DEFAULT_SITUATION
from app.domain.schedules.schedule_entity import (
    CalendarAssignment,
    ManualOverride,
    ScheduleEntry,
    validate_date_stamp,
    validate_situation,
)
from app.enums.schedules import ScheduleAction, Situation
from app.services.application.schedule_coordinator import resolve_situation
from app.utils.time import local_clock, utc_now

if TYPE_CHECKING:
    from app.domain.devices import DeviceController, DeviceRegistry
    from app.domain.schedules.repository import DeviceScheduleMap, ScheduleStore
    from app.services.hardware.interval_service import DutyCycleEngine
    from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)

MAX_OVERRIDE_MINUTES = 24 * 60


class SchedulingService:
    """Calendar, schedule-list, override and manual-control operations."""

    def __init__(
        self,
        store: "ScheduleStore",
        registry: "DeviceRegistry",
        controller: "DeviceController",
        timezone: str | ZoneInfo,
        *,
        default_override_minutes: int = 60,
        audit_logger: "AuditLogger | None" = None,
        duty_cycle: "DutyCycleEngine | None" = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.controller = controller
        self.tz = timezone if isinstance(timezone, ZoneInfo) else ZoneInfo(timezone)
        self.default_override_minutes = default_override_minutes
        self.audit_logger = audit_logger
        self.duty_cycle = duty_cycle

    # ==================== Calendar ====================

    def set_situation(self, date: str, situation: str) -> CalendarAssignment:
        validate_date_stamp(date)
        return self.store.upsert_calendar_assignment(date, validate_situation(situation))

    def set_situations(self, assignments: list[dict[str, str]]) -> int:
        """Bulk assign; validates every day before writing any."""
        parsed = [CalendarAssignment(date=item.get("date"), situation=item.get("situation")) for item in assignments]
        return self.store.upsert_calendar_assignments(parsed)

    def clear_situation(self, date: str) -> bool:
        validate_date_stamp(date)
        return self.store.delete_calendar_assignment(date)

    def get_calendar(self, start: str | None = None, end: str | None = None) -> list[dict[str, str]]:
        if start:
            validate_date_stamp(start)
        if end:
            validate_date_stamp(end)
        return [a.to_dict() for a in self.store.list_calendar_assignments(start, end)]

    def get_default_situation(self) -> str:
        return self.store.get_setting(SETTING_DEFAULT_SITUATION) or Situation.NONE.value

    def set_default_situation(self, situation: str) -> str:
        value = validate_situation(situation, allow_none=True)
        self.store.set_setting(SETTING_DEFAULT_SITUATION, value)
        logger.info("Default situation set to '%s'", value)
        return value

    # ==================== Device schedules ====================

    def get_device_schedules(self) -> "DeviceScheduleMap":
        return self.store.get_device_schedules()

    def replace_device_schedule(self, device_id: str, situation: str, entries: list[dict[str, Any]]) -> list[dict]:
        self.registry.get(device_id)
        name = validate_situation(situation)
        parsed = [ScheduleEntry.from_dict(e) for e in entries]
        self.store.replace_device_schedules(device_id, name, [e.to_dict() for e in parsed])
        return [e.to_dict() for e in sorted(parsed, key=lambda e: e.minutes)]

    def replace_all_device_schedules(self, schedules: dict[str, dict[str, list[dict[str, Any]]]]) -> int:
        normalized: dict[str, dict[str, list[dict[str, Any]]]] = {}
        for device_id, lists in schedules.items():
            self.registry.get(device_id)
            if not isinstance(lists, dict):
                raise ValidationError(f"schedules for {device_id} must map situation to entries")
            normalized[device_id] = {
                validate_situation(situation): [ScheduleEntry.from_dict(e).to_dict() for e in entries or []]
                for situation, entries in lists.items()
            }
        self.store.replace_all_device_schedules(normalized)
        return len(normalized)

    # ==================== Overrides ====================

    def set_override(self, device_id: str, duration_minutes: int | None = None) -> ManualOverride:
        self.registry.get(device_id)
        minutes = self.default_override_minutes if duration_minutes is None else int(duration_minutes)
        if not (1 <= minutes <= MAX_OVERRIDE_MINUTES):
            raise ValidationError(
                f"duration_minutes must be between 1 and {MAX_OVERRIDE_MINUTES}",
                detail={"duration_minutes": minutes},
            )
        return self.store.set_manual_override(device_id, minutes)

    def clear_override(self, device_id: str) -> bool:
        self.registry.get(device_id)
        return self.store.clear_manual_override(device_id)

    def clear_all_overrides(self, *, actor: str = "user") -> int:
        count = self.store.clear_all_manual_overrides()
        self._audit(actor, "overrides.clear_all", "all", "success", cleared=count)
        return count

    def list_overrides(self, now: datetime | None = None) -> list[dict[str, Any]]:
        now = now or utc_now()
        return [o.to_dict(now) for o in self.store.list_manual_overrides()]

    # ==================== Manual control ====================

    def set_device_power(
        self,
        device_id: str,
        on: bool,
        *,
        override_minutes: int | None = None,
        actor: str = "user",
    ) -> dict[str, Any]:
        """
        Switch a device by hand.

        Records a manual override, which is informational: it does not stop
        the device's next scheduled action from firing.

        Raises:
            ConflictError: the interval device was commanded a moment ago
            DeviceCommandFailed: the command failed (no override is stored)
        """
        device = self.registry.get(device_id)
        action = ScheduleAction.from_state(on)
        if self.duty_cycle is not None and self.duty_cycle.is_debounced(device_id):
            raise ConflictError(
                f"{device.name} was commanded moments ago; try again in a few seconds",
                detail={"device_id": device_id, "debounce_seconds": int(self.duty_cycle.debounce.total_seconds())},
            )
        try:
            self.controller.send_command(device_id, device.control_code, on)
        except DeviceCommandFailed as exc:
            self.store.record_execution_log(
                device_id, action.value, None, False, source="manual", error_message=str(exc)
            )
            self._audit(actor, f"device.{action.value}", device_id, "failure", error=str(exc))
            raise

        if self.duty_cycle is not None:
            self.duty_cycle.note_external_command(device_id)
        override = self.set_override(device_id, override_minutes)
        self.store.record_execution_log(device_id, action.value, None, True, source="manual")
        self._audit(actor, f"device.{action.value}", device_id, "success", override_until=override.until.isoformat())
        return {
            "device": device.to_dict(),
            "state": action.value,
            "override": override.to_dict(utc_now()),
        }

    def get_device_status(self, device_id: str) -> dict[str, Any]:
        device = self.registry.get(device_id)
        status = self.controller.get_status(device_id)
        override = self.store.get_manual_override(device_id)
        return {
            **device.to_dict(),
            **status.to_dict(),
            "override": override.to_dict(utc_now()) if override else None,
        }

    def list_devices(self) -> list[dict[str, Any]]:
        return [device.to_dict() for device in self.registry]

    # ==================== Overview ====================

    def _situation_for(self, date_stamp: str) -> tuple[str | None, bool]:
        return resolve_situation(self.store, date_stamp)

    def _lists_for(
        self, schedules: "DeviceScheduleMap", situation: str | None
    ) -> list[tuple[Any, list[ScheduleEntry]]]:
        if situation is None:
            return []
        lists = []
        for device in self.registry:
            raw = (schedules.get(device.device_id) or {}).get(situation)
            if not raw:
                continue
            entries, _problems = parse_entries(raw)
            if entries:
                lists.append((device, entries))
        return lists

    def today_info(self, now: datetime | None = None) -> dict[str, Any]:
        """
        Summarize today for display.

        Returns:
            situation, whether it is the default, the entry each device is
            currently following and the next upcoming action
        """
        clock = local_clock(now, self.tz)
        schedules = self.store.get_device_schedules()

        situation, using_default = self._situation_for(clock.date_stamp)
        today_lists = self._lists_for(schedules, situation)

        tomorrow_situation, _ = self._situation_for(clock.tomorrow_stamp())
        tomorrow_lists = self._lists_for(schedules, tomorrow_situation)

        next_action = upcoming_actions(
            clock.minutes,
            [(device.name, entries) for device, entries in today_lists],
            [(device.name, entries) for device, entries in tomorrow_lists],
        )

        active = []
        for device, entries in today_lists:
            entry = find_active_entry(clock.minutes, entries)
            active.append(
                {
                    "device_id": device.device_id,
                    "device_name": device.name,
                    "active_entry": entry.to_dict() if entry else None,
                }
            )

        return {
            "date": clock.date_stamp,
            "time": clock.hhmm,
            "timezone": str(self.tz),
            "situation": situation,
            "is_using_default": using_default,
            "devices": active,
            "next_action": next_action.to_dict() if next_action else None,
        }

    def recent_executions(self, limit: int = 50, device_id: str | None = None) -> list[dict[str, Any]]:
        if not (1 <= limit <= 500):
            raise ValidationError("limit must be between 1 and 500")
        return self.store.list_execution_log(limit, device_id)

    def purge_history(self, retention_days: int, now: datetime | None = None) -> dict[str, int]:
        cutoff = (now or utc_now()) - timedelta(days=retention_days)
        return {
            "markers": self.store.purge_execution_markers(cutoff),
            "log_entries": self.store.purge_execution_log(cutoff),
        }

    def _audit(self, actor: str, action: str, resource: str, outcome: str, **metadata: Any) -> None:
        if self.audit_logger is not None:
            self.audit_logger.log_event(actor, action, resource, outcome, **metadata)
