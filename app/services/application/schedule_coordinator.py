"""
Schedule Execution Coordinator
==============================

Runs one schedule check: resolves today's situation, evaluates every
device's list, issues the commands that are due and hands the interval
device to the duty-cycle engine.

The coordinator holds no state between runs. Cron, the in-process worker,
the CLI and the HTTP endpoint may all call ``run_schedule_check``
concurrently; duplicate commands are prevented by, in order:

1. the one-minute firing window
2. the execution marker (checked, then claimed right before the command)
3. the live "already in target state" check

Store failures abort the whole run. Any error from the controller is
recorded for that device only and the loop moves on. A scheduled action on
the interval device inside its command debounce window is deferred without
a marker so a later trigger in the same minute retries it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from app.domain.exceptions import DeviceCommandFailed
from app.domain.schedules.evaluator import evaluate, parse_entries
from app.domain.schedules.repository import SETTING_DEFAULT_SITUATION
from app.domain.schedules.schedule_entity import Action
from app.enums.schedules import CheckOutcome, Situation, TriggerSource
from app.utils.time import local_clock

if TYPE_CHECKING:
    from app.domain.devices import DeviceController, DeviceDescriptor, DeviceRegistry
    from app.domain.schedules.repository import ScheduleStore
    from app.services.hardware.interval_service import DutyCycleEngine

logger = logging.getLogger(__name__)


def resolve_situation(store: "ScheduleStore", date_stamp: str) -> tuple[str | None, bool]:
    """
    Situation for a date and whether it came from the default setting.

    Returns (None, False) when neither the calendar nor the default
    names a situation.
    """
    assignment = store.get_calendar_assignment(date_stamp)
    if assignment is not None:
        return assignment.situation, False
    default = store.get_setting(SETTING_DEFAULT_SITUATION)
    if not default or default == Situation.NONE.value:
        return None, False
    return default, True


class _MarkerLookup:
    """Container view over the store's execution markers."""

    def __init__(self, store: "ScheduleStore") -> None:
        self._store = store

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._store.has_execution_marker(key)


@dataclass
class ExecutedAction:
    device_id: str
    device_name: str
    time: str
    action: str
    result: CheckOutcome
    error: str | None = None
    override_was_active: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = {
            "device_id": self.device_id,
            "device_name": self.device_name,
            "time": self.time,
            "action": self.action,
            "result": self.result.value,
        }
        if self.error:
            data["error"] = self.error
        if self.override_was_active:
            data["override_was_active"] = True
        return data


@dataclass
class ScheduleCheckResult:
    """Structured outcome of one schedule check."""

    date: str
    time: str
    source: TriggerSource
    situation: str | None = None
    is_using_default: bool = False
    outcome: CheckOutcome | None = None
    executed: list[ExecutedAction] = field(default_factory=list)
    skipped: list[ExecutedAction] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    interval: dict[str, Any] | None = None

    @property
    def message(self) -> str:
        if self.outcome is CheckOutcome.NO_SITUATION_TODAY:
            return "No schedule for today"
        parts = [f"Situation '{self.situation}'" + (" (default)" if self.is_using_default else "")]
        parts.append(f"{len(self.executed)} executed")
        if self.skipped:
            parts.append(f"{len(self.skipped)} skipped")
        if self.errors:
            parts.append(f"{len(self.errors)} failed")
        return ", ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "time": self.time,
            "source": self.source.value,
            "situation": self.situation,
            "is_using_default": self.is_using_default,
            "outcome": self.outcome.value if self.outcome else None,
            "message": self.message,
            "executed": [a.to_dict() for a in self.executed],
            "skipped": [a.to_dict() for a in self.skipped],
            "errors": self.errors,
            "warnings": self.warnings,
            "interval": self.interval,
        }


class ExecutionCoordinator:
    """Stateless orchestrator of schedule checks."""

    def __init__(
        self,
        store: "ScheduleStore",
        controller: "DeviceController",
        registry: "DeviceRegistry",
        timezone: str | ZoneInfo,
        *,
        duty_cycle: "DutyCycleEngine | None" = None,
    ) -> None:
        self.store = store
        self.controller = controller
        self.registry = registry
        self.tz = timezone if isinstance(timezone, ZoneInfo) else ZoneInfo(timezone)
        self.duty_cycle = duty_cycle

    def resolve_situation(self, date_stamp: str) -> tuple[str | None, bool]:
        return resolve_situation(self.store, date_stamp)

    def run_schedule_check(
        self,
        now: datetime | None = None,
        *,
        source: TriggerSource = TriggerSource.API,
    ) -> ScheduleCheckResult:
        """
        Execute everything due at ``now``.

        Raises:
            StoreUnavailable: the store could not be read or written
        """
        clock = local_clock(now, self.tz)
        result = ScheduleCheckResult(date=clock.date_stamp, time=clock.hhmm, source=source)

        # Runs even on days without a situation
        if self.duty_cycle is not None:
            application = self.duty_cycle.run_server_check(now=clock.instant)
            if application is not None:
                result.interval = application.to_dict()
                if application.failed:
                    result.errors.append(
                        {
                            "device_id": self.duty_cycle.device_id,
                            "device_name": self.registry.name_of(self.duty_cycle.device_id),
                            "source": "interval",
                            "error": application.error,
                        }
                    )

        situation, using_default = self.resolve_situation(clock.date_stamp)
        if situation is None:
            result.outcome = CheckOutcome.NO_SITUATION_TODAY
            logger.debug("No situation for %s; nothing to execute", clock.date_stamp)
            return result

        result.situation = situation
        result.is_using_default = using_default

        schedules = self.store.get_device_schedules()
        fired = _MarkerLookup(self.store)

        for device in self.registry:
            raw_entries = (schedules.get(device.device_id) or {}).get(situation)
            if not raw_entries:
                continue

            entries, problems = parse_entries(raw_entries)
            for problem in problems:
                message = f"{device.name}: skipped invalid entry ({problem})"
                logger.warning("Schedule %s/%s: %s", device.device_id, situation, problem)
                result.warnings.append(message)

            action = evaluate(clock.minutes, entries, fired, clock.date_stamp, device.device_id)
            if action is None:
                continue

            self._execute(device, action, clock.instant, result)

        if result.executed or result.errors:
            logger.info("Schedule check %s %s: %s", clock.date_stamp, clock.hhmm, result.message)
        return result

    def _execute(
        self,
        device: "DeviceDescriptor",
        action: Action,
        now: datetime,
        result: ScheduleCheckResult,
    ) -> None:
        override = self.store.get_manual_override(device.device_id)
        override_active = override is not None and override.is_active(now)
        if override_active:
            logger.info(
                "%s was toggled manually (override until %s); running scheduled %s anyway",
                device.name,
                override.until.isoformat(),
                action.action.value,
            )

        record = ExecutedAction(
            device_id=device.device_id,
            device_name=device.name,
            time=action.time,
            action=action.action.value,
            result=CheckOutcome.EXECUTED,
            override_was_active=override_active,
        )

        if self.duty_cycle is not None and self.duty_cycle.is_debounced(device.device_id, now=now):
            # No marker: the next trigger inside the same minute retries it
            record.result = CheckOutcome.DEBOUNCED
            result.skipped.append(record)
            logger.info(
                "%s was commanded moments ago; deferring %s at %s", device.name, action.action.value, action.time
            )
            return

        try:
            status = self.controller.get_status(device.device_id)
        except Exception as exc:
            self._fail(record, action, exc, result)
            return

        if status.on is not None and status.on == action.target_on:
            # Target state reached by someone else; the entry counts as done today
            self.store.record_execution_marker(action.marker_key, now)
            record.result = CheckOutcome.ALREADY_IN_STATE
            result.skipped.append(record)
            logger.debug("%s already %s at %s", device.name, action.action.value, action.time)
            return

        if not self.store.record_execution_marker(action.marker_key, now):
            record.result = CheckOutcome.DUPLICATE_SUPPRESSED
            result.skipped.append(record)
            logger.info("%s %s at %s claimed by a concurrent run", device.name, action.action.value, action.time)
            return

        try:
            self.controller.send_command(device.device_id, device.control_code, action.target_on)
        except Exception as exc:
            self.store.release_execution_marker(action.marker_key)
            self._fail(record, action, exc, result)
            return

        if self.duty_cycle is not None:
            self.duty_cycle.note_external_command(device.device_id, now=now)
        if override is not None:
            self.store.clear_manual_override(device.device_id)
        self.store.record_execution_log(
            device.device_id,
            action.action.value,
            action.time,
            True,
            source=f"schedule:{result.source.value}",
            executed_at=now,
        )
        result.executed.append(record)
        logger.info("Executed %s %s (scheduled %s)", device.name, action.action.value.upper(), action.time)

    def _fail(
        self,
        record: ExecutedAction,
        action: Action,
        exc: Exception,
        result: ScheduleCheckResult,
    ) -> None:
        # Traceback only for non-device errors
        logger.error(
            "Scheduled %s for %s failed: %s",
            action.action.value,
            record.device_name,
            exc,
            exc_info=not isinstance(exc, DeviceCommandFailed),
        )
        record.result = CheckOutcome.FAILED
        record.error = str(exc)
        result.errors.append({**record.to_dict(), "error_type": type(exc).__name__})
        self.store.record_execution_log(
            record.device_id,
            action.action.value,
            action.time,
            False,
            source=f"schedule:{result.source.value}",
            error_message=str(exc),
        )
