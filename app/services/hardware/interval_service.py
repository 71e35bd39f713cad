"""
Interval Mode Service
=====================

Duty-cycle engine cycling one device (the aircon) ON/OFF on a fixed period.

Features:
- Phase derived from a fixed start time only (stateless resume)
- Command emission only when the computed phase differs from the last
  applied state, with a minimum gap between two commands to the device
- Foreground ticker writes a heartbeat; the cron fallback stands down
  while the heartbeat is fresh and takes over when it goes stale

Every path (live tick, resume, cron fallback, status display) computes the
phase through ``app.domain.schedules.duty_cycle.compute_phase``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from app.domain.exceptions import DeviceCommandFailed, NotFoundError, ValidationError
from app.domain.schedules.duty_cycle import DutyPhase, compute_phase
from app.domain.schedules.repository import SETTING_INTERVAL_HEARTBEAT
from app.domain.schedules.schedule_entity import IntervalConfig
from app.enums.schedules import DutyState, TriggerSource
from app.utils.time import coerce_datetime, to_iso, utc_now

if TYPE_CHECKING:
    from app.domain.devices import DeviceController, DeviceRegistry
    from app.domain.schedules.repository import ScheduleStore
    from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)


@dataclass
class PhaseApplication:
    """What the emission rule decided for one phase evaluation."""

    source: TriggerSource
    target: DutyState | None
    commanded: bool = False
    reason: str = ""
    error: str | None = None
    phase: DutyPhase | None = None
    heartbeat_age_seconds: float | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "target": self.target.value if self.target else None,
            "commanded": self.commanded,
            "reason": self.reason,
            "error": self.error,
            "phase": self.phase.to_dict() if self.phase else None,
            "heartbeat_age_seconds": self.heartbeat_age_seconds,
        }


class DutyCycleEngine:
    """
    Interval-mode state machine for a single device.

    The engine keeps no authoritative state in memory: configuration,
    last applied state, last command time and heartbeat all live in the
    store so that separate processes agree. The in-memory countdown is
    display-only.
    """

    def __init__(
        self,
        store: "ScheduleStore",
        controller: "DeviceController",
        registry: "DeviceRegistry",
        device_id: str,
        *,
        heartbeat_stale_seconds: int = 120,
        heartbeat_interval_seconds: int = 15,
        debounce_seconds: int = 3,
        default_on_duration: int = 3,
        default_interval_duration: int = 20,
        audit_logger: "AuditLogger | None" = None,
    ) -> None:
        self.store = store
        self.controller = controller
        self.registry = registry
        self.device_id = device_id
        self.heartbeat_stale = timedelta(seconds=heartbeat_stale_seconds)
        self.heartbeat_interval = timedelta(seconds=heartbeat_interval_seconds)
        self.debounce = timedelta(seconds=debounce_seconds)
        self.default_on_duration = default_on_duration
        self.default_interval_duration = default_interval_duration
        self.audit_logger = audit_logger

        self._lock = threading.RLock()
        self._last_heartbeat_write: datetime | None = None
        self._countdown: DutyPhase | None = None

    # ==================== Configuration ====================

    def get_config(self) -> IntervalConfig:
        config = self.store.get_interval_config(self.device_id)
        if config is None:
            return IntervalConfig(
                device_id=self.device_id,
                on_duration=self.default_on_duration,
                interval_duration=self.default_interval_duration,
            )
        return config

    @staticmethod
    def phase_for(config: IntervalConfig, now: datetime) -> DutyPhase | None:
        if not config.is_active or config.start_time is None:
            return None
        return compute_phase(config.start_time, now, config.on_duration, config.interval_duration)

    # ==================== Start / stop / resume ====================

    def start(
        self,
        on_duration: int | None = None,
        interval_duration: int | None = None,
        *,
        now: datetime | None = None,
        actor: str = "user",
    ) -> dict[str, Any]:
        """
        Start (or restart) the cycle at ``now`` and switch the device ON.

        The configuration is persisted before the command is sent; if the
        command fails, the cycle stays active with no applied state, so the
        next tick retries it.

        Raises:
            ValidationError: durations below one minute
            DeviceCommandFailed: the initial ON command failed
        """
        now = now or utc_now()
        on_minutes = int(self.default_on_duration if on_duration is None else on_duration)
        off_minutes = int(self.default_interval_duration if interval_duration is None else interval_duration)
        if on_minutes < 1 or off_minutes < 1:
            raise ValidationError(
                "on_duration and interval_duration must be at least 1 minute",
                detail={"on_duration": on_minutes, "interval_duration": off_minutes},
            )
        self._require_device()

        with self._lock:
            config = IntervalConfig(
                device_id=self.device_id,
                is_active=True,
                on_duration=on_minutes,
                interval_duration=off_minutes,
                start_time=now,
                last_applied_state=None,
                last_command_at=None,
            )
            self.store.upsert_interval_config(config)
            logger.info(
                "Interval mode started for %s: %d min ON / %d min OFF", self.device_id, on_minutes, off_minutes
            )

            try:
                self._send(True)
            except DeviceCommandFailed as exc:
                self.store.upsert_interval_config(replace(config, last_command_at=now))
                self._record(TriggerSource.MANUAL, True, False, str(exc), now)
                self._audit(actor, "interval.start", "failure", on=on_minutes, off=off_minutes, error=str(exc))
                raise

            config = replace(config, last_applied_state=True, last_command_at=now)
            self.store.upsert_interval_config(config)
            self._record(TriggerSource.MANUAL, True, True, None, now)
            self._countdown = self.phase_for(config, now)
            self._audit(actor, "interval.start", "success", on=on_minutes, off=off_minutes)
            return self.status(now=now)

    def stop(self, *, now: datetime | None = None, actor: str = "user") -> dict[str, Any]:
        """
        Stop the cycle and force the device OFF.

        The stopped configuration is persisted first so no trigger source
        resumes the cycle even if the OFF command fails.

        Raises:
            DeviceCommandFailed: the OFF command failed (the cycle is stopped)
        """
        now = now or utc_now()
        self._require_device()

        with self._lock:
            config = self.get_config().stopped()
            config.last_command_at = now
            self.store.upsert_interval_config(config)
            self._countdown = None
            logger.info("Interval mode stopped for %s", self.device_id)

            try:
                self._send(False)
            except DeviceCommandFailed as exc:
                self._record(TriggerSource.MANUAL, False, False, str(exc), now)
                self._audit(actor, "interval.stop", "failure", error=str(exc))
                raise

            self._record(TriggerSource.MANUAL, False, True, None, now)
            self._audit(actor, "interval.stop", "success")
            return self.status(now=now)

    def resume(self, *, now: datetime | None = None) -> DutyPhase | None:
        """
        Restart the live countdown after a process restart.

        Sends nothing: the device is assumed to reflect the last command
        issued before the restart.
        """
        now = now or utc_now()
        config = self.get_config()
        phase = self.phase_for(config, now)
        with self._lock:
            self._countdown = phase
        if phase is not None:
            logger.info(
                "Resumed interval mode for %s: %s with %ss remaining (cycle %d)",
                self.device_id,
                phase.state.value,
                phase.remaining_seconds,
                phase.cycle_number,
            )
        return phase

    # ==================== Drivers ====================

    def tick(self, *, now: datetime | None = None) -> PhaseApplication | None:
        """
        Foreground driver, called about once per second.

        Emits the heartbeat while the cycle is active and applies the phase.
        Device failures are logged and retried on a later tick.
        """
        now = now or utc_now()
        with self._lock:
            config = self.get_config()
            phase = self.phase_for(config, now)
            self._countdown = phase
            if phase is None:
                return None

            if self._last_heartbeat_write is None or now - self._last_heartbeat_write >= self.heartbeat_interval:
                self.record_heartbeat(now=now)

            return self._apply_phase(config, phase, now, TriggerSource.FOREGROUND)

    def run_server_check(self, *, now: datetime | None = None) -> PhaseApplication | None:
        """
        Cron fallback: act only when no foreground ticker is alive.

        Returns None when interval mode is not active.
        """
        now = now or utc_now()
        with self._lock:
            config = self.get_config()
            phase = self.phase_for(config, now)
            if phase is None:
                return None

            age = self.heartbeat_age(now=now)
            if age is not None and age < self.heartbeat_stale.total_seconds():
                logger.debug("Foreground ticker alive (heartbeat %.0fs old); cron stands down", age)
                return PhaseApplication(
                    source=TriggerSource.CRON,
                    target=phase.state,
                    reason="foreground_active",
                    phase=phase,
                    heartbeat_age_seconds=age,
                )

            result = self._apply_phase(config, phase, now, TriggerSource.CRON)
            result.heartbeat_age_seconds = age
            return result

    # ==================== Heartbeat ====================

    def record_heartbeat(self, *, now: datetime | None = None) -> None:
        now = now or utc_now()
        self.store.set_setting(SETTING_INTERVAL_HEARTBEAT, to_iso(now))
        self._last_heartbeat_write = now

    def heartbeat_age(self, *, now: datetime | None = None) -> float | None:
        """Seconds since the last heartbeat, None if there never was one."""
        now = now or utc_now()
        last = coerce_datetime(self.store.get_setting(SETTING_INTERVAL_HEARTBEAT))
        if last is None:
            return None
        # A heartbeat from a slightly fast clock counts as fresh
        return max(0.0, (now - last).total_seconds())

    # ==================== Status ====================

    def status(self, *, now: datetime | None = None) -> dict[str, Any]:
        now = now or utc_now()
        config = self.get_config()
        phase = self.phase_for(config, now)
        age = self.heartbeat_age(now=now)
        return {
            "device_id": self.device_id,
            "device_name": self.registry.name_of(self.device_id),
            "config": config.to_dict(),
            "phase": phase.to_dict() if phase else None,
            "heartbeat_age_seconds": age,
            "foreground_active": age is not None and age < self.heartbeat_stale.total_seconds(),
        }

    def countdown(self) -> DutyPhase | None:
        """Last phase computed by this process's ticker (display only)."""
        return self._countdown

    # ==================== Commands from other sources ====================

    def is_debounced(self, device_id: str, *, now: datetime | None = None) -> bool:
        """True when ``device_id`` is the cycle device and was commanded inside the debounce window."""
        if device_id != self.device_id:
            return False
        now = now or utc_now()
        config = self.store.get_interval_config(self.device_id)
        if config is None or config.last_command_at is None:
            return False
        return now - config.last_command_at < self.debounce

    def note_external_command(self, device_id: str, *, now: datetime | None = None) -> None:
        """
        Record a command sent to the cycle device by a schedule check or by
        hand, so the emission rule debounces against it.
        """
        if device_id != self.device_id:
            return
        now = now or utc_now()
        with self._lock:
            self.store.upsert_interval_config(replace(self.get_config(), last_command_at=now))

    # ==================== Emission rule ====================

    def _apply_phase(
        self, config: IntervalConfig, phase: DutyPhase, now: datetime, source: TriggerSource
    ) -> PhaseApplication:
        target_on = phase.is_on
        result = PhaseApplication(source=source, target=phase.state, phase=phase)

        if config.last_applied_state is not None and config.last_applied_state == target_on:
            result.reason = "already_applied"
            return result

        if config.last_command_at is not None and now - config.last_command_at < self.debounce:
            result.reason = "debounced"
            return result

        # Re-read right before commanding: another process may have acted already
        fresh = self.store.get_interval_config(self.device_id)
        if fresh is None or not fresh.is_active or fresh.start_time != config.start_time:
            result.reason = "cycle_changed"
            return result
        if fresh.last_applied_state is not None and fresh.last_applied_state == target_on:
            result.reason = "already_applied"
            return result
        if fresh.last_command_at is not None and now - fresh.last_command_at < self.debounce:
            result.reason = "debounced"
            return result

        try:
            self._send(target_on)
        except DeviceCommandFailed as exc:
            logger.error("Interval mode %s command for %s failed: %s", phase.state.value, self.device_id, exc)
            self.store.upsert_interval_config(replace(fresh, last_command_at=now))
            self._record(source, target_on, False, str(exc), now)
            result.reason = "command_failed"
            result.error = str(exc)
            return result

        self.store.upsert_interval_config(replace(fresh, last_applied_state=target_on, last_command_at=now))
        self._record(source, target_on, True, None, now)
        logger.info(
            "Interval mode: %s %s (%ss left in phase, via %s)",
            self.registry.name_of(self.device_id),
            phase.state.value,
            phase.remaining_seconds,
            source.value,
        )
        result.commanded = True
        result.reason = "phase_changed"
        return result

    # ==================== Helpers ====================

    def _require_device(self) -> None:
        if self.device_id not in self.registry:
            raise NotFoundError(
                f"Interval device {self.device_id} is not registered", detail={"device_id": self.device_id}
            )

    def _send(self, on: bool) -> None:
        device = self.registry.get(self.device_id)
        self.controller.send_command(self.device_id, device.control_code, on)

    def _record(self, source: TriggerSource, on: bool, success: bool, error: str | None, now: datetime) -> None:
        self.store.record_execution_log(
            self.device_id,
            "on" if on else "off",
            None,
            success,
            source=f"interval:{source.value}",
            error_message=error,
            executed_at=now,
        )

    def _audit(self, actor: str, action: str, outcome: str, **metadata: Any) -> None:
        if self.audit_logger is not None:
            self.audit_logger.log_event(actor, action, f"device:{self.device_id}", outcome, **metadata)
