"""
DutyCycleEngine tests.

Uses a 3 min ON / 20 min OFF cycle on the aircon with a mocked
controller. Time is passed explicitly so phases are deterministic.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from app.domain.exceptions import DeviceUnreachable, NotFoundError, ValidationError
from app.domain.schedules.repository import SETTING_INTERVAL_HEARTBEAT
from app.domain.schedules.schedule_entity import IntervalConfig
from app.enums.schedules import DutyState, TriggerSource
from app.services.hardware.interval_service import DutyCycleEngine
from app.utils.time import to_iso

AIRCON = "a3cf493448182afaa9rlgw"
T0 = datetime(2025, 3, 10, 1, 0, 0, tzinfo=timezone.utc)


def _at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


@pytest.fixture()
def started(duty_cycle, fake_controller):
    """Engine started at T0 with the controller call history cleared."""
    duty_cycle.start(3, 20, now=T0, actor="tester")
    fake_controller.send_command.reset_mock()
    return duty_cycle


class TestStartStop:
    def test_start_sends_on_and_persists(self, duty_cycle, fake_controller, store, audit_logger):
        status = duty_cycle.start(3, 20, now=T0, actor="tester")

        fake_controller.send_command.assert_called_once_with(AIRCON, "ir_power", True)
        config = store.get_interval_config(AIRCON)
        assert config.is_active is True
        assert config.start_time == T0
        assert config.last_applied_state is True
        assert status["phase"]["state"] == "ON"
        assert status["phase"]["remaining_seconds"] == 180
        assert status["device_name"] == "Aircon"
        audit_logger.log_event.assert_called_once()
        assert store.list_execution_log()[0]["source"] == "interval:manual"

    def test_start_uses_defaults(self, duty_cycle, store):
        duty_cycle.start(now=T0)
        config = store.get_interval_config(AIRCON)
        assert (config.on_duration, config.interval_duration) == (3, 20)

    @pytest.mark.parametrize("on, off", [(0, 20), (3, 0), (-2, 5)])
    def test_start_rejects_short_durations(self, duty_cycle, fake_controller, on, off):
        with pytest.raises(ValidationError):
            duty_cycle.start(on, off, now=T0)
        fake_controller.send_command.assert_not_called()

    def test_restart_resets_cycle_origin(self, started, store):
        started.start(5, 10, now=_at(500))
        config = store.get_interval_config(AIRCON)
        assert config.start_time == _at(500)
        assert config.on_duration == 5

    def test_start_failure_keeps_cycle_active(self, duty_cycle, fake_controller, store):
        fake_controller.send_command.side_effect = DeviceUnreachable("timeout")

        with pytest.raises(DeviceUnreachable):
            duty_cycle.start(3, 20, now=T0)

        config = store.get_interval_config(AIRCON)
        assert config.is_active is True
        assert config.last_applied_state is None
        assert store.list_execution_log()[0]["success"] is False

    def test_stop_forces_off(self, started, fake_controller, store):
        status = started.stop(now=_at(60))

        fake_controller.send_command.assert_called_once_with(AIRCON, "ir_power", False)
        config = store.get_interval_config(AIRCON)
        assert config.is_active is False
        assert config.start_time is None
        assert status["phase"] is None

    def test_stop_is_persisted_even_if_off_fails(self, started, fake_controller, store):
        fake_controller.send_command.side_effect = DeviceUnreachable("timeout")
        with pytest.raises(DeviceUnreachable):
            started.stop(now=_at(60))
        assert store.get_interval_config(AIRCON).is_active is False
        assert started.tick(now=_at(200)) is None

    def test_unregistered_device(self, store, fake_controller, registry):
        engine = DutyCycleEngine(store, fake_controller, registry, "not-a-device")
        with pytest.raises(NotFoundError):
            engine.start(now=T0)


class TestTick:
    def test_inactive_does_nothing(self, duty_cycle, fake_controller):
        assert duty_cycle.tick(now=T0) is None
        fake_controller.send_command.assert_not_called()

    def test_no_command_while_phase_unchanged(self, started, fake_controller):
        result = started.tick(now=_at(61))

        assert result.reason == "already_applied"
        assert result.commanded is False
        assert result.phase.remaining_seconds == 119
        fake_controller.send_command.assert_not_called()

    def test_transition_to_off(self, started, fake_controller, store):
        result = started.tick(now=_at(180))

        assert result.commanded is True
        assert result.target is DutyState.OFF
        assert result.reason == "phase_changed"
        fake_controller.send_command.assert_called_once_with(AIRCON, "ir_power", False)
        assert store.get_interval_config(AIRCON).last_applied_state is False
        assert store.list_execution_log()[0]["source"] == "interval:foreground"

    def test_one_command_per_transition(self, started, fake_controller):
        for second in range(180, 240):
            started.tick(now=_at(second))
        assert fake_controller.send_command.call_count == 1

    def test_next_cycle_turns_on_again(self, started, fake_controller):
        started.tick(now=_at(180))
        result = started.tick(now=_at(1380))
        assert result.target is DutyState.ON
        assert result.commanded is True
        assert fake_controller.send_command.call_count == 2

    def test_debounce(self, duty_cycle, fake_controller, store):
        store.upsert_interval_config(
            IntervalConfig(
                AIRCON,
                is_active=True,
                start_time=T0,
                last_applied_state=False,
                last_command_at=_at(9),
            )
        )
        result = duty_cycle.tick(now=_at(10))
        assert result.reason == "debounced"
        fake_controller.send_command.assert_not_called()

        result = duty_cycle.tick(now=_at(12))
        assert result.commanded is True

    def test_writes_heartbeat_at_most_every_interval(self, started, store):
        started.tick(now=_at(1))
        assert store.get_setting(SETTING_INTERVAL_HEARTBEAT) == to_iso(_at(1))

        started.tick(now=_at(10))
        assert store.get_setting(SETTING_INTERVAL_HEARTBEAT) == to_iso(_at(1))

        started.tick(now=_at(16))
        assert store.get_setting(SETTING_INTERVAL_HEARTBEAT) == to_iso(_at(16))

    def test_command_failure_is_retried_later(self, started, fake_controller, store):
        fake_controller.send_command.side_effect = DeviceUnreachable("timeout")
        result = started.tick(now=_at(180))

        assert result.reason == "command_failed"
        assert result.failed
        assert store.get_interval_config(AIRCON).last_applied_state is True
        assert store.list_execution_log()[0]["success"] is False

        fake_controller.send_command.side_effect = None
        result = started.tick(now=_at(190))
        assert result.commanded is True


class TestServerCheck:
    def test_inactive_returns_none(self, duty_cycle):
        assert duty_cycle.run_server_check(now=T0) is None

    def test_stands_down_while_foreground_is_alive(self, started, fake_controller):
        started.tick(now=_at(1))

        result = started.run_server_check(now=_at(91))

        assert result.reason == "foreground_active"
        assert result.source is TriggerSource.CRON
        assert result.heartbeat_age_seconds == 90
        fake_controller.send_command.assert_not_called()

    def test_stands_down_across_a_phase_change(self, started, fake_controller, store):
        started.tick(now=_at(100))

        result = started.run_server_check(now=_at(190))

        assert result.reason == "foreground_active"
        assert result.target is DutyState.OFF
        assert result.commanded is False
        assert result.heartbeat_age_seconds == 90
        fake_controller.send_command.assert_not_called()
        assert store.get_interval_config(AIRCON).last_applied_state is True

    def test_takes_over_when_heartbeat_is_stale(self, started, fake_controller, store):
        started.tick(now=_at(1))

        result = started.run_server_check(now=_at(200))

        assert result.commanded is True
        assert result.target is DutyState.OFF
        fake_controller.send_command.assert_called_once_with(AIRCON, "ir_power", False)
        assert store.list_execution_log()[0]["source"] == "interval:cron"

    def test_acts_without_any_heartbeat(self, started, fake_controller):
        result = started.run_server_check(now=_at(200))
        assert result.commanded is True
        assert result.heartbeat_age_seconds is None

    def test_future_heartbeat_counts_as_fresh(self, started, store):
        store.set_setting(SETTING_INTERVAL_HEARTBEAT, to_iso(_at(230)))
        result = started.run_server_check(now=_at(200))
        assert result.reason == "foreground_active"
        assert result.heartbeat_age_seconds == 0


class TestExternalCommands:
    def test_window_follows_the_last_command(self, started):
        assert started.is_debounced(AIRCON, now=_at(2))
        assert not started.is_debounced(AIRCON, now=_at(3))

    def test_only_the_cycle_device_is_tracked(self, started, store):
        started.note_external_command("a3e31a88528a6efc15yf4o", now=_at(60))
        assert store.get_interval_config(AIRCON).last_command_at == T0
        assert not started.is_debounced("a3e31a88528a6efc15yf4o", now=_at(60))

    def test_noted_command_defers_the_next_phase(self, started, fake_controller, store):
        started.note_external_command(AIRCON, now=_at(179))

        assert started.tick(now=_at(180)).reason == "debounced"
        fake_controller.send_command.assert_not_called()
        config = store.get_interval_config(AIRCON)
        assert config.last_command_at == _at(179)
        assert config.is_active is True

    def test_noting_without_a_cycle_keeps_it_stopped(self, duty_cycle, store):
        duty_cycle.note_external_command(AIRCON, now=T0)
        assert store.get_interval_config(AIRCON).is_active is False
        assert duty_cycle.run_server_check(now=T0) is None

class TestResumeAndStatus:
    def test_resume_sends_nothing(self, started, store, registry):
        controller = MagicMock()
        engine = DutyCycleEngine(store, controller, registry, AIRCON)

        phase = engine.resume(now=_at(200))

        assert phase.state is DutyState.OFF
        assert phase.remaining_seconds == 1180
        assert engine.countdown() == phase
        controller.send_command.assert_not_called()

    def test_resume_when_inactive(self, duty_cycle):
        assert duty_cycle.resume(now=T0) is None

    def test_status_reports_foreground(self, started):
        started.record_heartbeat(now=_at(10))
        status = started.status(now=_at(20))
        assert status["foreground_active"] is True
        assert status["heartbeat_age_seconds"] == 10
        assert status["config"]["is_active"] is True

    def test_status_without_config_uses_defaults(self, duty_cycle):
        status = duty_cycle.status(now=T0)
        assert status["phase"] is None
        assert status["config"]["on_duration"] == 3
        assert status["foreground_active"] is False
