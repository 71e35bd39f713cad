"""
ExecutionCoordinator tests.

A schedule check on 2025-03-10 (a "work" day) in Asia/Singapore with the
Lights and Laptop plugs scheduled ON at 09:00.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from app.domain.devices import DeviceStatus
from app.domain.exceptions import DeviceUnreachable, StoreUnavailable
from app.domain.schedules.schedule_entity import execution_marker_key
from app.enums.schedules import CheckOutcome, TriggerSource
from app.services.application.schedule_coordinator import ExecutionCoordinator

LIGHTS = "a3e31a88528a6efc15yf4o"
LAPTOP = "a34b0f81d957d06e4aojr1"
AIRCON = "a3cf493448182afaa9rlgw"
DAY = "2025-03-10"
LIGHTS_MARKER = execution_marker_key(LIGHTS, "09:00", "on", DAY)


@pytest.fixture()
def work_day(store):
    store.upsert_calendar_assignment(DAY, "work")
    store.replace_device_schedules(
        LIGHTS, "work", [{"time": "09:00", "action": "on"}, {"time": "18:00", "action": "off"}]
    )
    store.replace_device_schedules(LAPTOP, "work", [{"time": "09:00", "action": "on"}])
    return store


@pytest.fixture()
def nine_am(sg_time):
    return sg_time(2025, 3, 10, 9, 0, 30)


class TestScheduledExecution:
    def test_executes_due_entries(self, coordinator, work_day, fake_controller, nine_am):
        result = coordinator.run_schedule_check(nine_am)

        assert result.situation == "work"
        assert result.is_using_default is False
        assert [a.device_name for a in result.executed] == ["Lights", "Laptop"]
        assert all(a.result is CheckOutcome.EXECUTED for a in result.executed)
        fake_controller.send_command.assert_any_call(LIGHTS, "switch_1", True)
        fake_controller.send_command.assert_any_call(LAPTOP, "switch_1", True)
        assert work_day.has_execution_marker(LIGHTS_MARKER)
        assert work_day.list_execution_log(1)[0]["source"] == "schedule:api"

    def test_second_run_in_same_minute_is_a_no_op(self, coordinator, work_day, fake_controller, nine_am):
        coordinator.run_schedule_check(nine_am)
        fake_controller.send_command.reset_mock()

        result = coordinator.run_schedule_check(nine_am + timedelta(seconds=20), source=TriggerSource.CRON)

        assert result.executed == []
        assert result.skipped == []
        fake_controller.send_command.assert_not_called()

    def test_nothing_due_outside_the_minute(self, coordinator, work_day, fake_controller, sg_time):
        result = coordinator.run_schedule_check(sg_time(2025, 3, 10, 9, 1))
        assert result.executed == []
        fake_controller.send_command.assert_not_called()

    def test_evaluates_in_scheduling_timezone(self, coordinator, work_day, fake_controller):
        # 01:00 UTC is 09:00 in Singapore
        result = coordinator.run_schedule_check(datetime(2025, 3, 10, 1, 0, tzinfo=timezone.utc))
        assert result.date == DAY
        assert result.time == "09:00"
        assert len(result.executed) == 2

    def test_local_date_differs_from_utc_date(self, coordinator, store):
        store.upsert_calendar_assignment(DAY, "rest")
        result = coordinator.run_schedule_check(datetime(2025, 3, 9, 16, 30, tzinfo=timezone.utc))
        assert result.date == DAY
        assert result.situation == "rest"

    def test_already_in_state_records_marker(self, coordinator, work_day, fake_controller, nine_am):
        fake_controller.get_status.side_effect = lambda device_id: DeviceStatus(device_id, on=True, online=True)

        result = coordinator.run_schedule_check(nine_am)

        assert result.executed == []
        assert {a.result for a in result.skipped} == {CheckOutcome.ALREADY_IN_STATE}
        fake_controller.send_command.assert_not_called()
        assert work_day.has_execution_marker(LIGHTS_MARKER)

    def test_ir_device_is_always_commanded(self, coordinator, store, fake_controller, nine_am):
        store.upsert_calendar_assignment(DAY, "work")
        store.replace_device_schedules(AIRCON, "work", [{"time": "09:00", "action": "on"}])
        fake_controller.get_status.side_effect = lambda device_id: DeviceStatus(device_id, on=None)

        result = coordinator.run_schedule_check(nine_am)

        assert [a.device_name for a in result.executed] == ["Aircon"]
        fake_controller.send_command.assert_called_once_with(AIRCON, "ir_power", True)

    def test_concurrent_claim_is_suppressed(self, coordinator, work_day, fake_controller, nine_am):
        def status_then_race(device_id):
            # Another trigger claims the Lights marker between evaluation and claim
            if device_id == LIGHTS:
                work_day.record_execution_marker(LIGHTS_MARKER, nine_am)
            return DeviceStatus(device_id, on=False)

        fake_controller.get_status.side_effect = status_then_race

        result = coordinator.run_schedule_check(nine_am)

        assert [a.result for a in result.skipped] == [CheckOutcome.DUPLICATE_SUPPRESSED]
        assert [a.device_id for a in result.executed] == [LAPTOP]
        fake_controller.send_command.assert_called_once_with(LAPTOP, "switch_1", True)

    def test_invalid_stored_entry_becomes_warning(self, coordinator, work_day, db_connection, nine_am):
        db_connection.execute(
            "INSERT INTO DeviceSchedules (device_id, situation, time, action) VALUES (?, ?, ?, ?)",
            (LIGHTS, "work", "25:00", "on"),
        )

        result = coordinator.run_schedule_check(nine_am)

        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("Lights:")
        assert len(result.executed) == 2


class TestSituationResolution:
    def test_default_situation_applies_to_unassigned_days(self, coordinator, store, nine_am):
        store.set_setting("default_situation", "rest")
        store.replace_device_schedules(LIGHTS, "rest", [{"time": "09:00", "action": "on"}])

        result = coordinator.run_schedule_check(nine_am)

        assert result.situation == "rest"
        assert result.is_using_default is True
        assert len(result.executed) == 1

    def test_calendar_beats_default(self, coordinator, work_day, nine_am):
        work_day.set_setting("default_situation", "rest")
        result = coordinator.run_schedule_check(nine_am)
        assert result.situation == "work"
        assert result.is_using_default is False

    @pytest.mark.parametrize("default", [None, "none"])
    def test_no_situation_today(self, coordinator, store, fake_controller, nine_am, default):
        store.replace_device_schedules(LIGHTS, "rest", [{"time": "09:00", "action": "on"}])
        if default:
            store.set_setting("default_situation", default)

        result = coordinator.run_schedule_check(nine_am)

        assert result.outcome is CheckOutcome.NO_SITUATION_TODAY
        assert result.message == "No schedule for today"
        fake_controller.send_command.assert_not_called()


class TestOverrides:
    def test_override_does_not_block_and_is_cleared(self, coordinator, work_day, fake_controller, nine_am):
        work_day.set_manual_override(LIGHTS, 120, nine_am - timedelta(minutes=5))

        result = coordinator.run_schedule_check(nine_am)

        lights = next(a for a in result.executed if a.device_id == LIGHTS)
        assert lights.override_was_active is True
        assert lights.to_dict()["override_was_active"] is True
        assert work_day.get_manual_override(LIGHTS) is None

    def test_override_kept_when_command_fails(self, coordinator, work_day, fake_controller, nine_am):
        work_day.set_manual_override(LIGHTS, 120, nine_am)
        fake_controller.send_command.side_effect = DeviceUnreachable("offline")

        coordinator.run_schedule_check(nine_am)

        assert work_day.get_manual_override(LIGHTS) is not None


class TestFailures:
    def test_failure_is_isolated_and_marker_released(self, coordinator, work_day, fake_controller, nine_am):
        def send(device_id, code, value):
            if device_id == LIGHTS:
                raise DeviceUnreachable("plug offline", device_id=device_id)

        fake_controller.send_command.side_effect = send

        result = coordinator.run_schedule_check(nine_am)

        assert [a.device_id for a in result.executed] == [LAPTOP]
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error["device_id"] == LIGHTS
        assert error["result"] == "failed"
        assert error["error_type"] == "DeviceUnreachable"
        assert not work_day.has_execution_marker(LIGHTS_MARKER)
        assert "1 failed" in result.message

        failed_log = work_day.list_execution_log(10, LIGHTS)[0]
        assert failed_log["success"] is False
        assert failed_log["error_message"] == "plug offline"

    def test_failed_entry_is_retried_within_the_minute(self, coordinator, work_day, fake_controller, nine_am):
        fake_controller.send_command.side_effect = [DeviceUnreachable("offline"), None]
        coordinator.run_schedule_check(nine_am)

        fake_controller.send_command.side_effect = None
        result = coordinator.run_schedule_check(nine_am + timedelta(seconds=15))

        assert [a.device_id for a in result.executed] == [LIGHTS]
        assert work_day.has_execution_marker(LIGHTS_MARKER)

    def test_status_read_failure(self, coordinator, work_day, fake_controller, nine_am):
        fake_controller.get_status.side_effect = DeviceUnreachable("cloud down")

        result = coordinator.run_schedule_check(nine_am)

        assert result.executed == []
        assert len(result.errors) == 2
        fake_controller.send_command.assert_not_called()
        assert not work_day.has_execution_marker(LIGHTS_MARKER)

    def test_unexpected_status_error_is_isolated(self, coordinator, work_day, fake_controller, nine_am):
        def status(device_id):
            if device_id == LIGHTS:
                raise AttributeError("'NoneType' object has no attribute 'get'")
            return DeviceStatus(device_id, on=False, online=True)

        fake_controller.get_status.side_effect = status

        result = coordinator.run_schedule_check(nine_am)

        assert [a.device_id for a in result.executed] == [LAPTOP]
        assert [e["error_type"] for e in result.errors] == ["AttributeError"]
        assert result.errors[0]["device_id"] == LIGHTS
        assert not work_day.has_execution_marker(LIGHTS_MARKER)
        fake_controller.send_command.assert_called_once_with(LAPTOP, "switch_1", True)

    def test_unexpected_send_error_releases_marker(self, coordinator, work_day, fake_controller, nine_am):
        def send(device_id, code, value):
            if device_id == LIGHTS:
                raise KeyError("result")

        fake_controller.send_command.side_effect = send

        result = coordinator.run_schedule_check(nine_am)

        assert [a.device_id for a in result.executed] == [LAPTOP]
        assert result.errors[0]["error_type"] == "KeyError"
        assert not work_day.has_execution_marker(LIGHTS_MARKER)
        assert work_day.list_execution_log(10, LIGHTS)[0]["success"] is False

    def test_store_failure_aborts_the_run(self, fake_controller, registry, nine_am):
        broken_store = MagicMock()
        broken_store.get_calendar_assignment.side_effect = StoreUnavailable("database is locked")
        coordinator = ExecutionCoordinator(broken_store, fake_controller, registry, "Asia/Singapore")

        with pytest.raises(StoreUnavailable):
            coordinator.run_schedule_check(nine_am)
        fake_controller.send_command.assert_not_called()


class TestIntervalHandoff:
    def test_interval_inactive(self, coordinator, work_day, nine_am):
        assert coordinator.run_schedule_check(nine_am).interval is None

    def test_cron_drives_interval_when_foreground_is_gone(self, coordinator, duty_cycle, fake_controller, nine_am):
        duty_cycle.start(3, 20, now=nine_am - timedelta(minutes=4))
        fake_controller.send_command.reset_mock()

        result = coordinator.run_schedule_check(nine_am, source=TriggerSource.CRON)

        assert result.outcome is CheckOutcome.NO_SITUATION_TODAY
        assert result.interval["commanded"] is True
        assert result.interval["target"] == "OFF"
        fake_controller.send_command.assert_called_once_with(AIRCON, "ir_power", False)

    def test_interval_failure_is_reported(self, coordinator, duty_cycle, fake_controller, nine_am):
        duty_cycle.start(3, 20, now=nine_am - timedelta(minutes=4))
        fake_controller.send_command.side_effect = DeviceUnreachable("ir hub offline")

        result = coordinator.run_schedule_check(nine_am)

        assert result.errors[0]["source"] == "interval"
        assert result.errors[0]["device_name"] == "Aircon"


class TestIntervalDeviceDebounce:
    @pytest.fixture()
    def aircon_day(self, store):
        store.upsert_calendar_assignment(DAY, "work")
        store.replace_device_schedules(AIRCON, "work", [{"time": "09:00", "action": "on"}])
        return store

    def test_scheduled_action_waits_for_interval_command(
        self, coordinator, duty_cycle, aircon_day, fake_controller, sg_time
    ):
        duty_cycle.start(3, 20, now=sg_time(2025, 3, 10, 8, 57))
        tick = duty_cycle.tick(now=sg_time(2025, 3, 10, 9, 0, 0))
        assert tick.commanded is True
        fake_controller.send_command.reset_mock()

        result = coordinator.run_schedule_check(sg_time(2025, 3, 10, 9, 0, 1))

        assert result.executed == []
        assert [a.result for a in result.skipped] == [CheckOutcome.DEBOUNCED]
        assert result.interval["reason"] == "foreground_active"
        fake_controller.send_command.assert_not_called()
        assert not aircon_day.has_execution_marker(execution_marker_key(AIRCON, "09:00", "on", DAY))

    def test_deferred_action_runs_later_in_the_minute(
        self, coordinator, duty_cycle, aircon_day, fake_controller, sg_time
    ):
        duty_cycle.start(3, 20, now=sg_time(2025, 3, 10, 8, 57))
        duty_cycle.tick(now=sg_time(2025, 3, 10, 9, 0, 0))
        coordinator.run_schedule_check(sg_time(2025, 3, 10, 9, 0, 1))
        fake_controller.send_command.reset_mock()

        result = coordinator.run_schedule_check(sg_time(2025, 3, 10, 9, 0, 5))

        assert [a.device_name for a in result.executed] == ["Aircon"]
        fake_controller.send_command.assert_called_once_with(AIRCON, "ir_power", True)

    def test_scheduled_command_holds_off_the_cycle(
        self, coordinator, duty_cycle, aircon_day, fake_controller, sg_time
    ):
        duty_cycle.start(3, 20, now=sg_time(2025, 3, 10, 8, 57))
        nine = sg_time(2025, 3, 10, 9, 0, 0)
        duty_cycle.record_heartbeat(now=nine - timedelta(seconds=5))

        result = coordinator.run_schedule_check(nine)

        assert [a.device_name for a in result.executed] == ["Aircon"]
        assert duty_cycle.get_config().last_command_at == nine
        fake_controller.send_command.reset_mock()
        tick = duty_cycle.tick(now=nine + timedelta(seconds=1))
        assert tick.reason == "debounced"
        fake_controller.send_command.assert_not_called()

    def test_other_devices_are_not_debounced(self, coordinator, duty_cycle, work_day, fake_controller, nine_am):
        duty_cycle.start(3, 20, now=nine_am - timedelta(seconds=1))

        result = coordinator.run_schedule_check(nine_am)

        assert [a.device_name for a in result.executed] == ["Lights", "Laptop"]


def test_result_to_dict(coordinator, work_day, nine_am):
    data = coordinator.run_schedule_check(nine_am, source=TriggerSource.CLI).to_dict()
    assert data["source"] == "cli"
    assert data["date"] == DAY
    assert data["message"] == "Situation 'work', 2 executed"
    assert data["executed"][0] == {
        "device_id": LIGHTS,
        "device_name": "Lights",
        "time": "09:00",
        "action": "on",
        "result": "executed",
    }
