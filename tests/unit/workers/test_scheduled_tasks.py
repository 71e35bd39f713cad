from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from app.config import AppConfig
from app.enums.schedules import TriggerSource
from app.workers.scheduled_tasks import (
    INTERVAL_TICK_TASK,
    PURGE_HISTORY_TASK,
    SCHEDULE_CHECK_TASK,
    configure_scheduler,
    interval_tick_task,
    purge_markers_task,
    register_all_tasks,
    schedule_check_task,
    schedule_default_jobs,
)
from app.workers.unified_scheduler import ScheduleType, UnifiedScheduler


@pytest.fixture()
def container():
    container = MagicMock()
    container.config = AppConfig()
    return container


@pytest.fixture()
def scheduler():
    now = datetime(2025, 3, 10, 1, 0, tzinfo=timezone.utc)
    return UnifiedScheduler(clock=lambda: now)


def test_schedule_check_task_uses_worker_source(container):
    container.coordinator.run_schedule_check.return_value.to_dict.return_value = {"message": "ok"}

    assert schedule_check_task(container) == {"message": "ok"}
    container.coordinator.run_schedule_check.assert_called_once_with(source=TriggerSource.WORKER)


def test_interval_tick_when_inactive(container):
    container.duty_cycle.tick.return_value = None
    assert interval_tick_task(container) == {"active": False}


def test_interval_tick_reports_application(container):
    application = MagicMock(failed=False)
    application.to_dict.return_value = {"target": "ON", "commanded": True}
    container.duty_cycle.tick.return_value = application

    assert interval_tick_task(container) == {"active": True, "target": "ON", "commanded": True}


def test_purge_uses_retention_window(container):
    container.config.execution_retention_days = 7
    container.scheduling_service.purge_history.return_value = {"markers": 3, "log_entries": 1}

    assert purge_markers_task(container) == {"markers": 3, "log_entries": 1}
    container.scheduling_service.purge_history.assert_called_once_with(7)


def test_register_all_tasks_binds_container(scheduler, container):
    register_all_tasks(scheduler, container)

    for name in (SCHEDULE_CHECK_TASK, INTERVAL_TICK_TASK, PURGE_HISTORY_TASK):
        assert scheduler.has_task(name)

    container.duty_cycle.tick.return_value = None
    assert scheduler.run_now(INTERVAL_TICK_TASK).result == {"active": False}


def test_bound_task_failure_reaches_history(scheduler, container):
    register_all_tasks(scheduler, container)
    container.coordinator.run_schedule_check.side_effect = RuntimeError("boom")

    result = scheduler.run_now(SCHEDULE_CHECK_TASK)

    assert result.success is False
    assert result.error == "boom"


def test_default_jobs(scheduler, container):
    container.config.schedule_check_interval_seconds = 30
    schedule_default_jobs(scheduler, container.config)

    check = scheduler.get_job("schedule_check")
    assert check.interval_seconds == 30
    assert scheduler.get_job("interval_tick").interval_seconds == container.config.interval_tick_seconds
    purge = scheduler.get_job("maintenance_purge_daily")
    assert purge.schedule_type is ScheduleType.DAILY
    assert purge.time_of_day == "03:30"


def test_configure_scheduler_without_start(scheduler, container):
    scheduler.schedule_interval("stale.job", 5, job_id="stale")

    configure_scheduler(scheduler, container, start=False)

    container.duty_cycle.resume.assert_called_once_with()
    assert scheduler.get_job("stale") is None
    assert {j.job_id for j in scheduler.get_jobs()} == {"schedule_check", "interval_tick", "maintenance_purge_daily"}
    assert not scheduler.is_running()
