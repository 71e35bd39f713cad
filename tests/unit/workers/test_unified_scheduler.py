"""
UnifiedScheduler tests.

The scheduler is never started here: ``_process_due_jobs`` runs jobs inline
when no executor exists, so each test drives the loop by hand with a fake
clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest

from app.domain.exceptions import MisconfiguredSchedule
from app.workers.unified_scheduler import ScheduleType, UnifiedScheduler

SG = ZoneInfo("Asia/Singapore")
T0 = datetime(2025, 3, 10, 1, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture()
def clock():
    return FakeClock(T0)


@pytest.fixture()
def scheduler(clock):
    return UnifiedScheduler(timezone=SG, clock=clock)


class TestIntervalJobs:
    def test_runs_when_due(self, scheduler, clock):
        task = MagicMock(return_value={"ok": True})
        scheduler.register_task("schedule.check", task)
        scheduler.schedule_interval("schedule.check", 60, job_id="schedule_check")

        assert scheduler._process_due_jobs() == []
        clock.advance(60)
        assert scheduler._process_due_jobs() == ["schedule_check"]

        task.assert_called_once_with()
        job = scheduler.get_job("schedule_check")
        assert job.run_count == 1
        assert job.success_count == 1
        assert job.next_run == T0 + timedelta(seconds=120)
        assert job.namespace == "schedule"

    def test_start_immediately(self, scheduler):
        scheduler.register_task("interval.tick", MagicMock())
        scheduler.schedule_interval("interval.tick", 1, start_immediately=True)
        assert scheduler._process_due_jobs() == ["interval.tick"]

    def test_skips_ahead_after_a_long_pause(self, scheduler, clock):
        scheduler.register_task("t", MagicMock())
        scheduler.schedule_interval("t", 10)

        clock.advance(35)
        scheduler._process_due_jobs()

        assert scheduler.get_job("t").next_run == T0 + timedelta(seconds=40)

    def test_running_job_is_not_run_again(self, scheduler, clock):
        task = MagicMock()
        scheduler.register_task("t", task)
        job = scheduler.schedule_interval("t", 1)
        job.running = True

        clock.advance(1)
        assert scheduler._process_due_jobs() == []
        assert job.skipped_count == 1
        task.assert_not_called()

    def test_failure_is_recorded(self, scheduler, clock):
        scheduler.register_task("t", MagicMock(side_effect=RuntimeError("boom")))
        scheduler.schedule_interval("t", 1)

        clock.advance(1)
        scheduler._process_due_jobs()

        job = scheduler.get_job("t")
        assert job.failure_count == 1
        assert job.last_error == "boom"
        assert job.running is False
        assert scheduler.get_history("t")[0].success is False

    def test_disabled_and_removed_jobs_do_not_run(self, scheduler, clock):
        task = MagicMock()
        scheduler.register_task("t", task)
        scheduler.schedule_interval("t", 1, job_id="a")
        scheduler.schedule_interval("t", 1, job_id="b")
        scheduler.enable_job("a", False)
        scheduler.remove_job("b")

        clock.advance(5)
        assert scheduler._process_due_jobs() == []
        task.assert_not_called()

    def test_rejects_non_positive_interval(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.schedule_interval("t", 0)


class TestDailyAndOnce:
    def test_daily_next_run_in_scheduling_timezone(self, scheduler):
        # T0 is 09:00 in Singapore, so 03:30 is tomorrow
        job = scheduler.schedule_daily("maintenance.purge_markers", "03:30")
        assert job.schedule_type is ScheduleType.DAILY
        assert job.next_run == datetime(2025, 3, 11, 3, 30, tzinfo=SG)

    def test_daily_later_today(self, scheduler):
        job = scheduler.schedule_daily("t", "21:15", job_id="evening")
        assert job.next_run == datetime(2025, 3, 10, 21, 15, tzinfo=SG)

    def test_daily_rejects_bad_time(self, scheduler):
        with pytest.raises(MisconfiguredSchedule):
            scheduler.schedule_daily("t", "25:00")

    def test_once_disables_itself(self, scheduler, clock):
        task = MagicMock()
        scheduler.register_task("t", task)
        job = scheduler.schedule_once("t", T0 + timedelta(seconds=5))

        clock.advance(5)
        scheduler._process_due_jobs()
        clock.advance(5)
        scheduler._process_due_jobs()

        task.assert_called_once()
        assert job.enabled is False


class TestStatus:
    def test_run_now(self, scheduler):
        scheduler.register_task("t", MagicMock(return_value=42))
        result = scheduler.run_now("t")
        assert result.success is True
        assert result.result == 42
        assert scheduler.run_now("missing") is None

    def test_registration_replaces_by_name(self, scheduler):
        scheduler.register_task("t", MagicMock(return_value=1))
        scheduler.register_task("t", MagicMock(return_value=2))

        assert scheduler.has_task("t")
        assert not scheduler.has_task("other")
        assert scheduler.run_now("t").result == 2

    def test_health_when_not_running(self, scheduler):
        health = scheduler.health_check()
        assert health["health"] == "unhealthy"
        assert health["scheduler_running"] is False

    def test_status_lists_jobs(self, scheduler):
        scheduler.schedule_interval("schedule.check", 60, job_id="schedule_check")
        status = scheduler.get_status()
        assert status["total_jobs"] == 1
        assert status["jobs"][0]["job_id"] == "schedule_check"
        assert status["running"] is False

    def test_start_and_stop(self):
        scheduler = UnifiedScheduler(check_interval_seconds=0.01)
        scheduler.start()
        try:
            assert scheduler.is_running()
            assert scheduler.health_check()["health"] == "healthy"
        finally:
            scheduler.stop()
        assert not scheduler.is_running()
