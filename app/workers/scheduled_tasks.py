"""
Scheduled Tasks: background task definitions for the UnifiedScheduler.

Tasks are organized by namespace:
- schedule.*: time-of-day schedule checks
- interval.*: the duty-cycle ticker (foreground driver + heartbeat)
- maintenance.*: marker and history retention

Usage:
    from app.workers.scheduled_tasks import configure_scheduler

    configure_scheduler(container.scheduler, container)

Every task takes the ServiceContainer and returns a JSON-friendly dict so the
scheduler history stays readable.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any

from app.enums.schedules import TriggerSource

if TYPE_CHECKING:
    from app.config import AppConfig
    from app.services.container import ServiceContainer
    from app.workers.unified_scheduler import UnifiedScheduler

logger = logging.getLogger(__name__)

SCHEDULE_CHECK_TASK = "schedule.check"
INTERVAL_TICK_TASK = "interval.tick"
PURGE_HISTORY_TASK = "maintenance.purge_markers"


# ==================== Schedule Namespace ====================


def schedule_check_task(container: "ServiceContainer") -> dict[str, Any]:
    """Run one schedule check from the in-process worker."""
    result = container.coordinator.run_schedule_check(source=TriggerSource.WORKER)
    return result.to_dict()


# ==================== Interval Namespace ====================


def interval_tick_task(container: "ServiceContainer") -> dict[str, Any]:
    """
    Advance the duty cycle by one tick.

    Writes the heartbeat while interval mode is active, which keeps the
    cron fallback standing down.
    """
    application = container.duty_cycle.tick()
    if application is None:
        return {"active": False}
    if application.failed:
        logger.warning("Interval tick could not apply %s: %s", application.target, application.error)
    return {"active": True, **application.to_dict()}


# ==================== Maintenance Namespace ====================


def purge_markers_task(container: "ServiceContainer") -> dict[str, Any]:
    """Drop execution markers and log rows past the retention window."""
    retention_days = container.config.execution_retention_days
    removed = container.scheduling_service.purge_history(retention_days)
    logger.info(
        "Purged %d marker(s) and %d log entr(ies) older than %d days",
        removed["markers"],
        removed["log_entries"],
        retention_days,
    )
    return removed


def register_all_tasks(scheduler: "UnifiedScheduler", container: "ServiceContainer") -> None:
    """
    Register all tasks with the scheduler, bound to ``container``.

    Failures are logged here and re-raised so the scheduler records them
    in its history.
    """

    def bind(task_fn):
        @wraps(task_fn)
        def bound_task():
            try:
                return task_fn(container)
            except Exception as e:
                logger.exception("Scheduled task %s raised: %s", task_fn.__name__, e)
                raise

        return bound_task

    scheduler.register_task(SCHEDULE_CHECK_TASK, bind(schedule_check_task))
    scheduler.register_task(INTERVAL_TICK_TASK, bind(interval_tick_task))
    scheduler.register_task(PURGE_HISTORY_TASK, bind(purge_markers_task))
    logger.info("Registered scheduled tasks")


def schedule_default_jobs(scheduler: "UnifiedScheduler", config: "AppConfig") -> None:
    """Schedule the default jobs with the configured timing."""
    scheduler.schedule_interval(
        SCHEDULE_CHECK_TASK,
        interval_seconds=config.schedule_check_interval_seconds,
        job_id="schedule_check",
        start_immediately=True,
    )
    scheduler.schedule_interval(
        INTERVAL_TICK_TASK,
        interval_seconds=config.interval_tick_seconds,
        job_id="interval_tick",
        start_immediately=True,
    )
    scheduler.schedule_daily(
        PURGE_HISTORY_TASK,
        time_of_day="03:30",
        job_id="maintenance_purge_daily",
    )

    jobs = scheduler.get_jobs()
    logger.info("Scheduled %s default jobs", len(jobs))
    for job in jobs:
        logger.debug("  - %s: %s (%s)", job.job_id, job.schedule_type.value, job.namespace)


def configure_scheduler(
    scheduler: "UnifiedScheduler",
    container: "ServiceContainer",
    *,
    reset_jobs: bool = True,
    start: bool = True,
) -> None:
    """Register tasks, restore the duty-cycle countdown, apply default schedules and optionally start."""
    if reset_jobs:
        scheduler.clear_jobs()

    register_all_tasks(scheduler, container)
    container.duty_cycle.resume()
    schedule_default_jobs(scheduler, container.config)

    if start:
        scheduler.start()
