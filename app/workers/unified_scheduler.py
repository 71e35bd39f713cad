"""
Background job scheduler for the in-process trigger sources.

Runs the periodic schedule check, the interval-mode ticker and daily
maintenance inside the server process. Cron and the CLI drive the same
services from outside; nothing here is required for correctness, only for
timeliness.

Design Principles:
- Single scheduler loop thread
- Bounded worker pool for job execution
- A job never overlaps itself: a run that is still in flight when the
  next slot comes due is skipped, not queued
- Interval jobs advance from the scheduled time (fixed-rate), daily jobs
  fire at a wall-clock time in the configured timezone
"""

from __future__ import annotations

import heapq
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Any, Callable

from app.domain.schedules.schedule_entity import parse_hhmm

logger = logging.getLogger(__name__)


class ScheduleType(Enum):
    """Types of schedules."""

    INTERVAL = "interval"  # Every N seconds
    DAILY = "daily"  # At HH:MM local time each day
    ONCE = "once"  # One-time execution


@dataclass
class JobResult:
    """Result of a job execution."""

    job_id: str
    success: bool
    started_at: datetime
    completed_at: datetime
    result: Any = None
    error: str | None = None

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "success": self.success,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "error": self.error,
        }


@dataclass
class ScheduledJob:
    """A scheduled job configuration."""

    job_id: str
    task_name: str
    namespace: str  # e.g. "schedule", "interval", "maintenance"
    schedule_type: ScheduleType
    enabled: bool = True

    args: tuple = field(default_factory=tuple)
    kwargs: dict[str, Any] = field(default_factory=dict)

    interval_seconds: float | None = None  # For INTERVAL type
    time_of_day: str | None = None  # "HH:MM" for DAILY type
    run_at: datetime | None = None  # For ONCE type

    # Execution tracking
    next_run: datetime | None = None
    last_run: datetime | None = None
    running: bool = False
    run_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (for API responses)."""
        return {
            "job_id": self.job_id,
            "task_name": self.task_name,
            "namespace": self.namespace,
            "schedule_type": self.schedule_type.value,
            "enabled": self.enabled,
            "interval_seconds": self.interval_seconds,
            "time_of_day": self.time_of_day,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "running": self.running,
            "run_count": self.run_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "skipped_count": self.skipped_count,
            "last_error": self.last_error,
        }


class UnifiedScheduler:
    """
    Heap-based scheduler for background tasks.

    Implementation note on the heap:
    - Heap entries are tuples: (run_at_ts, seq, job_id)
    - seq is a monotonic counter to keep ordering stable when timestamps match
    - Entries are never deleted in place; stale ones are skipped when popped
      (job removed, job disabled, or job.next_run changed)
    """

    def __init__(
        self,
        check_interval_seconds: float = 0.25,
        max_history: int = 500,
        max_workers: int = 4,
        timezone: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            check_interval_seconds: How often the loop looks for due jobs
            max_history: Maximum job execution history to keep
            max_workers: Maximum number of concurrent job executions
            timezone: Zone that DAILY times are expressed in (local time if None)
            clock: Returns the current aware datetime; injectable for tests
        """
        self._check_interval = float(check_interval_seconds)
        self._max_history = int(max_history)
        self._max_workers = int(max_workers)
        self._tz = timezone
        self._clock = clock or (lambda: datetime.now(self._tz).astimezone())

        self._jobs: dict[str, ScheduledJob] = {}
        self._tasks: dict[str, Callable] = {}  # task_name -> function

        self._job_heap: list[tuple[float, int, str]] = []
        self._heap_seq = 0

        self._history: list[JobResult] = []

        self._running = False
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._job_lock = threading.RLock()
        self._executor: ThreadPoolExecutor | None = None

    # ==================== Task Registration ====================

    def register_task(self, name: str, func: Callable) -> None:
        """Register a task function under ``name``."""
        self._tasks[name] = func
        logger.debug("Registered task: %s", name)

    def has_task(self, name: str) -> bool:
        return name in self._tasks

    def clear_jobs(self) -> None:
        """Remove all scheduled jobs and pending heap entries."""
        with self._job_lock:
            self._jobs.clear()
            self._job_heap.clear()
            self._heap_seq = 0

    def _push_heap(self, job: ScheduledJob) -> None:
        if not job.enabled or not job.next_run:
            return
        self._heap_seq += 1
        heapq.heappush(self._job_heap, (job.next_run.timestamp(), self._heap_seq, job.job_id))

    # ==================== Job Scheduling ====================

    @staticmethod
    def _namespace_for(task_name: str, namespace: str | None) -> str:
        if namespace is not None:
            return namespace
        return task_name.split(".")[0] if "." in task_name else "default"

    def schedule_interval(
        self,
        task_name: str,
        interval_seconds: float,
        *,
        job_id: str | None = None,
        namespace: str | None = None,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
        enabled: bool = True,
        start_immediately: bool = False,
    ) -> ScheduledJob:
        """Schedule a task to run at regular intervals."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        job_id = job_id or task_name

        now = self._clock()
        next_run = now if start_immediately else now + timedelta(seconds=interval_seconds)

        job = ScheduledJob(
            job_id=job_id,
            task_name=task_name,
            namespace=self._namespace_for(task_name, namespace),
            schedule_type=ScheduleType.INTERVAL,
            enabled=enabled,
            args=args,
            kwargs=kwargs or {},
            interval_seconds=interval_seconds,
            next_run=next_run,
        )
        self._add_job(job)
        logger.info("Scheduled interval job: %s (every %ss)", job_id, interval_seconds)
        return job

    def schedule_daily(
        self,
        task_name: str,
        time_of_day: str,
        *,
        job_id: str | None = None,
        namespace: str | None = None,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
        enabled: bool = True,
    ) -> ScheduledJob:
        """Schedule a task to run daily at ``time_of_day`` (HH:MM)."""
        parse_hhmm(time_of_day)
        job_id = job_id or f"{task_name}_daily_{time_of_day.replace(':', '')}"

        job = ScheduledJob(
            job_id=job_id,
            task_name=task_name,
            namespace=self._namespace_for(task_name, namespace),
            schedule_type=ScheduleType.DAILY,
            enabled=enabled,
            args=args,
            kwargs=kwargs or {},
            time_of_day=time_of_day,
            next_run=self._calculate_next_daily(time_of_day, self._clock()),
        )
        self._add_job(job)
        logger.info("Scheduled daily job: %s (at %s)", job_id, time_of_day)
        return job

    def schedule_once(
        self,
        task_name: str,
        run_at: datetime,
        *,
        job_id: str | None = None,
        namespace: str | None = None,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
    ) -> ScheduledJob:
        """Schedule a task to run once at ``run_at``."""
        job_id = job_id or f"{task_name}_once_{int(run_at.timestamp())}"

        job = ScheduledJob(
            job_id=job_id,
            task_name=task_name,
            namespace=self._namespace_for(task_name, namespace),
            schedule_type=ScheduleType.ONCE,
            args=args,
            kwargs=kwargs or {},
            run_at=run_at,
            next_run=run_at,
        )
        self._add_job(job)
        logger.info("Scheduled one-time job: %s (at %s)", job_id, run_at.isoformat())
        return job

    def run_now(
        self,
        task_name: str,
        *,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
    ) -> JobResult | None:
        """Run a task immediately in the calling thread."""
        func = self._tasks.get(task_name)
        if func is None:
            logger.error("Task not found: %s", task_name)
            return None

        started_at = self._clock()
        job_id = f"{task_name}_immediate"
        try:
            result = func(*args, **(kwargs or {}))
        except Exception as e:
            logger.error("Immediate task %s failed: %s", task_name, e, exc_info=True)
            job_result = JobResult(job_id, False, started_at, self._clock(), error=str(e))
        else:
            job_result = JobResult(job_id, True, started_at, self._clock(), result=result)
        self._record_history(job_result)
        return job_result

    # ==================== Job Management ====================

    def _add_job(self, job: ScheduledJob) -> None:
        with self._job_lock:
            self._jobs[job.job_id] = job
            self._push_heap(job)

    def remove_job(self, job_id: str) -> bool:
        with self._job_lock:
            if job_id in self._jobs:
                del self._jobs[job_id]
                logger.info("Removed job: %s", job_id)
                return True
        return False

    def enable_job(self, job_id: str, enabled: bool = True) -> bool:
        with self._job_lock:
            job = self._jobs.get(job_id)
            if not job:
                return False

            job.enabled = bool(enabled)
            if job.enabled:
                if job.next_run is None:
                    self._schedule_next_run(job, reference_time=self._clock())
                self._push_heap(job)

            logger.info("Job %s %s", job_id, "enabled" if job.enabled else "disabled")
            return True

    def get_job(self, job_id: str) -> ScheduledJob | None:
        return self._jobs.get(job_id)

    def get_jobs(self, namespace: str | None = None, enabled_only: bool = False) -> list[ScheduledJob]:
        jobs = list(self._jobs.values())
        if namespace:
            jobs = [j for j in jobs if j.namespace == namespace]
        if enabled_only:
            jobs = [j for j in jobs if j.enabled]
        return jobs

    # ==================== Scheduler Control ====================

    def start(self) -> None:
        """Start the scheduler background thread."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="PlugSchedJob",
            )

        self._stop_event.clear()
        self._running = True
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name="PlugSchedScheduler")
        self._thread.start()
        logger.info("Scheduler started with %d job(s)", len(self._jobs))

    def stop(self, wait: bool = True, timeout: float = 5.0) -> None:
        """Stop the loop and the worker pool."""
        if not self._running:
            return

        self._running = False
        self._stop_event.set()

        if wait and self._thread:
            self._thread.join(timeout=timeout)

        if self._executor:
            self._executor.shutdown(wait=wait)
            self._executor = None

        logger.info("Scheduler stopped")

    def shutdown(self, wait: bool = True, timeout: float = 5.0) -> None:
        """Alias for stop(); matches other services' shutdown() convention."""
        self.stop(wait=wait, timeout=timeout)

    def is_running(self) -> bool:
        return self._running

    def _run_loop(self) -> None:
        logger.debug("Scheduler loop started")
        while self._running:
            try:
                self._process_due_jobs()
            except Exception as e:
                logger.error("Error in scheduler loop: %s", e, exc_info=True)
            self._stop_event.wait(self._check_interval)
        logger.debug("Scheduler loop ended")

    # ==================== Core Scheduling Logic ====================

    def _process_due_jobs(self, now: datetime | None = None) -> list[str]:
        """
        Submit every job that is due.

        Returns:
            ids of the jobs submitted (used by tests)
        """
        now = now or self._clock()
        now_ts = now.timestamp()
        submitted: list[str] = []

        with self._job_lock:
            while self._job_heap:
                run_at_ts, _seq, job_id = self._job_heap[0]
                if run_at_ts > now_ts:
                    break
                heapq.heappop(self._job_heap)

                job = self._jobs.get(job_id)
                if not job or not job.enabled or not job.next_run:
                    continue
                if abs(job.next_run.timestamp() - run_at_ts) > 1e-6:
                    continue

                scheduled_for = job.next_run
                self._schedule_next_run(job, reference_time=now, scheduled_time=scheduled_for)
                self._push_heap(job)

                if job.running:
                    job.skipped_count += 1
                    logger.debug("Job %s still running; skipping slot %s", job_id, scheduled_for.isoformat())
                    continue

                job.running = True
                if self._executor is None:
                    # Not started: run inline (tests drive the loop by hand)
                    self._execute_job(job_id, scheduled_for)
                else:
                    self._executor.submit(self._execute_job, job_id, scheduled_for)
                submitted.append(job_id)

        return submitted

    def _execute_job(self, job_id: str, scheduled_for: datetime) -> None:
        with self._job_lock:
            job = self._jobs.get(job_id)
        if not job:
            return

        started_at = self._clock()
        try:
            func = self._tasks.get(job.task_name)
            if func is None:
                raise ValueError(f"Task function not found: {job.task_name}")
            result = func(*job.args, **job.kwargs)
        except Exception as e:
            completed_at = self._clock()
            with self._job_lock:
                job.running = False
                job.last_run = started_at
                job.run_count += 1
                job.failure_count += 1
                job.last_error = str(e)
            self._record_history(JobResult(job.job_id, False, started_at, completed_at, error=str(e)))
            logger.error("Job %s failed: %s", job.job_id, e, exc_info=True)
            return

        completed_at = self._clock()
        with self._job_lock:
            job.running = False
            job.last_run = started_at
            job.run_count += 1
            job.success_count += 1
            job.last_error = None
        self._record_history(JobResult(job.job_id, True, started_at, completed_at, result=result))
        logger.debug("Job %s completed (scheduled_for=%s)", job.job_id, scheduled_for.isoformat())

    def _schedule_next_run(
        self,
        job: ScheduledJob,
        *,
        reference_time: datetime,
        scheduled_time: datetime | None = None,
    ) -> None:
        if job.schedule_type == ScheduleType.INTERVAL:
            interval = float(job.interval_seconds or 60)
            base = scheduled_time or reference_time
            next_run = base + timedelta(seconds=interval)

            # Far behind (process suspended): jump to the first future slot
            if next_run <= reference_time:
                skips = int((reference_time - next_run).total_seconds() // interval) + 1
                next_run += timedelta(seconds=skips * interval)

            job.next_run = next_run
            return

        if job.schedule_type == ScheduleType.DAILY:
            job.next_run = self._calculate_next_daily(job.time_of_day or "00:00", reference_time)
            return

        # One-time jobs don't repeat
        job.next_run = None
        job.enabled = False

    def _calculate_next_daily(self, time_of_day: str, now: datetime) -> datetime:
        minutes = parse_hhmm(time_of_day)
        local_now = now.astimezone(self._tz) if self._tz is not None else now
        next_run = local_now.replace(hour=minutes // 60, minute=minutes % 60, second=0, microsecond=0)
        if next_run <= local_now:
            next_run += timedelta(days=1)
        return next_run

    def _record_history(self, result: JobResult) -> None:
        with self._job_lock:
            self._history.append(result)
            if len(self._history) > self._max_history:
                self._history = self._history[-self._max_history :]

    # ==================== Status & History ====================

    def get_status(self) -> dict[str, Any]:
        with self._job_lock:
            recent = self._history[-20:]
            return {
                "running": self._running,
                "total_jobs": len(self._jobs),
                "enabled_jobs": sum(1 for j in self._jobs.values() if j.enabled),
                "jobs": [job.to_dict() for job in self._jobs.values()],
                "history_size": len(self._history),
                "recent_failures": sum(1 for r in recent if not r.success),
                "max_workers": self._max_workers,
            }

    def get_history(self, job_id: str | None = None, limit: int = 100) -> list[JobResult]:
        with self._job_lock:
            results = list(self._history)
        if job_id:
            results = [r for r in results if r.job_id == job_id]
        return sorted(results, key=lambda r: r.started_at, reverse=True)[: int(limit)]

    def health_check(self) -> dict[str, Any]:
        """
        Summarize scheduler health.

        ``health`` is one of healthy, degraded or unhealthy; interval jobs
        that have not run for three of their periods count as stale.
        """
        with self._job_lock:
            now = self._clock()
            recent = self._history[-50:]
            failures = [r for r in recent if not r.success]
            failure_rate = len(failures) / len(recent) if recent else 0.0

            stale_jobs = []
            for job in self._jobs.values():
                if not job.enabled or job.schedule_type != ScheduleType.INTERVAL or not job.last_run:
                    continue
                expected = timedelta(seconds=max(job.interval_seconds or 60, 1))
                if now - job.last_run > expected * 3:
                    stale_jobs.append(job.job_id)

        if not self._running:
            health, reason = "unhealthy", "Scheduler is not running"
        elif failure_rate > 0.5:
            health, reason = "unhealthy", f"High failure rate: {failure_rate:.0%}"
        elif stale_jobs:
            health, reason = "degraded", f"{len(stale_jobs)} stale job(s) detected"
        else:
            health, reason = "healthy", "All jobs on schedule"

        return {
            "health": health,
            "reason": reason,
            "timestamp": now.isoformat(),
            "scheduler_running": self._running,
            "failure_rate": round(failure_rate, 3),
            "stale_jobs": stale_jobs,
        }
