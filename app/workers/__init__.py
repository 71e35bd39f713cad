"""
Workers module for background services and scheduled tasks.

This module contains:
- unified_scheduler: heap-based scheduler running the in-process jobs
- scheduled_tasks: task definitions (schedule.*, interval.*, maintenance.*)
- scheduler_cli: command-line entry point for cron and operators
"""

__all__ = [
    "UnifiedScheduler",
    "configure_scheduler",
    "register_all_tasks",
    "schedule_default_jobs",
]

from app.workers.unified_scheduler import UnifiedScheduler
from app.workers.scheduled_tasks import configure_scheduler, register_all_tasks, schedule_default_jobs
