"""
Service Organization
====================
Services are organized by what they drive:

**application/**
  Orchestration shared by every trigger source (cron, CLI, in-process
  workers, HTTP). Stateless between calls.
  Examples: ExecutionCoordinator

**hardware/**
  Services that command devices on a person's behalf or on a timer.
  Examples: DutyCycleEngine, SchedulingService

``container.ServiceContainer`` wires them together for the web server and
the CLI.
"""

from .application.schedule_coordinator import ExecutionCoordinator, ScheduleCheckResult
from .hardware.interval_service import DutyCycleEngine, PhaseApplication
from .hardware.scheduling_service import SchedulingService

__all__ = [
    "DutyCycleEngine",
    "ExecutionCoordinator",
    "PhaseApplication",
    "ScheduleCheckResult",
    "SchedulingService",
]
