from app.services.application.schedule_coordinator import (
    ExecutedAction,
    ExecutionCoordinator,
    ScheduleCheckResult,
    resolve_situation,
)

__all__ = ["ExecutedAction", "ExecutionCoordinator", "ScheduleCheckResult", "resolve_situation"]
