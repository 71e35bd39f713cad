"""
Hardware Service Layer
======================
Services that issue device commands outside of a schedule check.

Services:
- DutyCycleEngine: interval mode for the aircon (start/stop/tick/cron fallback)
- SchedulingService: calendar, schedule lists, overrides and manual power
"""

from app.services.hardware.interval_service import DutyCycleEngine, PhaseApplication
from app.services.hardware.scheduling_service import SchedulingService

__all__ = [
    "DutyCycleEngine",
    "PhaseApplication",
    "SchedulingService",
]
