"""
Enums Module
============

This module provides enumeration types for the plugsched application.
Enums ensure type safety and consistency across the codebase.
"""

from app.enums.device import ControlCode, DeviceKind
from app.enums.schedules import CheckOutcome, DutyState, ScheduleAction, Situation, TriggerSource

__all__ = [
    "CheckOutcome",
    "ControlCode",
    "DeviceKind",
    "DutyState",
    "ScheduleAction",
    "Situation",
    "TriggerSource",
]
