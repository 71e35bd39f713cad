"""
Schemas Module
==============

Pydantic models for request validation.
"""

from app.schemas.schedules import (
    BulkCalendarRequest,
    BulkDeviceSchedulesRequest,
    CalendarAssignmentSchema,
    DefaultSituationRequest,
    DevicePowerRequest,
    DeviceScheduleRequest,
    IntervalStartRequest,
    OverrideRequest,
    ScheduleEntrySchema,
    SetSituationRequest,
)

__all__ = [
    "BulkCalendarRequest",
    "BulkDeviceSchedulesRequest",
    "CalendarAssignmentSchema",
    "DefaultSituationRequest",
    "DevicePowerRequest",
    "DeviceScheduleRequest",
    "IntervalStartRequest",
    "OverrideRequest",
    "ScheduleEntrySchema",
    "SetSituationRequest",
]
