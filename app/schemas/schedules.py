"""
Schedule Schemas
================

Pydantic models for calendar, schedule-list, override and interval-mode
requests. Field checks here only catch malformed payloads; the domain
layer owns the remaining rules (real calendar dates, known devices).
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.enums.schedules import ScheduleAction

HHMM_PATTERN = r"^\d{1,2}:\d{2}$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class ScheduleEntrySchema(BaseModel):
    """One time/action pair in a device's list"""

    time: str = Field(..., pattern=HHMM_PATTERN, description="Wall-clock time HH:MM")
    action: ScheduleAction = Field(..., description="'on' or 'off'")

    model_config = ConfigDict(json_schema_extra={"example": {"time": "09:00", "action": "on"}})


class DeviceScheduleRequest(BaseModel):
    """Full replacement of one device's list for one situation"""

    entries: List[ScheduleEntrySchema] = Field(default_factory=list, description="Empty list clears it")


class BulkDeviceSchedulesRequest(BaseModel):
    """device_id -> situation -> entries"""

    schedules: Dict[str, Dict[str, List[ScheduleEntrySchema]]] = Field(...)


class CalendarAssignmentSchema(BaseModel):
    date: str = Field(..., pattern=DATE_PATTERN, description="YYYY-MM-DD")
    situation: str = Field(..., min_length=1, max_length=50)


class SetSituationRequest(BaseModel):
    situation: str = Field(..., min_length=1, max_length=50, description="work, rest or a custom routine")


class BulkCalendarRequest(BaseModel):
    assignments: List[CalendarAssignmentSchema] = Field(..., min_length=1)


class DefaultSituationRequest(BaseModel):
    situation: str = Field(..., min_length=1, max_length=50, description="Situation for unassigned days, or 'none'")


class OverrideRequest(BaseModel):
    duration_minutes: Optional[int] = Field(default=None, ge=1, le=1440, description="Defaults to the configured value")


class IntervalStartRequest(BaseModel):
    """Duty-cycle durations in whole minutes"""

    on_duration: Optional[int] = Field(default=None, ge=1, le=720)
    interval_duration: Optional[int] = Field(default=None, ge=1, le=720)

    model_config = ConfigDict(json_schema_extra={"example": {"on_duration": 3, "interval_duration": 20}})


class DevicePowerRequest(BaseModel):
    on: bool = Field(..., description="Target power state")
    override_minutes: Optional[int] = Field(default=None, ge=1, le=1440)
