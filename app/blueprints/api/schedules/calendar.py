"""
Calendar Endpoints
==================

Which situation (work, rest or a custom routine) applies to each day.
"""

from __future__ import annotations

import logging

from flask import request

from app.blueprints.api._common import get_json, get_scheduling_service, success
from app.schemas.schedules import BulkCalendarRequest, DefaultSituationRequest, SetSituationRequest
from app.utils.http import safe_route

from . import schedules_api

logger = logging.getLogger("schedules_api.calendar")


@schedules_api.get("/calendar")
@safe_route("Failed to load calendar")
def get_calendar():
    """
    List day assignments.

    Query params:
        start: first day (YYYY-MM-DD, optional)
        end: last day, inclusive (optional)
    """
    service = get_scheduling_service()
    assignments = service.get_calendar(request.args.get("start"), request.args.get("end"))
    return success({"assignments": assignments, "default_situation": service.get_default_situation()})


@schedules_api.put("/calendar")
@safe_route("Failed to update calendar")
def set_calendar_bulk():
    payload = BulkCalendarRequest(**get_json())
    count = get_scheduling_service().set_situations([a.model_dump() for a in payload.assignments])
    logger.info("Assigned situations to %d day(s)", count)
    return success({"updated": count})


@schedules_api.put("/calendar/<date>")
@safe_route("Failed to update calendar")
def set_situation(date: str):
    payload = SetSituationRequest(**get_json())
    assignment = get_scheduling_service().set_situation(date, payload.situation)
    return success(assignment.to_dict())


@schedules_api.delete("/calendar/<date>")
@safe_route("Failed to clear calendar day")
def clear_situation(date: str):
    removed = get_scheduling_service().clear_situation(date)
    return success({"date": date, "removed": removed})


@schedules_api.get("/default-situation")
@safe_route("Failed to load default situation")
def get_default_situation():
    return success({"situation": get_scheduling_service().get_default_situation()})


@schedules_api.put("/default-situation")
@safe_route("Failed to update default situation")
def set_default_situation():
    payload = DefaultSituationRequest(**get_json())
    return success({"situation": get_scheduling_service().set_default_situation(payload.situation)})
