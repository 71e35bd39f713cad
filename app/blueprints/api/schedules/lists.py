"""
Device Schedule Lists
=====================

Each device has one time/action list per situation. Writes replace the
whole list.
"""

from __future__ import annotations

import logging

from app.blueprints.api._common import get_json, get_scheduling_service, success
from app.schemas.schedules import BulkDeviceSchedulesRequest, DeviceScheduleRequest
from app.utils.http import safe_route

from . import schedules_api

logger = logging.getLogger("schedules_api.lists")


@schedules_api.get("/devices")
@safe_route("Failed to load device schedules")
def get_device_schedules():
    return success(get_scheduling_service().get_device_schedules())


@schedules_api.put("/devices")
@safe_route("Failed to replace device schedules")
def replace_all_device_schedules():
    payload = BulkDeviceSchedulesRequest(**get_json())
    schedules = {
        device_id: {
            situation: [entry.model_dump(mode="json") for entry in entries]
            for situation, entries in lists.items()
        }
        for device_id, lists in payload.schedules.items()
    }
    count = get_scheduling_service().replace_all_device_schedules(schedules)
    return success({"devices_updated": count})


@schedules_api.put("/devices/<device_id>/<situation>")
@safe_route("Failed to replace device schedule")
def replace_device_schedule(device_id: str, situation: str):
    payload = DeviceScheduleRequest(**get_json())
    entries = get_scheduling_service().replace_device_schedule(
        device_id, situation, [entry.model_dump(mode="json") for entry in payload.entries]
    )
    logger.info("Replaced %s/%s schedule with %d entries", device_id, situation, len(entries))
    return success({"device_id": device_id, "situation": situation, "entries": entries})
