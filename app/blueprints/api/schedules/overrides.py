"""
Manual Override Endpoints
=========================

Overrides record that a device was switched by hand. They are shown to the
user but never stop a scheduled action from firing.
"""

from __future__ import annotations

from app.blueprints.api._common import get_actor, get_json, get_scheduling_service, success
from app.schemas.schedules import OverrideRequest
from app.utils.http import safe_route
from app.utils.time import utc_now

from . import schedules_api


@schedules_api.get("/overrides")
@safe_route("Failed to load overrides")
def list_overrides():
    return success({"overrides": get_scheduling_service().list_overrides()})


@schedules_api.post("/overrides/<device_id>")
@safe_route("Failed to set override")
def set_override(device_id: str):
    payload = OverrideRequest(**get_json())
    override = get_scheduling_service().set_override(device_id, payload.duration_minutes)
    return success(override.to_dict(utc_now()), 201)


@schedules_api.delete("/overrides/<device_id>")
@safe_route("Failed to clear override")
def clear_override(device_id: str):
    removed = get_scheduling_service().clear_override(device_id)
    return success({"device_id": device_id, "removed": removed})


@schedules_api.delete("/overrides")
@safe_route("Failed to clear overrides")
def clear_all_overrides():
    count = get_scheduling_service().clear_all_overrides(actor=get_actor())
    return success({"cleared": count})
