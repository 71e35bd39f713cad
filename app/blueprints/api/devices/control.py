from __future__ import annotations

import logging

from app.blueprints.api._common import get_actor, get_json, get_scheduling_service, success
from app.schemas.schedules import DevicePowerRequest
from app.utils.http import safe_route

from . import devices_api

logger = logging.getLogger("devices_api.control")


@devices_api.get("")
@safe_route("Failed to list devices")
def list_devices():
    return success({"devices": get_scheduling_service().list_devices()})


@devices_api.get("/<device_id>/status")
@safe_route("Failed to read device status")
def device_status(device_id: str):
    """Live state from the vendor cloud; ``on`` is null for IR devices."""
    return success(get_scheduling_service().get_device_status(device_id))


@devices_api.post("/<device_id>/power")
@safe_route("Failed to switch device")
def set_power(device_id: str):
    """
    Switch a device by hand.

    Body:
        {"on": true, "override_minutes": 60}

    Sets a manual override on success; the override is informational only.
    """
    payload = DevicePowerRequest(**get_json())
    result = get_scheduling_service().set_device_power(
        device_id,
        payload.on,
        override_minutes=payload.override_minutes,
        actor=get_actor(),
    )
    logger.info("Manual %s for %s", result["state"], device_id)
    return success(result)
