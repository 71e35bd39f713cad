from __future__ import annotations

from flask import request

from app.blueprints.api._common import get_scheduling_service, int_arg, success
from app.utils.http import safe_route

from . import schedules_api


@schedules_api.get("/today")
@safe_route("Failed to load today's schedule")
def today():
    """Situation, entry each device is following, and the next action."""
    return success(get_scheduling_service().today_info())


@schedules_api.get("/executions")
@safe_route("Failed to load execution history")
def executions():
    """
    Most recent command attempts first.

    Query params:
        limit: 1-500 (default 50)
        device_id: restrict to one device (optional)
    """
    limit = int_arg("limit", 50)
    device_id = request.args.get("device_id") or None
    return success({"executions": get_scheduling_service().recent_executions(limit, device_id)})
