"""
Interval Mode API
=================

Start/stop the aircon duty cycle and report its countdown.

Routes:
- GET  /api/interval
- POST /api/interval/start
- POST /api/interval/stop
- POST /api/interval/heartbeat
"""

from __future__ import annotations

import logging

from flask import Blueprint

from app.blueprints.api._common import get_actor, get_duty_cycle, get_json, success
from app.schemas.schedules import IntervalStartRequest
from app.utils.http import error_response, safe_route

logger = logging.getLogger("interval_api")

interval_api = Blueprint("interval_api", __name__)


@interval_api.errorhandler(404)
def not_found(error):
    return error_response("Resource not found", 404)


@interval_api.get("")
@safe_route("Failed to load interval mode status")
def get_status():
    """Configuration, current phase with remaining seconds and heartbeat age."""
    return success(get_duty_cycle().status())


@interval_api.post("/start")
@safe_route("Failed to start interval mode")
def start():
    payload = IntervalStartRequest(**get_json())
    status = get_duty_cycle().start(payload.on_duration, payload.interval_duration, actor=get_actor())
    return success(status, message="Interval mode started")


@interval_api.post("/stop")
@safe_route("Failed to stop interval mode")
def stop():
    return success(get_duty_cycle().stop(actor=get_actor()), message="Interval mode stopped")


@interval_api.post("/heartbeat")
@safe_route("Failed to record heartbeat")
def heartbeat():
    """
    Liveness ping from an external foreground driver (e.g. an open dashboard
    running its own countdown). Keeps the cron fallback standing down.
    """
    engine = get_duty_cycle()
    engine.record_heartbeat()
    return success({"heartbeat_age_seconds": engine.heartbeat_age()})
