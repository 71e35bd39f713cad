"""
Scheduler Trigger Endpoint
==========================

``/api/scheduler/check`` lets an external cron (or any HTTP client) run one
schedule check. It is safe to call as often as desired; entries fire at
most once per day.
"""

from __future__ import annotations

import hmac
import logging

from flask import Blueprint, request

from app.blueprints.api._common import get_container, get_coordinator, success
from app.domain.exceptions import UnauthorizedError, ValidationError
from app.enums.schedules import TriggerSource
from app.utils.http import error_response, safe_route

logger = logging.getLogger("scheduler_api")

scheduler_api = Blueprint("scheduler_api", __name__)

CRON_TOKEN_HEADER = "X-Cron-Token"


@scheduler_api.errorhandler(404)
def not_found(error):
    return error_response("Resource not found", 404)


def _require_cron_token() -> None:
    secret = get_container().config.cron_secret
    if not secret:
        return
    supplied = request.headers.get(CRON_TOKEN_HEADER, "")
    if not hmac.compare_digest(supplied.encode("utf-8"), secret.encode("utf-8")):
        logger.warning("Rejected schedule check from %s: bad cron token", request.remote_addr)
        raise UnauthorizedError("Missing or invalid cron token")


def _trigger_source() -> TriggerSource:
    raw = request.args.get("source")
    if raw is None:
        return TriggerSource.CRON if request.headers.get(CRON_TOKEN_HEADER) else TriggerSource.API
    try:
        return TriggerSource(raw)
    except ValueError:
        raise ValidationError(f"unknown source '{raw}'", detail={"source": raw}) from None


@scheduler_api.route("/check", methods=["GET", "POST"])
@safe_route("Schedule check failed")
def run_check():
    """
    Run one schedule check.

    Headers:
        X-Cron-Token: required when PLUGSCHED_CRON_SECRET is set

    Query params:
        source: trigger source recorded in the execution log (optional)

    Returns:
        ScheduleCheckResult as JSON. Device failures are reported inside
        ``errors``; the request itself still succeeds.
    """
    _require_cron_token()
    result = get_coordinator().run_schedule_check(source=_trigger_source())
    return success(result.to_dict(), message=result.message)


@scheduler_api.get("/jobs")
@safe_route("Failed to load scheduler status")
def jobs():
    """In-process background jobs and their last results."""
    return success(get_container().scheduler.get_status())
