"""
Blueprint Common Utilities
==========================

Shared helper functions for all API blueprints.
Import these instead of duplicating helper code in each blueprint.

Usage:
    from app.blueprints.api._common import (
        get_container, get_json, success, fail,
        get_scheduling_service, get_duty_cycle, ...
    )
"""
from __future__ import annotations

import logging
from typing import Any

from flask import current_app, request

from app.domain.exceptions import ValidationError
from app.utils.http import error_response, success_response

logger = logging.getLogger("api._common")

# ============================================================================
# CONTAINER ACCESS
# ============================================================================


def get_container():
    """
    Get the service container from Flask app config.

    Raises:
        RuntimeError: If container is not configured
    """
    container = current_app.config.get("CONTAINER")
    if not container:
        raise RuntimeError("ServiceContainer not found in app config")
    return container


def get_scheduling_service():
    return get_container().scheduling_service


def get_coordinator():
    return get_container().coordinator


def get_duty_cycle():
    return get_container().duty_cycle


# ============================================================================
# REQUEST HELPERS
# ============================================================================


def get_json() -> dict:
    """
    Get JSON request body with silent failure.

    Returns:
        dict: Parsed JSON body or empty dict if not available
    """
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def get_actor() -> str:
    """Name recorded in the audit log for the caller (X-Actor header)."""
    return (request.headers.get("X-Actor") or "api").strip()[:64] or "api"


def int_arg(name: str, default: int | None = None) -> int | None:
    """Read an integer query parameter."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"'{name}' must be an integer", detail={name: raw}) from None


# ============================================================================
# RESPONSE HELPERS
# ============================================================================


def success(data: Any = None, status: int = 200, *, message: str | None = None):
    """
    Standard success response wrapper.

    Returns:
        Flask Response with format: {"ok": true, "data": ..., "error": null}
    """
    return success_response(data, status, message=message)


def fail(message: str, status: int = 400, *, details: dict | None = None):
    """
    Standard error response wrapper.

    Returns:
        Flask Response with format: {"ok": false, "data": null, "error": {...}}
    """
    return error_response(message, status, details=details)
