"""
System Health Endpoints
=======================
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response

from app.blueprints.api._common import get_container as _container, success as _success
from app.domain.exceptions import StoreUnavailable
from app.utils.http import safe_route
from app.utils.time import iso_now

logger = logging.getLogger("health_api")


def register_system_routes(health_api: Blueprint):
    """Register system health routes on the blueprint."""

    @health_api.get("/ping")
    @safe_route("Failed to handle ping request")
    def ping() -> Response:
        """Basic liveness check for monitoring tools."""
        return _success({"status": "ok", "timestamp": iso_now()})

    @health_api.get("")
    @safe_route("Failed to get system health")
    def get_system_health() -> Response:
        """
        Overall health.

        Returns:
            {
                "status": "healthy|degraded|unhealthy",
                "store": {"ok": bool},
                "scheduler": {...},
                "interval": {...},
                "tuya_configured": bool,
                "timestamp": "..."
            }
        """
        container = _container()

        store_ok = True
        try:
            container.store.get_setting("default_situation")
        except StoreUnavailable as e:
            logger.error("Health check could not read the store: %s", e)
            store_ok = False

        scheduler = container.scheduler.health_check()
        interval = None
        if store_ok:
            interval = container.duty_cycle.status()

        if not store_ok:
            status = "unhealthy"
        elif container.config.enable_scheduler and scheduler["health"] != "healthy":
            status = "degraded"
        else:
            status = "healthy"

        return _success(
            {
                "status": status,
                "store": {"ok": store_ok},
                "scheduler": scheduler,
                "interval": interval,
                "timezone": container.config.timezone,
                "tuya_configured": container.config.tuya_configured,
                "timestamp": iso_now(),
            }
        )
