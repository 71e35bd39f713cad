"""
Schedules API Module
====================

Calendar, per-device schedule lists, overrides and execution history:
- calendar.py: situation per day and the default situation
- lists.py: per-device, per-situation time/action lists
- overrides.py: manual override markers
- overview.py: today's summary and the execution log
"""

from flask import Blueprint

from app.utils.http import error_response

# Create blueprint here to avoid circular imports
schedules_api = Blueprint("schedules_api", __name__)


@schedules_api.errorhandler(404)
def not_found(error):
    """Handle 404 errors"""
    return error_response("Resource not found", 404)


@schedules_api.errorhandler(405)
def method_not_allowed(error):
    return error_response("Method not allowed", 405)


# Import submodules to register routes (must be after blueprint creation)
from . import calendar, lists, overrides, overview

__all__ = ["schedules_api"]
