"""
Devices API
===========

Registry listing, live status and manual power control.
"""

from flask import Blueprint

from app.utils.http import error_response

devices_api = Blueprint("devices_api", __name__)


@devices_api.errorhandler(404)
def not_found(error):
    """Handle 404 errors"""
    return error_response("Resource not found", 404)


from . import control

__all__ = ["devices_api"]
