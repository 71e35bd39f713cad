"""Centralized exception hierarchy for plugsched.

All domain and service exceptions inherit from :class:`PlugSchedError` so that
callers can catch a single base class when they need a broad safety net, yet
still match on specific subclasses where narrower handling is appropriate.

Blueprint-level error handling (see ``app/utils/http.safe_route``) maps these
to the correct HTTP status codes automatically.

Hierarchy
---------
::

    PlugSchedError (base, maps to 500)
    ├── ValidationError            (400, bad input from caller)
    │   └── MisconfiguredSchedule  (400, unparsable schedule entry)
    ├── UnauthorizedError          (401, missing / wrong cron token)
    ├── NotFoundError              (404, entity does not exist)
    ├── ConflictError              (409, state conflict)
    ├── ServiceError               (500, business-logic failure)
    │   └── RepositoryError        (500, persistence)
    │       └── StoreUnavailable   (500, schedule store read/write failed)
    ├── DeviceError                (503, device communication)
    │   └── DeviceCommandFailed    (503, one device command did not execute)
    │       ├── DeviceUnreachable  (503, network / vendor outage)
    │       ├── AuthFailure        (502, vendor token could not be obtained)
    │       └── CommandRejected    (502, vendor refused the command)
    └── ConfigurationError         (500, missing / invalid config)
"""

from __future__ import annotations


class PlugSchedError(Exception):
    """Base exception for all plugsched application errors.

    Parameters
    ----------
    message:
        Human-readable description (logged server-side and returned to the
        HTTP client for 4xx errors).
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "detail": self.detail,
        }


# ── Client errors (4xx) ──────────────────────────────────────────────


class ValidationError(PlugSchedError):
    """Caller supplied invalid or incomplete input (HTTP 400)."""

    http_status: int = 400


class MisconfiguredSchedule(ValidationError):
    """A schedule entry has an unparsable time or an unknown action."""


class UnauthorizedError(PlugSchedError):
    """Request lacks the credentials an endpoint requires (HTTP 401)."""

    http_status: int = 401


class NotFoundError(PlugSchedError):
    """Requested entity does not exist (HTTP 404)."""

    http_status: int = 404


class ConflictError(PlugSchedError):
    """Operation conflicts with existing state (HTTP 409)."""

    http_status: int = 409


# ── Server errors (5xx) ──────────────────────────────────────────────


class ServiceError(PlugSchedError):
    """Business-logic failure in a service method (HTTP 500)."""

    http_status: int = 500


class RepositoryError(ServiceError):
    """Database / persistence layer failure (HTTP 500)."""

    http_status: int = 500


class StoreUnavailable(RepositoryError):
    """The schedule store could not be read or written.

    A schedule check that hits this aborts as a whole; nothing is assumed
    to have been mutated.
    """


class DeviceError(PlugSchedError):
    """Device communication or vendor-protocol failure (HTTP 503)."""

    http_status: int = 503


class DeviceCommandFailed(DeviceError):
    """A single device command did not execute.

    ``device_id`` is kept on the instance so the coordinator can attribute
    the failure without parsing the message.
    """

    def __init__(self, message: str = "", *, device_id: str | None = None, detail: dict | None = None) -> None:
        super().__init__(message, detail=detail)
        self.device_id = device_id
        if device_id is not None:
            self.detail.setdefault("device_id", device_id)


class DeviceUnreachable(DeviceCommandFailed):
    """Network error, timeout or vendor outage."""


class AuthFailure(DeviceCommandFailed):
    """The vendor API refused to issue an access token."""

    http_status: int = 502


class CommandRejected(DeviceCommandFailed):
    """The vendor API answered but reported the command as unsuccessful."""

    http_status: int = 502


class ConfigurationError(PlugSchedError):
    """Missing or invalid application configuration (HTTP 500)."""

    http_status: int = 500
