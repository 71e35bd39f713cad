from __future__ import annotations

import atexit
import contextlib
import logging
import signal
import threading
from typing import Any

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from app.blueprints.api.devices import devices_api
from app.blueprints.api.health import health_api
from app.blueprints.api.interval import interval_api
from app.blueprints.api.scheduler import scheduler_api
from app.blueprints.api.schedules import schedules_api
from app.config import load_config, setup_logging


def create_app(
    config_overrides: dict[str, Any] | None = None,
    *,
    bootstrap_runtime: bool = True,
    controller=None,
) -> Flask:
    """
    Build the Flask application.

    Args:
        config_overrides: AppConfig field values to replace (keys are
            case-insensitive)
        bootstrap_runtime: start the in-process scheduler (schedule checks,
            interval ticker) when enabled in the config
        controller: device controller replacing the Tuya cloud controller
    """
    config = load_config()
    if config_overrides:
        for key, value in config_overrides.items():
            setattr(config, key.lower(), value)

    setup_logging(debug=config.DEBUG)

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())
    flask_app.config["JSON_SORT_KEYS"] = False
    flask_app.config["MAX_CONTENT_LENGTH"] = 1024 * 1024

    from app.services.container import ServiceContainer

    container = ServiceContainer.build(config, controller=controller)
    flask_app.config["CONTAINER"] = container
    flask_app.teardown_appcontext(container.database.close_db)

    # ── Graceful shutdown handlers ──────────────────────────────────
    _shutdown_lock = threading.Lock()
    _shutdown_done = False

    def _graceful_shutdown(reason: str = "unknown") -> None:
        nonlocal _shutdown_done
        with _shutdown_lock:
            if _shutdown_done:
                return
            _shutdown_done = True
        logging.info("Graceful shutdown initiated (%s)", reason)
        try:
            container.shutdown()
        except Exception as exc:
            logging.warning("Error during graceful shutdown: %s", exc)

    def _signal_handler(signum: int, _frame: object) -> None:
        logging.info("Received %s, shutting down", signal.Signals(signum).name)
        _graceful_shutdown(signal.Signals(signum).name)
        raise SystemExit(0)

    if bootstrap_runtime:
        atexit.register(_graceful_shutdown, "atexit")
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(OSError, ValueError):
                signal.signal(sig, _signal_handler)

    # Global JSON error handler for anything a route did not map itself
    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        from app.domain.exceptions import PlugSchedError
        from app.utils.http import error_response, safe_error

        if isinstance(exc, HTTPException):
            status = int(exc.code or 500)
            if status >= 500:
                return safe_error(exc, status, context="http-exception")
            return error_response(exc.description or "Request failed", status)

        if isinstance(exc, PlugSchedError):
            status = exc.http_status
            if status >= 500:
                return safe_error(exc, status, context=type(exc).__name__)
            return error_response(str(exc) or "Request failed", status)

        return safe_error(exc, 500, context=f"unhandled {request.method} {request.path}")

    flask_app.register_blueprint(scheduler_api, url_prefix="/api/scheduler")
    flask_app.register_blueprint(schedules_api, url_prefix="/api/schedules")
    flask_app.register_blueprint(interval_api, url_prefix="/api/interval")
    flask_app.register_blueprint(devices_api, url_prefix="/api/devices")
    flask_app.register_blueprint(health_api)

    for bp_name in flask_app.blueprints:
        logging.debug("Registered blueprint: %s", bp_name)

    if bootstrap_runtime and config.enable_scheduler:
        container.start_scheduler()
    else:
        logging.info("In-process scheduler not started (bootstrap_runtime=%s)", bootstrap_runtime)

    logging.getLogger(__name__).info("plugsched application initialized (timezone %s)", config.timezone)
    return flask_app


__all__ = ["create_app"]
