"""
Configuration for the plugsched home scheduler
==============================================
Runtime settings loaded from environment variables, plus the logging setup
shared by the web server and the scheduler CLI.
"""

import os
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("PLUGSCHED_ENV", "development"))
    secret_key: str = field(default_factory=lambda: os.getenv("PLUGSCHED_SECRET_KEY", "PlugSchedDevSecretKey"))
    database_path: str = field(default_factory=lambda: os.getenv("PLUGSCHED_DATABASE_PATH", "database/plugsched.db"))

    # Every trigger source (cron, CLI, in-process workers) evaluates schedules
    # in this zone, never in the ambient server local time.
    timezone: str = field(default_factory=lambda: os.getenv("PLUGSCHED_TIMEZONE", "Asia/Singapore"))

    # Tuya cloud credentials
    tuya_base_url: str = field(
        default_factory=lambda: os.getenv("PLUGSCHED_TUYA_BASE_URL", "https://openapi-sg.iotbing.com")
    )
    tuya_access_id: str = field(default_factory=lambda: os.getenv("PLUGSCHED_TUYA_ACCESS_ID", ""))
    tuya_access_secret: str = field(default_factory=lambda: os.getenv("PLUGSCHED_TUYA_ACCESS_SECRET", ""))
    tuya_timeout_seconds: int = field(default_factory=lambda: _env_int("PLUGSCHED_TUYA_TIMEOUT", 5))

    # Device registry (JSON file); built-in household devices when unset
    devices_file: str = field(default_factory=lambda: os.getenv("PLUGSCHED_DEVICES_FILE", ""))
    interval_device_id: str = field(
        default_factory=lambda: os.getenv("PLUGSCHED_INTERVAL_DEVICE_ID", "a3cf493448182afaa9rlgw")
    )

    # Shared secret for external cron triggers (header X-Cron-Token)
    cron_secret: str = field(default_factory=lambda: os.getenv("PLUGSCHED_CRON_SECRET", ""))

    # Scheduler timings
    enable_scheduler: bool = field(default_factory=lambda: _env_bool("PLUGSCHED_ENABLE_SCHEDULER", True))
    schedule_check_interval_seconds: int = field(
        default_factory=lambda: _env_int("PLUGSCHED_SCHEDULE_CHECK_INTERVAL", 60)
    )
    interval_tick_seconds: int = field(default_factory=lambda: _env_int("PLUGSCHED_INTERVAL_TICK", 1))
    heartbeat_interval_seconds: int = field(default_factory=lambda: _env_int("PLUGSCHED_HEARTBEAT_INTERVAL", 15))
    heartbeat_stale_seconds: int = field(default_factory=lambda: _env_int("PLUGSCHED_HEARTBEAT_STALE", 120))
    command_debounce_seconds: int = field(default_factory=lambda: _env_int("PLUGSCHED_COMMAND_DEBOUNCE", 3))
    execution_retention_days: int = field(
        default_factory=lambda: _env_int("PLUGSCHED_EXECUTION_RETENTION_DAYS", 30)
    )

    # Defaults applied when the caller leaves a value out
    default_override_minutes: int = field(default_factory=lambda: _env_int("PLUGSCHED_OVERRIDE_MINUTES", 60))
    default_on_duration: int = field(default_factory=lambda: _env_int("PLUGSCHED_DEFAULT_ON_MINUTES", 3))
    default_interval_duration: int = field(
        default_factory=lambda: _env_int("PLUGSCHED_DEFAULT_OFF_MINUTES", 20)
    )

    DEBUG: bool = field(default_factory=lambda: _env_bool("PLUGSCHED_DEBUG", False))
    audit_log_path: str = field(default_factory=lambda: os.getenv("PLUGSCHED_AUDIT_LOG_PATH", "logs/audit.log"))
    log_level: str = field(default_factory=lambda: os.getenv("PLUGSCHED_LOG_LEVEL", "INFO"))

    # Default insecure secret key - used only for detection
    _DEFAULT_SECRET_KEY: str = field(default="PlugSchedDevSecretKey", init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.environment == "production" and self.secret_key == self._DEFAULT_SECRET_KEY:
            raise RuntimeError(
                "SECURITY ERROR: Cannot use default secret key in production!\n"
                "Set PLUGSCHED_SECRET_KEY environment variable to a secure random value.\n"
                'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
            )

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def tuya_configured(self) -> bool:
        return bool(self.tuya_access_id and self.tuya_access_secret)

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        return {
            "ENV": self.environment,
            "SECRET_KEY": self.secret_key,
            "DATABASE_PATH": self.database_path,
            "AUDIT_LOG_PATH": self.audit_log_path,
            "DEBUG": self.DEBUG,
            "TIMEZONE": self.timezone,
        }


def validate_config(config: AppConfig) -> list[str]:
    """
    Validate configuration and return list of warnings.

    Raises:
        ValueError: when a value would make scheduling impossible
    """
    warnings = []

    try:
        ZoneInfo(config.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone '{config.timezone}' (PLUGSCHED_TIMEZONE)") from None

    if config.schedule_check_interval_seconds > 60:
        warnings.append(
            "schedule_check_interval_seconds is above 60; scheduled actions can be missed "
            "because entries only fire inside their own minute"
        )
    if config.heartbeat_stale_seconds <= config.heartbeat_interval_seconds:
        warnings.append("heartbeat_stale_seconds should be larger than heartbeat_interval_seconds")
    if config.default_on_duration < 1 or config.default_interval_duration < 1:
        raise ValueError("Interval mode defaults must be at least one minute")
    if not config.tuya_configured:
        warnings.append("Tuya credentials are not set; device commands will fail")

    return warnings


def setup_logging(debug: bool = False) -> None:
    """Setup logging configuration."""
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    log_level = logging.DEBUG if debug else logging.INFO

    root = logging.getLogger()
    root.setLevel(log_level)

    # Avoid adding duplicates when create_app is called multiple times
    has_console = any(getattr(h, "name", "") == "plugsched_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "plugsched_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "plugsched_console"
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if not has_file:
        os.makedirs("logs", exist_ok=True)
        file_handler = RotatingFileHandler(
            "logs/plugsched.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "plugsched_file"
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"plugsched_console", "plugsched_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(log_level))

    if _env_bool("PLUGSCHED_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)

    # One request per device command; the per-second interval tick makes these noisy
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    import logging

    logger = logging.getLogger("config_loader")
    config = AppConfig()
    for warning in validate_config(config):
        logger.warning("Configuration: %s", warning)
    return config
