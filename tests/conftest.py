"""
Shared test fixtures for the plugsched test suite.

Provides:
- In-memory SQLite database with all tables created
- SQLiteScheduleStore wired to the test database
- A mock DeviceController standing in for the Tuya cloud
- Service factories (duty-cycle engine, coordinator, scheduling service)
- Flask app and test client backed by a temporary database file

Usage:
    def test_example(store, coordinator, sg_time):
        store.upsert_calendar_assignment("2025-03-10", "work")
        result = coordinator.run_schedule_check(sg_time(2025, 3, 10, 9, 0))
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from app.domain.devices import DeviceRegistry, DeviceStatus
from app.services.application.schedule_coordinator import ExecutionCoordinator
from app.services.hardware.interval_service import DutyCycleEngine
from app.services.hardware.scheduling_service import SchedulingService
from infrastructure.database.repositories.schedules import SQLiteScheduleStore
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

# ---------------------------------------------------------------------------
# Logging, keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("infrastructure").setLevel(logging.WARNING)
logging.getLogger("app").setLevel(logging.WARNING)

SCHEDULING_TZ = ZoneInfo("Asia/Singapore")
AIRCON_ID = "a3cf493448182afaa9rlgw"


# ========================== Time helpers ===================================


@pytest.fixture()
def sg_time():
    """Build aware datetimes in the scheduling timezone."""

    def _make(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
        return datetime(year, month, day, hour, minute, second, tzinfo=SCHEDULING_TZ)

    return _make


# ========================== Database Fixtures ==============================


@pytest.fixture()
def db_handler():
    """In-memory SQLite database with all tables created.

    Each test gets a fresh database, no cross-test contamination.
    """
    handler = SQLiteDatabaseHandler(":memory:")
    handler.create_tables()
    yield handler
    handler.close_db()


@pytest.fixture()
def db_connection(db_handler):
    """Raw sqlite3 connection for direct SQL in tests."""
    with db_handler.connection() as conn:
        yield conn


@pytest.fixture()
def store(db_handler):
    """SQLiteScheduleStore backed by the in-memory DB."""
    return SQLiteScheduleStore(db_handler)


# ========================== Device Fixtures ================================


@pytest.fixture()
def registry():
    """The built-in household devices (Lights, Laptop, USB Hub, Aircon)."""
    return DeviceRegistry()


@pytest.fixture()
def fake_controller():
    """Mock DeviceController; every plug reports OFF until a test says otherwise."""
    controller = MagicMock()
    controller.get_status.side_effect = lambda device_id: DeviceStatus(device_id, on=False, online=True)
    return controller


# ========================== Service Fixtures ===============================


@pytest.fixture()
def audit_logger():
    return MagicMock()


@pytest.fixture()
def duty_cycle(store, fake_controller, registry, audit_logger):
    return DutyCycleEngine(store, fake_controller, registry, AIRCON_ID, audit_logger=audit_logger)


@pytest.fixture()
def coordinator(store, fake_controller, registry, duty_cycle):
    return ExecutionCoordinator(store, fake_controller, registry, SCHEDULING_TZ, duty_cycle=duty_cycle)


@pytest.fixture()
def scheduling_service(store, registry, fake_controller, audit_logger, duty_cycle):
    return SchedulingService(
        store,
        registry,
        fake_controller,
        SCHEDULING_TZ,
        default_override_minutes=60,
        audit_logger=audit_logger,
        duty_cycle=duty_cycle,
    )


# ========================== Flask Fixtures =================================


@pytest.fixture()
def app_controller():
    """Controller injected into the Flask app in place of the Tuya cloud."""
    controller = MagicMock()
    controller.get_status.side_effect = lambda device_id: DeviceStatus(device_id, on=False, online=True)
    return controller


@pytest.fixture()
def app(tmp_path, monkeypatch, app_controller):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PLUGSCHED_SECRET_KEY", "test-secret")
    monkeypatch.setenv("PLUGSCHED_TIMEZONE", "Asia/Singapore")
    monkeypatch.delenv("PLUGSCHED_CRON_SECRET", raising=False)

    from app import create_app

    flask_app = create_app(
        {
            "database_path": str(tmp_path / "test.db"),
            "audit_log_path": str(tmp_path / "logs" / "audit.log"),
            "enable_scheduler": False,
        },
        bootstrap_runtime=False,
        controller=app_controller,
    )
    flask_app.config["TESTING"] = True
    try:
        yield flask_app
    finally:
        container = flask_app.config.get("CONTAINER")
        if container is not None:
            container.shutdown()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def container(app):
    return app.config["CONTAINER"]
