import logging
import shutil
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from flask import Flask

from infrastructure.database.ops.calendar import CalendarOperations
from infrastructure.database.ops.executions import ExecutionOperations
from infrastructure.database.ops.interval import IntervalOperations
from infrastructure.database.ops.overrides import OverrideOperations
from infrastructure.database.ops.schedules import DeviceScheduleOperations
from infrastructure.database.ops.settings import SettingsOperations

logger = logging.getLogger(__name__)


class SQLiteDatabaseHandler(
    SettingsOperations,
    CalendarOperations,
    DeviceScheduleOperations,
    OverrideOperations,
    IntervalOperations,
    ExecutionOperations,
):
    """Thread-safe SQLite handler decoupled from Flask globals.

    Each thread gets its own connection. WAL mode lets the web server, the
    in-process workers and a cron-invoked CLI share the same file.
    """

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path
        self._local = threading.local()

        db_path = Path(database_path)
        if database_path != ":memory:" and not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)
            logger.info("Created database directory: %s", db_path.parent)

    @property
    def database_path(self) -> str:
        return self._database_path

    # --- Lifecycle ------------------------------------------------------------
    def init_app(self, app: Flask | None = None) -> None:
        if app is not None:
            app.teardown_appcontext(self.close_db)
        self.create_tables()

    def get_db(self) -> sqlite3.Connection:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is None:
            try:
                connection = self._open_connection()
            except sqlite3.DatabaseError as exc:
                if self._is_corruption_error(exc):
                    logger.error("Database appears corrupt (%s). Recreating a fresh database.", exc)
                    self._quarantine_corrupt_db()
                    connection = self._open_connection()
                else:
                    raise
            self._local.connection = connection
        return connection

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path, check_same_thread=False, timeout=10)
        try:
            connection.row_factory = sqlite3.Row
            self._configure_connection(connection)
            return connection
        except Exception:
            connection.close()
            raise

    def _is_corruption_error(self, exc: sqlite3.Error) -> bool:
        message = str(exc).lower()
        return (
            "database disk image is malformed" in message
            or "file is not a database" in message
            or "file is encrypted or is not a database" in message
        )

    def _quarantine_corrupt_db(self) -> Optional[Path]:
        db_path = Path(self._database_path)
        if not db_path.exists():
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        quarantine_dir = db_path.parent / "corrupt"
        quarantine_dir.mkdir(parents=True, exist_ok=True)

        suffix = db_path.suffix or ".db"
        quarantined = quarantine_dir / f"{db_path.stem}_corrupt_{timestamp}{suffix}"
        try:
            shutil.move(str(db_path), str(quarantined))
            for sidecar_suffix in ("-wal", "-shm"):
                sidecar = Path(f"{db_path}{sidecar_suffix}")
                if sidecar.exists():
                    shutil.move(str(sidecar), str(quarantine_dir / f"{sidecar.name}_{timestamp}"))
            logger.warning("Quarantined corrupt database to %s", quarantined)
            return quarantined
        except OSError as exc:
            logger.error("Failed to quarantine corrupt database %s: %s", db_path, exc)
            return None

    def _configure_connection(self, connection: sqlite3.Connection) -> None:
        """Configure SQLite connection.

        - WAL mode: readers in other processes never block the writer
        - NORMAL synchronous: safe with WAL
        - busy_timeout: concurrent trigger sources wait instead of failing
        """
        connection.execute("PRAGMA journal_mode=WAL")
        connection.execute("PRAGMA synchronous=NORMAL")
        connection.execute("PRAGMA busy_timeout=10000")
        connection.execute("PRAGMA temp_store=MEMORY")
        connection.commit()

    def close_db(self, _e: Optional[BaseException] = None) -> None:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            delattr(self._local, "connection")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield the thread's connection; commit on success, roll back on error."""
        conn = self.get_db()
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    # --- Schema ----------------------------------------------------------------
    def create_tables(self) -> None:
        """Creates the necessary tables in the database if they do not already exist."""
        with self.connection() as db:
            # Calendar: one situation per day
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS CalendarAssignments (
                    date TEXT PRIMARY KEY,
                    situation TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            # Per-device, per-situation time/action lists
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS DeviceSchedules (
                    entry_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    device_id TEXT NOT NULL,
                    situation TEXT NOT NULL,
                    time TEXT NOT NULL,
                    action TEXT NOT NULL CHECK (action IN ('on', 'off')),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (device_id, situation, time)
                )
                """
            )
            db.execute(
                "CREATE INDEX IF NOT EXISTS idx_device_schedules_device ON DeviceSchedules(device_id, situation)"
            )
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS ManualOverrides (
                    device_id TEXT PRIMARY KEY,
                    until_ts TEXT NOT NULL,
                    set_at TEXT NOT NULL
                )
                """
            )
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS IntervalMode (
                    device_id TEXT PRIMARY KEY,
                    is_active INTEGER NOT NULL DEFAULT 0,
                    on_duration INTEGER NOT NULL DEFAULT 3,
                    interval_duration INTEGER NOT NULL DEFAULT 20,
                    start_time TEXT,
                    last_applied_state INTEGER,
                    last_command_at TEXT,
                    updated_at TEXT
                )
                """
            )
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS Settings (
                    setting_key TEXT PRIMARY KEY,
                    setting_value TEXT,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS ExecutionMarkers (
                    marker_key TEXT PRIMARY KEY,
                    executed_at TEXT NOT NULL
                )
                """
            )
            db.execute(
                "CREATE INDEX IF NOT EXISTS idx_execution_markers_time ON ExecutionMarkers(executed_at)"
            )
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS ExecutionLog (
                    log_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    device_id TEXT NOT NULL,
                    action TEXT NOT NULL,
                    scheduled_time TEXT,
                    executed_at TEXT NOT NULL,
                    success INTEGER NOT NULL,
                    error_message TEXT,
                    source TEXT
                )
                """
            )
            db.execute(
                "CREATE INDEX IF NOT EXISTS idx_execution_log_device ON ExecutionLog(device_id, executed_at)"
            )
        logger.info("Database schema ready at %s", self._database_path)
