"""
Execution Database Operations
=============================

Execution markers (per-day dedup of scheduled actions) and the execution
log (history of every command attempt).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from infrastructure.database.decorators import store_operation
from infrastructure.database.utils import row_to_dict, timestamp

if TYPE_CHECKING:
    from sqlite3 import Connection

logger = logging.getLogger(__name__)


class ExecutionOperations:
    """Execution marker and log helpers for database handlers."""

    def get_db(self) -> "Connection":
        """Get database connection. Must be implemented by mixing class."""
        raise NotImplementedError("Subclass must implement get_db()")

    # --- Markers ---------------------------------------------------------------
    @store_operation("reading execution marker")
    def has_execution_marker(self, key: str) -> bool:
        db = self.get_db()
        row = db.execute("SELECT 1 FROM ExecutionMarkers WHERE marker_key = ?", (key,)).fetchone()
        return row is not None

    @store_operation("recording execution marker")
    def record_execution_marker(self, key: str, executed_at: datetime) -> bool:
        """Insert the marker unless it exists. Returns True if inserted."""
        db = self.get_db()
        cursor = db.execute(
            "INSERT OR IGNORE INTO ExecutionMarkers (marker_key, executed_at) VALUES (?, ?)",
            (key, timestamp(executed_at)),
        )
        db.commit()
        return cursor.rowcount == 1

    @store_operation("releasing execution marker")
    def release_execution_marker(self, key: str) -> None:
        db = self.get_db()
        db.execute("DELETE FROM ExecutionMarkers WHERE marker_key = ?", (key,))
        db.commit()

    @store_operation("purging execution markers")
    def purge_execution_markers(self, before: datetime) -> int:
        db = self.get_db()
        cursor = db.execute("DELETE FROM ExecutionMarkers WHERE executed_at < ?", (timestamp(before),))
        db.commit()
        return cursor.rowcount

    # --- Log ---------------------------------------------------------------------
    @store_operation("writing execution log")
    def record_execution_log(
        self,
        device_id: str,
        action: str,
        scheduled_time: str | None,
        success: bool,
        *,
        source: str,
        error_message: str | None = None,
        executed_at: datetime | None = None,
    ) -> None:
        db = self.get_db()
        db.execute(
            """
            INSERT INTO ExecutionLog (
                device_id, action, scheduled_time, executed_at, success, error_message, source
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (device_id, action, scheduled_time, timestamp(executed_at), int(success), error_message, source),
        )
        db.commit()

    @store_operation("reading execution log")
    def list_execution_log(self, limit: int = 50, device_id: str | None = None) -> list[dict[str, Any]]:
        db = self.get_db()
        if device_id:
            rows = db.execute(
                "SELECT * FROM ExecutionLog WHERE device_id = ? ORDER BY log_id DESC LIMIT ?",
                (device_id, limit),
            ).fetchall()
        else:
            rows = db.execute("SELECT * FROM ExecutionLog ORDER BY log_id DESC LIMIT ?", (limit,)).fetchall()
        entries = []
        for row in rows:
            entry = row_to_dict(row)
            entry["success"] = bool(entry["success"])
            entries.append(entry)
        return entries

    @store_operation("purging execution log")
    def purge_execution_log(self, before: datetime) -> int:
        db = self.get_db()
        cursor = db.execute("DELETE FROM ExecutionLog WHERE executed_at < ?", (timestamp(before),))
        db.commit()
        return cursor.rowcount
