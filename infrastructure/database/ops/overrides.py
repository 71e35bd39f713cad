from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from app.domain.schedules.schedule_entity import ManualOverride
from app.utils.time import utc_now
from infrastructure.database.decorators import store_operation
from infrastructure.database.utils import row_to_dict, timestamp

if TYPE_CHECKING:
    from sqlite3 import Connection

logger = logging.getLogger(__name__)


class OverrideOperations:
    """Manual override helpers for database handlers."""

    def get_db(self) -> "Connection":
        """Get database connection. Must be implemented by mixing class."""
        raise NotImplementedError("Subclass must implement get_db()")

    @store_operation("reading manual override")
    def get_manual_override(self, device_id: str) -> ManualOverride | None:
        db = self.get_db()
        row = db.execute(
            "SELECT device_id, until_ts, set_at FROM ManualOverrides WHERE device_id = ?",
            (device_id,),
        ).fetchone()
        return ManualOverride.from_row(row_to_dict(row)) if row else None

    @store_operation("writing manual override")
    def set_manual_override(
        self, device_id: str, duration_minutes: int, now: datetime | None = None
    ) -> ManualOverride:
        set_at = now or utc_now()
        until = set_at + timedelta(minutes=duration_minutes)
        db = self.get_db()
        db.execute(
            """
            INSERT INTO ManualOverrides (device_id, until_ts, set_at)
            VALUES (?, ?, ?)
            ON CONFLICT(device_id) DO UPDATE SET
                until_ts = excluded.until_ts,
                set_at = excluded.set_at
            """,
            (device_id, timestamp(until), timestamp(set_at)),
        )
        db.commit()
        logger.info("Manual override for %s until %s", device_id, until.isoformat())
        return ManualOverride(device_id=device_id, until=until, set_at=set_at)

    @store_operation("clearing manual override")
    def clear_manual_override(self, device_id: str) -> bool:
        db = self.get_db()
        cursor = db.execute("DELETE FROM ManualOverrides WHERE device_id = ?", (device_id,))
        db.commit()
        return cursor.rowcount > 0

    @store_operation("listing manual overrides")
    def list_manual_overrides(self) -> list[ManualOverride]:
        db = self.get_db()
        rows = db.execute("SELECT device_id, until_ts, set_at FROM ManualOverrides ORDER BY device_id").fetchall()
        return [ManualOverride.from_row(row_to_dict(row)) for row in rows]

    @store_operation("clearing all manual overrides")
    def clear_all_manual_overrides(self) -> int:
        db = self.get_db()
        cursor = db.execute("DELETE FROM ManualOverrides")
        db.commit()
        logger.info("Cleared %d manual overrides", cursor.rowcount)
        return cursor.rowcount
