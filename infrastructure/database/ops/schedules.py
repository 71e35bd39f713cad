"""
Device Schedule Database Operations
===================================

Database operations for the DeviceSchedules table. Lists are always
replaced wholesale per (device, situation); there is no partial append.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from app.domain.schedules.schedule_entity import ScheduleEntry
from infrastructure.database.decorators import store_operation
from infrastructure.database.utils import timestamp

if TYPE_CHECKING:
    from sqlite3 import Connection

logger = logging.getLogger(__name__)


def _normalize_entries(entries: list[Any]) -> list[ScheduleEntry]:
    """Validate entries and keep the last one per time slot."""
    by_time: dict[str, ScheduleEntry] = {}
    for raw in entries:
        entry = raw if isinstance(raw, ScheduleEntry) else ScheduleEntry.from_dict(raw)
        by_time[entry.time] = entry
    return sorted(by_time.values(), key=lambda e: e.minutes)


class DeviceScheduleOperations:
    """Device schedule CRUD helpers for database handlers."""

    def get_db(self) -> "Connection":
        """Get database connection. Must be implemented by mixing class."""
        raise NotImplementedError("Subclass must implement get_db()")

    @store_operation("reading device schedules")
    def get_device_schedules(self) -> dict[str, dict[str, list[dict[str, Any]]]]:
        """
        Get every schedule list.

        Returns:
            device_id -> situation -> entries ordered by time
        """
        db = self.get_db()
        rows = db.execute(
            "SELECT device_id, situation, time, action FROM DeviceSchedules ORDER BY device_id, situation, time"
        ).fetchall()
        result: dict[str, dict[str, list[dict[str, Any]]]] = defaultdict(dict)
        for row in rows:
            result[row["device_id"]].setdefault(row["situation"], []).append(
                {"time": row["time"], "action": row["action"]}
            )
        return dict(result)

    def _write_list(self, db: "Connection", device_id: str, situation: str, entries: list[ScheduleEntry]) -> None:
        db.execute(
            "DELETE FROM DeviceSchedules WHERE device_id = ? AND situation = ?",
            (device_id, situation),
        )
        now = timestamp()
        db.executemany(
            """
            INSERT INTO DeviceSchedules (device_id, situation, time, action, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [(device_id, situation, e.time, e.action.value, now) for e in entries],
        )

    @store_operation("replacing device schedule")
    def replace_device_schedules(self, device_id: str, situation: str, entries: list[Any]) -> None:
        """
        Replace one device's list for one situation.

        Raises:
            MisconfiguredSchedule: when an entry is invalid (nothing is written)
        """
        normalized = _normalize_entries(entries)
        with self.connection() as db:
            self._write_list(db, device_id, situation, normalized)
        logger.info("Replaced %s/%s schedule with %d entries", device_id, situation, len(normalized))

    @store_operation("replacing all device schedules")
    def replace_all_device_schedules(self, schedules: dict[str, dict[str, list[Any]]]) -> None:
        """Replace every device present in ``schedules`` in one transaction."""
        normalized = {
            device_id: {situation: _normalize_entries(entries) for situation, entries in (lists or {}).items()}
            for device_id, lists in schedules.items()
        }
        with self.connection() as db:
            for device_id, lists in normalized.items():
                db.execute("DELETE FROM DeviceSchedules WHERE device_id = ?", (device_id,))
                for situation, entries in lists.items():
                    self._write_list(db, device_id, situation, entries)
        logger.info("Bulk replaced schedules for %d devices", len(normalized))
