from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.domain.schedules.schedule_entity import IntervalConfig
from infrastructure.database.decorators import store_operation
from infrastructure.database.utils import row_to_dict, timestamp

if TYPE_CHECKING:
    from sqlite3 import Connection

logger = logging.getLogger(__name__)


class IntervalOperations:
    """Interval-mode (duty cycle) persistence helpers."""

    def get_db(self) -> "Connection":
        """Get database connection. Must be implemented by mixing class."""
        raise NotImplementedError("Subclass must implement get_db()")

    @store_operation("reading interval configuration")
    def get_interval_config(self, device_id: str) -> IntervalConfig | None:
        db = self.get_db()
        row = db.execute("SELECT * FROM IntervalMode WHERE device_id = ?", (device_id,)).fetchone()
        return IntervalConfig.from_row(row_to_dict(row)) if row else None

    @store_operation("writing interval configuration")
    def upsert_interval_config(self, config: IntervalConfig) -> IntervalConfig:
        config.validate()
        last_state = None if config.last_applied_state is None else int(config.last_applied_state)
        db = self.get_db()
        db.execute(
            """
            INSERT INTO IntervalMode (
                device_id, is_active, on_duration, interval_duration,
                start_time, last_applied_state, last_command_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(device_id) DO UPDATE SET
                is_active = excluded.is_active,
                on_duration = excluded.on_duration,
                interval_duration = excluded.interval_duration,
                start_time = excluded.start_time,
                last_applied_state = excluded.last_applied_state,
                last_command_at = excluded.last_command_at,
                updated_at = excluded.updated_at
            """,
            (
                config.device_id,
                int(config.is_active),
                config.on_duration,
                config.interval_duration,
                timestamp(config.start_time) if config.start_time else None,
                last_state,
                timestamp(config.last_command_at) if config.last_command_at else None,
                timestamp(),
            ),
        )
        db.commit()
        logger.debug("Interval config for %s saved: %s", config.device_id, config.to_dict())
        return config
