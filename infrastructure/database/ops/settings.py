from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from infrastructure.database.decorators import store_operation
from infrastructure.database.utils import timestamp

if TYPE_CHECKING:
    from sqlite3 import Connection

logger = logging.getLogger(__name__)


class SettingsOperations:
    """Key/value settings helpers shared across database handlers."""

    def get_db(self) -> "Connection":
        """Get database connection. Must be implemented by mixing class."""
        raise NotImplementedError("Subclass must implement get_db()")

    @store_operation("reading setting")
    def get_setting(self, key: str) -> str | None:
        db = self.get_db()
        row = db.execute("SELECT setting_value FROM Settings WHERE setting_key = ?", (key,)).fetchone()
        return row["setting_value"] if row else None

    @store_operation("writing setting")
    def set_setting(self, key: str, value: str) -> None:
        db = self.get_db()
        db.execute(
            """
            INSERT INTO Settings (setting_key, setting_value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(setting_key) DO UPDATE SET
                setting_value = excluded.setting_value,
                updated_at = excluded.updated_at
            """,
            (key, value, timestamp()),
        )
        db.commit()

    @store_operation("listing settings")
    def list_settings(self) -> dict[str, str]:
        db = self.get_db()
        return {
            row["setting_key"]: row["setting_value"]
            for row in db.execute("SELECT setting_key, setting_value FROM Settings ORDER BY setting_key")
        }
