"""Repository facades exposing typed accessors over low-level mixins."""

from infrastructure.database.repositories.schedules import SQLiteScheduleStore

__all__ = ["SQLiteScheduleStore"]
