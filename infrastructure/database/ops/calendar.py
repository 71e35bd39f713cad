"""
Calendar Database Operations
============================

CRUD helpers for the CalendarAssignments table (date -> situation).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.domain.schedules.schedule_entity import CalendarAssignment
from infrastructure.database.decorators import store_operation
from infrastructure.database.utils import timestamp

if TYPE_CHECKING:
    from sqlite3 import Connection

logger = logging.getLogger(__name__)


class CalendarOperations:
    """Calendar-related CRUD helpers for database handlers."""

    def get_db(self) -> "Connection":
        """Get database connection. Must be implemented by mixing class."""
        raise NotImplementedError("Subclass must implement get_db()")

    @store_operation("reading calendar assignment")
    def get_calendar_assignment(self, date: str) -> CalendarAssignment | None:
        db = self.get_db()
        row = db.execute(
            "SELECT date, situation FROM CalendarAssignments WHERE date = ?",
            (date,),
        ).fetchone()
        if row is None:
            return None
        return CalendarAssignment(date=row["date"], situation=row["situation"])

    @store_operation("writing calendar assignment")
    def upsert_calendar_assignment(self, date: str, situation: str) -> CalendarAssignment:
        assignment = CalendarAssignment(date=date, situation=situation)
        db = self.get_db()
        db.execute(
            """
            INSERT INTO CalendarAssignments (date, situation, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(date) DO UPDATE SET
                situation = excluded.situation,
                updated_at = excluded.updated_at
            """,
            (assignment.date, assignment.situation, timestamp()),
        )
        db.commit()
        logger.info("Calendar %s set to '%s'", assignment.date, assignment.situation)
        return assignment

    @store_operation("writing calendar assignments")
    def upsert_calendar_assignments(self, assignments: list[CalendarAssignment]) -> int:
        if not assignments:
            return 0
        now = timestamp()
        with self.connection() as db:
            db.executemany(
                """
                INSERT INTO CalendarAssignments (date, situation, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(date) DO UPDATE SET
                    situation = excluded.situation,
                    updated_at = excluded.updated_at
                """,
                [(a.date, a.situation, now) for a in assignments],
            )
        logger.info("Calendar bulk update: %d days", len(assignments))
        return len(assignments)

    @store_operation("deleting calendar assignment")
    def delete_calendar_assignment(self, date: str) -> bool:
        db = self.get_db()
        cursor = db.execute("DELETE FROM CalendarAssignments WHERE date = ?", (date,))
        db.commit()
        return cursor.rowcount > 0

    @store_operation("listing calendar assignments")
    def list_calendar_assignments(self, start: str | None = None, end: str | None = None) -> list[CalendarAssignment]:
        query = "SELECT date, situation FROM CalendarAssignments"
        clauses = []
        params: list[str] = []
        if start:
            clauses.append("date >= ?")
            params.append(start)
        if end:
            clauses.append("date <= ?")
            params.append(end)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY date"
        db = self.get_db()
        return [
            CalendarAssignment(date=row["date"], situation=row["situation"])
            for row in db.execute(query, params).fetchall()
        ]
