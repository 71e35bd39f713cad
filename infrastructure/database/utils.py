"""
Database Utilities
==================

Shared helpers for the operation mixins.
"""

from datetime import datetime
from typing import Any

from app.utils.time import to_iso, utc_now


def row_to_dict(row) -> dict[str, Any]:
    """
    Convert database row to dictionary.

    Args:
        row: Database row (sqlite3.Row, dict, or None)

    Returns:
        Dictionary representation of the row (empty for None)
    """
    if row is None:
        return {}
    if isinstance(row, dict):
        return row
    return {k: row[k] for k in row.keys()}


def timestamp(value: datetime | None = None) -> str:
    """ISO8601 UTC string for persisting, current time when omitted."""
    return to_iso(value or utc_now())
