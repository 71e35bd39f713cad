"""Database decorators for error translation."""

from infrastructure.database.decorators.errors import store_operation

__all__ = ["store_operation"]
