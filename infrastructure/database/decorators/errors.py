"""
Store Error Translation
=======================

Wraps database operation methods so that any ``sqlite3.Error`` is logged
and re-raised as ``StoreUnavailable``. Callers above the persistence layer
never see driver exceptions, and a failed read is never mistaken for
"no data".

Architecture:
    Service -> Repository -> @store_operation -> sqlite3
"""

from __future__ import annotations

import functools
import logging
import sqlite3
from typing import Any, Callable, TypeVar, cast

from app.domain.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def store_operation(description: str) -> Callable[[F], F]:
    """
    Translate driver errors raised by the wrapped method.

    Args:
        description: Short phrase used in the log line and error message
            (e.g. "reading calendar assignment")
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except sqlite3.Error as exc:
                logger.error("Schedule store failure while %s: %s", description, exc)
                raise StoreUnavailable(
                    f"Schedule store unavailable while {description}",
                    detail={"operation": func.__name__, "error": str(exc)},
                ) from exc

        return cast(F, wrapper)

    return decorator
