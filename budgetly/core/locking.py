"""Helpers for row-lock contention handling."""

import asyncio
import logging

from sqlalchemy.exc import DBAPIError, OperationalError

from budgetly.core.config import settings

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available
LOCK_CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def is_lock_conflict(exc: DBAPIError) -> bool:
    """True when a DB error means another transaction holds the row."""
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in LOCK_CONFLICT_SQLSTATES:
        return True
    if isinstance(exc, OperationalError):
        # SQLite reports contention as "database is locked"
        message = str(orig).lower()
        return "locked" in message or "deadlock" in message
    return False


async def backoff(attempt: int) -> None:
    """Linear backoff between lock retries."""
    await asyncio.sleep(settings.LEDGER_RETRY_BACKOFF_SECONDS * attempt)
