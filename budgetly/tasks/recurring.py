"""Celery tasks for recurring transaction generation."""

import asyncio
import logging
from datetime import date
from typing import Optional

from budgetly.core.database import AsyncSessionLocal
from budgetly.core.redis_client import close_redis, schedule_lock
from budgetly.services.notification_service import notification_service
from budgetly.services.transaction_hooks import transaction_hooks
from budgetly.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run an async coroutine from sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _parse_as_of(as_of: Optional[str]) -> Optional[date]:
    return date.fromisoformat(as_of) if as_of else None


@celery_app.task(name="budgetly.tasks.recurring.run_recurring_catch_up")
def run_recurring_catch_up(as_of: Optional[str] = None):
    """Generate every recurring transaction due up to ``as_of`` (default today)."""
    logger.info("Starting recurring transaction catch-up...")

    async def _catch_up():
        try:
            async with AsyncSessionLocal() as db:
                result = await transaction_hooks.run_catch_up(db, _parse_as_of(as_of), lock=schedule_lock)
                return result.to_dict()
        finally:
            await close_redis()

    result = run_async(_catch_up())
    if result["failures"]:
        logger.warning(
            f"Recurring catch-up finished with {len(result['failures'])} failing schedule(s)",
            extra={"failures": result["failures"]},
        )
    logger.info(
        f"Recurring catch-up completed: {result['schedules_processed']} schedules, "
        f"{result['transactions_generated']} transactions generated"
    )
    return result


@celery_app.task(name="budgetly.tasks.recurring.remind_upcoming_recurring")
def remind_upcoming_recurring(as_of: Optional[str] = None):
    """Notify users about recurring transactions that are due soon."""

    async def _remind():
        async with AsyncSessionLocal() as db:
            return await notification_service.remind_upcoming_recurring(db, _parse_as_of(as_of))

    sent = run_async(_remind())
    return {"reminders_sent": sent}
