"""Redis client used for distributed locks around recurring catch-up runs."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
from redis.exceptions import LockError

from budgetly.core.config import settings

logger = logging.getLogger(__name__)

# Async Redis client singleton
_redis: Optional[aioredis.Redis] = None


async def get_redis() -> aioredis.Redis:
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis


def schedule_lock_key(schedule_id) -> str:
    return f"lock:recurring-schedule:{schedule_id}"


@asynccontextmanager
async def schedule_lock(schedule_id, timeout: Optional[int] = None) -> AsyncIterator[bool]:
    """Hold the per-schedule catch-up lock; yields False when another worker owns it."""
    r = await get_redis()
    lock = r.lock(
        schedule_lock_key(schedule_id),
        timeout=timeout or settings.CATCH_UP_LOCK_TIMEOUT_SECONDS,
    )
    acquired = await lock.acquire(blocking=False)
    try:
        yield acquired
    finally:
        if acquired:
            try:
                await lock.release()
            except LockError as e:
                # Lock expired while we were still working
                logger.warning("Schedule lock for %s lost before release: %s", schedule_id, e)


async def close_redis() -> None:
    """Drop the client; each Celery task runs on its own event loop."""
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
