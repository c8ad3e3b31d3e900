"""Celery tasks for goal upkeep."""

import logging

from sqlalchemy import select

from budgetly.core.database import AsyncSessionLocal
from budgetly.core.exceptions import BudgetlyError
from budgetly.models.goal import FinancialGoal
from budgetly.services.goal_ledger import goal_ledger
from budgetly.services.notification_service import notification_service
from budgetly.tasks.celery_app import celery_app
from budgetly.tasks.recurring import run_async

logger = logging.getLogger(__name__)


@celery_app.task(name="budgetly.tasks.goals.check_goal_milestones")
def check_goal_milestones():
    """Record milestone notifications for active goals."""

    async def _check():
        async with AsyncSessionLocal() as db:
            return await notification_service.check_goal_milestones(db)

    sent = run_async(_check())
    return {"notifications_sent": sent}


@celery_app.task(name="budgetly.tasks.goals.recalculate_all_goals")
def recalculate_all_goals():
    """Rebuild every goal's balance and status from its contributions."""
    logger.info("Recalculating all goals...")

    async def _recalculate():
        async with AsyncSessionLocal() as db:
            goal_ids = (await db.execute(select(FinancialGoal.id))).scalars().all()
            failed = 0
            for goal_id in goal_ids:
                try:
                    await goal_ledger.recalculate_progress(db, goal_id)
                except BudgetlyError as e:
                    failed += 1
                    logger.error(
                        f"Failed to recalculate goal {goal_id}: {e.message}",
                        extra={"goal_id": str(goal_id)},
                    )
            return {"total": len(goal_ids), "failed": failed}

    result = run_async(_recalculate())
    logger.info(f"Goal recalculation completed: {result['total']} goals, {result['failed']} failed")
    return result
