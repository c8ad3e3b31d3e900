"""Script to rebuild every goal's balance and status from its contributions."""

import asyncio
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from budgetly.core.database import AsyncSessionLocal, engine
from budgetly.core.exceptions import BudgetlyError
from budgetly.core.logging import get_logger, setup_logging
from budgetly.models.goal import FinancialGoal
from budgetly.services.goal_ledger import goal_ledger

logger = get_logger("scripts.recalculate_goals")


async def recalculate_goals():
    """Recalculate current_amount and status for all goals."""
    print("Connecting to database...")

    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(FinancialGoal.id, FinancialGoal.title, FinancialGoal.current_amount).order_by(
                FinancialGoal.user_id, FinancialGoal.created_at
            )
        )
        goals = result.all()

        print(f"\nFound {len(goals)} goals to process\n")

        failed = 0
        for goal_id, title, before in goals:
            try:
                goal = await goal_ledger.recalculate_progress(db, goal_id)
            except BudgetlyError as e:
                failed += 1
                logger.error(f"Failed to recalculate goal {goal_id}: {e.message}", extra={"goal_id": str(goal_id)})
                print(f"[{title}] FAILED: {e.message}")
                continue

            marker = "" if goal.current_amount == before else f" (was {before})"
            print(f"[{title}] {goal.current_amount} / {goal.target_amount} {goal.status.value}{marker}")

    await engine.dispose()

    if failed:
        print(f"\n{failed} goal(s) could not be recalculated")
    else:
        print("\n✓ All goals recalculated successfully!")


if __name__ == "__main__":
    setup_logging()
    asyncio.run(recalculate_goals())
