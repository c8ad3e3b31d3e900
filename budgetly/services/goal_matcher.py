"""Routes transactions into the goals that track them."""

import logging
from typing import List, Optional, Set
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from budgetly.core.exceptions import ConcurrencyConflictError, NotFoundError
from budgetly.models.goal import FinancialGoal, GoalStatus, GoalType, TrackingMethod, goal_categories
from budgetly.models.goal_contribution import ContributionType, GoalContribution
from budgetly.models.tag import goal_tags, transaction_tags
from budgetly.models.transaction import Transaction, TransactionType
from budgetly.services.goal_ledger import GoalLedgerService, goal_ledger

logger = logging.getLogger(__name__)


def direction_allows(goal: FinancialGoal, transaction: Transaction) -> bool:
    """Debt goals are paid down by expenses; every other goal grows with income."""
    if goal.goal_type == GoalType.DEBT_REDUCTION:
        return transaction.transaction_type == TransactionType.EXPENSE
    return transaction.transaction_type == TransactionType.INCOME


class GoalMatcher:
    """Evaluate one transaction against a user's auto-tracked goals."""

    def __init__(self, ledger: Optional[GoalLedgerService] = None):
        self.ledger = ledger or goal_ledger

    async def match_transaction(self, db: AsyncSession, transaction: Transaction) -> List[GoalContribution]:
        """Add a contribution to every active goal the transaction qualifies for."""
        goals = await self._active_tracked_goals(db, transaction.user_id)
        if not goals:
            return []

        tag_ids = await self._transaction_tag_ids(db, transaction.id)

        # Decide every match before the first ledger write; a ledger rollback
        # expires loaded instances.
        matched_goal_ids = []
        for goal in goals:
            if not direction_allows(goal, transaction):
                continue
            if await self._criteria_match(db, goal, transaction, tag_ids):
                matched_goal_ids.append(goal.id)

        transaction_id = transaction.id
        amount = transaction.amount
        contributed_on = transaction.transaction_date
        contribution_type = (
            ContributionType.RECURRING if transaction.recurring_schedule_id else ContributionType.TRANSACTION
        )

        contributions = []
        for goal_id in matched_goal_ids:
            try:
                contribution = await self.ledger.add_contribution(
                    db,
                    goal_id,
                    amount,
                    transaction_id=transaction_id,
                    contribution_type=contribution_type,
                    contributed_on=contributed_on,
                )
            except (NotFoundError, ConcurrencyConflictError) as e:
                # Goal deleted or contended mid-run; the other goals still get their share
                logger.warning(
                    f"Skipping goal {goal_id} for transaction {transaction_id}: {e.message}",
                    extra={"goal_id": str(goal_id), "transaction_id": str(transaction_id)},
                )
                continue
            contributions.append(contribution)

        if contributions:
            logger.info(
                f"Transaction {transaction_id} contributed to {len(contributions)} goal(s)",
                extra={"transaction_id": str(transaction_id)},
            )
        return contributions

    async def _criteria_match(
        self,
        db: AsyncSession,
        goal: FinancialGoal,
        transaction: Transaction,
        transaction_tag_ids: Set[UUID],
    ) -> bool:
        if goal.tracking_method == TrackingMethod.CATEGORY:
            result = await db.execute(
                select(goal_categories.c.category_id).where(
                    goal_categories.c.goal_id == goal.id,
                    goal_categories.c.category_id == transaction.category_id,
                )
            )
            return result.first() is not None

        if goal.tracking_method == TrackingMethod.TAG:
            if not transaction_tag_ids:
                return False
            result = await db.execute(
                select(goal_tags.c.tag_id).where(
                    goal_tags.c.goal_id == goal.id,
                    goal_tags.c.tag_id.in_(transaction_tag_ids),
                )
            )
            return result.first() is not None

        if goal.tracking_method == TrackingMethod.ACCOUNT:
            criteria = goal.tracking_criteria or []
            if not criteria:
                return True  # Empty criteria tracks every account
            return transaction.account_id is not None and str(transaction.account_id) in criteria

        return False  # Manual tracking

    async def _active_tracked_goals(self, db: AsyncSession, user_id: UUID) -> List[FinancialGoal]:
        result = await db.execute(
            select(FinancialGoal)
            .where(
                FinancialGoal.user_id == user_id,
                FinancialGoal.status == GoalStatus.ACTIVE,
                FinancialGoal.auto_track == True,  # noqa: E712
                FinancialGoal.tracking_method != TrackingMethod.MANUAL,
            )
            .order_by(FinancialGoal.created_at)
        )
        return list(result.scalars().all())

    async def _transaction_tag_ids(self, db: AsyncSession, transaction_id: UUID) -> Set[UUID]:
        result = await db.execute(
            select(transaction_tags.c.tag_id).where(transaction_tags.c.transaction_id == transaction_id)
        )
        return set(result.scalars().all())


# Singleton instance
goal_matcher = GoalMatcher()
