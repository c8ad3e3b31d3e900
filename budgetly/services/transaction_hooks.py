"""Entry points the transaction layer calls into."""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from budgetly.models.goal import FinancialGoal
from budgetly.models.goal_contribution import GoalContribution
from budgetly.models.transaction import Transaction
from budgetly.services.goal_ledger import GoalLedgerService, goal_ledger
from budgetly.services.goal_matcher import GoalMatcher, goal_matcher
from budgetly.services.recurrence import CatchUpResult, LockFactory, RecurrenceService, recurrence_service

logger = logging.getLogger(__name__)


class TransactionHooks:
    def __init__(
        self,
        ledger: Optional[GoalLedgerService] = None,
        matcher: Optional[GoalMatcher] = None,
        recurrence: Optional[RecurrenceService] = None,
    ):
        self.ledger = ledger or goal_ledger
        self.matcher = matcher or goal_matcher
        self.recurrence = recurrence or recurrence_service

    async def on_transaction_created(self, db: AsyncSession, transaction: Transaction) -> List[GoalContribution]:
        """Call after the transaction has been committed."""
        return await self.matcher.match_transaction(db, transaction)

    async def on_transaction_amount_changed(
        self, db: AsyncSession, transaction: Transaction, old_amount: Decimal
    ) -> List[FinancialGoal]:
        """Call after the new amount has been committed."""
        transaction_id = transaction.id
        new_amount = transaction.amount
        if new_amount == old_amount:
            return []
        return await self.ledger.update_contributions_for_transaction_change(
            db, transaction_id, old_amount, new_amount
        )

    async def on_transaction_deleted(self, db: AsyncSession, transaction: Transaction) -> List[FinancialGoal]:
        """Remove the transaction's contributions, then the transaction itself."""
        transaction_id = transaction.id
        goals = await self.ledger.remove_contributions_for_transaction(db, transaction_id)

        # The ledger commits per goal, so the instance may have been expired
        transaction = await db.get(Transaction, transaction_id)
        if transaction is not None:
            await db.delete(transaction)
            await db.commit()

        logger.info(
            f"Deleted transaction {transaction_id}, {len(goals)} goal(s) recalculated",
            extra={"transaction_id": str(transaction_id)},
        )
        return goals

    async def run_catch_up(
        self,
        db: AsyncSession,
        as_of: Optional[date] = None,
        lock: Optional[LockFactory] = None,
    ) -> CatchUpResult:
        return await self.recurrence.run_catch_up(db, as_of, lock=lock)


# Singleton instance
transaction_hooks = TransactionHooks()
