"""Transaction hook tests."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from budgetly.models.goal import GoalType, TrackingMethod
from budgetly.models.goal_contribution import GoalContribution
from budgetly.models.recurring_schedule import Frequency
from budgetly.models.transaction import Transaction, TransactionType
from budgetly.services.transaction_hooks import TransactionHooks


@pytest.fixture
def hooks(ledger, matcher, recurrence) -> TransactionHooks:
    return TransactionHooks(ledger=ledger, matcher=matcher, recurrence=recurrence)


async def _tracked_goal(ledger, db, user, category):
    return await ledger.create_goal(
        db,
        user.id,
        {
            "title": "Holiday",
            "goal_type": GoalType.SAVINGS,
            "target_amount": Decimal("1000"),
            "auto_track": True,
            "tracking_method": TrackingMethod.CATEGORY,
            "category_ids": [category.id],
        },
    )


class TestTransactionHooks:
    @pytest.mark.asyncio
    async def test_created_transaction_contributes(
        self, db_session, hooks, ledger, user, salary_category, make_transaction
    ):
        goal = await _tracked_goal(ledger, db_session, user, salary_category)
        transaction = await make_transaction(salary_category, "100")

        contributions = await hooks.on_transaction_created(db_session, transaction)

        assert [c.goal_id for c in contributions] == [goal.id]

    @pytest.mark.asyncio
    async def test_amount_change_round_trip(
        self, db_session, hooks, ledger, user, salary_category, make_transaction
    ):
        goal = await _tracked_goal(ledger, db_session, user, salary_category)
        transaction = await make_transaction(salary_category, "100")
        await hooks.on_transaction_created(db_session, transaction)

        transaction.amount = Decimal("150")
        await db_session.commit()
        await hooks.on_transaction_amount_changed(db_session, transaction, Decimal("100"))

        goal = await ledger.get_goal(db_session, goal.id)
        assert goal.current_amount == Decimal("150")

        transaction.amount = Decimal("100")
        await db_session.commit()
        await hooks.on_transaction_amount_changed(db_session, transaction, Decimal("150"))

        goal = await ledger.get_goal(db_session, goal.id)
        assert goal.current_amount == Decimal("100")

    @pytest.mark.asyncio
    async def test_unchanged_amount_is_noop(
        self, db_session, hooks, user, salary_category, make_transaction
    ):
        transaction = await make_transaction(salary_category, "100")
        assert await hooks.on_transaction_amount_changed(db_session, transaction, Decimal("100")) == []

    @pytest.mark.asyncio
    async def test_deleted_transaction_leaves_goal(
        self, db_session, hooks, ledger, user, salary_category, make_transaction
    ):
        goal = await _tracked_goal(ledger, db_session, user, salary_category)
        transaction = await make_transaction(salary_category, "400")
        transaction_id = transaction.id
        await hooks.on_transaction_created(db_session, transaction)

        goals = await hooks.on_transaction_deleted(db_session, transaction)

        assert [g.id for g in goals] == [goal.id]
        assert goals[0].current_amount == Decimal("0")
        assert await db_session.get(Transaction, transaction_id) is None
        result = await db_session.execute(
            select(GoalContribution).where(GoalContribution.transaction_id == transaction_id)
        )
        assert result.scalars().all() == []

    @pytest.mark.asyncio
    async def test_run_catch_up(self, db_session, hooks, recurrence, user, salary_category):
        await recurrence.create_schedule(
            db_session,
            user.id,
            {
                "title": "Salary",
                "category_id": salary_category.id,
                "amount": Decimal("3000"),
                "transaction_type": TransactionType.INCOME,
                "frequency": Frequency.MONTHLY,
                "start_date": date(2024, 1, 1),
            },
        )

        result = await hooks.run_catch_up(db_session)

        assert result.schedules_processed == 1
        assert result.transactions_generated == 1
