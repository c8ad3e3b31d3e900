"""Transaction-to-goal matcher tests."""

from decimal import Decimal

import pytest
import pytest_asyncio

from budgetly.models.category import Category
from budgetly.models.goal import GoalType, TrackingMethod
from budgetly.models.goal_contribution import ContributionType
from budgetly.models.transaction import TransactionType


@pytest_asyncio.fixture
async def loan_category(db_session, user) -> Category:
    category = Category(user_id=user.id, name="Loan Payment", category_type=TransactionType.EXPENSE)
    db_session.add(category)
    await db_session.commit()
    await db_session.refresh(category)
    return category


async def _tracked_goal(ledger, db, user, **overrides):
    data = {
        "title": "Tracked goal",
        "goal_type": GoalType.SAVINGS,
        "target_amount": Decimal("5000"),
        "auto_track": True,
    }
    data.update(overrides)
    return await ledger.create_goal(db, user.id, data)


class TestDirectionRule:
    @pytest.mark.asyncio
    async def test_debt_goal_ignores_income(
        self, db_session, ledger, matcher, user, loan_category, make_transaction
    ):
        goal = await _tracked_goal(
            ledger,
            db_session,
            user,
            goal_type=GoalType.DEBT_REDUCTION,
            tracking_method=TrackingMethod.CATEGORY,
            category_ids=[loan_category.id],
        )

        income = await make_transaction(loan_category, "200", TransactionType.INCOME)
        assert await matcher.match_transaction(db_session, income) == []

        expense = await make_transaction(loan_category, "200", TransactionType.EXPENSE)
        contributions = await matcher.match_transaction(db_session, expense)

        assert [c.goal_id for c in contributions] == [goal.id]
        assert contributions[0].transaction_id == expense.id
        assert contributions[0].amount == Decimal("200")
        assert contributions[0].contribution_type == ContributionType.TRANSACTION

        goal = await ledger.get_goal(db_session, goal.id)
        assert goal.current_amount == Decimal("200")

    @pytest.mark.asyncio
    async def test_savings_goal_ignores_expense(
        self, db_session, ledger, matcher, user, rent_category, make_transaction
    ):
        await _tracked_goal(
            ledger, db_session, user, tracking_method=TrackingMethod.CATEGORY, category_ids=[rent_category.id]
        )

        expense = await make_transaction(rent_category, "900", TransactionType.EXPENSE)
        assert await matcher.match_transaction(db_session, expense) == []


class TestTrackingMethods:
    @pytest.mark.asyncio
    async def test_category_mismatch(
        self, db_session, ledger, matcher, user, salary_category, rent_category, make_transaction
    ):
        await _tracked_goal(
            ledger, db_session, user, tracking_method=TrackingMethod.CATEGORY, category_ids=[rent_category.id]
        )

        income = await make_transaction(salary_category, "100")
        assert await matcher.match_transaction(db_session, income) == []

    @pytest.mark.asyncio
    async def test_tag_match(
        self, db_session, ledger, matcher, user, salary_category, savings_tag, make_transaction
    ):
        goal = await _tracked_goal(
            ledger, db_session, user, tracking_method=TrackingMethod.TAG, tag_ids=[savings_tag.id]
        )

        untagged = await make_transaction(salary_category, "100")
        assert await matcher.match_transaction(db_session, untagged) == []

        tagged = await make_transaction(salary_category, "100", tags=[savings_tag])
        contributions = await matcher.match_transaction(db_session, tagged)
        assert [c.goal_id for c in contributions] == [goal.id]

    @pytest.mark.asyncio
    async def test_account_with_empty_criteria_matches_everything(
        self, db_session, ledger, matcher, user, salary_category, make_transaction
    ):
        goal = await _tracked_goal(ledger, db_session, user, tracking_method=TrackingMethod.ACCOUNT)

        income = await make_transaction(salary_category, "75")
        contributions = await matcher.match_transaction(db_session, income)
        assert [c.goal_id for c in contributions] == [goal.id]

    @pytest.mark.asyncio
    async def test_account_criteria(
        self, db_session, ledger, matcher, user, salary_category, checking_account, make_transaction
    ):
        goal = await _tracked_goal(
            ledger,
            db_session,
            user,
            tracking_method=TrackingMethod.ACCOUNT,
            tracking_criteria=[str(checking_account.id)],
        )

        elsewhere = await make_transaction(salary_category, "75")
        assert await matcher.match_transaction(db_session, elsewhere) == []

        in_account = await make_transaction(salary_category, "75", account=checking_account)
        contributions = await matcher.match_transaction(db_session, in_account)
        assert [c.goal_id for c in contributions] == [goal.id]

    @pytest.mark.asyncio
    async def test_manual_goal_never_matches(
        self, db_session, ledger, matcher, user, salary_category, make_transaction
    ):
        await _tracked_goal(ledger, db_session, user, tracking_method=TrackingMethod.MANUAL)

        income = await make_transaction(salary_category, "75")
        assert await matcher.match_transaction(db_session, income) == []


class TestEligibility:
    @pytest.mark.asyncio
    async def test_auto_track_disabled(
        self, db_session, ledger, matcher, user, salary_category, make_transaction
    ):
        await _tracked_goal(ledger, db_session, user, tracking_method=TrackingMethod.ACCOUNT, auto_track=False)

        income = await make_transaction(salary_category, "75")
        assert await matcher.match_transaction(db_session, income) == []

    @pytest.mark.asyncio
    async def test_inactive_goal_skipped(
        self, db_session, ledger, matcher, user, salary_category, make_transaction
    ):
        goal = await _tracked_goal(ledger, db_session, user, tracking_method=TrackingMethod.ACCOUNT)
        await ledger.abandon_goal(db_session, goal.id)

        income = await make_transaction(salary_category, "75")
        assert await matcher.match_transaction(db_session, income) == []

    @pytest.mark.asyncio
    async def test_other_users_goals_skipped(
        self, db_session, ledger, matcher, user, other_user, salary_category, make_transaction
    ):
        await _tracked_goal(ledger, db_session, other_user, tracking_method=TrackingMethod.ACCOUNT)

        income = await make_transaction(salary_category, "75")
        assert await matcher.match_transaction(db_session, income) == []

    @pytest.mark.asyncio
    async def test_matches_every_qualifying_goal(
        self, db_session, ledger, matcher, user, salary_category, make_transaction
    ):
        first = await _tracked_goal(
            ledger, db_session, user, title="First", tracking_method=TrackingMethod.ACCOUNT
        )
        second = await _tracked_goal(
            ledger,
            db_session,
            user,
            title="Second",
            tracking_method=TrackingMethod.CATEGORY,
            category_ids=[salary_category.id],
        )

        income = await make_transaction(salary_category, "75")
        contributions = await matcher.match_transaction(db_session, income)
        assert {c.goal_id for c in contributions} == {first.id, second.id}
