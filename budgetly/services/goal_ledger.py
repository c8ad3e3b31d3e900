"""Goal ledger: keeps each goal's ``current_amount`` consistent with its contributions.

Contribution rows are the source of truth. ``current_amount`` is a cached
projection that is re-summed from ``starting_amount`` plus every contribution
whenever the ledger changes, under a row lock on the goal. Incremental
arithmetic is never trusted, so retries and concurrent edits cannot drift.

Status rules:
    * add_contribution moves ACTIVE -> COMPLETE once the target is reached and
      never moves it back.
    * recalculate_progress is the repair path: it completes or re-opens a goal
      so that the status matches the ledger total.
    * ABANDONED goals keep their status until explicitly reactivated.
"""

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Union
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, insert, inspect, or_, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from budgetly.core.config import settings
from budgetly.core.exceptions import (
    ConcurrencyConflictError,
    NotFoundError,
    ValidationError,
)
from budgetly.core.locking import backoff, is_lock_conflict
from budgetly.models import Base
from budgetly.models.category import Category
from budgetly.models.goal import FinancialGoal, GoalStatus, goal_categories
from budgetly.models.goal_contribution import ContributionType, GoalContribution
from budgetly.models.recurring_schedule import Frequency
from budgetly.models.tag import Tag, goal_tags
from budgetly.schemas.goal import ContributionCreate, GoalCreate, GoalUpdate
from budgetly.services.events import GoalCompleted, GoalMilestoneReached
from budgetly.services.notification_service import NotificationService, notification_service
from budgetly.utils.dates import add_months, months_between

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")

Mutation = Callable[[FinancialGoal, list], Awaitable]


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_amount(value) -> Decimal:
    """Round half-up to the ledger's minor currency unit."""
    exponent = Decimal(1).scaleb(-settings.CURRENCY_MINOR_UNITS)
    return to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def milestones_crossed(before_pct: Decimal, after_pct: Decimal, step: int) -> List[int]:
    """Milestone percentages strictly below 100 passed when moving from before to after."""
    return [m for m in range(step, 100, step) if before_pct < m <= after_pct]


def _validated(schema, data):
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e) from e


class GoalLedgerService:
    """Service owning goal state and its contribution log."""

    def __init__(
        self,
        today: Callable[[], date] = date.today,
        notifier: Optional[NotificationService] = None,
    ):
        self._today = today
        self.notifier = notifier or notification_service

    def today(self) -> date:
        return self._today()

    # ---- Ledger mutations ----

    async def add_contribution(
        self,
        db: AsyncSession,
        goal_id: UUID,
        amount,
        transaction_id: Optional[UUID] = None,
        notes: Optional[str] = None,
        contribution_type: Optional[ContributionType] = None,
        contributed_on: Optional[date] = None,
    ) -> GoalContribution:
        """Append a contribution and refresh the goal total."""
        amount = quantize_amount(amount)
        if amount == 0:
            raise ValidationError({"amount": "Contribution amount must not be zero"})

        if contribution_type is None:
            contribution_type = ContributionType.TRANSACTION if transaction_id else ContributionType.MANUAL

        async def mutate(goal: FinancialGoal, events: list) -> GoalContribution:
            before_pct = self.progress_percentage(goal)

            contribution = GoalContribution(
                goal_id=goal.id,
                transaction_id=transaction_id,
                amount=amount,
                contribution_type=contribution_type,
                notes=notes,
                contributed_on=contributed_on or self.today(),
            )
            db.add(contribution)
            await db.flush()

            goal.current_amount = await self._ledger_total(db, goal)
            if goal.status == GoalStatus.ACTIVE:
                if goal.current_amount >= goal.target_amount:
                    self._mark_complete(goal, events)
                else:
                    after_pct = self.progress_percentage(goal)
                    for percentage in milestones_crossed(before_pct, after_pct, settings.GOAL_MILESTONE_STEP):
                        events.append(self._milestone_event(goal, percentage))

            return contribution

        contribution = await self._mutate_locked(db, goal_id, mutate)
        logger.info(
            f"Contribution of {amount} added to goal {goal_id}",
            extra={"goal_id": str(goal_id), "amount": str(amount), "type": contribution_type.value},
        )
        return contribution

    async def add_manual_contribution(
        self, db: AsyncSession, goal_id: UUID, data: Union[ContributionCreate, dict]
    ) -> GoalContribution:
        """User-entered progress, validated with field-level messages."""
        data = _validated(ContributionCreate, data)
        return await self.add_contribution(
            db,
            goal_id,
            data.amount,
            notes=data.notes,
            contribution_type=ContributionType.MANUAL,
            contributed_on=data.contributed_on,
        )

    async def remove_contribution(self, db: AsyncSession, contribution_id: UUID) -> FinancialGoal:
        """Delete a contribution, then re-sum the goal from its remaining ledger."""
        result = await db.execute(
            select(GoalContribution.goal_id).where(GoalContribution.id == contribution_id)
        )
        goal_id = result.scalar_one_or_none()
        if goal_id is None:
            raise NotFoundError("GoalContribution", contribution_id)

        async def mutate(goal: FinancialGoal, events: list) -> FinancialGoal:
            deleted = await db.execute(
                delete(GoalContribution).where(
                    GoalContribution.id == contribution_id,
                    GoalContribution.goal_id == goal.id,
                )
            )
            if deleted.rowcount == 0:
                # Removed by someone else between lookup and lock
                raise NotFoundError("GoalContribution", contribution_id)
            await self._recalculate_locked(db, goal, events)
            return goal

        return await self._mutate_locked(db, goal_id, mutate)

    async def update_contributions_for_transaction_change(
        self,
        db: AsyncSession,
        transaction_id: UUID,
        old_amount,
        new_amount,
    ) -> List[FinancialGoal]:
        """Scale every contribution sourced from a transaction by new/old and recalculate."""
        old_amount = to_decimal(old_amount)
        new_amount = to_decimal(new_amount)
        if old_amount == 0:
            raise ValidationError({"old_amount": "Original transaction amount must not be zero"})
        if old_amount == new_amount:
            return []

        goal_ids = await self._goal_ids_for_transaction(db, transaction_id)

        updated = []
        for goal_id in goal_ids:

            async def mutate(goal: FinancialGoal, events: list) -> FinancialGoal:
                result = await db.execute(
                    select(GoalContribution)
                    .where(
                        GoalContribution.goal_id == goal.id,
                        GoalContribution.transaction_id == transaction_id,
                    )
                    .execution_options(populate_existing=True)
                )
                for contribution in result.scalars().all():
                    scaled = quantize_amount(to_decimal(contribution.amount) * new_amount / old_amount)
                    if scaled == 0:
                        logger.info(
                            f"Deleting contribution {contribution.id}: rescaled amount rounds to zero",
                            extra={
                                "contribution_id": str(contribution.id),
                                "goal_id": str(goal.id),
                                "transaction_id": str(transaction_id),
                            },
                        )
                        await db.delete(contribution)
                    else:
                        contribution.amount = scaled
                await db.flush()
                await self._recalculate_locked(db, goal, events)
                return goal

            updated.append(await self._mutate_locked(db, goal_id, mutate))

        if updated:
            logger.info(
                f"Rescaled contributions of transaction {transaction_id} "
                f"from {old_amount} to {new_amount} across {len(updated)} goal(s)",
                extra={"transaction_id": str(transaction_id)},
            )
        return updated

    async def remove_contributions_for_transaction(
        self, db: AsyncSession, transaction_id: UUID
    ) -> List[FinancialGoal]:
        """Drop contributions whose source transaction is being deleted."""
        goal_ids = await self._goal_ids_for_transaction(db, transaction_id)

        updated = []
        for goal_id in goal_ids:

            async def mutate(goal: FinancialGoal, events: list) -> FinancialGoal:
                await db.execute(
                    delete(GoalContribution).where(
                        GoalContribution.goal_id == goal.id,
                        GoalContribution.transaction_id == transaction_id,
                    )
                )
                await self._recalculate_locked(db, goal, events)
                return goal

            updated.append(await self._mutate_locked(db, goal_id, mutate))
        return updated

    async def recalculate_progress(self, db: AsyncSession, goal_id: UUID) -> FinancialGoal:
        """Authoritative repair: rebuild current_amount and status from the ledger."""

        async def mutate(goal: FinancialGoal, events: list) -> FinancialGoal:
            await self._recalculate_locked(db, goal, events)
            return goal

        return await self._mutate_locked(db, goal_id, mutate)

    # ---- Goal lifecycle ----

    async def create_goal(
        self, db: AsyncSession, user_id: UUID, data: Union[GoalCreate, dict]
    ) -> FinancialGoal:
        """Create a goal; current_amount starts at starting_amount."""
        data = _validated(GoalCreate, data)
        if data.target_date is not None and data.target_date < self.today():
            raise ValidationError({"target_date": "must be in the future"})

        await self._check_associations(db, user_id, data.category_ids, data.tag_ids)

        goal = FinancialGoal(
            user_id=user_id,
            title=data.title,
            description=data.description,
            goal_type=data.goal_type,
            target_amount=quantize_amount(data.target_amount),
            starting_amount=quantize_amount(data.starting_amount),
            current_amount=quantize_amount(data.starting_amount),
            target_date=data.target_date,
            status=GoalStatus.ACTIVE,
            auto_track=data.auto_track,
            tracking_method=data.tracking_method,
            tracking_criteria=list(data.tracking_criteria),
            contribution_amount=data.contribution_amount,
            contribution_frequency=data.contribution_frequency,
        )
        db.add(goal)
        await db.flush()
        await self._replace_associations(db, goal.id, data.category_ids, data.tag_ids)

        events: list = []
        if goal.current_amount >= goal.target_amount:
            self._mark_complete(goal, events)

        await db.commit()
        await db.refresh(goal)
        logger.info(f"Created goal {goal.id} for user {user_id}: {goal.title}", extra={"goal_id": str(goal.id)})

        await self.notifier.publish_all(db, events)
        return goal

    async def update_goal(
        self, db: AsyncSession, goal_id: UUID, data: Union[GoalUpdate, dict]
    ) -> FinancialGoal:
        """Edit goal fields; amount edits re-run the ledger recalculation."""
        data = _validated(GoalUpdate, data)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("target_date") is not None and changes["target_date"] < self.today():
            raise ValidationError({"target_date": "must be in the future"})

        category_ids = changes.pop("category_ids", None)
        tag_ids = changes.pop("tag_ids", None)

        async def mutate(goal: FinancialGoal, events: list) -> FinancialGoal:
            if category_ids is not None or tag_ids is not None:
                await self._check_associations(db, goal.user_id, category_ids or [], tag_ids or [])
                await self._replace_associations(db, goal.id, category_ids, tag_ids)

            for field, value in changes.items():
                if field in ("target_amount", "starting_amount") and value is not None:
                    value = quantize_amount(value)
                setattr(goal, field, value)

            if "target_amount" in changes or "starting_amount" in changes:
                await self._recalculate_locked(db, goal, events)
            return goal

        return await self._mutate_locked(db, goal_id, mutate)

    async def abandon_goal(self, db: AsyncSession, goal_id: UUID) -> FinancialGoal:
        async def mutate(goal: FinancialGoal, events: list) -> FinancialGoal:
            goal.status = GoalStatus.ABANDONED
            return goal

        return await self._mutate_locked(db, goal_id, mutate)

    async def reactivate_goal(self, db: AsyncSession, goal_id: UUID) -> FinancialGoal:
        """Re-open an abandoned goal and let the ledger decide whether it is complete."""

        async def mutate(goal: FinancialGoal, events: list) -> FinancialGoal:
            if goal.status == GoalStatus.ABANDONED:
                goal.status = GoalStatus.ACTIVE
                goal.completion_date = None
            await self._recalculate_locked(db, goal, events)
            return goal

        return await self._mutate_locked(db, goal_id, mutate)

    async def delete_goal(self, db: AsyncSession, goal_id: UUID) -> None:
        """Delete a goal; its contributions and associations go first."""

        async def mutate(goal: FinancialGoal, events: list) -> None:
            await db.execute(delete(GoalContribution).where(GoalContribution.goal_id == goal.id))
            await db.execute(delete(goal_categories).where(goal_categories.c.goal_id == goal.id))
            await db.execute(delete(goal_tags).where(goal_tags.c.goal_id == goal.id))
            await db.delete(goal)

        await self._mutate_locked(db, goal_id, mutate)
        logger.info(f"Deleted goal {goal_id}", extra={"goal_id": str(goal_id)})

    async def get_goal(self, db: AsyncSession, goal_id: UUID, user_id: Optional[UUID] = None) -> FinancialGoal:
        query = select(FinancialGoal).where(FinancialGoal.id == goal_id)
        if user_id is not None:
            query = query.where(FinancialGoal.user_id == user_id)
        result = await db.execute(query)
        goal = result.scalar_one_or_none()
        if goal is None:
            raise NotFoundError("FinancialGoal", goal_id)
        return goal

    async def list_contributions(self, db: AsyncSession, goal_id: UUID) -> List[GoalContribution]:
        result = await db.execute(
            select(GoalContribution)
            .where(GoalContribution.goal_id == goal_id)
            .order_by(GoalContribution.contributed_on, GoalContribution.created_at)
        )
        return list(result.scalars().all())

    # ---- Derived values ----

    def is_complete(self, goal: FinancialGoal) -> bool:
        return goal.status == GoalStatus.COMPLETE or goal.current_amount >= goal.target_amount

    def progress_percentage(self, goal: FinancialGoal) -> Decimal:
        """Display progress, capped at 100; current_amount itself is never capped."""
        if not goal.target_amount:
            return Decimal("0")
        progress = (to_decimal(goal.current_amount or 0) / to_decimal(goal.target_amount) * HUNDRED)
        return min(progress.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP), HUNDRED)

    def amount_remaining(self, goal: FinancialGoal) -> Decimal:
        remaining = to_decimal(goal.target_amount) - to_decimal(goal.current_amount or 0)
        return max(remaining, Decimal("0"))

    def required_monthly_contribution(self, goal: FinancialGoal, today: Optional[date] = None) -> Decimal:
        if self.is_complete(goal) or goal.target_date is None:
            return Decimal("0")

        months_remaining = months_between(today or self.today(), goal.target_date)
        if months_remaining <= 0:
            return Decimal("0")

        return quantize_amount(self.amount_remaining(goal) / months_remaining)

    async def on_track(self, db: AsyncSession, goal: FinancialGoal, today: Optional[date] = None) -> bool:
        """Compare the trailing average monthly contribution with the required rate."""
        if goal.status == GoalStatus.ABANDONED:
            return False
        if self.is_complete(goal):
            return True
        if goal.target_date is None:
            return False

        today = today or self.today()
        months_remaining = months_between(today, goal.target_date)
        if months_remaining <= 0:
            return False

        required_per_month = self.amount_remaining(goal) / months_remaining

        actual = await self.recent_monthly_rate(db, goal, today)
        if actual is None:
            return False  # No recent activity
        return actual >= required_per_month

    async def recent_monthly_rate(
        self, db: AsyncSession, goal: FinancialGoal, today: Optional[date] = None
    ) -> Optional[Decimal]:
        """Average monthly contribution over the trailing window, None without activity."""
        today = today or self.today()
        window = settings.GOAL_ON_TRACK_WINDOW_MONTHS
        window_start = add_months(today, -window)

        result = await db.execute(
            select(
                func.count(GoalContribution.id),
                func.coalesce(func.sum(GoalContribution.amount), 0),
            ).where(
                GoalContribution.goal_id == goal.id,
                GoalContribution.contributed_on > window_start,
            )
        )
        count, total = result.one()
        if not count:
            return None
        return to_decimal(total) / window

    async def projection(
        self,
        db: AsyncSession,
        goal: FinancialGoal,
        months: int = 12,
        today: Optional[date] = None,
    ) -> List[Dict]:
        """Month-by-month projected balance until the target or the horizon is reached."""
        if months <= 0:
            return []

        today = today or self.today()
        if goal.contribution_amount is not None and goal.contribution_frequency == Frequency.MONTHLY:
            monthly_amount = to_decimal(goal.contribution_amount)
        else:
            recent = await self.recent_monthly_rate(db, goal, today)
            monthly_amount = recent if recent is not None else self.required_monthly_contribution(goal, today)
        monthly_amount = quantize_amount(monthly_amount)

        projection = []
        projected = to_decimal(goal.current_amount)
        target = to_decimal(goal.target_amount)
        for i in range(months):
            projected += monthly_amount
            percentage = min((projected / target * HUNDRED).quantize(Decimal("0.01")), HUNDRED)
            projection.append(
                {
                    "date": add_months(today, i + 1).strftime("%Y-%m"),
                    "amount": quantize_amount(projected),
                    "percentage": percentage,
                }
            )
            if projected >= target:
                break

        return projection

    # ---- Internals ----

    async def _mutate_locked(self, db: AsyncSession, goal_id: UUID, mutate: Mutation):
        """Run ``mutate`` under the goal row lock and commit, retrying lock conflicts.

        Every attempt starts from a fresh, locked read of the goal; nothing from a
        failed attempt is carried over.
        """
        attempts = settings.LEDGER_MAX_RETRIES
        for attempt in range(1, attempts + 1):
            events: list = []
            try:
                goal = await self._lock_goal(db, goal_id)
                result = await mutate(goal, events)
                await db.commit()
            except DBAPIError as e:
                await db.rollback()
                if not is_lock_conflict(e):
                    raise
                if attempt == attempts:
                    logger.error(
                        f"Giving up on goal {goal_id} after {attempts} lock conflicts",
                        extra={"goal_id": str(goal_id)},
                    )
                    raise ConcurrencyConflictError("FinancialGoal", goal_id, attempts) from e
                logger.warning(
                    f"Lock conflict on goal {goal_id}, retrying ({attempt}/{attempts})",
                    extra={"goal_id": str(goal_id), "attempt": attempt},
                )
                await backoff(attempt)
                continue
            except Exception:
                await db.rollback()
                raise

            await self.notifier.publish_all(db, events)
            await self._reload_if_expired(db, result)
            return result

    @staticmethod
    async def _reload_if_expired(db: AsyncSession, instance) -> None:
        # A failed notification write rolls the session back, expiring loaded rows
        if not isinstance(instance, Base):
            return
        state = inspect(instance)
        if state.persistent and state.expired_attributes:
            await db.refresh(instance)

    async def _lock_goal(self, db: AsyncSession, goal_id: UUID) -> FinancialGoal:
        result = await db.execute(
            select(FinancialGoal)
            .where(FinancialGoal.id == goal_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        goal = result.scalar_one_or_none()
        if goal is None:
            raise NotFoundError("FinancialGoal", goal_id)
        return goal

    async def _ledger_total(self, db: AsyncSession, goal: FinancialGoal) -> Decimal:
        result = await db.execute(
            select(func.coalesce(func.sum(GoalContribution.amount), 0)).where(
                GoalContribution.goal_id == goal.id
            )
        )
        return quantize_amount(to_decimal(goal.starting_amount) + to_decimal(result.scalar()))

    async def _recalculate_locked(self, db: AsyncSession, goal: FinancialGoal, events: list) -> None:
        goal.current_amount = await self._ledger_total(db, goal)

        if goal.status == GoalStatus.ACTIVE and goal.current_amount >= goal.target_amount:
            self._mark_complete(goal, events)
        elif goal.status == GoalStatus.COMPLETE and goal.current_amount < goal.target_amount:
            goal.status = GoalStatus.ACTIVE
            goal.completion_date = None
            logger.info(f"Goal {goal.id} re-opened after recalculation", extra={"goal_id": str(goal.id)})

    def _mark_complete(self, goal: FinancialGoal, events: list) -> None:
        goal.status = GoalStatus.COMPLETE
        goal.completion_date = self.today()
        events.append(
            GoalCompleted(
                goal_id=goal.id,
                user_id=goal.user_id,
                title=goal.title,
                target_amount=to_decimal(goal.target_amount),
                completion_date=goal.completion_date,
            )
        )
        logger.info(f"Goal {goal.id} completed", extra={"goal_id": str(goal.id)})

    def _milestone_event(self, goal: FinancialGoal, percentage: int) -> GoalMilestoneReached:
        return GoalMilestoneReached(
            goal_id=goal.id,
            user_id=goal.user_id,
            title=goal.title,
            percentage=percentage,
            current_amount=to_decimal(goal.current_amount),
            target_amount=to_decimal(goal.target_amount),
        )

    async def _goal_ids_for_transaction(self, db: AsyncSession, transaction_id: UUID) -> List[UUID]:
        result = await db.execute(
            select(GoalContribution.goal_id)
            .where(GoalContribution.transaction_id == transaction_id)
            .distinct()
        )
        return list(result.scalars().all())

    async def _check_associations(
        self, db: AsyncSession, user_id: UUID, category_ids: List[UUID], tag_ids: List[UUID]
    ) -> None:
        if category_ids:
            result = await db.execute(
                select(Category.id).where(
                    Category.id.in_(category_ids),
                    or_(Category.user_id == user_id, Category.user_id.is_(None)),
                )
            )
            missing = set(category_ids) - set(result.scalars().all())
            if missing:
                raise NotFoundError("Category", sorted(str(m) for m in missing)[0])
        if tag_ids:
            result = await db.execute(select(Tag.id).where(Tag.id.in_(tag_ids), Tag.user_id == user_id))
            missing = set(tag_ids) - set(result.scalars().all())
            if missing:
                raise NotFoundError("Tag", sorted(str(m) for m in missing)[0])

    async def _replace_associations(
        self,
        db: AsyncSession,
        goal_id: UUID,
        category_ids: Optional[List[UUID]],
        tag_ids: Optional[List[UUID]],
    ) -> None:
        if category_ids is not None:
            await db.execute(delete(goal_categories).where(goal_categories.c.goal_id == goal_id))
            if category_ids:
                await db.execute(
                    insert(goal_categories),
                    [{"goal_id": goal_id, "category_id": cid} for cid in dict.fromkeys(category_ids)],
                )
        if tag_ids is not None:
            await db.execute(delete(goal_tags).where(goal_tags.c.goal_id == goal_id))
            if tag_ids:
                await db.execute(
                    insert(goal_tags),
                    [{"goal_id": goal_id, "tag_id": tid} for tid in dict.fromkeys(tag_ids)],
                )


# Singleton instance
goal_ledger = GoalLedgerService()
