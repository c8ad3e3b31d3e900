"""Recurring transaction engine.

A schedule's ``last_generated_date`` is its anchor. Each occurrence is one
database transaction that inserts the generated row and advances the anchor
with a conditional update on the previous anchor value, so a crash or a
competing worker can never leave an occurrence half-applied: either both
writes commit or neither does, and catch-up simply resumes from the
persisted anchor.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional, Tuple, Union
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_, select, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from budgetly.core.config import settings
from budgetly.core.exceptions import (
    BudgetlyError,
    ConcurrencyConflictError,
    GenerationFailure,
    NotFoundError,
    ValidationError,
)
from budgetly.core.locking import backoff, is_lock_conflict
from budgetly.models.category import Category
from budgetly.models.recurring_schedule import Frequency, RecurringSchedule
from budgetly.models.transaction import Transaction
from budgetly.schemas.recurring import RecurringScheduleCreate, RecurringScheduleUpdate
from budgetly.services.events import RecurringTransactionGenerated
from budgetly.services.goal_matcher import GoalMatcher, goal_matcher
from budgetly.services.notification_service import NotificationService, notification_service
from budgetly.utils.dates import next_occurrence, previous_occurrence_anchor

logger = logging.getLogger(__name__)

LockFactory = Callable[[UUID], AsyncContextManager[bool]]

_ANY_ANCHOR = object()


@dataclass
class CatchUpResult:
    """Summary of one catch-up run across all active schedules."""

    as_of: date
    schedules_processed: int = 0
    transactions_generated: int = 0
    skipped_locked: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "schedules_processed": self.schedules_processed,
            "transactions_generated": self.transactions_generated,
            "skipped_locked": self.skipped_locked,
            "failures": self.failures,
        }


class RecurrenceService:
    """Owns recurring schedules and the transactions they imply."""

    def __init__(
        self,
        today: Callable[[], date] = date.today,
        matcher: Optional[GoalMatcher] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self._today = today
        self.matcher = matcher or goal_matcher
        self.notifier = notifier or notification_service

    def today(self) -> date:
        return self._today()

    # ---- Occurrence arithmetic ----

    def anchor(self, schedule: RecurringSchedule) -> date:
        """Last generated date, or one period before start for a fresh schedule."""
        if schedule.last_generated_date is not None:
            return schedule.last_generated_date
        return previous_occurrence_anchor(schedule.start_date, schedule.frequency, schedule.interval)

    def next_occurrence_after(self, schedule: RecurringSchedule, from_date: date) -> date:
        day_of_week = schedule.day_of_week if schedule.frequency == Frequency.WEEKLY else None
        day_of_month = None
        if schedule.frequency == Frequency.MONTHLY:
            # Without an explicit day, stay pinned to the start day so that
            # month-end clamping (Jan 31 -> Feb 29) does not drift later months
            day_of_month = schedule.day_of_month or schedule.start_date.day
        elif schedule.frequency == Frequency.YEARLY:
            # Same pin for Feb 29 starts, which relativedelta clamps to Feb 28
            day_of_month = schedule.start_date.day
        return next_occurrence(
            from_date,
            schedule.frequency,
            schedule.interval,
            day_of_week=day_of_week,
            day_of_month=day_of_month,
        )

    def next_due_date(self, schedule: RecurringSchedule) -> date:
        return self.next_occurrence_after(schedule, self.anchor(schedule))

    def is_exhausted(self, schedule: RecurringSchedule, as_of: Optional[date] = None) -> bool:
        as_of = as_of or self.today()
        return not schedule.active or (schedule.end_date is not None and as_of > schedule.end_date)

    def should_generate(self, schedule: RecurringSchedule, as_of: Optional[date] = None) -> bool:
        as_of = as_of or self.today()
        if self.is_exhausted(schedule, as_of):
            return False
        return self.next_due_date(schedule) <= as_of

    # ---- Generation ----

    async def generate_one(
        self,
        db: AsyncSession,
        schedule_id: UUID,
        occurrence_date: Optional[date] = None,
        expected_anchor=_ANY_ANCHOR,
    ) -> Transaction:
        """Create one occurrence and advance the anchor in a single commit.

        ``expected_anchor`` lets catch-up insist that the anchor it computed
        ``occurrence_date`` from is still current.
        """
        try:
            schedule = await self._get_schedule(db, schedule_id, for_update=True)
        except DBAPIError as e:
            await db.rollback()
            if is_lock_conflict(e):
                raise ConcurrencyConflictError("RecurringSchedule", schedule_id) from e
            raise
        prior_anchor = schedule.last_generated_date
        if expected_anchor is not _ANY_ANCHOR and prior_anchor != expected_anchor:
            await db.rollback()
            raise ConcurrencyConflictError("RecurringSchedule", schedule_id)
        if occurrence_date is None:
            occurrence_date = self.next_due_date(schedule)
        # The anchor only moves forward; back-filling an older date leaves it alone
        new_anchor = occurrence_date if prior_anchor is None else max(prior_anchor, occurrence_date)

        try:
            transaction = self._build_transaction(schedule, occurrence_date)
            db.add(transaction)
            await db.flush()

            anchor_matches = (
                RecurringSchedule.last_generated_date.is_(None)
                if prior_anchor is None
                else RecurringSchedule.last_generated_date == prior_anchor
            )
            advanced = await db.execute(
                update(RecurringSchedule)
                .where(RecurringSchedule.id == schedule_id, anchor_matches)
                .values(last_generated_date=new_anchor)
                .execution_options(synchronize_session=False)
            )
            if advanced.rowcount != 1:
                raise ConcurrencyConflictError("RecurringSchedule", schedule_id)

            await db.commit()
        except ConcurrencyConflictError:
            await db.rollback()
            logger.warning(
                f"Anchor of schedule {schedule_id} moved while generating {occurrence_date}",
                extra={"schedule_id": str(schedule_id), "occurrence_date": occurrence_date.isoformat()},
            )
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                f"Failed to generate recurring transaction for schedule {schedule_id} "
                f"on {occurrence_date}: {type(e).__name__}: {e}",
                extra={"schedule_id": str(schedule_id), "occurrence_date": occurrence_date.isoformat()},
            )
            raise GenerationFailure(schedule_id, occurrence_date, f"{type(e).__name__}: {e}") from e

        # Mirror the committed anchor without marking the instance dirty
        set_committed_value(schedule, "last_generated_date", new_anchor)
        event = RecurringTransactionGenerated(
            schedule_id=schedule_id,
            user_id=transaction.user_id,
            transaction_id=transaction.id,
            title=transaction.title,
            amount=transaction.amount,
            transaction_type=transaction.transaction_type.value,
            occurrence_date=occurrence_date,
        )
        logger.info(
            f"Generated recurring transaction {transaction.id} for schedule {schedule_id} on {occurrence_date}",
            extra={"schedule_id": str(schedule_id), "occurrence_date": occurrence_date.isoformat()},
        )

        try:
            await self.matcher.match_transaction(db, transaction)
        except (BudgetlyError, SQLAlchemyError) as e:
            # The occurrence is committed; matching can be repaired separately
            await db.rollback()
            logger.error(
                f"Goal matching failed for generated transaction {event.transaction_id}: {e}",
                extra={"schedule_id": str(schedule_id), "transaction_id": str(event.transaction_id)},
            )

        await self.notifier.publish(db, event)

        await db.refresh(transaction)
        return transaction

    async def generate_all_pending(
        self,
        db: AsyncSession,
        schedule_id: UUID,
        as_of: Optional[date] = None,
    ) -> List[Transaction]:
        """Generate every occurrence due up to ``as_of`` (and ``end_date``).

        Resumes from the persisted anchor, so repeating a run for the same
        ``as_of`` generates nothing, and a run interrupted by a failure picks
        up at the failed occurrence next time.
        """
        as_of = as_of or self.today()
        generated: List[Transaction] = []
        conflicts = 0

        for _ in range(settings.CATCH_UP_MAX_OCCURRENCES):
            schedule = await self._get_schedule(db, schedule_id)
            if not schedule.active:
                break

            next_date = self.next_due_date(schedule)
            if next_date > as_of:
                break
            if schedule.end_date is not None and next_date > schedule.end_date:
                break

            try:
                transaction = await self.generate_one(
                    db, schedule_id, next_date, expected_anchor=schedule.last_generated_date
                )
            except ConcurrencyConflictError:
                # Another worker advanced the anchor; re-read it and carry on from there
                conflicts += 1
                if conflicts >= settings.LEDGER_MAX_RETRIES:
                    raise
                await backoff(conflicts)
                continue
            except GenerationFailure as e:
                e.generated = list(generated)
                raise
            conflicts = 0
            generated.append(transaction)
        else:
            logger.warning(
                f"Schedule {schedule_id} hit the catch-up limit of "
                f"{settings.CATCH_UP_MAX_OCCURRENCES} occurrences; remaining ones run next time",
                extra={"schedule_id": str(schedule_id)},
            )

        return generated

    async def run_catch_up(
        self,
        db: AsyncSession,
        as_of: Optional[date] = None,
        lock: Optional[LockFactory] = None,
    ) -> CatchUpResult:
        """Catch up every active schedule; one schedule's failure never blocks the others."""
        as_of = as_of or self.today()
        result = CatchUpResult(as_of=as_of)

        schedule_ids = (
            await db.execute(
                select(RecurringSchedule.id)
                .where(RecurringSchedule.active == True)  # noqa: E712
                .order_by(RecurringSchedule.created_at)
            )
        ).scalars().all()

        for schedule_id in schedule_ids:
            if lock is None:
                await self._catch_up_one(db, schedule_id, as_of, result)
                continue
            async with lock(schedule_id) as acquired:
                if not acquired:
                    logger.info(
                        f"Schedule {schedule_id} is being caught up elsewhere, skipping",
                        extra={"schedule_id": str(schedule_id)},
                    )
                    result.skipped_locked += 1
                    continue
                await self._catch_up_one(db, schedule_id, as_of, result)

        logger.info(
            f"Recurring catch-up as of {as_of}: {result.schedules_processed} schedules, "
            f"{result.transactions_generated} transactions, {len(result.failures)} failures"
        )
        return result

    async def _catch_up_one(self, db: AsyncSession, schedule_id: UUID, as_of: date, result: CatchUpResult) -> None:
        try:
            generated = await self.generate_all_pending(db, schedule_id, as_of)
        except GenerationFailure as e:
            result.transactions_generated += len(e.generated)
            result.failures.append(e.to_dict())
        except (ConcurrencyConflictError, NotFoundError) as e:
            result.failures.append(e.to_dict())
        else:
            result.transactions_generated += len(generated)
        result.schedules_processed += 1

    async def upcoming(
        self,
        db: AsyncSession,
        as_of: Optional[date] = None,
        days_before: Optional[int] = None,
    ) -> List[Tuple[RecurringSchedule, date]]:
        """Active schedules whose next occurrence is exactly ``days_before`` days away."""
        as_of = as_of or self.today()
        days_before = settings.RECURRING_REMINDER_DAYS if days_before is None else days_before

        result = await db.execute(
            select(RecurringSchedule).where(RecurringSchedule.active == True)  # noqa: E712
        )
        due = []
        for schedule in result.scalars().all():
            next_date = self.next_due_date(schedule)
            if schedule.end_date is not None and next_date > schedule.end_date:
                continue
            if (next_date - as_of).days == days_before:
                due.append((schedule, next_date))
        return due

    # ---- Schedule lifecycle ----

    async def create_schedule(
        self, db: AsyncSession, user_id: UUID, data: Union[RecurringScheduleCreate, dict]
    ) -> RecurringSchedule:
        data = self._validated(RecurringScheduleCreate, data)
        await self._check_category(db, user_id, data.category_id, data.transaction_type)

        schedule = RecurringSchedule(user_id=user_id, **data.model_dump())
        db.add(schedule)
        await db.commit()
        await db.refresh(schedule)
        logger.info(
            f"Created {schedule.frequency.value} schedule {schedule.id} for user {user_id}",
            extra={"schedule_id": str(schedule.id)},
        )
        return schedule

    async def update_schedule(
        self, db: AsyncSession, schedule_id: UUID, data: Union[RecurringScheduleUpdate, dict]
    ) -> RecurringSchedule:
        data = self._validated(RecurringScheduleUpdate, data)
        changes = data.model_dump(exclude_unset=True)

        schedule = await self._get_schedule(db, schedule_id, for_update=True)
        try:
            errors = {}
            end_date = changes.get("end_date", schedule.end_date)
            if end_date is not None and end_date < schedule.start_date:
                errors["end_date"] = "end_date must not be before start_date"
            elif (
                end_date != schedule.end_date
                and schedule.end_date is not None
                and self.today() > schedule.end_date
            ):
                errors["end_date"] = "schedule has already ended; its end_date can no longer change"
            if changes.get("day_of_week") is not None and schedule.frequency != Frequency.WEEKLY:
                errors["day_of_week"] = "day_of_week is only allowed for weekly schedules"
            if changes.get("day_of_month") is not None and schedule.frequency != Frequency.MONTHLY:
                errors["day_of_month"] = "day_of_month is only allowed for monthly schedules"
            if errors:
                raise ValidationError(errors)
            if changes.get("category_id") is not None:
                await self._check_category(db, schedule.user_id, changes["category_id"], schedule.transaction_type)
        except BudgetlyError:
            await db.rollback()
            raise

        for field_name, value in changes.items():
            setattr(schedule, field_name, value)
        await db.commit()
        return schedule

    async def deactivate(self, db: AsyncSession, schedule_id: UUID) -> RecurringSchedule:
        """Stop generating; history of generated transactions is kept."""
        schedule = await self._get_schedule(db, schedule_id, for_update=True)
        schedule.active = False
        await db.commit()
        return schedule

    async def reenable(self, db: AsyncSession, schedule_id: UUID) -> RecurringSchedule:
        """Re-activate a schedule; its end_date is left as is."""
        schedule = await self._get_schedule(db, schedule_id, for_update=True)
        schedule.active = True
        await db.commit()
        return schedule

    async def delete_schedule(self, db: AsyncSession, schedule_id: UUID) -> None:
        """Delete a schedule, detaching (not deleting) the transactions it generated."""
        schedule = await self._get_schedule(db, schedule_id, for_update=True)
        await db.execute(
            update(Transaction)
            .where(Transaction.recurring_schedule_id == schedule_id)
            .values(recurring_schedule_id=None)
            .execution_options(synchronize_session=False)
        )
        await db.delete(schedule)
        await db.commit()

    # ---- Internals ----

    def _build_transaction(self, schedule: RecurringSchedule, occurrence_date: date) -> Transaction:
        return Transaction(
            user_id=schedule.user_id,
            category_id=schedule.category_id,
            account_id=schedule.account_id,
            title=schedule.title,
            description=f"{schedule.description or schedule.title} (Recurring: {schedule.frequency.value})",
            amount=schedule.amount,
            transaction_type=schedule.transaction_type,
            transaction_date=occurrence_date,
            recurring_schedule_id=schedule.id,
        )

    async def _get_schedule(
        self, db: AsyncSession, schedule_id: UUID, for_update: bool = False
    ) -> RecurringSchedule:
        query = select(RecurringSchedule).where(RecurringSchedule.id == schedule_id)
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query.execution_options(populate_existing=True))
        schedule = result.scalar_one_or_none()
        if schedule is None:
            raise NotFoundError("RecurringSchedule", schedule_id)
        return schedule

    async def _check_category(self, db: AsyncSession, user_id: UUID, category_id: UUID, transaction_type) -> None:
        result = await db.execute(
            select(Category).where(
                Category.id == category_id,
                or_(Category.user_id == user_id, Category.user_id.is_(None)),
            )
        )
        category = result.scalar_one_or_none()
        if category is None:
            raise NotFoundError("Category", category_id)
        if category.category_type != transaction_type:
            raise ValidationError(
                {"category_id": f"Category type must match transaction type ({transaction_type.value})"}
            )

    @staticmethod
    def _validated(schema, data):
        if isinstance(data, schema):
            return data
        try:
            return schema.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e


# Singleton instance
recurrence_service = RecurrenceService()
