"""Notification service: turns ledger and recurrence events into in-app notifications."""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from budgetly.core.config import settings
from budgetly.models.goal import FinancialGoal, GoalStatus
from budgetly.models.notification import (
    Notification,
    NotificationPriority,
    NotificationType,
    ReferenceType,
)
from budgetly.services.events import (
    GoalCompleted,
    GoalMilestoneReached,
    RecurringTransactionGenerated,
    RecurringTransactionUpcoming,
    event_payload,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """Records notification events; delivery to other channels happens elsewhere."""

    async def publish(self, db: AsyncSession, event) -> Optional[Notification]:
        """Record an event as a notification. Never raises into the caller."""
        try:
            if isinstance(event, GoalMilestoneReached):
                if await self._milestone_already_sent(db, event.goal_id, event.percentage):
                    return None
                return await self._create(
                    db,
                    user_id=event.user_id,
                    notification_type=NotificationType.GOAL_MILESTONE,
                    title=f"{event.percentage}% milestone reached for {event.title}",
                    message=(
                        f"You're making great progress! You've reached {event.percentage}% "
                        f"of your goal '{event.title}'."
                    ),
                    reference_type=ReferenceType.GOAL,
                    reference_id=event.goal_id,
                    payload=event_payload(event),
                )
            if isinstance(event, GoalCompleted):
                return await self._create(
                    db,
                    user_id=event.user_id,
                    notification_type=NotificationType.GOAL_COMPLETED,
                    title=f"Congratulations! Goal completed: {event.title}",
                    message=f"You've successfully reached your goal of {event.target_amount} for '{event.title}'!",
                    priority=NotificationPriority.HIGH,
                    reference_type=ReferenceType.GOAL,
                    reference_id=event.goal_id,
                    payload=event_payload(event),
                )
            if isinstance(event, RecurringTransactionGenerated):
                return await self._create(
                    db,
                    user_id=event.user_id,
                    notification_type=NotificationType.RECURRING_TRANSACTION_PROCESSED,
                    title=f"Recurring transaction processed: {event.title}",
                    message=(
                        f"A {event.transaction_type} of {event.amount} for '{event.title}' "
                        f"has been added to your transactions."
                    ),
                    priority=NotificationPriority.LOW,
                    reference_type=ReferenceType.RECURRING_SCHEDULE,
                    reference_id=event.schedule_id,
                    payload=event_payload(event),
                )
            if isinstance(event, RecurringTransactionUpcoming):
                return await self._create(
                    db,
                    user_id=event.user_id,
                    notification_type=NotificationType.RECURRING_TRANSACTION_UPCOMING,
                    title=f"Upcoming: {event.title}",
                    message=(
                        f"You have a recurring {event.transaction_type} of {event.amount} "
                        f"scheduled for {event.due_date.strftime('%A, %B %d')}."
                    ),
                    reference_type=ReferenceType.RECURRING_SCHEDULE,
                    reference_id=event.schedule_id,
                    payload=event_payload(event),
                )
            raise TypeError(f"Unsupported event type: {type(event).__name__}")
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                f"Failed to record notification {type(event).__name__}: {e}",
                extra={"event": type(event).__name__},
            )
            return None

    async def publish_all(self, db: AsyncSession, events) -> List[Notification]:
        notifications = []
        for event in events:
            notification = await self.publish(db, event)
            if notification is not None:
                notifications.append(notification)
        return notifications

    async def check_goal_milestones(self, db: AsyncSession) -> int:
        """Sweep active goals and record the highest milestone each has reached."""
        from budgetly.services.goal_ledger import goal_ledger

        result = await db.execute(select(FinancialGoal).where(FinancialGoal.status == GoalStatus.ACTIVE))
        goals = result.scalars().all()

        step = settings.GOAL_MILESTONE_STEP
        events = []
        for goal in goals:
            percentage = goal_ledger.progress_percentage(goal)
            milestone = int(percentage // step) * step
            if milestone <= 0 or milestone >= 100:
                continue
            events.append(
                GoalMilestoneReached(
                    goal_id=goal.id,
                    user_id=goal.user_id,
                    title=goal.title,
                    percentage=milestone,
                    current_amount=goal.current_amount,
                    target_amount=goal.target_amount,
                )
            )
        sent = len(await self.publish_all(db, events))

        logger.info(f"Goal milestone check: {len(goals)} goals checked, {sent} notifications")
        return sent

    async def remind_upcoming_recurring(self, db: AsyncSession, as_of: Optional[date] = None) -> int:
        """Remind users of recurring transactions due in RECURRING_REMINDER_DAYS days."""
        from budgetly.services.recurrence import recurrence_service

        as_of = as_of or recurrence_service.today()
        due = await recurrence_service.upcoming(db, as_of)

        events = [
            RecurringTransactionUpcoming(
                schedule_id=schedule.id,
                user_id=schedule.user_id,
                title=schedule.title,
                amount=schedule.amount,
                transaction_type=schedule.transaction_type.value,
                due_date=due_date,
                days_until=(due_date - as_of).days,
            )
            for schedule, due_date in due
        ]
        sent = len(await self.publish_all(db, events))

        logger.info(f"Upcoming recurring reminders for {as_of}: {sent} sent")
        return sent

    async def get_user_notifications(
        self,
        db: AsyncSession,
        user_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Notification]:
        """Get notifications for a user."""
        query = select(Notification).where(Notification.user_id == user_id)

        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712

        query = query.order_by(Notification.created_at.desc()).offset(offset).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    async def mark_as_read(self, db: AsyncSession, notification_id: UUID, user_id: UUID) -> bool:
        """Mark a notification as read."""
        result = await db.execute(
            update(Notification)
            .where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
            .values(is_read=True)
        )
        await db.commit()
        return result.rowcount > 0

    async def get_unread_count(self, db: AsyncSession, user_id: UUID) -> int:
        """Get count of unread notifications."""
        result = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read == False,  # noqa: E712
            )
        )
        return result.scalar() or 0

    async def _milestone_already_sent(self, db: AsyncSession, goal_id: UUID, percentage: int) -> bool:
        result = await db.execute(
            select(Notification.payload).where(
                Notification.type == NotificationType.GOAL_MILESTONE,
                Notification.reference_type == ReferenceType.GOAL,
                Notification.reference_id == goal_id,
            )
        )
        return any((payload or {}).get("percentage") == percentage for payload in result.scalars().all())

    async def _create(
        self,
        db: AsyncSession,
        user_id: UUID,
        notification_type: NotificationType,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        reference_type: Optional[ReferenceType] = None,
        reference_id: Optional[UUID] = None,
        payload: Optional[dict] = None,
    ) -> Notification:
        """Create an in-app notification."""
        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            priority=priority,
            reference_type=reference_type,
            reference_id=reference_id,
            payload=payload or {},
            is_read=False,
        )
        db.add(notification)
        await db.commit()
        await db.refresh(notification)

        logger.info(
            f"Created in-app notification for user {user_id}: {title}",
            extra={"user_id": str(user_id), "notification_type": notification_type.value},
        )

        return notification


# Singleton instance
notification_service = NotificationService()
