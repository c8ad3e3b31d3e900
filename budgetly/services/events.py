"""Notification event payloads emitted by the ledger and the recurrence engine.

Events are plain payloads; delivery is handled by the notification service.
"""

from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict
from uuid import UUID


@dataclass(frozen=True)
class GoalMilestoneReached:
    goal_id: UUID
    user_id: UUID
    title: str
    percentage: int
    current_amount: Decimal
    target_amount: Decimal


@dataclass(frozen=True)
class GoalCompleted:
    goal_id: UUID
    user_id: UUID
    title: str
    target_amount: Decimal
    completion_date: date


@dataclass(frozen=True)
class RecurringTransactionGenerated:
    schedule_id: UUID
    user_id: UUID
    transaction_id: UUID
    title: str
    amount: Decimal
    transaction_type: str
    occurrence_date: date


@dataclass(frozen=True)
class RecurringTransactionUpcoming:
    schedule_id: UUID
    user_id: UUID
    title: str
    amount: Decimal
    transaction_type: str
    due_date: date
    days_until: int


def event_payload(event) -> Dict[str, Any]:
    """JSON-safe dict of an event's fields."""
    payload = {}
    for key, value in asdict(event).items():
        if isinstance(value, (UUID, date)):
            value = str(value) if isinstance(value, UUID) else value.isoformat()
        elif isinstance(value, Decimal):
            value = str(value)
        payload[key] = value
    return payload
