"""Pydantic input schemas."""

from budgetly.schemas.goal import ContributionCreate, GoalCreate, GoalUpdate
from budgetly.schemas.recurring import RecurringScheduleCreate, RecurringScheduleUpdate

__all__ = [
    "ContributionCreate",
    "GoalCreate",
    "GoalUpdate",
    "RecurringScheduleCreate",
    "RecurringScheduleUpdate",
]
