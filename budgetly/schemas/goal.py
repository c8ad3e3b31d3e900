"""Financial goal schemas."""

from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from budgetly.models.goal import GoalType, TrackingMethod
from budgetly.models.recurring_schedule import Frequency


class GoalCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    goal_type: GoalType
    target_amount: Decimal = Field(..., gt=0)
    starting_amount: Decimal = Field(default=Decimal("0"), ge=0)
    target_date: Optional[date] = None
    auto_track: bool = False
    tracking_method: TrackingMethod = TrackingMethod.MANUAL
    tracking_criteria: List[str] = Field(default_factory=list)
    contribution_amount: Optional[Decimal] = Field(None, gt=0)
    contribution_frequency: Optional[Frequency] = None
    category_ids: List[UUID] = Field(default_factory=list)
    tag_ids: List[UUID] = Field(default_factory=list)

    @field_validator("tracking_criteria")
    @classmethod
    def dedupe_criteria(cls, v: List[str]) -> List[str]:
        # Criteria behave as a set; keep first-seen order for stable storage
        return list(dict.fromkeys(item.strip() for item in v if item and item.strip()))

    @model_validator(mode="after")
    def check_contribution_plan(self):
        if (self.contribution_amount is None) != (self.contribution_frequency is None):
            raise ValueError("contribution_amount and contribution_frequency must be set together")
        return self


class GoalUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    target_amount: Optional[Decimal] = Field(None, gt=0)
    starting_amount: Optional[Decimal] = Field(None, ge=0)
    target_date: Optional[date] = None
    auto_track: Optional[bool] = None
    tracking_method: Optional[TrackingMethod] = None
    tracking_criteria: Optional[List[str]] = None
    contribution_amount: Optional[Decimal] = Field(None, gt=0)
    contribution_frequency: Optional[Frequency] = None
    category_ids: Optional[List[UUID]] = None
    tag_ids: Optional[List[UUID]] = None

    @field_validator(
        "title", "target_amount", "starting_amount", "auto_track", "tracking_method", "tracking_criteria"
    )
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v

    @field_validator("tracking_criteria")
    @classmethod
    def dedupe_criteria(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(item.strip() for item in v if item and item.strip()))


class ContributionCreate(BaseModel):
    amount: Decimal
    notes: Optional[str] = None
    contributed_on: Optional[date] = None

    @field_validator("amount")
    @classmethod
    def non_zero(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("Contribution amount must not be zero")
        return v
