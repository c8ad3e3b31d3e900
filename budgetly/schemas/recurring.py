"""Recurring schedule schemas."""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from budgetly.models.recurring_schedule import Frequency
from budgetly.models.transaction import TransactionType


def _check_frequency_fields(frequency, day_of_week, day_of_month) -> None:
    if day_of_week is not None and frequency != Frequency.WEEKLY:
        raise ValueError("day_of_week is only allowed for weekly schedules")
    if day_of_month is not None and frequency != Frequency.MONTHLY:
        raise ValueError("day_of_month is only allowed for monthly schedules")


class RecurringScheduleCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category_id: UUID
    account_id: Optional[UUID] = None
    amount: Decimal = Field(..., gt=0)
    transaction_type: TransactionType
    frequency: Frequency
    interval: int = Field(default=1, ge=1)
    start_date: date
    end_date: Optional[date] = None
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    day_of_month: Optional[int] = Field(None, ge=1, le=31)
    active: bool = True

    @model_validator(mode="after")
    def check_dates_and_fields(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        _check_frequency_fields(self.frequency, self.day_of_week, self.day_of_month)
        return self


class RecurringScheduleUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    amount: Optional[Decimal] = Field(None, gt=0)
    category_id: Optional[UUID] = None
    account_id: Optional[UUID] = None
    end_date: Optional[date] = None
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    day_of_month: Optional[int] = Field(None, ge=1, le=31)

    @field_validator("title", "amount", "category_id")
    @classmethod
    def not_null(cls, v):
        # Omit a field to leave it unchanged; these columns cannot be cleared
        if v is None:
            raise ValueError("must not be null")
        return v
