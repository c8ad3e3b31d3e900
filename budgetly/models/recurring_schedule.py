"""Recurring transaction schedule model."""

import enum
import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.sql import func

from budgetly.models import Base, value_enum
from budgetly.models.transaction import TransactionType


class Frequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RecurringSchedule(Base):
    __tablename__ = "recurring_schedules"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Uuid(as_uuid=True), ForeignKey("categories.id"), nullable=False)
    account_id = Column(Uuid(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Numeric(precision=18, scale=2), nullable=False)
    transaction_type = Column(value_enum(TransactionType), nullable=False)
    frequency = Column(value_enum(Frequency), nullable=False)
    interval = Column(Integer, default=1, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    day_of_week = Column(Integer, nullable=True)  # 0 = Sunday .. 6 = Saturday, weekly only
    day_of_month = Column(Integer, nullable=True)  # 1..31, monthly only
    active = Column(Boolean, default=True, nullable=False, index=True)
    # Anchor: last successfully generated occurrence
    last_generated_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
