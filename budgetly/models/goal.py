"""Financial goal model."""

import enum
import uuid
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, Table, Text, Uuid
from sqlalchemy.sql import func

from budgetly.models import Base, value_enum
from budgetly.models.recurring_schedule import Frequency


class GoalType(str, enum.Enum):
    SAVINGS = "savings"
    DEBT_REDUCTION = "debt_reduction"
    EMERGENCY_FUND = "emergency_fund"
    INVESTMENT = "investment"
    CUSTOM = "custom"


class GoalStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETE = "complete"
    ABANDONED = "abandoned"


class TrackingMethod(str, enum.Enum):
    CATEGORY = "category"
    TAG = "tag"
    ACCOUNT = "account"
    MANUAL = "manual"


goal_categories = Table(
    "goal_categories",
    Base.metadata,
    Column("goal_id", Uuid(as_uuid=True), ForeignKey("financial_goals.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", Uuid(as_uuid=True), ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)


class FinancialGoal(Base):
    __tablename__ = "financial_goals"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    goal_type = Column(value_enum(GoalType), nullable=False)
    target_amount = Column(Numeric(precision=18, scale=2), nullable=False)
    starting_amount = Column(Numeric(precision=18, scale=2), default=Decimal("0"), nullable=False)
    # Cached projection of starting_amount + sum(contributions)
    current_amount = Column(Numeric(precision=18, scale=2), default=Decimal("0"), nullable=False)
    target_date = Column(Date, nullable=True)
    status = Column(value_enum(GoalStatus), default=GoalStatus.ACTIVE, nullable=False, index=True)
    auto_track = Column(Boolean, default=False, nullable=False)
    tracking_method = Column(value_enum(TrackingMethod), default=TrackingMethod.MANUAL, nullable=False)
    tracking_criteria = Column(JSON, default=list, nullable=False)
    contribution_amount = Column(Numeric(precision=18, scale=2), nullable=True)
    contribution_frequency = Column(value_enum(Frequency), nullable=True)
    completion_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
