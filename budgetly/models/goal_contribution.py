"""Goal contribution model."""

import enum
import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, Text, Uuid
from sqlalchemy.sql import func

from budgetly.models import Base, value_enum


class ContributionType(str, enum.Enum):
    TRANSACTION = "transaction"
    MANUAL = "manual"
    RECURRING = "recurring"


class GoalContribution(Base):
    __tablename__ = "goal_contributions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    goal_id = Column(
        Uuid(as_uuid=True), ForeignKey("financial_goals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transaction_id = Column(
        Uuid(as_uuid=True), ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    amount = Column(Numeric(precision=18, scale=2), nullable=False)
    contribution_type = Column(value_enum(ContributionType), nullable=False)
    notes = Column(Text, nullable=True)
    contributed_on = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
