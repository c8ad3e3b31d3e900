"""Transaction model."""

import enum
import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from budgetly.models import Base, value_enum


class TransactionType(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Uuid(as_uuid=True), ForeignKey("categories.id"), nullable=False, index=True)
    account_id = Column(Uuid(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Numeric(precision=18, scale=2), nullable=False)
    transaction_type = Column(value_enum(TransactionType), nullable=False)
    transaction_date = Column(Date, nullable=False, index=True)
    # Weak back-reference; schedules are never cascaded into their transactions
    recurring_schedule_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("recurring_schedules.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    tags = relationship("Tag", secondary="transaction_tags", lazy="selectin")
