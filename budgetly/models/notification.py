"""Notification model."""

import enum
import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.sql import func

from budgetly.models import Base, value_enum


class NotificationType(str, enum.Enum):
    GOAL_MILESTONE = "goal_milestone"
    GOAL_COMPLETED = "goal_completed"
    RECURRING_TRANSACTION_PROCESSED = "recurring_transaction_processed"
    RECURRING_TRANSACTION_UPCOMING = "recurring_transaction_upcoming"


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class ReferenceType(str, enum.Enum):
    GOAL = "goal"
    RECURRING_SCHEDULE = "recurring_schedule"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(value_enum(NotificationType), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(value_enum(NotificationPriority), default=NotificationPriority.NORMAL, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    # Discriminated source reference: kind tag + id, no foreign key
    reference_type = Column(value_enum(ReferenceType), nullable=True)
    reference_id = Column(Uuid(as_uuid=True), nullable=True)
    payload = Column(JSON, default=dict, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
