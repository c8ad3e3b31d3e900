"""SQLAlchemy models."""

from sqlalchemy import Enum
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def value_enum(enum_cls) -> Enum:
    """Enum column type persisting member values (``"active"``) rather than names."""
    return Enum(
        enum_cls,
        name=enum_cls.__name__.lower(),
        values_callable=lambda members: [m.value for m in members],
    )


# Import all models so Base.metadata.create_all() picks them up
from budgetly.models.user import User  # noqa: E402, F401
from budgetly.models.account import Account  # noqa: E402, F401
from budgetly.models.category import Category  # noqa: E402, F401
from budgetly.models.tag import Tag, goal_tags, transaction_tags  # noqa: E402, F401
from budgetly.models.recurring_schedule import RecurringSchedule  # noqa: E402, F401
from budgetly.models.transaction import Transaction  # noqa: E402, F401
from budgetly.models.goal import FinancialGoal, goal_categories  # noqa: E402, F401
from budgetly.models.goal_contribution import GoalContribution  # noqa: E402, F401
from budgetly.models.notification import Notification  # noqa: E402, F401
