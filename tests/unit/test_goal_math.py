"""Tests for the ledger's pure helpers and derived values."""

from datetime import date
from decimal import Decimal

from budgetly.models.goal import FinancialGoal, GoalStatus, GoalType
from budgetly.services.goal_ledger import GoalLedgerService, milestones_crossed, quantize_amount


def _goal(current="0", target="1000", status=GoalStatus.ACTIVE, target_date=None) -> FinancialGoal:
    return FinancialGoal(
        title="Trip",
        goal_type=GoalType.SAVINGS,
        target_amount=Decimal(target),
        starting_amount=Decimal("0"),
        current_amount=Decimal(current),
        status=status,
        target_date=target_date,
    )


class TestQuantize:
    def test_rounds_half_up(self):
        assert quantize_amount(Decimal("33.335")) == Decimal("33.34")
        assert quantize_amount(Decimal("33.334")) == Decimal("33.33")
        assert quantize_amount("-0.005") == Decimal("-0.01")


class TestMilestones:
    def test_crossing_several_steps(self):
        assert milestones_crossed(Decimal("10"), Decimal("60"), 25) == [25, 50]

    def test_landing_on_step(self):
        assert milestones_crossed(Decimal("0"), Decimal("25"), 25) == [25]

    def test_never_reports_100(self):
        assert milestones_crossed(Decimal("80"), Decimal("100"), 25) == []

    def test_decrease_reports_nothing(self):
        assert milestones_crossed(Decimal("60"), Decimal("10"), 25) == []


class TestDerivedValues:
    def setup_method(self):
        self.ledger = GoalLedgerService(today=lambda: date(2024, 1, 15))

    def test_progress_percentage(self):
        assert self.ledger.progress_percentage(_goal("250")) == Decimal("25.00")
        assert self.ledger.progress_percentage(_goal("1")) == Decimal("0.10")

    def test_progress_capped_at_100(self):
        assert self.ledger.progress_percentage(_goal("1500")) == Decimal("100")

    def test_progress_negative_balance(self):
        assert self.ledger.progress_percentage(_goal("-100")) == Decimal("-10.00")

    def test_amount_remaining(self):
        assert self.ledger.amount_remaining(_goal("250")) == Decimal("750")
        assert self.ledger.amount_remaining(_goal("1500")) == Decimal("0")

    def test_is_complete(self):
        assert self.ledger.is_complete(_goal("1000"))
        assert self.ledger.is_complete(_goal("0", status=GoalStatus.COMPLETE))
        assert not self.ledger.is_complete(_goal("999.99"))

    def test_required_monthly_contribution(self):
        goal = _goal("400", "1000", target_date=date(2024, 7, 1))
        # Six calendar months between January and July
        assert self.ledger.required_monthly_contribution(goal) == Decimal("100.00")

    def test_required_monthly_without_deadline(self):
        assert self.ledger.required_monthly_contribution(_goal("400")) == Decimal("0")

    def test_required_monthly_past_deadline(self):
        goal = _goal("400", target_date=date(2024, 1, 31))
        assert self.ledger.required_monthly_contribution(goal) == Decimal("0")

    def test_required_monthly_complete(self):
        goal = _goal("1000", target_date=date(2024, 7, 1))
        assert self.ledger.required_monthly_contribution(goal) == Decimal("0")
