"""Tests for schedule date arithmetic."""

from datetime import date

import pytest

from budgetly.models.recurring_schedule import Frequency
from budgetly.utils.dates import (
    add_months,
    last_day_of_month,
    months_between,
    next_occurrence,
    previous_occurrence_anchor,
    sunday_based_weekday,
)


class TestNextOccurrence:
    def test_daily(self):
        assert next_occurrence(date(2024, 2, 28), Frequency.DAILY) == date(2024, 2, 29)
        assert next_occurrence(date(2024, 2, 28), Frequency.DAILY, 3) == date(2024, 3, 2)

    def test_weekly_without_weekday(self):
        assert next_occurrence(date(2024, 3, 1), Frequency.WEEKLY, 2) == date(2024, 3, 15)

    def test_weekly_moves_forward_to_weekday(self):
        # 2024-03-08 is a Friday; Wednesday (3) is five days further on
        assert next_occurrence(date(2024, 3, 1), Frequency.WEEKLY, 1, day_of_week=3) == date(2024, 3, 13)

    def test_weekly_already_on_weekday(self):
        # 2024-03-08 is a Friday (5)
        assert next_occurrence(date(2024, 3, 1), Frequency.WEEKLY, 1, day_of_week=5) == date(2024, 3, 8)

    def test_weekly_sunday(self):
        assert next_occurrence(date(2024, 3, 1), Frequency.WEEKLY, 1, day_of_week=0) == date(2024, 3, 10)

    def test_monthly_clamps_to_month_end(self):
        assert next_occurrence(date(2024, 1, 31), Frequency.MONTHLY, 1, day_of_month=31) == date(2024, 2, 29)

    def test_monthly_restores_day_after_short_month(self):
        assert next_occurrence(date(2024, 2, 29), Frequency.MONTHLY, 1, day_of_month=31) == date(2024, 3, 31)

    def test_monthly_non_leap_february(self):
        assert next_occurrence(date(2023, 1, 31), Frequency.MONTHLY, 1, day_of_month=31) == date(2023, 2, 28)

    def test_monthly_without_day(self):
        assert next_occurrence(date(2024, 1, 31), Frequency.MONTHLY) == date(2024, 2, 29)
        assert next_occurrence(date(2024, 1, 15), Frequency.MONTHLY, 3) == date(2024, 4, 15)

    def test_yearly_leap_day(self):
        assert next_occurrence(date(2024, 2, 29), Frequency.YEARLY) == date(2025, 2, 28)

    def test_yearly_returns_to_leap_day(self):
        assert next_occurrence(date(2027, 2, 28), Frequency.YEARLY, 1, day_of_month=29) == date(2028, 2, 29)
        assert next_occurrence(date(2023, 2, 28), Frequency.YEARLY, 1, day_of_month=29) == date(2024, 2, 29)
        assert next_occurrence(date(2024, 2, 29), Frequency.YEARLY, 1, day_of_month=29) == date(2025, 2, 28)

    def test_accepts_string_frequency(self):
        assert next_occurrence(date(2024, 1, 1), "daily") == date(2024, 1, 2)

    def test_unknown_frequency(self):
        with pytest.raises(ValueError):
            next_occurrence(date(2024, 1, 1), "fortnightly")

    def test_non_positive_interval(self):
        with pytest.raises(ValueError):
            next_occurrence(date(2024, 1, 1), Frequency.DAILY, 0)

    def test_deterministic(self):
        args = (date(2024, 1, 31), Frequency.MONTHLY, 1, None, 31)
        assert next_occurrence(*args) == next_occurrence(*args)


class TestHelpers:
    def test_sunday_based_weekday(self):
        assert sunday_based_weekday(date(2024, 3, 3)) == 0  # Sunday
        assert sunday_based_weekday(date(2024, 3, 1)) == 5  # Friday
        assert sunday_based_weekday(date(2024, 3, 2)) == 6  # Saturday

    def test_last_day_of_month(self):
        assert last_day_of_month(2024, 2) == 29
        assert last_day_of_month(2023, 2) == 28
        assert last_day_of_month(2024, 4) == 30

    def test_previous_occurrence_anchor(self):
        assert previous_occurrence_anchor(date(2024, 1, 31), Frequency.MONTHLY) == date(2023, 12, 31)
        assert previous_occurrence_anchor(date(2024, 3, 1), Frequency.WEEKLY, 2) == date(2024, 2, 16)
        assert previous_occurrence_anchor(date(2024, 1, 1), Frequency.DAILY) == date(2023, 12, 31)

    def test_months_between_ignores_day(self):
        assert months_between(date(2024, 1, 31), date(2024, 2, 1)) == 1
        assert months_between(date(2024, 1, 15), date(2024, 12, 1)) == 11
        assert months_between(date(2024, 5, 1), date(2024, 3, 1)) == -2

    def test_add_months(self):
        assert add_months(date(2024, 3, 31), -1) == date(2024, 2, 29)
