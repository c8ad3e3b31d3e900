"""Calendar-date arithmetic for recurring schedules and goal horizons.

Everything here operates on ``datetime.date`` values only: no clocks, no
timezones, no I/O.
"""

import calendar
from datetime import date, timedelta
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from budgetly.models.recurring_schedule import Frequency

FrequencyLike = Union[Frequency, str]


def _frequency(value: FrequencyLike) -> Frequency:
    try:
        return Frequency(value)
    except ValueError:
        raise ValueError(f"Unknown frequency: {value!r}") from None


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def sunday_based_weekday(d: date) -> int:
    """Weekday number with Sunday = 0 .. Saturday = 6."""
    return d.isoweekday() % 7


def one_period(frequency: FrequencyLike, interval: int = 1) -> relativedelta:
    """Length of one schedule period ("every ``interval`` units")."""
    freq = _frequency(frequency)
    if freq == Frequency.DAILY:
        return relativedelta(days=interval)
    if freq == Frequency.WEEKLY:
        return relativedelta(days=interval * 7)
    if freq == Frequency.MONTHLY:
        return relativedelta(months=interval)
    return relativedelta(years=interval)


def previous_occurrence_anchor(start_date: date, frequency: FrequencyLike, interval: int = 1) -> date:
    """Virtual anchor one period before ``start_date`` for never-generated schedules."""
    return start_date - one_period(frequency, interval)


def next_occurrence(
    from_date: date,
    frequency: FrequencyLike,
    interval: int = 1,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
) -> date:
    """Next due date after ``from_date``.

    * daily: ``from_date + interval`` days
    * weekly: ``+ interval`` weeks, then forward to ``day_of_week`` (Sunday = 0)
    * monthly: ``+ interval`` calendar months, then ``day_of_month`` clamped
      to the length of the resulting month
    * yearly: ``+ interval`` years (Feb 29 falls back to Feb 28), then
      ``day_of_month`` clamped the same way so a Feb 29 start returns to
      Feb 29 in leap years
    """
    if interval < 1:
        raise ValueError("interval must be a positive integer")

    freq = _frequency(frequency)
    result = from_date + one_period(freq, interval)

    if freq == Frequency.WEEKLY and day_of_week is not None:
        result += timedelta(days=(day_of_week - sunday_based_weekday(result)) % 7)
    elif freq in (Frequency.MONTHLY, Frequency.YEARLY) and day_of_month is not None:
        day = min(day_of_month, last_day_of_month(result.year, result.month))
        result = result.replace(day=day)

    return result


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end`` (ignores the day)."""
    return (end.year * 12 + end.month) - (start.year * 12 + start.month)


def add_months(d: date, months: int) -> date:
    return d + relativedelta(months=months)
