# calsync/services/availability/holidays.py
"""US federal holiday calendar with observed-date shifting."""
from datetime import date, timedelta
from typing import List

MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY = range(7)


def nth_weekday_of_month(year: int, month: int, weekday: int, n: int) -> date:
    """Return the n-th (1-based) given weekday of a month, e.g. 3rd Monday of January."""
    day = date(year, month, 1)
    while day.weekday() != weekday:
        day += timedelta(days=1)
    day += timedelta(weeks=n - 1)
    if day.month != month:
        raise ValueError(f"Month {year}-{month:02d} has no {n}th weekday {weekday}")
    return day


def last_weekday_of_month(year: int, month: int, weekday: int) -> date:
    if month == 12:
        day = date(year, 12, 31)
    else:
        day = date(year, month + 1, 1) - timedelta(days=1)
    while day.weekday() != weekday:
        day -= timedelta(days=1)
    return day


def observed(day: date) -> date:
    """Saturday holidays are observed the Friday before, Sunday ones the Monday after."""
    if day.weekday() == SATURDAY:
        return day - timedelta(days=1)
    if day.weekday() == SUNDAY:
        return day + timedelta(days=1)
    return day


def get_us_federal_holidays(year: int) -> List[date]:
    """Observed US federal holidays for a year, in calendar order.

    The observed New Year's Day for ``year`` can fall on Dec 31 of the
    previous year.
    """
    holidays = [
        observed(date(year, 1, 1)),                      # New Year's Day
        nth_weekday_of_month(year, 1, MONDAY, 3),        # Martin Luther King Jr. Day
        nth_weekday_of_month(year, 2, MONDAY, 3),        # Presidents' Day
        last_weekday_of_month(year, 5, MONDAY),          # Memorial Day
        observed(date(year, 6, 19)),                     # Juneteenth
        observed(date(year, 7, 4)),                      # Independence Day
        nth_weekday_of_month(year, 9, MONDAY, 1),        # Labor Day
        nth_weekday_of_month(year, 10, MONDAY, 2),       # Columbus Day
        observed(date(year, 11, 11)),                    # Veterans Day
        nth_weekday_of_month(year, 11, THURSDAY, 4),     # Thanksgiving
        observed(date(year, 12, 25)),                    # Christmas
    ]
    return sorted(holidays)


def is_us_holiday(day: date) -> bool:
    # Next year's set is needed for a Saturday Jan 1 observed on Dec 31
    return day in get_us_federal_holidays(day.year) or day in get_us_federal_holidays(day.year + 1)
