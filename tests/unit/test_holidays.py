"""
Unit tests for the US federal holiday calendar.
"""

from datetime import date

import pytest

from calsync.services.availability.holidays import (
    MONDAY,
    get_us_federal_holidays,
    is_us_holiday,
    last_weekday_of_month,
    nth_weekday_of_month,
    observed,
)


class TestWeekdayHelpers:

    def test_third_monday_of_january(self):
        assert nth_weekday_of_month(2026, 1, MONDAY, 3) == date(2026, 1, 19)

    def test_first_weekday_on_the_first(self):
        # June 1st 2026 is a Monday
        assert nth_weekday_of_month(2026, 6, MONDAY, 1) == date(2026, 6, 1)

    def test_missing_fifth_weekday_raises(self):
        with pytest.raises(ValueError):
            nth_weekday_of_month(2026, 2, MONDAY, 5)

    def test_last_monday_of_may(self):
        assert last_weekday_of_month(2026, 5, MONDAY) == date(2026, 5, 25)

    def test_last_weekday_of_december(self):
        assert last_weekday_of_month(2026, 12, MONDAY) == date(2026, 12, 28)


class TestObservedDates:

    def test_saturday_moves_to_friday(self):
        assert observed(date(2026, 7, 4)) == date(2026, 7, 3)

    def test_sunday_moves_to_monday(self):
        assert observed(date(2023, 1, 1)) == date(2023, 1, 2)

    def test_weekday_is_unchanged(self):
        assert observed(date(2026, 11, 11)) == date(2026, 11, 11)


class TestFederalHolidays:

    def test_2026_calendar(self):
        assert get_us_federal_holidays(2026) == [
            date(2026, 1, 1),
            date(2026, 1, 19),
            date(2026, 2, 16),
            date(2026, 5, 25),
            date(2026, 6, 19),
            date(2026, 7, 3),
            date(2026, 9, 7),
            date(2026, 10, 12),
            date(2026, 11, 11),
            date(2026, 11, 26),
            date(2026, 12, 25),
        ]

    def test_holidays_are_sorted(self):
        for year in (2021, 2022, 2027, 2028):
            holidays = get_us_federal_holidays(year)
            assert holidays == sorted(holidays)
            assert len(holidays) == 11

    def test_observed_holidays_fall_on_weekdays(self):
        for year in range(2020, 2035):
            assert all(day.weekday() < 5 for day in get_us_federal_holidays(year))

    def test_saturday_christmas_observed_on_friday(self):
        assert is_us_holiday(date(2027, 12, 24))
        assert not is_us_holiday(date(2027, 12, 25))

    def test_saturday_new_year_observed_in_previous_year(self):
        assert get_us_federal_holidays(2022)[0] == date(2021, 12, 31)
        assert is_us_holiday(date(2021, 12, 31))

    def test_regular_business_day(self):
        assert not is_us_holiday(date(2026, 3, 10))
