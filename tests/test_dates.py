"""
Test suite for calendar helpers and clocks
"""

import pytest
from datetime import date

from lending_core.dates import (
    FixedClock, SystemClock, add_business_days, add_months, days_late, parse_date
)


class TestAddMonths:
    """Month arithmetic clamps to the end of the target month"""

    def test_simple(self):
        assert add_months(date(2024, 1, 15), 1) == date(2024, 2, 15)
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)

    def test_clamps_day_of_month(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)  # leap year
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
        assert add_months(date(2024, 3, 31), 1) == date(2024, 4, 30)

    def test_zero_months(self):
        assert add_months(date(2024, 5, 31), 0) == date(2024, 5, 31)


class TestBusinessDays:
    """Collection days run Monday to Saturday"""

    def test_first_day_is_start(self):
        assert add_business_days(date(2024, 1, 1), 1) == date(2024, 1, 1)

    def test_skips_sunday(self):
        # 2024-01-06 is a Saturday, 2024-01-07 a Sunday
        assert add_business_days(date(2024, 1, 1), 6) == date(2024, 1, 6)
        assert add_business_days(date(2024, 1, 1), 7) == date(2024, 1, 8)
        assert add_business_days(date(2024, 1, 1), 10) == date(2024, 1, 11)

    def test_sunday_start_rolls_to_monday(self):
        assert add_business_days(date(2024, 1, 7), 1) == date(2024, 1, 8)
        assert add_business_days(date(2024, 1, 7), 2) == date(2024, 1, 9)

    def test_invalid_count(self):
        with pytest.raises(ValueError):
            add_business_days(date(2024, 1, 1), 0)


class TestDaysLate:

    def test_never_negative(self):
        assert days_late(date(2024, 1, 10), date(2024, 1, 5)) == 0
        assert days_late(date(2024, 1, 10), date(2024, 1, 10)) == 0
        assert days_late(date(2024, 1, 10), date(2024, 1, 11)) == 1


class TestParseDate:

    def test_accepts_iso_strings_and_dates(self):
        assert parse_date("2024-02-29") == date(2024, 2, 29)
        assert parse_date(date(2024, 1, 1)) == date(2024, 1, 1)

    def test_rejects_invalid_calendar_date(self):
        with pytest.raises(ValueError):
            parse_date("2023-02-29")
        with pytest.raises(ValueError):
            parse_date(20240101)


class TestClocks:

    def test_fixed_clock(self):
        clock = FixedClock(date(2024, 1, 1))
        assert clock.today() == date(2024, 1, 1)
        assert clock.advance(3) == date(2024, 1, 4)
        clock.set(date(2025, 6, 1))
        assert clock.today() == date(2025, 6, 1)

    def test_system_clock(self):
        assert SystemClock().today() == date.today()
