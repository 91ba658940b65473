"""Tests for proration of partial periods."""

from datetime import date
from decimal import Decimal

import pytest

from hr_payroll.calculators.proration import (
    JOIN_REASON,
    MANUAL_REASON,
    NOT_EMPLOYED_REASON,
    RESIGN_REASON,
    ProrationCalculator,
    ProrationError,
    count_calendar_days,
    count_working_days,
)
from hr_payroll.calculators.types import InvalidPeriodError, PayPeriod, ProrateMethod

APRIL_2024 = PayPeriod(2024, 4)  # 22 weekdays, 30 calendar days


class TestDayCounting:
    """Test working and calendar day counts."""

    def test_working_days_in_month(self):
        assert count_working_days(date(2024, 4, 1), date(2024, 4, 30)) == 22

    def test_holidays_excluded(self):
        holidays = [date(2024, 4, 10), date(2024, 4, 11), date(2024, 4, 13)]  # 13th is Saturday
        assert count_working_days(date(2024, 4, 1), date(2024, 4, 30), holidays) == 20

    def test_empty_range(self):
        assert count_working_days(date(2024, 4, 30), date(2024, 4, 1)) == 0
        assert count_calendar_days(date(2024, 4, 30), date(2024, 4, 1)) == 0

    def test_calendar_days_inclusive(self):
        assert count_calendar_days(date(2024, 2, 1), date(2024, 2, 29)) == 29


class TestPayPeriod:
    """Test pay period parsing and windows."""

    def test_parse(self):
        period = PayPeriod.parse("2024-04")
        assert period.start == date(2024, 4, 1)
        assert period.end == date(2024, 4, 30)
        assert str(period) == "2024-04"

    @pytest.mark.parametrize("value", ["2024-13", "2024-4", "24-04", "", "2024/04"])
    def test_parse_rejects_malformed(self, value):
        with pytest.raises(InvalidPeriodError):
            PayPeriod.parse(value)

    def test_attendance_window_without_cutoff(self):
        assert APRIL_2024.attendance_window(None) == (date(2024, 4, 1), date(2024, 4, 30))

    def test_attendance_window_with_cutoff(self):
        """Cutoff 25 runs from the 26th of last month to the 25th."""
        assert APRIL_2024.attendance_window(25) == (date(2024, 3, 26), date(2024, 4, 25))

    def test_attendance_window_crosses_year(self):
        assert PayPeriod(2024, 1).attendance_window(25) == (date(2023, 12, 26), date(2024, 1, 25))


class TestProrationCalculator:
    """Test prorate factor computation."""

    def test_full_month(self):
        result = ProrationCalculator(ProrateMethod.WORKING_DAYS).calculate(APRIL_2024)

        assert result.is_prorated is False
        assert result.factor == Decimal("1")
        assert result.actual_days == 22
        assert result.total_days == 22
        assert result.reason is None

    def test_join_mid_month(self):
        """Joining Monday 15 April leaves 12 of 22 working days."""
        result = ProrationCalculator(ProrateMethod.WORKING_DAYS).calculate(
            APRIL_2024, join_date=date(2024, 4, 15)
        )

        assert result.is_prorated is True
        assert result.actual_days == 12
        assert result.factor == Decimal(12) / Decimal(22)
        assert result.reason == JOIN_REASON

    def test_resign_mid_month(self):
        result = ProrationCalculator(ProrateMethod.CALENDAR_DAYS).calculate(
            APRIL_2024, resign_date=date(2024, 4, 10)
        )

        assert result.actual_days == 10
        assert result.total_days == 30
        assert result.factor == Decimal(10) / Decimal(30)
        assert result.reason == RESIGN_REASON

    def test_join_and_resign_in_month(self):
        result = ProrationCalculator(ProrateMethod.CALENDAR_DAYS).calculate(
            APRIL_2024, join_date=date(2024, 4, 11), resign_date=date(2024, 4, 20)
        )

        assert result.actual_days == 10
        assert result.reason == f"{JOIN_REASON}, {RESIGN_REASON}"

    def test_joined_before_period(self):
        result = ProrationCalculator(ProrateMethod.WORKING_DAYS).calculate(
            APRIL_2024, join_date=date(2020, 1, 1)
        )
        assert result.is_prorated is False
        assert result.reason is None

    def test_not_employed_in_period(self):
        result = ProrationCalculator(ProrateMethod.WORKING_DAYS).calculate(
            APRIL_2024, join_date=date(2024, 5, 2)
        )

        assert result.factor == Decimal("0")
        assert result.actual_days == 0
        assert result.reason == NOT_EMPLOYED_REASON

    def test_unpaid_leave_reduces_factor(self):
        result = ProrationCalculator(ProrateMethod.WORKING_DAYS).calculate(
            APRIL_2024, unpaid_leave_days=2
        )
        assert result.actual_days == 20
        assert result.is_prorated is True

    def test_unpaid_leave_never_goes_below_zero(self):
        result = ProrationCalculator(ProrateMethod.WORKING_DAYS).calculate(
            APRIL_2024, unpaid_leave_days=40
        )
        assert result.factor == Decimal("0")
        assert result.actual_days == 0

    def test_holidays_shrink_both_sides(self):
        holidays = [date(2024, 4, 10), date(2024, 4, 11)]
        result = ProrationCalculator(ProrateMethod.WORKING_DAYS, holidays).calculate(
            APRIL_2024, join_date=date(2024, 4, 8)
        )
        assert result.total_days == 20
        assert result.actual_days == 15

    @pytest.mark.parametrize("join_day", range(1, 31))
    def test_factor_bounds(self, join_day):
        """Factor stays in [0, 1] and actual never exceeds total."""
        result = ProrationCalculator(ProrateMethod.WORKING_DAYS).calculate(
            APRIL_2024, join_date=date(2024, 4, join_day), unpaid_leave_days=join_day % 4
        )
        assert Decimal("0") <= result.factor <= Decimal("1")
        assert result.actual_days <= result.total_days

    def test_resign_before_join_rejected(self):
        with pytest.raises(ProrationError):
            ProrationCalculator(ProrateMethod.WORKING_DAYS).calculate(
                APRIL_2024, join_date=date(2024, 4, 10), resign_date=date(2024, 4, 5)
            )

    def test_negative_leave_rejected(self):
        with pytest.raises(ProrationError):
            ProrationCalculator(ProrateMethod.WORKING_DAYS).calculate(
                APRIL_2024, unpaid_leave_days=-1
            )

    def test_no_working_days_rejected(self):
        """A month made entirely of holidays cannot be prorated."""
        holidays = [date(2024, 4, day) for day in range(1, 31)]
        with pytest.raises(ProrationError):
            ProrationCalculator(ProrateMethod.WORKING_DAYS, holidays).calculate(APRIL_2024)


class TestCustomProration:
    """Test caller-supplied factors."""

    def test_custom_factor_used(self):
        result = ProrationCalculator(ProrateMethod.CUSTOM).calculate(
            APRIL_2024, custom_factor=Decimal("0.75")
        )
        assert result.factor == Decimal("0.75")
        assert result.is_prorated is True
        assert result.reason == MANUAL_REASON

    def test_custom_factor_required(self):
        with pytest.raises(ProrationError):
            ProrationCalculator(ProrateMethod.CUSTOM).calculate(APRIL_2024)

    @pytest.mark.parametrize("factor", ["-0.01", "1.01"])
    def test_custom_factor_out_of_range(self, factor):
        with pytest.raises(ProrationError):
            ProrationCalculator(ProrateMethod.CUSTOM).calculate(
                APRIL_2024, custom_factor=Decimal(factor)
            )
