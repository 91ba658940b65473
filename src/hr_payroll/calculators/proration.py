"""Proration of pay for partial periods."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from hr_payroll.calculators.types import ONE, ZERO, PayPeriod, ProrateMethod

JOIN_REASON = "Join mid-month"
RESIGN_REASON = "Resign mid-month"
LEAVE_REASON = "Unpaid leave"
NOT_EMPLOYED_REASON = "Not employed in period"
MANUAL_REASON = "Manual prorate"


class ProrationError(ValueError):
    """Raised for proration inputs that cannot produce a factor."""


@dataclass
class ProrationResult:
    """Fraction of the period the employee is paid for."""

    is_prorated: bool
    factor: Decimal
    actual_days: int
    total_days: int
    reason: str | None = None
    employee_start: date | None = None
    employee_end: date | None = None


def count_calendar_days(start: date, end: date) -> int:
    """Days in ``[start, end]``; zero for an empty range."""
    if end < start:
        return 0
    return (end - start).days + 1


def count_working_days(start: date, end: date, holidays: Iterable[date] = ()) -> int:
    """Monday-Friday days in ``[start, end]`` that are not holidays."""
    if end < start:
        return 0
    holiday_set = set(holidays)
    days = 0
    current = start
    while current <= end:
        if current.weekday() < 5 and current not in holiday_set:
            days += 1
        current += timedelta(days=1)
    return days


class ProrationCalculator:
    """Computes the prorate factor for one employee in one period.

    The active window is the employee's join/resign range clipped to the
    period. ``factor = (eligible days in window - unpaid leave) / eligible
    days in period``, clamped to [0, 1]. The ``custom`` method takes the
    caller's factor as-is.
    """

    def __init__(self, method: ProrateMethod, holidays: Iterable[date] = ()):
        self.method = ProrateMethod(method)
        self.holidays = frozenset(holidays)

    def count_days(self, start: date, end: date) -> int:
        if self.method == ProrateMethod.CALENDAR_DAYS:
            return count_calendar_days(start, end)
        return count_working_days(start, end, self.holidays)

    def working_days(self, period: PayPeriod) -> int:
        """Working days in the period regardless of proration method."""
        return count_working_days(period.start, period.end, self.holidays)

    def calculate(
        self,
        period: PayPeriod,
        join_date: date | None = None,
        resign_date: date | None = None,
        unpaid_leave_days: int = 0,
        custom_factor: Decimal | None = None,
    ) -> ProrationResult:
        if unpaid_leave_days < 0:
            raise ProrationError(f"Unpaid leave days cannot be negative: {unpaid_leave_days}")
        if join_date and resign_date and resign_date < join_date:
            raise ProrationError(
                f"Resign date {resign_date} is before join date {join_date}"
            )

        if self.method == ProrateMethod.CUSTOM:
            return self._custom(custom_factor)

        total_days = self.count_days(period.start, period.end)
        if total_days <= 0:
            raise ProrationError(f"No eligible days in period {period}")

        employee_start = max(join_date, period.start) if join_date else period.start
        employee_end = min(resign_date, period.end) if resign_date else period.end

        reasons: list[str] = []
        if employee_end < employee_start:
            return ProrationResult(
                is_prorated=True,
                factor=ZERO,
                actual_days=0,
                total_days=total_days,
                reason=NOT_EMPLOYED_REASON,
                employee_start=employee_start,
                employee_end=employee_end,
            )

        if join_date and join_date > period.start:
            reasons.append(JOIN_REASON)
        if resign_date and resign_date < period.end:
            reasons.append(RESIGN_REASON)
        if unpaid_leave_days > 0:
            reasons.append(LEAVE_REASON)

        actual_days = max(0, self.count_days(employee_start, employee_end) - unpaid_leave_days)
        factor = min(ONE, max(ZERO, Decimal(actual_days) / Decimal(total_days)))

        return ProrationResult(
            is_prorated=factor < ONE,
            factor=factor,
            actual_days=actual_days,
            total_days=total_days,
            reason=", ".join(reasons) or None,
            employee_start=employee_start,
            employee_end=employee_end,
        )

    def _custom(self, custom_factor: Decimal | None) -> ProrationResult:
        if custom_factor is None:
            raise ProrationError("Custom proration requires a factor")
        factor = Decimal(custom_factor)
        if factor < ZERO or factor > ONE:
            raise ProrationError(f"Custom prorate factor must be within [0, 1]: {factor}")
        return ProrationResult(
            is_prorated=factor < ONE,
            factor=factor,
            actual_days=0,
            total_days=0,
            reason=MANUAL_REASON,
        )
