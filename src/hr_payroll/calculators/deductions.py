"""Deduction aggregation from attendance, leave, and approved adjustments."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from hr_payroll.calculators.types import (
    ZERO,
    AdjustmentInput,
    AdjustmentType,
    DeductionRates,
    DeductionType,
)

WORK_HOURS_PER_DAY = Decimal("8")
MINUTES_PER_HOUR = Decimal("60")

# Adjustment type -> deduction bucket
ADJUSTMENT_DEDUCTION_TYPES: dict[AdjustmentType, DeductionType] = {
    AdjustmentType.LOAN: DeductionType.LOAN,
    AdjustmentType.ADVANCE: DeductionType.ADVANCE,
    AdjustmentType.PENALTY: DeductionType.PENALTY,
    AdjustmentType.DEDUCTION: DeductionType.OTHER,
    AdjustmentType.OTHER: DeductionType.OTHER,
}

_DEFAULT_DESCRIPTIONS = {
    DeductionType.LOAN: "Potongan pinjaman",
    DeductionType.ADVANCE: "Potongan kasbon",
    DeductionType.PENALTY: "Potongan denda",
    DeductionType.OTHER: "Potongan lainnya",
}


class DeductionInputError(ValueError):
    """Raised when deduction inputs are out of range or ambiguous."""


@dataclass(frozen=True)
class DeductionInput:
    """Facts the aggregator turns into money.

    Lateness is given either as total minutes or as whole late days.
    """

    basic_salary: Decimal
    working_days: int
    absence_days: int = 0
    late_minutes: int | None = None
    late_days: int | None = None
    unpaid_leave_days: int = 0
    adjustments: Sequence[AdjustmentInput] = ()


@dataclass
class DeductionItem:
    type: DeductionType
    description: str
    amount: Decimal
    reference_id: int | None = None


@dataclass
class DeductionResult:
    """Itemized deductions at full precision."""

    items: list[DeductionItem] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum((item.amount for item in self.items), ZERO)

    def total_for(self, deduction_type: DeductionType) -> Decimal:
        return sum(
            (item.amount for item in self.items if item.type == deduction_type),
            ZERO,
        )

    def by_type(self) -> dict[DeductionType, Decimal]:
        return {dt: self.total_for(dt) for dt in DeductionType}


class DeductionAggregator:
    """Converts absences, lateness, unpaid leave and approved deduction
    adjustments into itemized payslip deductions.

    The daily rate is ``basic_salary / working_days``; minute-based lateness
    is charged at ``daily / 8 / 60`` per minute beyond the tolerance.
    Amounts are left unrounded.
    """

    def __init__(self, rates: DeductionRates):
        self.rates = rates

    def calculate(self, data: DeductionInput) -> DeductionResult:
        self._validate(data)
        daily_rate = data.basic_salary / Decimal(data.working_days)
        result = DeductionResult()

        if data.absence_days > 0:
            amount = Decimal(data.absence_days) * daily_rate * self.rates.absence_rate
            if amount > 0:
                result.items.append(
                    DeductionItem(
                        DeductionType.ABSENCE,
                        f"Potongan tidak hadir ({data.absence_days} hari)",
                        amount,
                    )
                )

        late_item = self._late_deduction(data, daily_rate)
        if late_item is not None:
            result.items.append(late_item)

        if data.unpaid_leave_days > 0:
            amount = Decimal(data.unpaid_leave_days) * daily_rate * self.rates.leave_rate
            if amount > 0:
                result.items.append(
                    DeductionItem(
                        DeductionType.LEAVE,
                        f"Potongan cuti tidak dibayar ({data.unpaid_leave_days} hari)",
                        amount,
                    )
                )

        for adjustment in data.adjustments:
            deduction_type = ADJUSTMENT_DEDUCTION_TYPES.get(AdjustmentType(adjustment.type))
            if deduction_type is None:
                continue
            result.items.append(
                DeductionItem(
                    deduction_type,
                    adjustment.description or _DEFAULT_DESCRIPTIONS[deduction_type],
                    adjustment.amount,
                    reference_id=adjustment.adjustment_id,
                )
            )

        return result

    def _late_deduction(self, data: DeductionInput, daily_rate: Decimal) -> DeductionItem | None:
        if data.late_minutes is not None:
            chargeable = data.late_minutes - self.rates.late_tolerance_minutes
            if chargeable <= 0 or self.rates.late_rate_per_minute <= 0:
                return None
            minute_rate = daily_rate / WORK_HOURS_PER_DAY / MINUTES_PER_HOUR
            amount = minute_rate * Decimal(chargeable) * self.rates.late_rate_per_minute
            return DeductionItem(
                DeductionType.LATE,
                f"Potongan keterlambatan ({chargeable} menit)",
                amount,
            )

        if data.late_days:
            if self.rates.late_rate_per_day <= 0:
                return None
            amount = daily_rate * Decimal(data.late_days) * self.rates.late_rate_per_day
            return DeductionItem(
                DeductionType.LATE,
                f"Potongan keterlambatan ({data.late_days} hari)",
                amount,
            )
        return None

    @staticmethod
    def _validate(data: DeductionInput) -> None:
        if data.working_days <= 0:
            raise DeductionInputError(f"Working days must be positive: {data.working_days}")
        if data.basic_salary < 0:
            raise DeductionInputError(f"Basic salary cannot be negative: {data.basic_salary}")
        if data.late_minutes is not None and data.late_days is not None:
            raise DeductionInputError("Give lateness as minutes or as days, not both")
        counts = {
            "absence_days": data.absence_days,
            "late_minutes": data.late_minutes or 0,
            "late_days": data.late_days or 0,
            "unpaid_leave_days": data.unpaid_leave_days,
        }
        for name, value in counts.items():
            if value < 0:
                raise DeductionInputError(f"{name} cannot be negative: {value}")
        for adjustment in data.adjustments:
            if adjustment.amount < 0:
                raise DeductionInputError(
                    f"Adjustment {adjustment.adjustment_id} has negative amount {adjustment.amount}"
                )
