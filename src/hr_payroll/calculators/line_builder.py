"""Payslip line item builder."""

from __future__ import annotations

from decimal import Decimal

from hr_payroll.calculators.types import (
    ZERO,
    ComponentType,
    PayslipLine,
    RoundingPolicy,
)

# Paid out to the employee; employer lines are a company cost only
PAYOUT_TYPES = (
    ComponentType.EARNING,
    ComponentType.DEDUCTION,
    ComponentType.BPJS,
    ComponentType.TAX,
    ComponentType.ROUNDING,
)


class LineItemBuilder:
    """Builds payslip lines with sign conventions and the company rounding.

    Sign conventions:
    - EARNING: positive
    - DEDUCTION: negative
    - BPJS (employee share): negative
    - TAX (withheld): negative
    - EMPLOYER: positive (company cost, not paid out)
    - ROUNDING: either sign

    Each line amount is rounded by the policy; the take-home total is
    rounded separately from full precision and a rounding line closes the
    difference.
    """

    def __init__(self, rounding: RoundingPolicy):
        self.rounding = rounding

    def round(self, amount: Decimal) -> Decimal:
        return self.rounding.apply(amount)

    def earning(
        self,
        code: str,
        name: str,
        amount: Decimal,
        is_taxable: bool = True,
        is_bpjs_base: bool = False,
        reference_id: int | None = None,
    ) -> PayslipLine:
        return PayslipLine(
            component_type=ComponentType.EARNING,
            code=code,
            name=name,
            amount=self.round(abs(amount)),
            is_taxable=is_taxable,
            is_bpjs_base=is_bpjs_base,
            reference_id=reference_id,
        )

    def deduction(
        self,
        code: str,
        name: str,
        amount: Decimal,
        reference_id: int | None = None,
    ) -> PayslipLine:
        return PayslipLine(
            component_type=ComponentType.DEDUCTION,
            code=code,
            name=name,
            amount=-self.round(abs(amount)),
            reference_id=reference_id,
        )

    def contribution(self, code: str, name: str, amount: Decimal) -> PayslipLine:
        """Employee BPJS share (negative)."""
        return PayslipLine(
            component_type=ComponentType.BPJS,
            code=code,
            name=name,
            amount=-self.round(abs(amount)),
        )

    def tax(self, code: str, name: str, amount: Decimal) -> PayslipLine:
        """Withheld income tax (negative)."""
        return PayslipLine(
            component_type=ComponentType.TAX,
            code=code,
            name=name,
            amount=-self.round(abs(amount)),
        )

    def employer(self, code: str, name: str, amount: Decimal) -> PayslipLine:
        """Employer-side cost (positive, excluded from take-home)."""
        return PayslipLine(
            component_type=ComponentType.EMPLOYER,
            code=code,
            name=name,
            amount=self.round(abs(amount)),
        )

    @staticmethod
    def rounding_line(amount: Decimal) -> PayslipLine:
        return PayslipLine(
            component_type=ComponentType.ROUNDING,
            code="rounding",
            name="Pembulatan",
            amount=amount,
        )

    @staticmethod
    def calculate_take_home_from_lines(lines: list[PayslipLine]) -> Decimal:
        """Take-home pay: sum of every line except employer lines."""
        return sum(
            (line.amount for line in lines if line.component_type in PAYOUT_TYPES),
            ZERO,
        )

    @staticmethod
    def reconcile_rounding(
        lines: list[PayslipLine], expected_take_home: Decimal
    ) -> list[PayslipLine]:
        """Append a rounding line if the lines do not sum to the expected total.

        Existing lines are not modified.
        """
        diff = expected_take_home - LineItemBuilder.calculate_take_home_from_lines(lines)
        if diff == 0:
            return lines
        return lines + [LineItemBuilder.rounding_line(diff)]

    @staticmethod
    def validate_line_signs(lines: list[PayslipLine]) -> list[str]:
        """Return sign violations (empty if all lines are valid)."""
        errors: list[str] = []
        for i, line in enumerate(lines):
            if line.component_type in (ComponentType.EARNING, ComponentType.EMPLOYER):
                if line.amount < 0:
                    errors.append(
                        f"Line {i} ({line.component_type.value} {line.code}) has negative "
                        f"amount {line.amount}, expected positive"
                    )
            elif line.component_type in (
                ComponentType.DEDUCTION,
                ComponentType.BPJS,
                ComponentType.TAX,
            ):
                if line.amount > 0:
                    errors.append(
                        f"Line {i} ({line.component_type.value} {line.code}) has positive "
                        f"amount {line.amount}, expected negative"
                    )
        return errors

    @staticmethod
    def sum_by_type(lines: list[PayslipLine]) -> dict[ComponentType, Decimal]:
        totals: dict[ComponentType, Decimal] = {ct: ZERO for ct in ComponentType}
        for line in lines:
            totals[line.component_type] += line.amount
        return totals
