"""Payroll calculation engine - assembles one payslip from its inputs."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from hr_payroll.calculators.contributions import ContributionCalculator, ContributionResult
from hr_payroll.calculators.deductions import (
    DeductionAggregator,
    DeductionInput,
    DeductionResult,
)
from hr_payroll.calculators.line_builder import LineItemBuilder
from hr_payroll.calculators.proration import ProrationCalculator, ProrationResult
from hr_payroll.calculators.tax_calculator import (
    DEFAULT_MAX_ITERATIONS,
    TaxCalculator,
    TaxResult,
)
from hr_payroll.calculators.types import (
    ZERO,
    AdjustmentType,
    DeductionType,
    PayPeriod,
    PayrollConfig,
    PayrollInputs,
    PayslipLine,
    PayType,
    TaxMethod,
)
from hr_payroll.config import get_settings

# Hourly divisor for overtime (Kepmenaker 102/2004)
OVERTIME_HOURS_DIVISOR = Decimal("173")
FACTOR_PRECISION = Decimal("1E-10")

ALLOWANCE_COLUMNS = {
    "transport_allowance": "transport_allowance",
    "meal_allowance": "meal_allowance",
    "position_allowance": "position_allowance",
}

DEDUCTION_COLUMNS = {
    DeductionType.ABSENCE: "absence_deduction",
    DeductionType.LATE: "late_deduction",
    DeductionType.LEAVE: "leave_deduction",
    DeductionType.LOAN: "loan_deduction",
    DeductionType.ADVANCE: "advance_deduction",
    DeductionType.PENALTY: "penalty_deduction",
    DeductionType.OTHER: "other_deductions",
}

_ADJUSTMENT_NAMES = {
    AdjustmentType.BONUS: "Bonus",
    AdjustmentType.ALLOWANCE: "Tunjangan tambahan",
    AdjustmentType.REIMBURSEMENT: "Reimbursement",
}


@dataclass
class PayslipResult:
    """Assembled payslip for one employee and period.

    ``amounts`` holds every monetary figure keyed by its ``Payroll`` column,
    rounded once by the company policy.
    """

    employee_id: int
    company_id: int
    period: PayPeriod
    pay_type: PayType
    currency: str
    working_days: int
    proration: ProrationResult
    deductions: DeductionResult
    contributions: ContributionResult
    tax: TaxResult
    amounts: dict[str, Decimal]
    facts: dict[str, Any]
    lines: list[PayslipLine]
    inputs_fingerprint: str
    config_fingerprint: str
    calculation_id: UUID
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    @property
    def gross_salary(self) -> Decimal:
        return self.amounts["gross_salary"]

    @property
    def total_deductions(self) -> Decimal:
        return self.amounts["total_deductions"]

    @property
    def net_salary(self) -> Decimal:
        return self.amounts["net_salary"]

    @property
    def take_home_pay(self) -> Decimal:
        return self.amounts["take_home_pay"]

    @property
    def total_employer_cost(self) -> Decimal:
        return self.amounts["total_employer_cost"]

    def to_record(self) -> dict[str, Any]:
        """Column values for the ``Payroll`` row."""
        record: dict[str, Any] = {
            "company_id": self.company_id,
            "employee_id": self.employee_id,
            "period": str(self.period),
            "period_start": self.period.start,
            "period_end": self.period.end,
            "pay_type": self.pay_type.value,
            "currency": self.currency,
            "inputs_fingerprint": self.inputs_fingerprint,
            "calculation_id": str(self.calculation_id),
        }
        record.update(self.amounts)
        record.update(self.facts)
        return record


class PayrollEngine:
    """Pure payroll assembler.

    Pipeline (stable order per employee):
    1) Proration of basic salary and prorated allowances
    2) Earnings: basic, allowances, overtime, adjustment earnings
    3) Deductions: attendance, unpaid leave, deduction adjustments
    4) BPJS contributions on the contribution base
    5) Income tax under the employee's pay type
    6) Totals, rounded once per figure
    7) Line items reconciled to take-home pay

    Unpaid leave is charged only as a deduction, never also through the
    prorate factor.
    """

    def __init__(
        self,
        config: PayrollConfig,
        engine_version: str | None = None,
        max_gross_up_iterations: int | None = None,
    ):
        settings = get_settings()
        self.config = config
        self.engine_version = engine_version or settings.engine_version
        self.tax_calculator = TaxCalculator.for_config(
            config,
            max_iterations=max_gross_up_iterations
            or settings.gross_up_max_iterations
            or DEFAULT_MAX_ITERATIONS,
        )
        self.contribution_calculator = ContributionCalculator(config.contribution_rates)
        self.deduction_aggregator = DeductionAggregator(config.deduction_rates)
        self.line_builder = LineItemBuilder(config.rounding)

    def calculate(self, inputs: PayrollInputs) -> PayslipResult:
        config = self.config
        profile = inputs.profile
        round_ = config.rounding.apply
        builder = self.line_builder

        # 1) Proration
        proration_calc = ProrationCalculator(config.prorate_method, inputs.holidays)
        proration = proration_calc.calculate(
            inputs.period,
            join_date=profile.join_date,
            resign_date=profile.resign_date,
            custom_factor=inputs.custom_prorate_factor,
        )
        factor = proration.factor
        working_days = proration_calc.working_days(inputs.period)

        # 2) Earnings
        earning_lines: list[PayslipLine] = []
        basic = profile.basic_salary * factor
        earning_lines.append(
            builder.earning("basic_salary", "Gaji pokok", basic, is_bpjs_base=True)
        )
        taxable = basic
        bpjs_base = basic
        gross = basic

        allowance_totals = {column: ZERO for column in ALLOWANCE_COLUMNS.values()}
        allowance_totals["other_allowances"] = ZERO
        for allowance in profile.allowances:
            amount = allowance.amount * factor if allowance.is_prorated else allowance.amount
            if amount <= 0:
                continue
            column = ALLOWANCE_COLUMNS.get(allowance.code, "other_allowances")
            allowance_totals[column] += amount
            gross += amount
            if allowance.is_taxable:
                taxable += amount
            if allowance.is_bpjs_base:
                bpjs_base += amount
            earning_lines.append(
                builder.earning(
                    allowance.code,
                    allowance.name,
                    amount,
                    is_taxable=allowance.is_taxable,
                    is_bpjs_base=allowance.is_bpjs_base,
                )
            )

        overtime = self._overtime_pay(inputs)
        if overtime > 0:
            gross += overtime
            taxable += overtime
            earning_lines.append(builder.earning("overtime", "Lembur", overtime))

        adjustment_earnings = ZERO
        reimbursements = ZERO
        reimbursement_lines: list[PayslipLine] = []
        for adjustment in inputs.adjustments:
            adj_type = AdjustmentType(adjustment.type)
            name = adjustment.description or _ADJUSTMENT_NAMES.get(adj_type, adj_type.value)
            if adj_type == AdjustmentType.REIMBURSEMENT:
                reimbursements += adjustment.amount
                reimbursement_lines.append(
                    builder.earning(
                        "reimbursement",
                        name,
                        adjustment.amount,
                        is_taxable=False,
                        reference_id=adjustment.adjustment_id,
                    )
                )
            elif adj_type.is_earning:
                adjustment_earnings += adjustment.amount
                gross += adjustment.amount
                if adjustment.is_taxable:
                    taxable += adjustment.amount
                if adjustment.is_bpjs_base:
                    bpjs_base += adjustment.amount
                earning_lines.append(
                    builder.earning(
                        f"adjustment_{adj_type.value}",
                        name,
                        adjustment.amount,
                        is_taxable=adjustment.is_taxable,
                        is_bpjs_base=adjustment.is_bpjs_base,
                        reference_id=adjustment.adjustment_id,
                    )
                )

        # 3) Deductions
        deductions = self.deduction_aggregator.calculate(
            DeductionInput(
                basic_salary=profile.basic_salary,
                working_days=working_days,
                absence_days=inputs.attendance.absence_days,
                late_minutes=inputs.attendance.late_minutes,
                late_days=inputs.attendance.late_days,
                unpaid_leave_days=inputs.unpaid_leave_days,
                adjustments=[
                    a for a in inputs.adjustments if AdjustmentType(a.type).is_deduction
                ],
            )
        )

        # 4) BPJS
        contributions = self.contribution_calculator.calculate(bpjs_base, profile.membership)
        employee_bpjs = contributions.employee
        employer_bpjs = contributions.employer

        # 5) Income tax
        tax = self.tax_calculator.calculate(
            taxable + employer_bpjs.taxable_benefit,
            profile.pay_type,
            profile.ptkp_status,
            employee_contributions=employee_bpjs.tax_deductible,
            ytd=inputs.ytd,
        )
        gross += tax.tax_allowance
        withheld_tax = tax.tax_amount if tax.withheld else ZERO

        # 6) Totals at full precision, rounded once
        net = gross - deductions.total - employee_bpjs.total - withheld_tax
        take_home = net + reimbursements
        employer_cost = gross + employer_bpjs.total + tax.employer_tax_cost

        amounts: dict[str, Decimal] = {
            "base_salary": round_(profile.basic_salary),
            "basic_salary": round_(basic),
            **{column: round_(value) for column, value in allowance_totals.items()},
            "overtime_pay": round_(overtime),
            "adjustment_earnings": round_(adjustment_earnings),
            "tax_allowance": round_(tax.tax_allowance),
            "reimbursements": round_(reimbursements),
            "gross_salary": round_(gross),
            **{
                column: round_(deductions.total_for(deduction_type))
                for deduction_type, column in DEDUCTION_COLUMNS.items()
            },
            "total_deductions": round_(deductions.total),
            "bpjs_base": round_(bpjs_base),
            "bpjs_kes_employee": round_(employee_bpjs.jks),
            "bpjs_jht_employee": round_(employee_bpjs.jht),
            "bpjs_jp_employee": round_(employee_bpjs.jp),
            "bpjs_employee_total": round_(employee_bpjs.total),
            "bpjs_kes_company": round_(employer_bpjs.jks),
            "bpjs_jht_company": round_(employer_bpjs.jht),
            "bpjs_jp_company": round_(employer_bpjs.jp),
            "bpjs_jkk_company": round_(employer_bpjs.jkk),
            "bpjs_jkm_company": round_(employer_bpjs.jkm),
            "bpjs_company_total": round_(employer_bpjs.total),
            "ptkp_amount": round_(tax.ptkp_amount),
            "taxable_income": round_(tax.taxable_income),
            "position_cost": round_(tax.position_cost),
            "net_taxable_income": round_(tax.net_taxable_income),
            "gross_up_initial": round_(tax.gross_up_initial),
            "final_gross_up": round_(tax.final_gross_up),
            "tax_amount": round_(tax.tax_amount),
            "net_salary": round_(net),
            "take_home_pay": round_(take_home),
            "total_employer_cost": round_(employer_cost),
        }

        is_ter = tax.method == TaxMethod.TER
        attendance = inputs.attendance
        facts: dict[str, Any] = {
            "tax_method": tax.method.value,
            "ptkp_status": tax.ptkp_status,
            "ter_category": tax.category if is_ter else None,
            "ter_rate": tax.rate if is_ter else None,
            "ter_rate_initial": tax.rate_initial if is_ter else None,
            "tax_borne_by_company": tax.borne_by_company,
            "working_days": working_days,
            "absence_days": attendance.absence_days,
            "late_minutes": attendance.late_minutes or 0,
            "late_days": attendance.late_days or 0,
            "unpaid_leave_days": inputs.unpaid_leave_days,
            "is_prorated": proration.is_prorated,
            "prorate_factor": factor.quantize(FACTOR_PRECISION),
            "prorate_actual_days": proration.actual_days,
            "prorate_total_days": proration.total_days,
            "prorate_reason": proration.reason,
            "ytd_months": inputs.ytd.months if inputs.ytd else None,
            "ytd_neto": inputs.ytd.neto if inputs.ytd else None,
            "ytd_tax_paid": inputs.ytd.tax_paid if inputs.ytd else None,
        }

        # 7) Line items
        if tax.tax_allowance > 0:
            earning_lines.append(
                builder.earning("tax_allowance", "Tunjangan PPh 21", tax.tax_allowance)
            )
        lines = earning_lines + reimbursement_lines
        for item in deductions.items:
            lines.append(
                builder.deduction(
                    DEDUCTION_COLUMNS[item.type],
                    item.description,
                    item.amount,
                    reference_id=item.reference_id,
                )
            )
        for code, name, amount in employee_bpjs.items():
            if amount > 0:
                lines.append(builder.contribution(code, name, amount))
        if tax.tax_amount > 0 and tax.withheld:
            lines.append(builder.tax("pph21", "PPh 21", tax.tax_amount))
        for code, name, amount in employer_bpjs.items():
            if amount > 0:
                lines.append(builder.employer(code, name, amount))
        if tax.employer_tax_cost > 0:
            lines.append(
                builder.employer(
                    "pph21_company", "PPh 21 ditanggung perusahaan", tax.employer_tax_cost
                )
            )
        lines = LineItemBuilder.reconcile_rounding(lines, amounts["take_home_pay"])

        errors = LineItemBuilder.validate_line_signs(lines)
        if take_home < 0:
            errors.append(f"Negative take-home pay: {amounts['take_home_pay']}")

        inputs_fingerprint = inputs.fingerprint()
        config_fingerprint = config.fingerprint()
        return PayslipResult(
            employee_id=profile.employee_id,
            company_id=profile.company_id,
            period=inputs.period,
            pay_type=PayType(profile.pay_type),
            currency=config.currency,
            working_days=working_days,
            proration=proration,
            deductions=deductions,
            contributions=contributions,
            tax=tax,
            amounts=amounts,
            facts=facts,
            lines=lines,
            inputs_fingerprint=inputs_fingerprint,
            config_fingerprint=config_fingerprint,
            calculation_id=self._generate_calculation_id(
                profile.employee_id,
                inputs.period,
                inputs_fingerprint,
                config_fingerprint,
            ),
        )

    def _overtime_pay(self, inputs: PayrollInputs) -> Decimal:
        """Approved overtime amounts, plus hours without an amount priced at
        the weekday multiplier.
        """
        paid = inputs.overtime_pay or ZERO
        if inputs.overtime_hours <= 0:
            return paid
        profile = inputs.profile
        base = profile.basic_salary
        if self.config.overtime.base != "basic_salary":
            base += sum((a.amount for a in profile.allowances), ZERO)
        hourly = base / OVERTIME_HOURS_DIVISOR
        return paid + inputs.overtime_hours * hourly * self.config.overtime.weekday

    def _generate_calculation_id(
        self,
        employee_id: int,
        period: PayPeriod,
        inputs_fingerprint: str,
        config_fingerprint: str,
    ) -> UUID:
        """Generate deterministic calculation ID."""
        data = {
            "employee_id": employee_id,
            "period": str(period),
            "engine_version": self.engine_version,
            "inputs_fingerprint": inputs_fingerprint,
            "config_fingerprint": config_fingerprint,
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return UUID(bytes=hash_bytes[:16])
