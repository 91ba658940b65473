"""Unit tests for PayrollEngine.

Exercises the full assembly pipeline without a database.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from hr_payroll.calculators.engine import PayrollEngine
from hr_payroll.calculators.line_builder import LineItemBuilder
from hr_payroll.calculators.types import (
    AdjustmentInput,
    AdjustmentType,
    AllowanceInput,
    AttendanceSummary,
    BpjsMembership,
    ComponentType,
    DeductionRates,
    DeductionType,
    EmployeeProfile,
    PayPeriod,
    PayrollConfig,
    PayrollInputs,
    PayType,
    ProrateMethod,
)

APRIL_2024 = PayPeriod(2024, 4)  # 22 working days
SALARY = Decimal("10000000")


def make_profile(**overrides) -> EmployeeProfile:
    values = dict(
        employee_id=1,
        company_id=1,
        basic_salary=SALARY,
        ptkp_status="TK/0",
        pay_type=PayType.GROSS,
        join_date=date(2020, 1, 6),
    )
    values.update(overrides)
    return EmployeeProfile(**values)


def make_inputs(profile: EmployeeProfile | None = None, **overrides) -> PayrollInputs:
    return PayrollInputs(profile=profile or make_profile(), period=APRIL_2024, **overrides)


def line_codes(result) -> list[str]:
    return [line.code for line in result.lines]


@pytest.fixture
def config() -> PayrollConfig:
    """Default statutory configuration with per-minute lateness."""
    return PayrollConfig.default(
        company_id=1,
        deduction_rates=DeductionRates(
            late_rate_per_minute=Decimal("1"), late_tolerance_minutes=15
        ),
    )


@pytest.fixture
def engine(config) -> PayrollEngine:
    return PayrollEngine(config, engine_version="1.0.0")


class TestReferenceScenario:
    """10,000,000 salary, 22 working days, 2 absences, 30 minutes late."""

    @pytest.fixture
    def result(self, engine):
        return engine.calculate(
            make_inputs(attendance=AttendanceSummary(absence_days=2, late_minutes=30))
        )

    def test_deductions(self, result):
        daily = SALARY / Decimal(22)
        assert result.deductions.total_for(DeductionType.ABSENCE) == 2 * daily
        assert result.amounts["absence_deduction"] == Decimal("909091")
        # Only the 15 minutes beyond tolerance are charged
        assert result.amounts["late_deduction"] == Decimal("14205")
        assert result.amounts["total_deductions"] == Decimal("923295")

    def test_contributions_on_full_salary(self, result):
        assert result.contributions.salary == SALARY
        assert result.amounts["bpjs_kes_employee"] == Decimal("100000")
        assert result.amounts["bpjs_jht_employee"] == Decimal("200000")
        assert result.amounts["bpjs_jp_employee"] == Decimal("100000")
        assert result.amounts["bpjs_employee_total"] == Decimal("400000")
        assert result.amounts["bpjs_company_total"] == Decimal("1024000")

    def test_tax(self, result):
        """Employer JKK, JKM and JKS lift the TER base to 10,454,000 (2.5%)."""
        assert result.amounts["taxable_income"] == Decimal("10454000")
        assert result.facts["ter_category"] == "A"
        assert result.facts["ter_rate"] == Decimal("0.025")
        assert result.amounts["tax_amount"] == Decimal("261350")
        assert result.facts["tax_borne_by_company"] is False

    def test_totals(self, result):
        assert result.gross_salary == Decimal("10000000")
        # 10,000,000 - 923,295.45 - 400,000 - 261,350
        assert result.net_salary == Decimal("8415355")
        assert result.take_home_pay == Decimal("8415355")
        assert result.total_employer_cost == Decimal("11024000")
        assert result.success is True

    def test_lines_reconcile_with_rounding_line(self, result):
        assert line_codes(result) == [
            "basic_salary",
            "absence_deduction",
            "late_deduction",
            "bpjs_kes_employee",
            "bpjs_jht_employee",
            "bpjs_jp_employee",
            "pph21",
            "bpjs_kes_company",
            "bpjs_jht_company",
            "bpjs_jp_company",
            "bpjs_jkk_company",
            "bpjs_jkm_company",
            "rounding",
        ]
        assert result.lines[-1].amount == Decimal("1")
        assert LineItemBuilder.calculate_take_home_from_lines(result.lines) == result.take_home_pay

    def test_facts(self, result):
        assert result.facts["working_days"] == 22
        assert result.facts["absence_days"] == 2
        assert result.facts["late_minutes"] == 30
        assert result.facts["is_prorated"] is False
        assert result.facts["prorate_factor"] == Decimal("1")

    def test_record_columns(self, result):
        record = result.to_record()
        assert record["period"] == "2024-04"
        assert record["period_start"] == date(2024, 4, 1)
        assert record["pay_type"] == "gross"
        assert record["calculation_id"] == str(result.calculation_id)
        assert record["take_home_pay"] == Decimal("8415355")


class TestTerCategoryByStatus:
    """Married statuses follow the PP 58/2023 category table."""

    def test_married_without_dependents_uses_category_a(self, engine):
        profile = make_profile(basic_salary=Decimal("6000000"), ptkp_status="K/0")
        result = engine.calculate(make_inputs(profile))

        assert result.facts["ter_category"] == "A"
        # 6,272,400 with employer BPJS benefits falls above 5,950,000
        assert result.amounts["taxable_income"] == Decimal("6272400")
        assert result.facts["ter_rate"] == Decimal("0.0075")
        assert result.amounts["tax_amount"] == Decimal("47043")

    def test_married_two_dependents_uses_category_b(self, engine):
        profile = make_profile(ptkp_status="K/2")
        result = engine.calculate(make_inputs(profile))

        assert result.facts["ter_category"] == "B"
        assert engine.config.ptkp["K/2"].ter_category == "B"


class TestPayTypes:
    """Test net and gross-up payslips."""

    def test_net_tax_borne_by_company(self, engine):
        result = engine.calculate(make_inputs(make_profile(pay_type=PayType.NET)))

        assert result.amounts["tax_amount"] == Decimal("261350")
        assert result.net_salary == Decimal("9600000")
        assert result.total_employer_cost == Decimal("11285350")
        assert "pph21" not in line_codes(result)
        assert "pph21_company" in line_codes(result)
        assert result.facts["tax_borne_by_company"] is True

    def test_gross_up_employee_nets_pre_tax_pay(self, engine):
        result = engine.calculate(make_inputs(make_profile(pay_type=PayType.GROSS_UP)))

        assert result.facts["ter_rate_initial"] == Decimal("0.025")
        assert result.facts["ter_rate"] == Decimal("0.03")
        assert result.amounts["tax_allowance"] == result.amounts["tax_amount"]
        assert result.amounts["gross_salary"] == SALARY + result.amounts["tax_allowance"]
        assert result.net_salary == Decimal("9600000")
        assert result.total_employer_cost == result.gross_salary + Decimal("1024000")

    def test_gross_up_allowance_line_among_earnings(self, engine):
        result = engine.calculate(make_inputs(make_profile(pay_type=PayType.GROSS_UP)))
        codes = line_codes(result)
        assert codes.index("tax_allowance") < codes.index("bpjs_kes_employee")
        assert result.lines[codes.index("tax_allowance")].component_type == ComponentType.EARNING


class TestEarnings:
    """Test allowances, overtime and adjustments."""

    def test_allowances_and_bpjs_base(self, engine):
        profile = make_profile(
            allowances=(
                AllowanceInput("transport_allowance", "Tunjangan transport", Decimal("500000")),
                AllowanceInput(
                    "position_allowance", "Tunjangan jabatan", Decimal("1000000"), is_bpjs_base=True
                ),
            )
        )
        result = engine.calculate(make_inputs(profile))

        assert result.amounts["transport_allowance"] == Decimal("500000")
        assert result.amounts["position_allowance"] == Decimal("1000000")
        assert result.amounts["bpjs_base"] == Decimal("11000000")
        assert result.gross_salary == Decimal("11500000")

    def test_allowances_prorated(self, engine):
        profile = make_profile(
            join_date=date(2024, 4, 15),
            allowances=(
                AllowanceInput("meal_allowance", "Tunjangan makan", Decimal("440000")),
                AllowanceInput(
                    "other_allowance", "Tunjangan lainnya", Decimal("100000"), is_prorated=False
                ),
            ),
        )
        result = engine.calculate(make_inputs(profile))

        assert result.amounts["meal_allowance"] == Decimal("240000")
        assert result.amounts["other_allowances"] == Decimal("100000")

    def test_overtime_amount_used_as_given(self, engine):
        result = engine.calculate(make_inputs(overtime_pay=Decimal("750000")))
        assert result.amounts["overtime_pay"] == Decimal("750000")
        assert result.gross_salary == Decimal("10750000")

    def test_overtime_hours_priced(self, engine):
        """10 unpriced hours at basic / 173 x 1.5."""
        result = engine.calculate(make_inputs(overtime_hours=Decimal("10")))
        assert result.amounts["overtime_pay"] == Decimal("867052")

    def test_bonus_adjustment(self, engine):
        bonus = AdjustmentInput(11, AdjustmentType.BONUS, Decimal("2000000"), "Bonus Q1")
        result = engine.calculate(make_inputs(adjustments=(bonus,)))

        assert result.amounts["adjustment_earnings"] == Decimal("2000000")
        assert result.gross_salary == Decimal("12000000")
        line = result.lines[line_codes(result).index("adjustment_bonus")]
        assert line.reference_id == 11
        assert line.name == "Bonus Q1"

    def test_reimbursement_paid_on_top_of_net(self, engine):
        reimbursement = AdjustmentInput(12, AdjustmentType.REIMBURSEMENT, Decimal("150000"))
        base = engine.calculate(make_inputs())
        result = engine.calculate(make_inputs(adjustments=(reimbursement,)))

        assert result.gross_salary == base.gross_salary
        assert result.amounts["tax_amount"] == base.amounts["tax_amount"]
        assert result.net_salary == base.net_salary
        assert result.take_home_pay == base.take_home_pay + Decimal("150000")
        line = result.lines[line_codes(result).index("reimbursement")]
        assert line.is_taxable is False

    def test_loan_adjustment_deducted(self, engine):
        loan = AdjustmentInput(13, AdjustmentType.LOAN, Decimal("500000"))
        result = engine.calculate(make_inputs(adjustments=(loan,)))
        assert result.amounts["loan_deduction"] == Decimal("500000")


class TestProrationInPipeline:
    """Test proration and unpaid leave handling."""

    def test_join_mid_month(self, engine):
        result = engine.calculate(make_inputs(make_profile(join_date=date(2024, 4, 15))))

        assert result.amounts["basic_salary"] == Decimal("5454545")
        assert result.amounts["base_salary"] == SALARY
        assert result.facts["is_prorated"] is True
        assert result.facts["prorate_factor"] == Decimal("0.5454545455")
        assert result.facts["prorate_actual_days"] == 12
        assert result.facts["prorate_reason"] == "Join mid-month"

    def test_unpaid_leave_only_deducted_once(self, engine):
        result = engine.calculate(make_inputs(unpaid_leave_days=2))

        assert result.facts["is_prorated"] is False
        assert result.amounts["basic_salary"] == SALARY
        assert result.amounts["leave_deduction"] == Decimal("909091")

    def test_custom_factor(self, config):
        engine = PayrollEngine(replace(config, prorate_method=ProrateMethod.CUSTOM), engine_version="1.0.0")
        result = engine.calculate(make_inputs(custom_prorate_factor=Decimal("0.5")))
        assert result.amounts["basic_salary"] == Decimal("5000000")


class TestProgressiveMethod:
    def test_progressive_payslip(self, config):
        engine = PayrollEngine(replace(config, use_ter_method=False), engine_version="1.0.0")
        result = engine.calculate(make_inputs())

        assert result.facts["tax_method"] == "progressive"
        assert result.facts["ter_category"] is None
        assert result.facts["ter_rate"] is None
        assert result.amounts["position_cost"] == Decimal("500000")
        assert result.amounts["tax_amount"] > 0


class TestErrors:
    """Test reported calculation errors."""

    def test_negative_take_home_reported(self, engine):
        loan = AdjustmentInput(14, AdjustmentType.LOAN, Decimal("20000000"))
        result = engine.calculate(make_inputs(adjustments=(loan,)))

        assert result.success is False
        assert any("Negative take-home" in error for error in result.errors)

    def test_no_membership_no_bpjs_lines(self, engine):
        result = engine.calculate(make_inputs(make_profile(membership=BpjsMembership.none())))
        assert not any(code.startswith("bpjs_") for code in line_codes(result))


class TestDeterminism:
    """Test fingerprints and calculation ids."""

    def test_same_inputs_same_id(self, engine):
        assert engine.calculate(make_inputs()).calculation_id == engine.calculate(
            make_inputs()
        ).calculation_id

    def test_decimal_scale_does_not_change_fingerprint(self, engine):
        a = engine.calculate(make_inputs(make_profile(basic_salary=Decimal("10000000"))))
        b = engine.calculate(make_inputs(make_profile(basic_salary=Decimal("10000000.00"))))
        assert a.inputs_fingerprint == b.inputs_fingerprint
        assert a.calculation_id == b.calculation_id

    def test_input_change_changes_id(self, engine):
        a = engine.calculate(make_inputs())
        b = engine.calculate(make_inputs(attendance=AttendanceSummary(absence_days=1)))
        assert a.inputs_fingerprint != b.inputs_fingerprint
        assert a.calculation_id != b.calculation_id

    def test_engine_version_affects_id(self, config):
        inputs = make_inputs()
        a = PayrollEngine(config, engine_version="1.0.0").calculate(inputs)
        b = PayrollEngine(config, engine_version="2.0.0").calculate(inputs)
        assert a.calculation_id != b.calculation_id

    def test_config_change_changes_id(self, config):
        inputs = make_inputs()
        a = PayrollEngine(config, engine_version="1.0.0").calculate(inputs)
        b = PayrollEngine(
            replace(config, position_cost_max=Decimal("600000")), engine_version="1.0.0"
        ).calculate(inputs)
        assert a.config_fingerprint != b.config_fingerprint
        assert a.calculation_id != b.calculation_id


class TestLineInvariant:
    """Itemized lines always add up to take-home pay."""

    @pytest.mark.parametrize(
        "pay_type,absences,late,join_day",
        [
            (PayType.GROSS, 0, 0, 1),
            (PayType.GROSS, 3, 47, 9),
            (PayType.NET, 1, 20, 17),
            (PayType.GROSS_UP, 2, 90, 3),
        ],
    )
    def test_lines_sum_to_take_home(self, engine, pay_type, absences, late, join_day):
        profile = make_profile(
            pay_type=pay_type,
            basic_salary=Decimal("8765432.10"),
            join_date=date(2024, 4, join_day),
            allowances=(AllowanceInput("meal_allowance", "Tunjangan makan", Decimal("333333")),),
        )
        result = engine.calculate(
            make_inputs(profile, attendance=AttendanceSummary(absence_days=absences, late_minutes=late))
        )
        assert LineItemBuilder.calculate_take_home_from_lines(result.lines) == result.take_home_pay
        assert LineItemBuilder.validate_line_signs(result.lines) == []
