"""Unit tests for PPh 21 calculation.

Covers TER withholding, annualized progressive brackets, table validation
and the three payment conventions.
"""

from decimal import Decimal

import pytest

from hr_payroll.calculators.tax_calculator import (
    ProgressiveBracketStrategy,
    PTKPNotFoundError,
    TaxBase,
    TaxCalculator,
    TaxConfigurationError,
    TerWithholdingStrategy,
    bracket_tax,
    ter_category_for,
    validate_brackets,
    validate_ter_bands,
)
from hr_payroll.calculators.types import (
    PayrollConfig,
    PayType,
    PtkpEntry,
    TaxBracket,
    TaxMethod,
    TerBand,
    YearToDate,
    default_tax_brackets,
    default_ter_bands,
)

MILLION = Decimal("1000000")


def reference_annual_tax(pkp: Decimal) -> Decimal:
    """Closed-form UU HPP schedule."""
    if pkp <= 60 * MILLION:
        return pkp * Decimal("0.05")
    if pkp <= 250 * MILLION:
        return 3 * MILLION + (pkp - 60 * MILLION) * Decimal("0.15")
    if pkp <= 500 * MILLION:
        return Decimal("31500000") + (pkp - 250 * MILLION) * Decimal("0.25")
    if pkp <= 5000 * MILLION:
        return 94 * MILLION + (pkp - 500 * MILLION) * Decimal("0.30")
    return 1444 * MILLION + (pkp - 5000 * MILLION) * Decimal("0.35")


@pytest.fixture
def ter_calculator() -> TaxCalculator:
    return TaxCalculator.for_config(PayrollConfig.default())


@pytest.fixture
def progressive_calculator() -> TaxCalculator:
    return TaxCalculator.for_config(PayrollConfig.default(use_ter_method=False))


class TestTerCategories:
    """Test PTKP status to TER category mapping."""

    @pytest.mark.parametrize(
        "status,category",
        [
            ("TK/0", "A"),
            ("TK/1", "A"),
            ("TK/2", "B"),
            ("TK/3", "B"),
            ("K/0", "A"),
            ("K/1", "B"),
            ("K/2", "B"),
            ("K/3", "C"),
            ("K/I/0", "C"),
            ("K/I/3", "C"),
        ],
    )
    def test_mapping(self, status, category):
        assert ter_category_for(status) == category

    def test_unknown_status(self):
        with pytest.raises(PTKPNotFoundError):
            ter_category_for("X/9")

    def test_default_tables_are_valid(self):
        bands = default_ter_bands()
        assert {category: len(rows) for category, rows in bands.items()} == {
            "A": 44,
            "B": 40,
            "C": 41,
        }
        for category, rows in bands.items():
            assert validate_ter_bands(category, rows) == rows


class TestTerWithholding:
    """Test TER rate lookup and monthly tax."""

    def test_rate_lookup(self):
        strategy = TerWithholdingStrategy(default_ter_bands())
        assert strategy.rate_for("A", Decimal("0")) == Decimal("0")
        assert strategy.rate_for("A", Decimal("5400000")) == Decimal("0")
        assert strategy.rate_for("A", Decimal("5400001")) == Decimal("0.0025")
        assert strategy.rate_for("A", Decimal("10000000")) == Decimal("0.02")
        assert strategy.rate_for("C", Decimal("2000000000")) == Decimal("0.34")

    def test_monthly_tax(self, ter_calculator):
        result = ter_calculator.calculate(Decimal("10000000"), PayType.GROSS, "TK/0")

        assert result.method == TaxMethod.TER
        assert result.category == "A"
        assert result.rate == Decimal("0.02")
        assert result.tax_amount == Decimal("200000")
        assert result.withheld is True
        assert result.borne_by_company is False
        assert result.employer_tax_cost == Decimal("0")

    def test_ptkp_row_category_wins(self):
        """The PTKP row's own category overrides the built-in mapping."""
        strategy = TerWithholdingStrategy(default_ter_bands())
        ptkp = PtkpEntry(status="TK/0", amount=54 * MILLION, ter_category="C")
        assessment = strategy.assess(Decimal("10000000"), TaxBase(ptkp=ptkp))
        assert assessment.category == "C"
        assert assessment.rate == Decimal("0.015")

    def test_missing_ptkp(self, ter_calculator):
        with pytest.raises(PTKPNotFoundError):
            ter_calculator.calculate(Decimal("10000000"), PayType.GROSS, "X/0")

    def test_missing_category_bands(self):
        strategy = TerWithholdingStrategy({"A": default_ter_bands()["A"]})
        with pytest.raises(TaxConfigurationError):
            strategy.rate_for("B", Decimal("1"))


class TestProgressiveBrackets:
    """Test annualized progressive tax."""

    @pytest.mark.parametrize("boundary", [0, 60, 250, 500, 5000])
    def test_bracket_sum_matches_closed_form(self, boundary):
        brackets = validate_brackets(default_tax_brackets())
        for delta in (-1, 0, 1):
            pkp = boundary * MILLION + delta
            if pkp < 0:
                continue
            assert bracket_tax(pkp, brackets) == reference_annual_tax(pkp)

    def test_monthly_tax(self, progressive_calculator):
        """10M salary, TK/0: neto 9.2M, PKP 56.4M, annual tax 2.82M."""
        result = progressive_calculator.calculate(
            Decimal("10000000"),
            PayType.GROSS,
            "TK/0",
            employee_contributions=Decimal("300000"),
        )

        assert result.method == TaxMethod.PROGRESSIVE
        assert result.position_cost == Decimal("500000")
        assert result.net_taxable_income == Decimal("9200000")
        assert result.annual_taxable_income == Decimal("56400000")
        assert result.tax_amount == Decimal("235000")
        assert result.category is None

    def test_position_cost_rate_below_cap(self, progressive_calculator):
        result = progressive_calculator.calculate(Decimal("4000000"), PayType.GROSS, "TK/0")
        assert result.position_cost == Decimal("200000")

    def test_income_below_ptkp(self, progressive_calculator):
        result = progressive_calculator.calculate(Decimal("4000000"), PayType.GROSS, "TK/0")
        assert result.annual_taxable_income == Decimal("0")
        assert result.tax_amount == Decimal("0")

    def test_year_to_date(self, progressive_calculator):
        """Completing the year from three months already paid."""
        ytd = YearToDate(months=3, neto=Decimal("27600000"), tax_paid=Decimal("705000"))
        result = progressive_calculator.calculate(
            Decimal("10000000"),
            PayType.GROSS,
            "TK/0",
            employee_contributions=Decimal("300000"),
            ytd=ytd,
        )
        assert result.annual_taxable_income == Decimal("56400000")
        assert result.tax_amount == Decimal("235000")

    def test_year_to_date_overpaid_floors_at_zero(self, progressive_calculator):
        ytd = YearToDate(months=6, neto=Decimal("10000000"), tax_paid=Decimal("9000000"))
        result = progressive_calculator.calculate(Decimal("5000000"), PayType.GROSS, "TK/0", ytd=ytd)
        assert result.tax_amount == Decimal("0")


class TestBracketValidation:
    """Test rejection of malformed tables."""

    def _bracket(self, low, high, rate="0.05"):
        return TaxBracket(
            min_amount=Decimal(low),
            max_amount=None if high is None else Decimal(high),
            rate=Decimal(rate),
        )

    def test_sorted_output(self):
        ordered = validate_brackets([self._bracket(100, None), self._bracket(0, 100)])
        assert [b.min_amount for b in ordered] == [Decimal("0"), Decimal("100")]

    @pytest.mark.parametrize(
        "rows",
        [
            [],
            [[10, None]],
            [[0, 100], [150, None]],
            [[0, 100], [90, None]],
            [[0, None], [100, None]],
            [[0, 100], [100, 200]],
            [[0, 0], [0, None]],
        ],
        ids=["empty", "not-zero", "gap", "overlap", "open-not-last", "last-closed", "empty-bracket"],
    )
    def test_rejected(self, rows):
        with pytest.raises(TaxConfigurationError):
            validate_brackets([self._bracket(low, high) for low, high in rows])

    def test_rate_out_of_range(self):
        with pytest.raises(TaxConfigurationError):
            validate_brackets([self._bracket(0, None, "1.5")])

    def test_ter_band_under_wrong_category(self):
        bands = [TerBand("B", Decimal("0"), None, Decimal("0"))]
        with pytest.raises(TaxConfigurationError):
            validate_ter_bands("A", bands)

    def test_progressive_strategy_validates(self):
        with pytest.raises(TaxConfigurationError):
            ProgressiveBracketStrategy([self._bracket(0, 100)])


class TestPayTypes:
    """Test gross, net and gross-up conventions."""

    def test_net_borne_by_company(self, ter_calculator):
        result = ter_calculator.calculate(Decimal("10000000"), PayType.NET, "TK/0")

        assert result.tax_amount == Decimal("200000")
        assert result.withheld is False
        assert result.borne_by_company is True
        assert result.employer_tax_cost == Decimal("200000")
        assert result.tax_allowance == Decimal("0")

    def test_ter_gross_up(self, ter_calculator):
        """10M moves from the 2% band to 2.25% once grossed up."""
        result = ter_calculator.calculate(Decimal("10000000"), PayType.GROSS_UP, "TK/0")

        assert result.rate_initial == Decimal("0.02")
        assert result.gross_up_initial == Decimal("10000000") / Decimal("0.98")
        assert result.rate == Decimal("0.0225")
        assert result.final_gross_up == Decimal("10000000") / Decimal("0.9775")
        assert result.withheld is True
        assert result.borne_by_company is True
        assert result.employer_tax_cost == Decimal("0")
        # Employee nets the pre-tax figure
        net = result.final_gross_up - result.tax_amount
        assert abs(net - Decimal("10000000")) < Decimal("0.01")
        assert abs(result.tax_allowance - result.tax_amount) < Decimal("0.01")

    def test_ter_gross_up_oscillation_keeps_higher_rate(self):
        bands = {
            "A": (
                TerBand("A", Decimal("0"), Decimal("100"), Decimal("0")),
                TerBand("A", Decimal("100"), Decimal("150"), Decimal("0.5")),
                TerBand("A", Decimal("150"), None, Decimal("0.1")),
            )
        }
        calculator = TaxCalculator(
            TerWithholdingStrategy(bands),
            {"TK/0": PtkpEntry("TK/0", 54 * MILLION, "A")},
        )
        result = calculator.calculate(Decimal("120"), PayType.GROSS_UP, "TK/0")
        assert result.rate == Decimal("0.5")
        assert result.final_gross_up == Decimal("240")

    @pytest.mark.parametrize("income", ["6000000", "10000000", "25000000", "60000000"])
    def test_progressive_gross_up_converges(self, progressive_calculator, income):
        target = Decimal(income)
        result = progressive_calculator.calculate(
            target, PayType.GROSS_UP, "K/1", employee_contributions=Decimal("300000")
        )
        assert abs(result.final_gross_up - result.tax_amount - target) < Decimal("1")
        assert result.tax_allowance == result.final_gross_up - target

    def test_zero_income_gross_up(self, ter_calculator):
        result = ter_calculator.calculate(Decimal("0"), PayType.GROSS_UP, "TK/0")
        assert result.tax_amount == Decimal("0")
        assert result.tax_allowance == Decimal("0")
