"""PPh 21 income tax: TER withholding and progressive bracket strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from hr_payroll.calculators.types import (
    ONE,
    ZERO,
    PayrollConfig,
    PayrollConfigurationError,
    PayType,
    PtkpEntry,
    TaxBracket,
    TaxMethod,
    TerBand,
    YearToDate,
)

MONTHS_PER_YEAR = Decimal("12")
DEFAULT_MAX_ITERATIONS = 20

_TER_CATEGORY_BY_STATUS = {
    "TK/0": "A",
    "TK/1": "A",
    "TK/2": "B",
    "TK/3": "B",
    "K/0": "A",
    "K/1": "B",
    "K/2": "B",
    "K/3": "C",
}


class TaxConfigurationError(PayrollConfigurationError):
    """Raised when a tax table is malformed (gaps, overlaps, bad order)."""

    def __init__(self, reason: str, company_id: int | None = None):
        super().__init__(f"Invalid tax configuration: {reason}", company_id)
        self.reason = reason


class PTKPNotFoundError(PayrollConfigurationError):
    """Raised when no PTKP entry exists for a dependent status."""

    def __init__(self, ptkp_status: str, company_id: int | None = None):
        super().__init__(f"No PTKP entry for status '{ptkp_status}'", company_id)
        self.ptkp_status = ptkp_status


def ter_category_for(ptkp_status: str) -> str:
    """TER category (A/B/C) for a PTKP status."""
    if ptkp_status in _TER_CATEGORY_BY_STATUS:
        return _TER_CATEGORY_BY_STATUS[ptkp_status]
    if ptkp_status.startswith("K/I/"):
        return "C"
    raise PTKPNotFoundError(ptkp_status)


def validate_brackets(brackets: Iterable[TaxBracket]) -> tuple[TaxBracket, ...]:
    """Return brackets sorted ascending, or raise if they do not partition
    ``[0, inf)``: first starts at 0, each starts where the previous ends,
    only the last is open-ended.
    """
    ordered = tuple(sorted(brackets, key=lambda b: b.min_amount))
    if not ordered:
        raise TaxConfigurationError("no progressive brackets defined")
    if ordered[0].min_amount != ZERO:
        raise TaxConfigurationError(
            f"first bracket starts at {ordered[0].min_amount}, expected 0"
        )
    for i, bracket in enumerate(ordered):
        if bracket.rate < 0 or bracket.rate > 1:
            raise TaxConfigurationError(f"bracket rate {bracket.rate} outside [0, 1]")
        is_last = i == len(ordered) - 1
        if bracket.max_amount is None:
            if not is_last:
                raise TaxConfigurationError(
                    f"open-ended bracket at {bracket.min_amount} is not the last one"
                )
            continue
        if bracket.max_amount <= bracket.min_amount:
            raise TaxConfigurationError(
                f"bracket {bracket.min_amount}-{bracket.max_amount} is empty"
            )
        if is_last:
            raise TaxConfigurationError("last bracket must be open-ended")
        nxt = ordered[i + 1].min_amount
        if nxt > bracket.max_amount:
            raise TaxConfigurationError(f"gap between {bracket.max_amount} and {nxt}")
        if nxt < bracket.max_amount:
            raise TaxConfigurationError(
                f"overlap: bracket ending {bracket.max_amount} and bracket starting {nxt}"
            )
    return ordered


def validate_ter_bands(category: str, bands: Iterable[TerBand]) -> tuple[TerBand, ...]:
    """Same partition rules as brackets, for one TER category."""
    ordered = tuple(sorted(bands, key=lambda b: b.min_income))
    if not ordered:
        raise TaxConfigurationError(f"TER category {category} has no bands")
    try:
        validate_brackets(
            TaxBracket(min_amount=b.min_income, max_amount=b.max_income, rate=b.rate)
            for b in ordered
        )
    except TaxConfigurationError as exc:
        raise TaxConfigurationError(f"TER category {category}: {exc.reason}") from exc
    for band in ordered:
        if band.category != category:
            raise TaxConfigurationError(
                f"band for category {band.category} listed under {category}"
            )
    return ordered


def bracket_tax(amount: Decimal, brackets: Sequence[TaxBracket]) -> Decimal:
    """Annual tax: sum over brackets of ``(min(amount, upper) - lower) * rate``."""
    tax = ZERO
    for bracket in brackets:
        if amount <= bracket.min_amount:
            break
        upper = amount if bracket.max_amount is None else min(amount, bracket.max_amount)
        tax += (upper - bracket.min_amount) * bracket.rate
    return tax


@dataclass(frozen=True)
class TaxBase:
    """Per-employee facts a strategy needs besides the income figure."""

    ptkp: PtkpEntry
    employee_contributions: Decimal = ZERO
    ytd: YearToDate | None = None


@dataclass(frozen=True)
class Assessment:
    """Tax for one income figure under one strategy."""

    income: Decimal
    tax: Decimal
    rate: Decimal
    category: str | None = None
    position_cost: Decimal = ZERO
    net_income: Decimal = ZERO
    annual_taxable_income: Decimal = ZERO


@dataclass(frozen=True)
class GrossUp:
    initial_rate: Decimal
    initial_gross: Decimal
    final: Assessment
    iterations: int


@dataclass(frozen=True)
class TaxResult:
    """Monthly PPh 21 outcome for one payslip (unrounded)."""

    method: TaxMethod
    pay_type: PayType
    ptkp_status: str
    ptkp_amount: Decimal
    category: str | None
    taxable_income: Decimal
    position_cost: Decimal
    net_taxable_income: Decimal
    annual_taxable_income: Decimal
    rate: Decimal
    rate_initial: Decimal
    gross_up_initial: Decimal
    final_gross_up: Decimal
    tax_allowance: Decimal
    tax_amount: Decimal

    @property
    def withheld(self) -> bool:
        """Tax is taken out of the employee's pay."""
        return self.pay_type != PayType.NET

    @property
    def borne_by_company(self) -> bool:
        return self.pay_type != PayType.GROSS

    @property
    def employer_tax_cost(self) -> Decimal:
        """Tax paid by the company outside gross pay."""
        return self.tax_amount if self.pay_type == PayType.NET else ZERO


class TaxStrategy(ABC):
    """One income tax regime."""

    method: TaxMethod

    @abstractmethod
    def assess(self, income: Decimal, base: TaxBase) -> Assessment:
        """Monthly tax on ``income``."""

    @abstractmethod
    def gross_up(
        self,
        income: Decimal,
        base: TaxBase,
        tolerance: Decimal,
        max_iterations: int,
    ) -> GrossUp:
        """Solve for the grossed-up income whose net of tax equals ``income``."""


class TerWithholdingStrategy(TaxStrategy):
    """Monthly effective-rate table (TER, PP 58/2023).

    Gross-up uses the closed form ``G = B / (1 - r)``, re-evaluated while
    the band of ``G`` moves. If the band oscillates across a boundary the
    higher rate is kept.
    """

    method = TaxMethod.TER

    def __init__(self, bands: Mapping[str, Sequence[TerBand]]):
        self.bands = {
            category: tuple(sorted(rows, key=lambda b: b.min_income))
            for category, rows in bands.items()
        }

    def category(self, ptkp: PtkpEntry) -> str:
        return ptkp.ter_category or ter_category_for(ptkp.status)

    def rate_for(self, category: str, income: Decimal) -> Decimal:
        bands = self.bands.get(category)
        if not bands:
            raise TaxConfigurationError(f"TER category {category} has no bands")
        rate = bands[0].rate
        for band in bands:
            if income > band.min_income:
                rate = band.rate
            else:
                break
        return rate

    def assess(self, income: Decimal, base: TaxBase) -> Assessment:
        category = self.category(base.ptkp)
        rate = self.rate_for(category, income)
        return Assessment(
            income=income,
            tax=income * rate if income > 0 else ZERO,
            rate=rate,
            category=category,
        )

    def gross_up(
        self,
        income: Decimal,
        base: TaxBase,
        tolerance: Decimal,
        max_iterations: int,
    ) -> GrossUp:
        category = self.category(base.ptkp)
        initial_rate = self.rate_for(category, income)
        initial_gross = income / (ONE - initial_rate)

        rate = initial_rate
        gross = initial_gross
        seen = {rate}
        iterations = 1
        while iterations < max_iterations:
            next_rate = self.rate_for(category, gross)
            if next_rate == rate:
                break
            iterations += 1
            if next_rate in seen:
                rate = max(rate, next_rate)
                gross = income / (ONE - rate)
                break
            seen.add(next_rate)
            rate = next_rate
            gross = income / (ONE - rate)

        final = Assessment(income=gross, tax=gross * rate, rate=rate, category=category)
        return GrossUp(initial_rate, initial_gross, final, iterations)


class ProgressiveBracketStrategy(TaxStrategy):
    """Annualized Pasal 17 brackets.

    ``neto = income - employee BPJS - position cost``; annualized over 12
    months (or completing a year-to-date total), less PTKP, taxed by
    bracket and spread back over the remaining months. Gross-up iterates
    ``A(k+1) = tax(B + A(k))`` until the step is under ``tolerance``.
    """

    method = TaxMethod.PROGRESSIVE

    def __init__(
        self,
        brackets: Sequence[TaxBracket],
        position_cost_rate: Decimal = Decimal("0.05"),
        position_cost_max: Decimal = Decimal("500000"),
    ):
        self.brackets = validate_brackets(brackets)
        self.position_cost_rate = position_cost_rate
        self.position_cost_max = position_cost_max

    def assess(self, income: Decimal, base: TaxBase) -> Assessment:
        position_cost = min(max(income, ZERO) * self.position_cost_rate, self.position_cost_max)
        neto = max(ZERO, income - base.employee_contributions - position_cost)

        ytd = base.ytd
        if ytd is not None and 0 < ytd.months < 12:
            remaining = Decimal(12 - ytd.months)
            annual_neto = ytd.neto + neto * remaining
        else:
            ytd = None
            remaining = MONTHS_PER_YEAR
            annual_neto = neto * MONTHS_PER_YEAR

        pkp = max(ZERO, annual_neto - base.ptkp.amount)
        annual_tax = bracket_tax(pkp, self.brackets)
        if ytd is not None:
            monthly = max(ZERO, (annual_tax - ytd.tax_paid) / remaining)
        else:
            monthly = annual_tax / MONTHS_PER_YEAR

        return Assessment(
            income=income,
            tax=monthly,
            rate=monthly / income if income > 0 else ZERO,
            position_cost=position_cost,
            net_income=neto,
            annual_taxable_income=pkp,
        )

    def gross_up(
        self,
        income: Decimal,
        base: TaxBase,
        tolerance: Decimal,
        max_iterations: int,
    ) -> GrossUp:
        first = self.assess(income, base)
        allowance = first.tax
        initial_gross = income + allowance
        current = self.assess(initial_gross, base)
        iterations = 1
        while iterations < max_iterations and abs(current.tax - allowance) >= tolerance:
            allowance = current.tax
            current = self.assess(income + allowance, base)
            iterations += 1
        return GrossUp(first.rate, initial_gross, current, iterations)


class TaxCalculator:
    """Applies the company's tax strategy under a payment convention.

    - ``gross``: tax withheld from the employee
    - ``net``: same tax, paid by the company on top of pay
    - ``gross_up``: a taxable allowance equal to the tax is added to pay
    """

    def __init__(
        self,
        strategy: TaxStrategy,
        ptkp: Mapping[str, PtkpEntry],
        tolerance: Decimal = ONE,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        self.strategy = strategy
        self.ptkp = ptkp
        self.tolerance = tolerance
        self.max_iterations = max_iterations

    @classmethod
    def for_config(
        cls,
        config: PayrollConfig,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> TaxCalculator:
        """Select the strategy once per company."""
        strategy: TaxStrategy
        if config.use_ter_method:
            strategy = TerWithholdingStrategy(config.ter_bands)
        else:
            strategy = ProgressiveBracketStrategy(
                config.tax_brackets,
                position_cost_rate=config.position_cost_rate,
                position_cost_max=config.position_cost_max,
            )
        return cls(
            strategy,
            config.ptkp,
            tolerance=config.rounding.unit,
            max_iterations=max_iterations,
        )

    def ptkp_entry(self, ptkp_status: str) -> PtkpEntry:
        entry = self.ptkp.get(ptkp_status)
        if entry is None:
            raise PTKPNotFoundError(ptkp_status)
        return entry

    def calculate(
        self,
        income: Decimal,
        pay_type: PayType,
        ptkp_status: str,
        employee_contributions: Decimal = ZERO,
        ytd: YearToDate | None = None,
    ) -> TaxResult:
        pay_type = PayType(pay_type)
        ptkp = self.ptkp_entry(ptkp_status)
        base = TaxBase(ptkp=ptkp, employee_contributions=employee_contributions, ytd=ytd)

        if pay_type == PayType.GROSS_UP and income > 0:
            solved = self.strategy.gross_up(income, base, self.tolerance, self.max_iterations)
            final = solved.final
            return self._result(
                pay_type,
                ptkp,
                final,
                rate_initial=solved.initial_rate,
                gross_up_initial=solved.initial_gross,
                tax_allowance=final.income - income,
            )

        assessment = self.strategy.assess(income, base)
        return self._result(
            pay_type,
            ptkp,
            assessment,
            rate_initial=assessment.rate,
            gross_up_initial=income,
            tax_allowance=ZERO,
        )

    def _result(
        self,
        pay_type: PayType,
        ptkp: PtkpEntry,
        assessment: Assessment,
        rate_initial: Decimal,
        gross_up_initial: Decimal,
        tax_allowance: Decimal,
    ) -> TaxResult:
        return TaxResult(
            method=self.strategy.method,
            pay_type=pay_type,
            ptkp_status=ptkp.status,
            ptkp_amount=ptkp.amount,
            category=assessment.category,
            taxable_income=assessment.income,
            position_cost=assessment.position_cost,
            net_taxable_income=assessment.net_income,
            annual_taxable_income=assessment.annual_taxable_income,
            rate=assessment.rate,
            rate_initial=rate_initial,
            gross_up_initial=gross_up_initial,
            final_gross_up=assessment.income,
            tax_allowance=tax_allowance,
            tax_amount=assessment.tax,
        )
