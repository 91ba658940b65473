"""Type definitions for the calculation pipeline."""

from __future__ import annotations

import calendar
import hashlib
import json
import re
from dataclasses import asdict, dataclass, field, replace
from datetime import date, timedelta
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from hr_payroll import seed_data

ZERO = Decimal("0")
ONE = Decimal("1")
CENT = Decimal("0.01")

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


class PayType(str, Enum):
    """Who bears the income tax."""

    GROSS = "gross"
    NET = "net"
    GROSS_UP = "gross_up"


class TaxMethod(str, Enum):
    """Income tax regime selected per company."""

    TER = "ter"
    PROGRESSIVE = "progressive"


class ProrateMethod(str, Enum):
    """How eligible days in a period are counted."""

    WORKING_DAYS = "working_days"
    CALENDAR_DAYS = "calendar_days"
    CUSTOM = "custom"


class RoundingMethod(str, Enum):
    ROUND = "round"
    FLOOR = "floor"
    CEIL = "ceil"


class DeductionType(str, Enum):
    """Source of a payslip deduction."""

    ABSENCE = "absence"
    LATE = "late"
    LOAN = "loan"
    ADVANCE = "advance"
    LEAVE = "leave"
    PENALTY = "penalty"
    OTHER = "other"


class AdjustmentType(str, Enum):
    """PayrollAdjustment kinds."""

    BONUS = "bonus"
    ALLOWANCE = "allowance"
    REIMBURSEMENT = "reimbursement"
    DEDUCTION = "deduction"
    PENALTY = "penalty"
    LOAN = "loan"
    ADVANCE = "advance"
    OTHER = "other"

    @property
    def is_earning(self) -> bool:
        return self in (AdjustmentType.BONUS, AdjustmentType.ALLOWANCE)

    @property
    def is_deduction(self) -> bool:
        return self not in (
            AdjustmentType.BONUS,
            AdjustmentType.ALLOWANCE,
            AdjustmentType.REIMBURSEMENT,
        )


class ComponentType(str, Enum):
    """Payslip line item types."""

    EARNING = "earning"
    DEDUCTION = "deduction"
    TAX = "tax"
    BPJS = "bpjs"
    EMPLOYER = "employer"
    ROUNDING = "rounding"


class PayrollConfigurationError(Exception):
    """Raised when a company's payroll configuration is missing or invalid."""

    def __init__(self, reason: str, company_id: int | None = None):
        self.reason = reason
        self.company_id = company_id
        msg = reason if company_id is None else f"{reason} (company {company_id})"
        super().__init__(msg)


class InvalidPeriodError(ValueError):
    """Raised when a pay period string is not ``YYYY-MM``."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid pay period '{value}', expected YYYY-MM")


@dataclass(frozen=True, order=True)
class PayPeriod:
    """A calendar-month pay period."""

    year: int
    month: int

    @classmethod
    def parse(cls, value: str) -> PayPeriod:
        match = _PERIOD_RE.match(value or "")
        if match is None:
            raise InvalidPeriodError(value)
        year, month = int(match.group(1)), int(match.group(2))
        if not 1 <= month <= 12 or year < 1900:
            raise InvalidPeriodError(value)
        return cls(year, month)

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def attendance_window(self, cutoff_day: int | None) -> tuple[date, date]:
        """Window for collecting attendance and overtime.

        With a cutoff day the window runs from the day after the cutoff in
        the previous month through the cutoff day of this month.
        """
        if not cutoff_day:
            return self.start, self.end
        end = date(self.year, self.month, min(cutoff_day, self.end.day))
        prev_last = self.start - timedelta(days=1)
        start = date(prev_last.year, prev_last.month, min(cutoff_day, prev_last.day)) + timedelta(days=1)
        return start, end

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


# === Company configuration ===


@dataclass(frozen=True)
class ContributionRates:
    """BPJS rates and salary caps (caps of None mean uncapped)."""

    kes_employee: Decimal
    kes_company: Decimal
    kes_cap: Decimal | None
    jht_employee: Decimal
    jht_company: Decimal
    jp_employee: Decimal
    jp_company: Decimal
    jp_cap: Decimal | None
    jkk_company: Decimal
    jkm_company: Decimal


@dataclass(frozen=True)
class DeductionRates:
    """Per-unit attendance deduction rates."""

    absence_rate: Decimal = ONE
    late_rate_per_minute: Decimal = ZERO
    late_rate_per_day: Decimal = Decimal("0.5")
    late_tolerance_minutes: int = 15
    leave_rate: Decimal = ONE

    @property
    def late_by_minutes(self) -> bool:
        return self.late_rate_per_minute > 0


@dataclass(frozen=True)
class OvertimeRates:
    weekday: Decimal = Decimal("1.5")
    weekend: Decimal = Decimal("2.0")
    holiday: Decimal = Decimal("3.0")
    base: str = "basic_salary"


@dataclass(frozen=True)
class RoundingPolicy:
    """Company rounding policy, applied once per output figure."""

    enabled: bool = True
    method: RoundingMethod = RoundingMethod.ROUND
    precision: int = 0

    _MODES = {
        RoundingMethod.ROUND: ROUND_HALF_UP,
        RoundingMethod.FLOOR: ROUND_FLOOR,
        RoundingMethod.CEIL: ROUND_CEILING,
    }

    @property
    def unit(self) -> Decimal:
        """Smallest representable step under this policy."""
        if not self.enabled:
            return CENT
        return ONE.scaleb(-self.precision)

    def apply(self, amount: Decimal) -> Decimal:
        if not self.enabled:
            return amount.quantize(CENT, rounding=ROUND_HALF_UP)
        rounded = amount.quantize(self.unit, rounding=self._MODES[RoundingMethod(self.method)])
        if self.precision < 0:
            # Back to a plain integer exponent
            rounded = rounded.quantize(ONE)
        return rounded


@dataclass(frozen=True)
class TerBand:
    """TER band: income above ``min_income`` up to ``max_income`` inclusive."""

    category: str
    min_income: Decimal
    max_income: Decimal | None
    rate: Decimal


@dataclass(frozen=True)
class TaxBracket:
    """Annual progressive bracket, half-open ``[min_amount, max_amount)``."""

    min_amount: Decimal
    max_amount: Decimal | None  # None = no upper limit
    rate: Decimal


@dataclass(frozen=True)
class PtkpEntry:
    status: str
    amount: Decimal
    ter_category: str


@dataclass(frozen=True)
class PayrollConfig:
    """Resolved payroll configuration for one company."""

    company_id: int | None
    contribution_rates: ContributionRates
    use_ter_method: bool = True
    position_cost_rate: Decimal = Decimal("0.05")
    position_cost_max: Decimal = Decimal("500000")
    overtime: OvertimeRates = field(default_factory=OvertimeRates)
    cutoff_day: int | None = None
    payment_day: int = 28
    prorate_method: ProrateMethod = ProrateMethod.WORKING_DAYS
    currency: str = "IDR"
    rounding: RoundingPolicy = field(default_factory=RoundingPolicy)
    deduction_rates: DeductionRates = field(default_factory=DeductionRates)
    ter_bands: dict[str, tuple[TerBand, ...]] = field(default_factory=dict)
    tax_brackets: tuple[TaxBracket, ...] = ()
    ptkp: dict[str, PtkpEntry] = field(default_factory=dict)

    @property
    def tax_method(self) -> TaxMethod:
        return TaxMethod.TER if self.use_ter_method else TaxMethod.PROGRESSIVE

    @classmethod
    def default(cls, company_id: int | None = None, **overrides: Any) -> PayrollConfig:
        """Build the statutory default configuration (no database needed)."""
        s = seed_data.DEFAULT_PAYROLL_SETTINGS
        config = cls(
            company_id=company_id,
            contribution_rates=ContributionRates(
                kes_employee=s["bpjs_kes_employee_rate"],
                kes_company=s["bpjs_kes_company_rate"],
                kes_cap=s["bpjs_kes_max_salary"],
                jht_employee=s["bpjs_jht_employee_rate"],
                jht_company=s["bpjs_jht_company_rate"],
                jp_employee=s["bpjs_jp_employee_rate"],
                jp_company=s["bpjs_jp_company_rate"],
                jp_cap=s["bpjs_jp_max_salary"],
                jkk_company=s["bpjs_jkk_rate"],
                jkm_company=s["bpjs_jkm_rate"],
            ),
            use_ter_method=s["use_ter_method"],
            position_cost_rate=s["position_cost_rate"],
            position_cost_max=s["position_cost_max"],
            overtime=OvertimeRates(
                weekday=s["overtime_rate_weekday"],
                weekend=s["overtime_rate_weekend"],
                holiday=s["overtime_rate_holiday"],
                base=s["overtime_base"],
            ),
            cutoff_day=None,
            payment_day=s["payment_date"],
            prorate_method=ProrateMethod(s["prorate_method"]),
            currency=s["currency"],
            rounding=RoundingPolicy(
                enabled=s["enable_rounding"],
                method=RoundingMethod(s["rounding_method"]),
                precision=s["rounding_precision"],
            ),
            deduction_rates=DeductionRates(
                absence_rate=s["absence_deduction_rate"],
                late_rate_per_minute=s["late_rate_per_minute"],
                late_rate_per_day=s["late_rate_per_day"],
                late_tolerance_minutes=s["late_tolerance_minutes"],
                leave_rate=s["leave_deduction_rate"],
            ),
            ter_bands=default_ter_bands(),
            tax_brackets=default_tax_brackets(),
            ptkp=default_ptkp(),
        )
        if overrides:
            config = replace(config, **overrides)
        return config

    def fingerprint(self) -> str:
        """Stable hash of every value that influences a calculation."""
        return _fingerprint(asdict(self))


def default_ter_bands() -> dict[str, tuple[TerBand, ...]]:
    """TER bands from the statutory thresholds (``amount > threshold``)."""
    bands: dict[str, tuple[TerBand, ...]] = {}
    for category, rows in seed_data.TER_THRESHOLDS.items():
        ordered = sorted(rows, key=lambda row: row[0])
        built = []
        for i, (threshold, rate) in enumerate(ordered):
            upper = ordered[i + 1][0] if i + 1 < len(ordered) else None
            built.append(TerBand(category, threshold, upper, rate))
        bands[category] = tuple(built)
    return bands


def default_tax_brackets() -> tuple[TaxBracket, ...]:
    return tuple(
        TaxBracket(min_amount=lower, max_amount=upper, rate=rate)
        for lower, upper, rate in seed_data.PROGRESSIVE_BRACKETS
    )


def default_ptkp() -> dict[str, PtkpEntry]:
    return {
        status: PtkpEntry(status=status, amount=amount, ter_category=category)
        for status, (amount, category, _description) in seed_data.PTKP_TABLE.items()
    }


# === Per-employee inputs ===


@dataclass(frozen=True)
class BpjsMembership:
    """Which BPJS programmes the employee is enrolled in."""

    kesehatan: bool = True
    jht: bool = True
    jp: bool = True
    ketenagakerjaan: bool = True

    @classmethod
    def none(cls) -> BpjsMembership:
        return cls(kesehatan=False, jht=False, jp=False, ketenagakerjaan=False)


@dataclass(frozen=True)
class AllowanceInput:
    """Fixed monthly allowance from the employee profile."""

    code: str
    name: str
    amount: Decimal
    is_prorated: bool = True
    is_taxable: bool = True
    is_bpjs_base: bool = False


@dataclass(frozen=True)
class AdjustmentInput:
    """Approved PayrollAdjustment as seen by the calculators."""

    adjustment_id: int | None
    type: AdjustmentType
    amount: Decimal
    description: str | None = None
    is_taxable: bool = True
    is_bpjs_base: bool = False


@dataclass(frozen=True)
class EmployeeProfile:
    employee_id: int
    company_id: int
    basic_salary: Decimal
    ptkp_status: str = "TK/0"
    pay_type: PayType = PayType.GROSS
    join_date: date | None = None
    resign_date: date | None = None
    allowances: tuple[AllowanceInput, ...] = ()
    membership: BpjsMembership = field(default_factory=BpjsMembership)


@dataclass(frozen=True)
class AttendanceSummary:
    """Absence and lateness counts; lateness in minutes or in days, not both."""

    absence_days: int = 0
    late_minutes: int | None = None
    late_days: int | None = None


@dataclass(frozen=True)
class YearToDate:
    """Progressive-tax accumulation over earlier months of the same year."""

    months: int
    neto: Decimal
    tax_paid: Decimal


@dataclass(frozen=True)
class PayrollInputs:
    """Everything the assembler needs for one employee and period."""

    profile: EmployeeProfile
    period: PayPeriod
    holidays: tuple[date, ...] = ()
    attendance: AttendanceSummary = field(default_factory=AttendanceSummary)
    overtime_pay: Decimal | None = None
    overtime_hours: Decimal = ZERO
    adjustments: tuple[AdjustmentInput, ...] = ()
    unpaid_leave_days: int = 0
    ytd: YearToDate | None = None
    custom_prorate_factor: Decimal | None = None

    def fingerprint(self) -> str:
        return _fingerprint(asdict(self))


# === Output ===


@dataclass
class PayslipLine:
    """A payslip line item before persistence.

    Sign conventions: earnings and employer lines positive, deductions,
    employee BPJS and withheld tax negative, rounding either sign.
    """

    component_type: ComponentType
    code: str
    name: str
    amount: Decimal
    is_taxable: bool = False
    is_bpjs_base: bool = False
    reference_id: int | None = None

    def to_canonical_dict(self) -> dict[str, Any]:
        return {
            "component_type": self.component_type.value,
            "code": self.code,
            "amount": str(self.amount),
            "reference_id": self.reference_id,
        }


def _canonical(value: Any) -> str:
    # 10000000 and 10000000.00 hash alike
    if isinstance(value, Decimal):
        return str(value.normalize())
    return str(value)


def _fingerprint(data: Any) -> str:
    json_str = json.dumps(data, sort_keys=True, default=_canonical)
    return hashlib.sha256(json_str.encode()).hexdigest()
