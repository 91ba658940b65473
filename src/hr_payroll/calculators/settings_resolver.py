"""Company payroll configuration resolution."""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_payroll.calculators.tax_calculator import validate_brackets, validate_ter_bands
from hr_payroll.calculators.types import (
    ContributionRates,
    DeductionRates,
    OvertimeRates,
    PayrollConfig,
    PayrollConfigurationError,
    ProrateMethod,
    PtkpEntry,
    RoundingMethod,
    RoundingPolicy,
    TaxBracket,
    TerBand,
)
from hr_payroll.models import PTKP, PayrollSetting
from hr_payroll.models import TaxBracket as TaxBracketRow
from hr_payroll.models import TaxConfiguration

logger = logging.getLogger(__name__)

# Money columns hold two decimal places
MAX_ROUNDING_PRECISION = 2


class SettingsNotFoundError(PayrollConfigurationError):
    """Raised when a company has no active PayrollSetting."""

    def __init__(self, company_id: int):
        super().__init__("No active payroll settings", company_id)


class SettingsResolver:
    """Loads and validates a company's payroll configuration.

    Resolution:
    - The company's active ``payroll_setting`` row (required)
    - TER bands: company rows for a category override the global rows
    - Progressive brackets: company rows if any, otherwise global rows
    - PTKP: the full active table

    Results are cached for the lifetime of the resolver (one batch).
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._cache: dict[int, PayrollConfig] = {}

    async def resolve(self, company_id: int) -> PayrollConfig:
        if company_id in self._cache:
            return self._cache[company_id]
        try:
            config = await self._load(company_id)
        except PayrollConfigurationError as exc:
            logger.warning("Payroll configuration error for company %s: %s", company_id, exc)
            raise
        self._cache[company_id] = config
        return config

    async def _load(self, company_id: int) -> PayrollConfig:
        setting = await self._get_setting(company_id)
        if setting is None:
            raise SettingsNotFoundError(company_id)

        if not -6 <= setting.rounding_precision <= MAX_ROUNDING_PRECISION:
            raise PayrollConfigurationError(
                f"rounding_precision {setting.rounding_precision} outside "
                f"[-6, {MAX_ROUNDING_PRECISION}]",
                company_id,
            )

        ter_bands = await self._get_ter_bands(company_id)
        raw_brackets = await self._get_brackets(company_id)
        brackets: tuple[TaxBracket, ...] = ()
        if raw_brackets or not setting.use_ter_method:
            brackets = validate_brackets(raw_brackets)
        ptkp = await self._get_ptkp()
        if not ptkp:
            raise PayrollConfigurationError("PTKP table is empty", company_id)
        if setting.use_ter_method:
            missing = sorted({entry.ter_category for entry in ptkp.values()} - set(ter_bands))
            if missing:
                raise PayrollConfigurationError(
                    f"TER categories without bands: {', '.join(missing)}", company_id
                )

        return PayrollConfig(
            company_id=company_id,
            contribution_rates=ContributionRates(
                kes_employee=setting.bpjs_kes_employee_rate,
                kes_company=setting.bpjs_kes_company_rate,
                kes_cap=setting.bpjs_kes_max_salary,
                jht_employee=setting.bpjs_jht_employee_rate,
                jht_company=setting.bpjs_jht_company_rate,
                jp_employee=setting.bpjs_jp_employee_rate,
                jp_company=setting.bpjs_jp_company_rate,
                jp_cap=setting.bpjs_jp_max_salary,
                jkk_company=setting.bpjs_jkk_rate,
                jkm_company=setting.bpjs_jkm_rate,
            ),
            use_ter_method=setting.use_ter_method,
            position_cost_rate=setting.position_cost_rate,
            position_cost_max=setting.position_cost_max,
            overtime=OvertimeRates(
                weekday=setting.overtime_rate_weekday,
                weekend=setting.overtime_rate_weekend,
                holiday=setting.overtime_rate_holiday,
                base=setting.overtime_base,
            ),
            cutoff_day=setting.payroll_cutoff_date,
            payment_day=setting.payment_date,
            prorate_method=ProrateMethod(setting.prorate_method),
            currency=setting.currency,
            rounding=RoundingPolicy(
                enabled=setting.enable_rounding,
                method=RoundingMethod(setting.rounding_method),
                precision=setting.rounding_precision,
            ),
            deduction_rates=DeductionRates(
                absence_rate=setting.absence_deduction_rate,
                late_rate_per_minute=setting.late_rate_per_minute,
                late_rate_per_day=setting.late_rate_per_day,
                late_tolerance_minutes=setting.late_tolerance_minutes,
                leave_rate=setting.leave_deduction_rate,
            ),
            ter_bands=ter_bands,
            tax_brackets=brackets,
            ptkp=ptkp,
        )

    async def _get_setting(self, company_id: int) -> PayrollSetting | None:
        result = await self.session.execute(
            select(PayrollSetting)
            .where(
                PayrollSetting.company_id == company_id,
                PayrollSetting.is_active.is_(True),
            )
            .order_by(PayrollSetting.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _get_ter_bands(self, company_id: int) -> dict[str, tuple[TerBand, ...]]:
        result = await self.session.execute(
            select(TaxConfiguration).where(
                TaxConfiguration.is_active.is_(True),
                (TaxConfiguration.company_id == company_id)
                | (TaxConfiguration.company_id.is_(None)),
            )
        )
        company_rows: dict[str, list[TerBand]] = defaultdict(list)
        global_rows: dict[str, list[TerBand]] = defaultdict(list)
        for row in result.scalars().all():
            band = TerBand(
                category=row.category,
                min_income=row.min_income,
                max_income=row.max_income,
                rate=row.rate,
            )
            target = global_rows if row.company_id is None else company_rows
            target[row.category].append(band)

        bands: dict[str, tuple[TerBand, ...]] = {}
        for category in sorted(set(global_rows) | set(company_rows)):
            rows = company_rows.get(category) or global_rows[category]
            bands[category] = validate_ter_bands(category, rows)
        return bands

    async def _get_brackets(self, company_id: int) -> list[TaxBracket]:
        result = await self.session.execute(
            select(TaxBracketRow)
            .where(
                TaxBracketRow.is_active.is_(True),
                (TaxBracketRow.company_id == company_id)
                | (TaxBracketRow.company_id.is_(None)),
            )
            .order_by(TaxBracketRow.sort_order, TaxBracketRow.lower_bound)
        )
        rows = list(result.scalars().all())
        company_rows = [r for r in rows if r.company_id is not None]
        selected = company_rows or [r for r in rows if r.company_id is None]
        return [
            TaxBracket(min_amount=r.lower_bound, max_amount=r.upper_bound, rate=r.rate)
            for r in selected
        ]

    async def _get_ptkp(self) -> dict[str, PtkpEntry]:
        result = await self.session.execute(select(PTKP).where(PTKP.is_active.is_(True)))
        return {
            row.status: PtkpEntry(
                status=row.status,
                amount=Decimal(row.amount),
                ter_category=row.ter_category,
            )
            for row in result.scalars().all()
        }
