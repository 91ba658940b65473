"""Idempotent seeding of statutory tax tables and company settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_payroll import seed_data
from hr_payroll.calculators.tax_calculator import validate_brackets, validate_ter_bands
from hr_payroll.calculators.types import default_tax_brackets, default_ter_bands
from hr_payroll.models import PTKP, PayrollSetting, TaxBracket, TaxConfiguration

logger = logging.getLogger(__name__)


@dataclass
class SeedResult:
    """Rows inserted by one seeding run (zero on a re-run)."""

    ptkp: int = 0
    ter_bands: int = 0
    tax_brackets: int = 0

    @property
    def total(self) -> int:
        return self.ptkp + self.ter_bands + self.tax_brackets


class SeedService:
    """Seeds the global PTKP, TER and progressive bracket tables.

    Tables are validated before anything is inserted, and a table that
    already has global rows is left untouched.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def seed_all(self) -> SeedResult:
        ter_bands = default_ter_bands()
        for category, bands in ter_bands.items():
            validate_ter_bands(category, bands)
        brackets = validate_brackets(default_tax_brackets())

        result = SeedResult(
            ptkp=await self.seed_ptkp(),
            ter_bands=await self.seed_ter_bands(ter_bands),
            tax_brackets=await self.seed_tax_brackets(brackets),
        )
        await self.session.flush()
        logger.info(
            "Seeded %d PTKP rows, %d TER bands, %d tax brackets",
            result.ptkp,
            result.ter_bands,
            result.tax_brackets,
        )
        return result

    async def seed_ptkp(self) -> int:
        existing = set(
            (await self.session.execute(select(PTKP.status))).scalars().all()
        )
        created = 0
        for status, (amount, category, description) in seed_data.PTKP_TABLE.items():
            if status in existing:
                continue
            self.session.add(
                PTKP(
                    status=status,
                    description=description,
                    amount=amount,
                    ter_category=category,
                )
            )
            created += 1
        return created

    async def seed_ter_bands(self, ter_bands=None) -> int:
        ter_bands = ter_bands or default_ter_bands()
        result = await self.session.execute(
            select(TaxConfiguration.category)
            .where(TaxConfiguration.company_id.is_(None))
            .distinct()
        )
        existing = set(result.scalars().all())
        created = 0
        for category, bands in ter_bands.items():
            if category in existing:
                continue
            for band in bands:
                self.session.add(
                    TaxConfiguration(
                        company_id=None,
                        category=category,
                        min_income=band.min_income,
                        max_income=band.max_income,
                        rate=band.rate,
                    )
                )
                created += 1
        return created

    async def seed_tax_brackets(self, brackets=None) -> int:
        brackets = brackets or validate_brackets(default_tax_brackets())
        count = await self.session.scalar(
            select(func.count()).select_from(TaxBracket).where(TaxBracket.company_id.is_(None))
        )
        if count:
            return 0
        for sort_order, bracket in enumerate(brackets, start=1):
            self.session.add(
                TaxBracket(
                    company_id=None,
                    lower_bound=bracket.min_amount,
                    upper_bound=bracket.max_amount,
                    rate=bracket.rate,
                    sort_order=sort_order,
                )
            )
        return len(brackets)

    async def ensure_company_settings(self, company_id: int) -> PayrollSetting:
        """Return the company's active settings, creating the defaults if missing."""
        result = await self.session.execute(
            select(PayrollSetting)
            .where(
                PayrollSetting.company_id == company_id,
                PayrollSetting.is_active.is_(True),
            )
            .order_by(PayrollSetting.id.desc())
            .limit(1)
        )
        setting = result.scalar_one_or_none()
        if setting is not None:
            return setting

        setting = PayrollSetting(company_id=company_id, **seed_data.DEFAULT_PAYROLL_SETTINGS)
        self.session.add(setting)
        await self.session.flush()
        logger.info("Created default payroll settings for company %s", company_id)
        return setting
