"""Company configuration resolution and seeding tests."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from hr_payroll import seed_data
from hr_payroll.calculators.settings_resolver import SettingsNotFoundError, SettingsResolver
from hr_payroll.calculators.tax_calculator import TaxConfigurationError
from hr_payroll.calculators.types import PayrollConfigurationError, ProrateMethod, RoundingMethod
from hr_payroll.models import PTKP, Company, PayrollSetting, TaxBracket, TaxConfiguration
from hr_payroll.services.seed_service import SeedService

pytestmark = pytest.mark.asyncio


async def company_setting(session, company) -> PayrollSetting:
    result = await session.execute(
        select(PayrollSetting).where(PayrollSetting.company_id == company.id)
    )
    return result.scalar_one()


class TestSeeding:
    """Test idempotent seeding of statutory tables."""

    async def test_tables_seeded(self, session, company):
        assert await session.scalar(select(func.count()).select_from(PTKP)) == len(
            seed_data.PTKP_TABLE
        )
        assert await session.scalar(select(func.count()).select_from(TaxConfiguration)) == 125
        assert await session.scalar(select(func.count()).select_from(TaxBracket)) == 5

    async def test_reseed_inserts_nothing(self, session, company):
        result = await SeedService(session).seed_all()
        assert result.total == 0

    async def test_company_settings_created_once(self, session, company):
        seeder = SeedService(session)
        first = await seeder.ensure_company_settings(company.id)
        second = await seeder.ensure_company_settings(company.id)
        assert first.id == second.id


class TestSettingsResolver:
    """Test PayrollConfig assembly from the database."""

    async def test_defaults(self, session, company):
        config = await SettingsResolver(session).resolve(company.id)

        assert config.company_id == company.id
        assert config.contribution_rates.kes_employee == Decimal("0.01")
        assert config.contribution_rates.jp_cap == Decimal("10042300")
        assert config.use_ter_method is True
        assert config.prorate_method == ProrateMethod.WORKING_DAYS
        assert config.rounding.method == RoundingMethod.ROUND
        assert config.cutoff_day is None
        assert set(config.ter_bands) == {"A", "B", "C"}
        assert len(config.tax_brackets) == 5
        assert config.ptkp["K/1"].ter_category == "B"

    async def test_cached_per_resolver(self, session, company):
        resolver = SettingsResolver(session)
        assert await resolver.resolve(company.id) is await resolver.resolve(company.id)

    async def test_missing_settings(self, session, company):
        other = Company(name="PT Tanpa Setting")
        session.add(other)
        await session.flush()

        with pytest.raises(SettingsNotFoundError):
            await SettingsResolver(session).resolve(other.id)

    async def test_inactive_settings_ignored(self, session, company):
        setting = await company_setting(session, company)
        setting.is_active = False
        await session.flush()

        with pytest.raises(SettingsNotFoundError):
            await SettingsResolver(session).resolve(company.id)

    async def test_rounding_precision_out_of_range(self, session, company):
        setting = await company_setting(session, company)
        setting.rounding_precision = 3
        await session.flush()

        with pytest.raises(PayrollConfigurationError):
            await SettingsResolver(session).resolve(company.id)

    async def test_company_ter_bands_override_category(self, session, company):
        session.add_all(
            [
                TaxConfiguration(
                    company_id=company.id,
                    category="A",
                    min_income=Decimal("0"),
                    max_income=Decimal("10000000"),
                    rate=Decimal("0.01"),
                ),
                TaxConfiguration(
                    company_id=company.id,
                    category="A",
                    min_income=Decimal("10000000"),
                    max_income=None,
                    rate=Decimal("0.05"),
                ),
            ]
        )
        await session.flush()

        config = await SettingsResolver(session).resolve(company.id)

        assert len(config.ter_bands["A"]) == 2
        assert config.ter_bands["A"][1].rate == Decimal("0.05")
        # Other categories still use the global table
        assert len(config.ter_bands["B"]) == 40

    async def test_company_ter_bands_with_gap_rejected(self, session, company):
        session.add_all(
            [
                TaxConfiguration(
                    company_id=company.id,
                    category="C",
                    min_income=Decimal("0"),
                    max_income=Decimal("5000000"),
                    rate=Decimal("0"),
                ),
                TaxConfiguration(
                    company_id=company.id,
                    category="C",
                    min_income=Decimal("6000000"),
                    max_income=None,
                    rate=Decimal("0.1"),
                ),
            ]
        )
        await session.flush()

        with pytest.raises(TaxConfigurationError):
            await SettingsResolver(session).resolve(company.id)

    async def test_company_brackets_replace_global(self, session, company):
        session.add_all(
            [
                TaxBracket(
                    company_id=company.id,
                    lower_bound=Decimal("0"),
                    upper_bound=Decimal("100000000"),
                    rate=Decimal("0.05"),
                    sort_order=1,
                ),
                TaxBracket(
                    company_id=company.id,
                    lower_bound=Decimal("100000000"),
                    upper_bound=None,
                    rate=Decimal("0.25"),
                    sort_order=2,
                ),
            ]
        )
        await session.flush()

        config = await SettingsResolver(session).resolve(company.id)
        assert [b.rate for b in config.tax_brackets] == [Decimal("0.05"), Decimal("0.25")]
