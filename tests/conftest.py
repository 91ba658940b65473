"""Pytest fixtures for payroll tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hr_payroll.database import create_schema, make_session_factory
from hr_payroll.models import Company, Employee
from hr_payroll.services.payroll_service import Actor, PayrollService
from hr_payroll.services.seed_service import SeedService
from hr_payroll.services.state_machine import Role

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

FIXED_NOW = datetime(2024, 4, 30, 9, 0, tzinfo=timezone.utc)

STAFF = Actor(user_id=10, role=Role.HR_STAFF)
MANAGER = Actor(user_id=20, role=Role.HR_MANAGER)
EMPLOYEE = Actor(user_id=30, role=Role.EMPLOYEE)


@pytest.fixture
async def engine():
    """Create test database engine with working SAVEPOINTs."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's implicit transactions break SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _set_autocommit(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def company(session) -> Company:
    """Company with seeded tax tables and default settings.

    The attendance cutoff is cleared so attendance follows the calendar month.
    """
    company = Company(name="PT Maju Bersama")
    session.add(company)
    await session.flush()

    seeder = SeedService(session)
    await seeder.seed_all()
    setting = await seeder.ensure_company_settings(company.id)
    setting.payroll_cutoff_date = None
    setting.late_rate_per_minute = Decimal("1")
    await session.commit()
    return company


def make_employee(company: Company, code: str, **overrides) -> Employee:
    values = dict(
        company_id=company.id,
        employee_code=code,
        name=f"Karyawan {code}",
        basic_salary=Decimal("10000000"),
        ptkp_status="TK/0",
        pay_type="gross",
        join_date=date(2020, 1, 6),
        bpjs_kesehatan_number=f"KES-{code}",
        bpjs_ketenagakerjaan_number=f"TK-{code}",
        jht_registered=True,
        jp_registered=True,
    )
    values.update(overrides)
    return Employee(**values)


@pytest.fixture
async def employees(session, company) -> list[Employee]:
    """Three active employees: gross, net and a mid-month joiner."""
    rows = [
        make_employee(company, "E001"),
        make_employee(company, "E002", pay_type="net", ptkp_status="K/1"),
        make_employee(company, "E003", join_date=date(2024, 4, 15)),
    ]
    session.add_all(rows)
    await session.commit()
    return rows


@pytest.fixture
def service(session) -> PayrollService:
    return PayrollService(session, clock=lambda: FIXED_NOW, engine_version="1.0.0")
