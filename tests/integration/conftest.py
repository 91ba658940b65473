"""Integration test fixtures: the API wired to the test database."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from hr_payroll.api.app import create_app
from hr_payroll.api.dependencies import get_db_session

STAFF_HEADERS = {"X-User-ID": "10", "X-User-Role": "hr_staff"}
MANAGER_HEADERS = {"X-User-ID": "20", "X-User-Role": "hr_manager"}
EMPLOYEE_HEADERS = {"X-User-ID": "30", "X-User-Role": "employee"}


@pytest_asyncio.fixture
async def app(session_factory) -> FastAPI:
    """Application using the test database for every request."""
    app = create_app()

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
