"""Health, readiness and liveness probes.

Readiness also requires the statutory tables: without PTKP rows and TER
bands no payslip can be calculated.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from hr_payroll.api.dependencies import DbSession
from hr_payroll.config import get_settings
from hr_payroll.models import PTKP, TaxConfiguration

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str
    tax_tables: str
    engine_version: str


async def _tax_tables_state(db: DbSession) -> str:
    ptkp_rows = await db.scalar(select(func.count()).select_from(PTKP))
    ter_rows = await db.scalar(
        select(func.count())
        .select_from(TaxConfiguration)
        .where(TaxConfiguration.company_id.is_(None))
    )
    return "seeded" if ptkp_rows and ter_rows else "missing"


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Report database reachability and whether tax tables are seeded."""
    database, tax_tables = "healthy", "unknown"
    try:
        tax_tables = await _tax_tables_state(db)
    except SQLAlchemyError as exc:
        logger.warning("Database health check failed: %s", exc)
        database = "unhealthy"

    return HealthResponse(
        status="healthy" if tax_tables == "seeded" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=database,
        tax_tables=tax_tables,
        engine_version=get_settings().engine_version,
    )


@router.get("/ready", responses={503: {"description": "Not ready to calculate payslips"}})
async def readiness_check(db: DbSession):
    try:
        tax_tables = await _tax_tables_state(db)
    except SQLAlchemyError:
        tax_tables = "unknown"
    if tax_tables != "seeded":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "tax_tables": tax_tables},
        )
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
