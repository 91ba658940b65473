"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hr_payroll.api.routes import health_router, payrolls_router
from hr_payroll.calculators.deductions import DeductionInputError
from hr_payroll.calculators.proration import ProrationError
from hr_payroll.calculators.types import InvalidPeriodError, PayrollConfigurationError
from hr_payroll.config import get_settings
from hr_payroll.database import create_schema, dispose_db, get_engine
from hr_payroll.services.input_loader import EmployeeNotFoundError
from hr_payroll.services.payroll_service import (
    ConcurrentModificationError,
    PayrollCalculationError,
    PayrollNotFoundError,
    PayslipConsistencyError,
)
from hr_payroll.services.state_machine import InvalidTransitionError, PermissionDeniedError

logger = logging.getLogger(__name__)

# exception type -> (HTTP status, error code)
ERROR_MAPPING: list[tuple[type[Exception], int, str]] = [
    (InvalidTransitionError, status.HTTP_400_BAD_REQUEST, "INVALID_TRANSITION"),
    (InvalidPeriodError, status.HTTP_400_BAD_REQUEST, "INVALID_PERIOD"),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN, "PERMISSION_DENIED"),
    (PayrollNotFoundError, status.HTTP_404_NOT_FOUND, "PAYROLL_NOT_FOUND"),
    (EmployeeNotFoundError, status.HTTP_404_NOT_FOUND, "EMPLOYEE_NOT_FOUND"),
    (ConcurrentModificationError, status.HTTP_409_CONFLICT, "CONCURRENT_MODIFICATION"),
    (PayslipConsistencyError, status.HTTP_409_CONFLICT, "CONSISTENCY_MISMATCH"),
    (PayrollConfigurationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "CONFIGURATION_ERROR"),
    (PayrollCalculationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "CALCULATION_ERROR"),
    (ProrationError, status.HTTP_422_UNPROCESSABLE_ENTITY, "PRORATION_ERROR"),
    (DeductionInputError, status.HTTP_422_UNPROCESSABLE_ENTITY, "DEDUCTION_INPUT_ERROR"),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the engine on startup and dispose it on shutdown."""
    get_engine()
    if get_settings().auto_create_schema:
        await create_schema()
        logger.info("Payroll schema ensured")
    yield
    await dispose_db()


def _error_context(exc: Exception) -> dict | None:
    if isinstance(exc, PayslipConsistencyError):
        return {
            "payroll_id": exc.payroll_id,
            "mismatches": {
                name: {"stored": str(stored), "recalculated": str(recalculated)}
                for name, (stored, recalculated) in exc.mismatches.items()
            },
        }
    if isinstance(exc, PayrollCalculationError):
        return {"employee_id": exc.employee_id, "errors": exc.errors}
    return None


def _register_error_handler(app: FastAPI, exc_type: type[Exception], status_code: int, code: str) -> None:
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        content = {"detail": str(exc), "code": code}
        context = _error_context(exc)
        if context is not None:
            content["context"] = context
        return JSONResponse(status_code=status_code, content=content)

    app.add_exception_handler(exc_type, handler)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="HR Payroll API",
        description="Indonesian payroll calculation engine (BPJS, PPh 21 TER and progressive)",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(get_settings().cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for exc_type, status_code, code in ERROR_MAPPING:
        _register_error_handler(app, exc_type, status_code, code)

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(payrolls_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
