"""Business logic services."""

from hr_payroll.services.input_loader import EmployeeNotFoundError, PayrollInputLoader
from hr_payroll.services.payroll_service import (
    Actor,
    BulkResult,
    CalculationOverrides,
    ConcurrentModificationError,
    GenerationResult,
    PayrollCalculationError,
    PayrollNotFoundError,
    PayrollService,
    PayslipConsistencyError,
)
from hr_payroll.services.seed_service import SeedResult, SeedService
from hr_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollAction,
    PayrollStateMachine,
    PayrollStatus,
    PermissionDeniedError,
    Role,
)

__all__ = [
    "Actor",
    "BulkResult",
    "CalculationOverrides",
    "ConcurrentModificationError",
    "EmployeeNotFoundError",
    "GenerationResult",
    "InvalidTransitionError",
    "PayrollAction",
    "PayrollCalculationError",
    "PayrollInputLoader",
    "PayrollNotFoundError",
    "PayrollService",
    "PayrollStateMachine",
    "PayrollStatus",
    "PayslipConsistencyError",
    "PermissionDeniedError",
    "Role",
    "SeedResult",
    "SeedService",
]
