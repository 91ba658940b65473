"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from hr_payroll.calculators.types import PayType

PERIOD_PATTERN = r"^\d{4}-\d{2}$"


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None


# ============================================================================
# Calculation schemas
# ============================================================================


class CalculateRequest(BaseModel):
    """Preview one employee's payslip, optionally with what-if overrides."""

    employee_id: int
    period: str = Field(pattern=PERIOD_PATTERN)
    pay_type: PayType | None = None
    ptkp_status: str | None = None
    basic_salary: Decimal | None = Field(default=None, ge=0)
    custom_prorate_factor: Decimal | None = Field(default=None, ge=0, le=1)


class PayslipLineResponse(BaseModel):
    """Schema for a payslip line item."""

    model_config = ConfigDict(from_attributes=True)

    component_type: str
    component_code: str
    component_name: str
    amount: Decimal
    is_taxable: bool
    is_bpjs_base: bool
    reference_id: int | None = None


class CalculationResponse(BaseModel):
    """Schema for a previewed payslip."""

    employee_id: int
    company_id: int
    period: str
    pay_type: str
    currency: str
    calculation_id: UUID
    inputs_fingerprint: str
    amounts: dict[str, Decimal]
    facts: dict[str, Any]
    lines: list[PayslipLineResponse]
    errors: list[str]


# ============================================================================
# Generation schemas
# ============================================================================


class GenerateRequest(BaseModel):
    """Schema for generating draft payslips."""

    company_id: int
    period: str = Field(pattern=PERIOD_PATTERN)
    employee_ids: list[int] | None = None
    custom_prorate_factors: dict[int, Decimal] | None = None


class EmployeeGenerationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: int
    outcome: str
    payroll_id: int | None = None
    status: str | None = None
    reason: str | None = None


class GenerationResponse(BaseModel):
    """Schema for a generation batch result."""

    company_id: int
    period: str
    created: int
    updated: int
    skipped: int
    failed: int
    items: list[EmployeeGenerationResponse]


# ============================================================================
# Payroll schemas
# ============================================================================


class PayrollResponse(BaseModel):
    """Schema for a persisted payslip with its line items."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    employee_id: int
    period: str
    period_start: date
    period_end: date
    status: str
    pay_type: str
    currency: str
    version: int

    basic_salary: Decimal
    gross_salary: Decimal
    total_deductions: Decimal
    bpjs_employee_total: Decimal
    bpjs_company_total: Decimal
    tax_method: str
    ptkp_status: str
    ter_category: str | None = None
    ter_rate: Decimal | None = None
    tax_amount: Decimal
    tax_allowance: Decimal
    tax_borne_by_company: bool
    net_salary: Decimal
    take_home_pay: Decimal
    total_employer_cost: Decimal

    working_days: int
    is_prorated: bool
    prorate_factor: Decimal
    prorate_reason: str | None = None

    calculation_id: str | None = None
    inputs_fingerprint: str | None = None
    calculated_at: datetime | None = None
    validated_at: datetime | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    approval_notes: str | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    paid_at: datetime | None = None
    payment_reference: str | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    details: list[PayslipLineResponse]


# ============================================================================
# Lifecycle schemas
# ============================================================================


class ApproveRequest(BaseModel):
    notes: str | None = None


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)


class MarkPaidRequest(BaseModel):
    payment_reference: str = Field(min_length=1, max_length=100)
    paid_at: datetime | None = None


class CancelRequest(BaseModel):
    reason: str = Field(min_length=1)


# ============================================================================
# Bulk schemas
# ============================================================================


class BulkRequest(BaseModel):
    """Schema for a bulk transition over several payslips."""

    payroll_ids: list[int] = Field(min_length=1)


class BulkApproveRequest(BulkRequest):
    notes: str | None = None


class BulkRejectRequest(BulkRequest):
    reason: str = Field(min_length=1)


class BulkMarkPaidRequest(BulkRequest):
    payment_reference: str = Field(min_length=1, max_length=100)
    paid_at: datetime | None = None


class BulkItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payroll_id: int
    success: bool
    status: str | None = None
    error: str | None = None


class BulkResponse(BaseModel):
    """Schema for a bulk transition result."""

    succeeded: int
    failed: int
    items: list[BulkItemResponse]
