"""Payroll API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, status

from hr_payroll.api.dependencies import CurrentActor, DbSession
from hr_payroll.api.schemas import (
    ApproveRequest,
    BulkApproveRequest,
    BulkMarkPaidRequest,
    BulkRejectRequest,
    BulkRequest,
    BulkResponse,
    CalculateRequest,
    CalculationResponse,
    CancelRequest,
    EmployeeGenerationResponse,
    ErrorResponse,
    GenerateRequest,
    GenerationResponse,
    MarkPaidRequest,
    PayrollResponse,
    PayslipLineResponse,
    RejectRequest,
)
from hr_payroll.services.payroll_service import (
    BulkResult,
    CalculationOverrides,
    PayrollService,
)

router = APIRouter(prefix="/payrolls", tags=["payrolls"])

PayrollId = Annotated[int, Path(ge=1)]

TRANSITION_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def _bulk_response(result: BulkResult) -> BulkResponse:
    return BulkResponse(
        succeeded=result.succeeded,
        failed=result.failed,
        items=[item.__dict__ for item in result.items],
    )


# ============================================================================
# Calculation and generation
# ============================================================================


@router.post(
    "/calculate",
    response_model=CalculationResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def calculate_payroll(
    db: DbSession,
    actor: CurrentActor,
    payload: CalculateRequest,
) -> CalculationResponse:
    """Preview a payslip. Nothing is persisted."""
    service = PayrollService(db)
    result = await service.calculate(
        payload.employee_id,
        payload.period,
        CalculationOverrides(
            pay_type=payload.pay_type,
            ptkp_status=payload.ptkp_status,
            basic_salary=payload.basic_salary,
            custom_prorate_factor=payload.custom_prorate_factor,
        ),
    )
    return CalculationResponse(
        employee_id=result.employee_id,
        company_id=result.company_id,
        period=str(result.period),
        pay_type=result.pay_type.value,
        currency=result.currency,
        calculation_id=result.calculation_id,
        inputs_fingerprint=result.inputs_fingerprint,
        amounts=result.amounts,
        facts=result.facts,
        lines=[
            PayslipLineResponse(
                component_type=line.component_type.value,
                component_code=line.code,
                component_name=line.name,
                amount=line.amount,
                is_taxable=line.is_taxable,
                is_bpjs_base=line.is_bpjs_base,
                reference_id=line.reference_id,
            )
            for line in result.lines
        ],
        errors=result.errors,
    )


@router.post(
    "/generate",
    response_model=GenerationResponse,
    responses={403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def generate_payrolls(
    db: DbSession,
    actor: CurrentActor,
    payload: GenerateRequest,
) -> GenerationResponse:
    """Create or refresh draft payslips. Idempotent per company and period."""
    service = PayrollService(db)
    result = await service.generate(
        payload.company_id,
        payload.period,
        actor,
        employee_ids=payload.employee_ids,
        custom_prorate_factors=payload.custom_prorate_factors,
    )
    await db.commit()
    return GenerationResponse(
        company_id=result.company_id,
        period=result.period,
        created=result.created,
        updated=result.updated,
        skipped=result.skipped,
        failed=result.failed,
        items=[EmployeeGenerationResponse.model_validate(item) for item in result.items],
    )


# ============================================================================
# Bulk transitions
# ============================================================================


@router.post("/bulk/submit", response_model=BulkResponse, responses={400: {"model": ErrorResponse}})
async def bulk_submit(db: DbSession, actor: CurrentActor, payload: BulkRequest) -> BulkResponse:
    result = await PayrollService(db).bulk_submit(payload.payroll_ids, actor)
    await db.commit()
    return _bulk_response(result)


@router.post("/bulk/approve", response_model=BulkResponse, responses={400: {"model": ErrorResponse}})
async def bulk_approve(
    db: DbSession, actor: CurrentActor, payload: BulkApproveRequest
) -> BulkResponse:
    result = await PayrollService(db).bulk_approve(payload.payroll_ids, actor, payload.notes)
    await db.commit()
    return _bulk_response(result)


@router.post("/bulk/reject", response_model=BulkResponse, responses={400: {"model": ErrorResponse}})
async def bulk_reject(
    db: DbSession, actor: CurrentActor, payload: BulkRejectRequest
) -> BulkResponse:
    result = await PayrollService(db).bulk_reject(payload.payroll_ids, actor, payload.reason)
    await db.commit()
    return _bulk_response(result)


@router.post(
    "/bulk/mark-paid", response_model=BulkResponse, responses={400: {"model": ErrorResponse}}
)
async def bulk_mark_paid(
    db: DbSession, actor: CurrentActor, payload: BulkMarkPaidRequest
) -> BulkResponse:
    result = await PayrollService(db).bulk_mark_paid(
        payload.payroll_ids, actor, payload.payment_reference, payload.paid_at
    )
    await db.commit()
    return _bulk_response(result)


# ============================================================================
# Single payslip
# ============================================================================


@router.get(
    "/{payroll_id}",
    response_model=PayrollResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll(
    db: DbSession,
    actor: CurrentActor,
    payroll_id: PayrollId,
) -> PayrollResponse:
    """Get a payslip with its line items."""
    payroll = await PayrollService(db).get(payroll_id)
    return PayrollResponse.model_validate(payroll)


@router.post(
    "/{payroll_id}/validate",
    response_model=PayrollResponse,
    responses={**TRANSITION_RESPONSES, 422: {"model": ErrorResponse}},
)
async def validate_payroll(
    db: DbSession,
    actor: CurrentActor,
    payroll_id: PayrollId,
) -> PayrollResponse:
    """Recalculate and freeze a draft payslip."""
    payroll = await PayrollService(db).validate(payroll_id, actor)
    await db.commit()
    return PayrollResponse.model_validate(payroll)


@router.post("/{payroll_id}/submit", response_model=PayrollResponse, responses=TRANSITION_RESPONSES)
async def submit_payroll(
    db: DbSession,
    actor: CurrentActor,
    payroll_id: PayrollId,
) -> PayrollResponse:
    payroll = await PayrollService(db).submit(payroll_id, actor)
    await db.commit()
    return PayrollResponse.model_validate(payroll)


@router.post("/{payroll_id}/approve", response_model=PayrollResponse, responses=TRANSITION_RESPONSES)
async def approve_payroll(
    db: DbSession,
    actor: CurrentActor,
    payroll_id: PayrollId,
    payload: ApproveRequest | None = None,
) -> PayrollResponse:
    """Approve a submitted payslip after re-verifying its figures."""
    notes = payload.notes if payload else None
    payroll = await PayrollService(db).approve(payroll_id, actor, notes)
    await db.commit()
    return PayrollResponse.model_validate(payroll)


@router.post("/{payroll_id}/reject", response_model=PayrollResponse, responses=TRANSITION_RESPONSES)
async def reject_payroll(
    db: DbSession,
    actor: CurrentActor,
    payroll_id: PayrollId,
    payload: RejectRequest,
) -> PayrollResponse:
    payroll = await PayrollService(db).reject(payroll_id, actor, payload.reason)
    await db.commit()
    return PayrollResponse.model_validate(payroll)


@router.post(
    "/{payroll_id}/mark-paid", response_model=PayrollResponse, responses=TRANSITION_RESPONSES
)
async def mark_payroll_paid(
    db: DbSession,
    actor: CurrentActor,
    payroll_id: PayrollId,
    payload: MarkPaidRequest,
) -> PayrollResponse:
    """Record payment of an approved payslip."""
    payroll = await PayrollService(db).mark_paid(
        payroll_id, actor, payload.payment_reference, payload.paid_at
    )
    await db.commit()
    return PayrollResponse.model_validate(payroll)


@router.post("/{payroll_id}/revise", response_model=PayrollResponse, responses=TRANSITION_RESPONSES)
async def revise_payroll(
    db: DbSession,
    actor: CurrentActor,
    payroll_id: PayrollId,
) -> PayrollResponse:
    """Return a rejected payslip to draft."""
    payroll = await PayrollService(db).revise(payroll_id, actor)
    await db.commit()
    return PayrollResponse.model_validate(payroll)


@router.post("/{payroll_id}/cancel", response_model=PayrollResponse, responses=TRANSITION_RESPONSES)
async def cancel_payroll(
    db: DbSession,
    actor: CurrentActor,
    payroll_id: PayrollId,
    payload: CancelRequest,
) -> PayrollResponse:
    payroll = await PayrollService(db).cancel(payroll_id, actor, payload.reason)
    await db.commit()
    return PayrollResponse.model_validate(payroll)
