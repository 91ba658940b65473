"""Payroll service - generation and lifecycle of payslips."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from hr_payroll.calculators.engine import FACTOR_PRECISION, PayrollEngine, PayslipResult
from hr_payroll.calculators.settings_resolver import SettingsResolver
from hr_payroll.calculators.types import (
    PayPeriod,
    PayrollConfig,
    PayrollConfigurationError,
    PayType,
    ProrateMethod,
    YearToDate,
)
from hr_payroll.models import Employee, Payroll, PayrollDetail
from hr_payroll.services.input_loader import PayrollInputLoader
from hr_payroll.services.state_machine import (
    InvalidTransitionError,
    PayrollAction,
    PayrollStateMachine,
    PayrollStatus,
    PermissionDeniedError,
    Role,
)

logger = logging.getLogger(__name__)

GENERATE_ROLE = Role.HR_STAFF


class PayrollNotFoundError(Exception):
    """Raised when a payslip does not exist."""

    def __init__(self, payroll_id: int):
        self.payroll_id = payroll_id
        super().__init__(f"Payroll {payroll_id} not found")


class ConcurrentModificationError(Exception):
    """Raised when a payslip changed underneath a transition."""

    def __init__(self, payroll_id: int):
        self.payroll_id = payroll_id
        super().__init__(f"Payroll {payroll_id} was modified concurrently; reload and retry")


class PayslipConsistencyError(Exception):
    """Raised when recomputation no longer matches the frozen payslip."""

    def __init__(self, payroll_id: int, mismatches: dict[str, tuple[Any, Any]]):
        self.payroll_id = payroll_id
        self.mismatches = mismatches
        fields = ", ".join(sorted(mismatches))
        super().__init__(f"Payroll {payroll_id} no longer matches its inputs: {fields}")


class PayrollCalculationError(Exception):
    """Raised when the engine reports errors for a payslip."""

    def __init__(self, employee_id: int, errors: list[str]):
        self.employee_id = employee_id
        self.errors = errors
        super().__init__(f"Calculation failed for employee {employee_id}: {'; '.join(errors)}")


@dataclass(frozen=True)
class Actor:
    """Authenticated caller, as supplied by the gateway."""

    user_id: int
    role: Role


@dataclass(frozen=True)
class CalculationOverrides:
    """What-if values for a preview calculation."""

    pay_type: PayType | None = None
    ptkp_status: str | None = None
    basic_salary: Decimal | None = None
    custom_prorate_factor: Decimal | None = None


@dataclass
class EmployeeGenerationResult:
    employee_id: int
    outcome: str  # created | updated | skipped | failed
    payroll_id: int | None = None
    status: str | None = None
    reason: str | None = None


@dataclass
class GenerationResult:
    """Per-employee outcome of one generation batch."""

    company_id: int
    period: str
    items: list[EmployeeGenerationResult] = field(default_factory=list)

    def count(self, outcome: str) -> int:
        return sum(1 for item in self.items if item.outcome == outcome)

    @property
    def created(self) -> int:
        return self.count("created")

    @property
    def updated(self) -> int:
        return self.count("updated")

    @property
    def skipped(self) -> int:
        return self.count("skipped")

    @property
    def failed(self) -> int:
        return self.count("failed")


@dataclass
class BulkItemResult:
    payroll_id: int
    success: bool
    status: str | None = None
    error: str | None = None


@dataclass
class BulkResult:
    items: list[BulkItemResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.success)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if not item.success)


# Per-item errors reported in bulk results without a stack trace
EXPECTED_ERRORS = (
    InvalidTransitionError,
    PermissionDeniedError,
    PayrollNotFoundError,
    ConcurrentModificationError,
    PayslipConsistencyError,
    PayrollCalculationError,
    PayrollConfigurationError,
    ValueError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PayrollService:
    """Service for payslip generation and lifecycle.

    Operations:
    - calculate: preview one employee's payslip, nothing persisted
    - generate: create or refresh draft payslips for a company and period
    - validate / submit / approve / reject / mark_paid / revise / cancel
    - bulk_submit / bulk_approve / bulk_reject / bulk_mark_paid

    ``clock`` supplies audit timestamps; calculations never read the clock.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] | None = None,
        engine_version: str | None = None,
    ):
        self.session = session
        self.clock = clock or _utcnow
        self.engine_version = engine_version
        self.settings_resolver = SettingsResolver(session)
        self.loader = PayrollInputLoader(session)
        self._engines: dict[int, PayrollEngine] = {}

    # === Calculation ===

    async def calculate(
        self,
        employee_id: int,
        period: str | PayPeriod,
        overrides: CalculationOverrides | None = None,
    ) -> PayslipResult:
        """Preview a payslip without persisting anything."""
        period = _as_period(period)
        employee = await self.loader.get_employee(employee_id)
        config = await self.settings_resolver.resolve(employee.company_id)
        overrides = overrides or CalculationOverrides()

        inputs = await self.loader.load(
            employee,
            period,
            config,
            custom_prorate_factor=_normalize_factor(overrides.custom_prorate_factor),
        )
        profile_changes = {
            name: value
            for name, value in (
                ("pay_type", overrides.pay_type),
                ("ptkp_status", overrides.ptkp_status),
                ("basic_salary", overrides.basic_salary),
            )
            if value is not None
        }
        if profile_changes:
            inputs = replace(inputs, profile=replace(inputs.profile, **profile_changes))
        return self._engine_for(config).calculate(inputs)

    async def _compute(
        self,
        employee: Employee,
        period: PayPeriod,
        config: PayrollConfig,
        custom_prorate_factor: Decimal | None = None,
        frozen_from: Payroll | None = None,
    ) -> PayslipResult:
        inputs = await self.loader.load(
            employee,
            period,
            config,
            custom_prorate_factor=_normalize_factor(custom_prorate_factor),
        )
        if frozen_from is not None and not config.use_ter_method:
            # Approving earlier months moves the live year-to-date totals
            inputs = replace(inputs, ytd=_frozen_year_to_date(frozen_from))
        result = self._engine_for(config).calculate(inputs)
        if not result.success:
            raise PayrollCalculationError(employee.id, result.errors)
        return result

    async def _recalculate(self, payroll: Payroll) -> PayslipResult:
        """Recompute a stored payslip from freshly loaded inputs."""
        employee = await self.loader.get_employee(payroll.employee_id)
        config = await self.settings_resolver.resolve(payroll.company_id)
        custom = None
        if config.prorate_method == ProrateMethod.CUSTOM:
            custom = payroll.prorate_factor
        return await self._compute(
            employee, PayPeriod.parse(payroll.period), config, custom, frozen_from=payroll
        )

    def _engine_for(self, config: PayrollConfig) -> PayrollEngine:
        key = config.company_id if config.company_id is not None else -1
        engine = self._engines.get(key)
        if engine is None or engine.config is not config:
            engine = PayrollEngine(config, engine_version=self.engine_version)
            self._engines[key] = engine
        return engine

    # === Generation ===

    async def generate(
        self,
        company_id: int,
        period: str | PayPeriod,
        actor: Actor,
        employee_ids: list[int] | None = None,
        custom_prorate_factors: dict[int, Decimal] | None = None,
    ) -> GenerationResult:
        """Create or refresh draft payslips for a company and period.

        Payslips already validated or beyond (including rejected) are
        skipped without any write. Each employee runs in its own savepoint,
        so one failure never affects the others.
        """
        PayrollStateMachine.require_role(actor.role, GENERATE_ROLE, "generate")
        period = _as_period(period)
        custom_prorate_factors = custom_prorate_factors or {}
        batch = GenerationResult(company_id=company_id, period=str(period))

        employees = await self.loader.get_employees(company_id, period, employee_ids)
        if employee_ids:
            found = {employee.id for employee in employees}
            for missing in sorted(set(employee_ids) - found):
                batch.items.append(
                    EmployeeGenerationResult(
                        employee_id=missing,
                        outcome="failed",
                        reason=f"Employee {missing} not found or not employed in {period}",
                    )
                )

        existing = await self._get_active_payrolls(company_id, period)

        for employee in employees:
            current = existing.get(employee.id)
            if current is not None and not PayrollStateMachine.can_recalculate(current.status):
                batch.items.append(
                    EmployeeGenerationResult(
                        employee_id=employee.id,
                        outcome="skipped",
                        payroll_id=current.id,
                        status=current.status,
                        reason=f"Payroll already {current.status}",
                    )
                )
                continue

            try:
                async with self.session.begin_nested():
                    item = await self._generate_one(
                        employee,
                        period,
                        current,
                        actor,
                        custom_prorate_factors.get(employee.id),
                    )
            except EXPECTED_ERRORS as exc:
                logger.warning(
                    "Payroll generation failed for employee %s in %s: %s",
                    employee.id,
                    period,
                    exc,
                )
                item = EmployeeGenerationResult(
                    employee_id=employee.id, outcome="failed", reason=str(exc)
                )
            except Exception as exc:
                logger.exception(
                    "Unexpected error generating payroll for employee %s in %s",
                    employee.id,
                    period,
                )
                item = EmployeeGenerationResult(
                    employee_id=employee.id,
                    outcome="failed",
                    reason=f"Unexpected error: {exc}",
                )
            batch.items.append(item)

        logger.info(
            "Generated payroll for company %s period %s: %d created, %d updated, "
            "%d skipped, %d failed",
            company_id,
            period,
            batch.created,
            batch.updated,
            batch.skipped,
            batch.failed,
        )
        return batch

    async def _generate_one(
        self,
        employee: Employee,
        period: PayPeriod,
        current: Payroll | None,
        actor: Actor,
        custom_prorate_factor: Decimal | None,
    ) -> EmployeeGenerationResult:
        config = await self.settings_resolver.resolve(employee.company_id)
        if (
            custom_prorate_factor is None
            and current is not None
            and config.prorate_method == ProrateMethod.CUSTOM
        ):
            custom_prorate_factor = current.prorate_factor
        result = await self._compute(employee, period, config, custom_prorate_factor)

        if current is None:
            payroll = Payroll(status=PayrollStatus.DRAFT.value, created_by=actor.user_id)
            self._apply_result(payroll, result)
            self.session.add(payroll)
            await self.session.flush()
            return EmployeeGenerationResult(
                employee_id=employee.id,
                outcome="created",
                payroll_id=payroll.id,
                status=payroll.status,
            )

        if current.calculation_id == str(result.calculation_id):
            return EmployeeGenerationResult(
                employee_id=employee.id,
                outcome="skipped",
                payroll_id=current.id,
                status=current.status,
                reason="Already up to date",
            )

        self._apply_result(current, result)
        await self._flush(current)
        return EmployeeGenerationResult(
            employee_id=employee.id,
            outcome="updated",
            payroll_id=current.id,
            status=current.status,
        )

    def _apply_result(self, payroll: Payroll, result: PayslipResult) -> None:
        """Write calculated figures and regenerate line items."""
        for column, value in result.to_record().items():
            setattr(payroll, column, value)
        payroll.calculated_at = self.clock()
        payroll.details.clear()
        payroll.details.extend(
            PayrollDetail(
                sequence=sequence,
                component_type=line.component_type.value,
                component_code=line.code,
                component_name=line.name[:255],
                amount=line.amount,
                is_taxable=line.is_taxable,
                is_bpjs_base=line.is_bpjs_base,
                reference_id=line.reference_id,
            )
            for sequence, line in enumerate(result.lines, start=1)
        )

    async def _get_active_payrolls(
        self, company_id: int, period: PayPeriod
    ) -> dict[int, Payroll]:
        result = await self.session.execute(
            select(Payroll)
            .where(
                Payroll.company_id == company_id,
                Payroll.period == str(period),
                Payroll.status != PayrollStatus.CANCELLED.value,
            )
            .options(selectinload(Payroll.details))
            .with_for_update()
        )
        return {payroll.employee_id: payroll for payroll in result.scalars().all()}

    # === Lifecycle ===

    async def get(self, payroll_id: int) -> Payroll:
        result = await self.session.execute(
            select(Payroll)
            .where(Payroll.id == payroll_id)
            .options(selectinload(Payroll.details))
        )
        payroll = result.scalar_one_or_none()
        if payroll is None:
            raise PayrollNotFoundError(payroll_id)
        return payroll

    async def validate(self, payroll_id: int, actor: Actor) -> Payroll:
        """Recalculate, freeze line items and move draft → validated.

        Goes through ``processing``; a calculation failure returns the
        payslip to ``draft`` and re-raises.
        """
        payroll = await self._get_for_update(payroll_id)
        PayrollStateMachine.authorize(payroll.status, PayrollAction.VALIDATE, actor.role)
        from_status = payroll.status

        payroll.status = PayrollStateMachine.next_status(
            payroll.status, PayrollAction.BEGIN_PROCESSING
        ).value
        await self._flush(payroll)

        try:
            result = await self._recalculate(payroll)
        except Exception:
            payroll.status = PayrollStateMachine.next_status(
                payroll.status, PayrollAction.ABORT_PROCESSING
            ).value
            await self._flush(payroll)
            logger.warning("payroll %s: validation failed, returned to draft", payroll.id)
            raise

        self._apply_result(payroll, result)
        payroll.status = PayrollStateMachine.next_status(
            payroll.status, PayrollAction.COMPLETE_PROCESSING
        ).value
        payroll.validated_by = actor.user_id
        payroll.validated_at = self.clock()
        await self._flush(payroll)
        self._log_transition(payroll, from_status, actor)
        return payroll

    async def submit(self, payroll_id: int, actor: Actor) -> Payroll:
        def apply(payroll: Payroll) -> None:
            payroll.submitted_by = actor.user_id
            payroll.submitted_at = self.clock()

        return await self._transition(payroll_id, PayrollAction.SUBMIT, actor, apply)

    async def approve(self, payroll_id: int, actor: Actor, notes: str | None = None) -> Payroll:
        def apply(payroll: Payroll) -> None:
            payroll.approved_by = actor.user_id
            payroll.approved_at = self.clock()
            payroll.approval_notes = notes

        return await self._transition(payroll_id, PayrollAction.APPROVE, actor, apply)

    async def reject(self, payroll_id: int, actor: Actor, reason: str) -> Payroll:
        def apply(payroll: Payroll) -> None:
            payroll.rejected_by = actor.user_id
            payroll.rejected_at = self.clock()
            payroll.rejection_reason = reason

        return await self._transition(
            payroll_id, PayrollAction.REJECT, actor, apply, required=("reason", reason)
        )

    async def mark_paid(
        self,
        payroll_id: int,
        actor: Actor,
        payment_reference: str,
        paid_at: datetime | None = None,
    ) -> Payroll:
        def apply(payroll: Payroll) -> None:
            payroll.paid_by = actor.user_id
            payroll.paid_at = paid_at or self.clock()
            payroll.payment_reference = payment_reference

        return await self._transition(
            payroll_id,
            PayrollAction.MARK_PAID,
            actor,
            apply,
            required=("payment reference", payment_reference),
        )

    async def revise(self, payroll_id: int, actor: Actor) -> Payroll:
        """Return a rejected payslip to draft for correction."""
        return await self._transition(payroll_id, PayrollAction.REVISE, actor)

    async def cancel(self, payroll_id: int, actor: Actor, reason: str) -> Payroll:
        def apply(payroll: Payroll) -> None:
            payroll.cancelled_by = actor.user_id
            payroll.cancelled_at = self.clock()
            payroll.cancellation_reason = reason

        return await self._transition(
            payroll_id, PayrollAction.CANCEL, actor, apply, required=("reason", reason)
        )

    async def _transition(
        self,
        payroll_id: int,
        action: PayrollAction,
        actor: Actor,
        apply: Callable[[Payroll], None] | None = None,
        required: tuple[str, str | None] | None = None,
    ) -> Payroll:
        """Lock, authorize, verify, then apply one transition."""
        payroll = await self._get_for_update(payroll_id)
        from_status = payroll.status
        target = PayrollStateMachine.authorize(from_status, action, actor.role)

        if required is not None:
            label, value = required
            if not value or not value.strip():
                raise InvalidTransitionError(
                    from_status, action.value, f"{action.value} requires a {label}"
                )

        if PayrollStateMachine.requires_consistency_check(action):
            await self._verify_consistency(payroll)

        payroll.status = target.value
        if apply is not None:
            apply(payroll)
        await self._flush(payroll)
        self._log_transition(payroll, from_status, actor)
        return payroll

    async def _verify_consistency(self, payroll: Payroll) -> None:
        """Recompute from current inputs and compare with the frozen payslip."""
        result = await self._recalculate(payroll)
        mismatches: dict[str, tuple[Any, Any]] = {}
        if result.inputs_fingerprint != payroll.inputs_fingerprint:
            mismatches["inputs_fingerprint"] = (
                payroll.inputs_fingerprint,
                result.inputs_fingerprint,
            )
        for column, value in result.amounts.items():
            stored = getattr(payroll, column)
            if stored is None or Decimal(stored) != value:
                mismatches[column] = (stored, value)
        if mismatches:
            logger.warning(
                "payroll %s: consistency check failed on %s",
                payroll.id,
                ", ".join(sorted(mismatches)),
            )
            raise PayslipConsistencyError(payroll.id, mismatches)

    async def _get_for_update(self, payroll_id: int) -> Payroll:
        result = await self.session.execute(
            select(Payroll)
            .where(Payroll.id == payroll_id)
            .options(selectinload(Payroll.details))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        payroll = result.scalar_one_or_none()
        if payroll is None:
            raise PayrollNotFoundError(payroll_id)
        return payroll

    async def _flush(self, payroll: Payroll) -> None:
        try:
            await self.session.flush()
        except StaleDataError as exc:
            raise ConcurrentModificationError(payroll.id) from exc

    @staticmethod
    def _log_transition(payroll: Payroll, from_status: str, actor: Actor) -> None:
        logger.info(
            "payroll %s: %s -> %s by %s",
            payroll.id,
            from_status,
            payroll.status,
            actor.user_id,
        )

    # === Bulk ===

    async def bulk_submit(self, payroll_ids: Iterable[int], actor: Actor) -> BulkResult:
        return await self._bulk(payroll_ids, lambda pid: self.submit(pid, actor))

    async def bulk_approve(
        self, payroll_ids: Iterable[int], actor: Actor, notes: str | None = None
    ) -> BulkResult:
        return await self._bulk(payroll_ids, lambda pid: self.approve(pid, actor, notes))

    async def bulk_reject(
        self, payroll_ids: Iterable[int], actor: Actor, reason: str
    ) -> BulkResult:
        return await self._bulk(payroll_ids, lambda pid: self.reject(pid, actor, reason))

    async def bulk_mark_paid(
        self,
        payroll_ids: Iterable[int],
        actor: Actor,
        payment_reference: str,
        paid_at: datetime | None = None,
    ) -> BulkResult:
        return await self._bulk(
            payroll_ids,
            lambda pid: self.mark_paid(pid, actor, payment_reference, paid_at),
        )

    async def _bulk(
        self,
        payroll_ids: Iterable[int],
        operation: Callable[[int], Awaitable[Payroll]],
    ) -> BulkResult:
        """Run one transition per payslip, each in its own savepoint."""
        bulk = BulkResult()
        for payroll_id in dict.fromkeys(payroll_ids):
            try:
                async with self.session.begin_nested():
                    payroll = await operation(payroll_id)
                    status = payroll.status
            except EXPECTED_ERRORS as exc:
                bulk.items.append(BulkItemResult(payroll_id, False, error=str(exc)))
                continue
            except Exception as exc:
                logger.exception("Unexpected error in bulk operation on payroll %s", payroll_id)
                bulk.items.append(
                    BulkItemResult(payroll_id, False, error=f"Unexpected error: {exc}")
                )
                continue
            bulk.items.append(BulkItemResult(payroll_id, True, status=status))
        return bulk


def _as_period(period: str | PayPeriod) -> PayPeriod:
    if isinstance(period, PayPeriod):
        return period
    return PayPeriod.parse(period)


def _frozen_year_to_date(payroll: Payroll) -> YearToDate | None:
    if not payroll.ytd_months:
        return None
    return YearToDate(
        months=payroll.ytd_months,
        neto=Decimal(payroll.ytd_neto or 0),
        tax_paid=Decimal(payroll.ytd_tax_paid or 0),
    )


def _normalize_factor(factor: Decimal | None) -> Decimal | None:
    if factor is None:
        return None
    return Decimal(factor).quantize(FACTOR_PRECISION)
