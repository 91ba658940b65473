"""Loads the per-employee facts a payslip is computed from."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_payroll.calculators.proration import count_working_days
from hr_payroll.calculators.types import (
    ZERO,
    AdjustmentInput,
    AdjustmentType,
    AllowanceInput,
    AttendanceSummary,
    BpjsMembership,
    EmployeeProfile,
    PayPeriod,
    PayrollConfig,
    PayrollInputs,
    PayType,
    YearToDate,
)
from hr_payroll.models import (
    Attendance,
    Employee,
    Holiday,
    Leave,
    Overtime,
    Payroll,
    PayrollAdjustment,
)

ABSENT_STATUSES = ("absent", "alpha")
YTD_STATUSES = ("approved", "paid")

# code, name, is_bpjs_base
_FIXED_ALLOWANCES = (
    ("transport_allowance", "Tunjangan transport", False),
    ("meal_allowance", "Tunjangan makan", False),
    ("position_allowance", "Tunjangan jabatan", True),
    ("other_allowance", "Tunjangan lainnya", False),
)


class EmployeeNotFoundError(Exception):
    """Raised when an employee does not exist."""

    def __init__(self, employee_id: int):
        self.employee_id = employee_id
        super().__init__(f"Employee {employee_id} not found")


def employee_profile(employee: Employee) -> EmployeeProfile:
    """Calculator view of an Employee row."""
    allowances = tuple(
        AllowanceInput(
            code=code,
            name=name,
            amount=getattr(employee, code) or ZERO,
            is_bpjs_base=is_bpjs_base,
        )
        for code, name, is_bpjs_base in _FIXED_ALLOWANCES
        if (getattr(employee, code) or ZERO) > 0
    )
    return EmployeeProfile(
        employee_id=employee.id,
        company_id=employee.company_id,
        basic_salary=employee.basic_salary,
        ptkp_status=employee.ptkp_status,
        pay_type=PayType(employee.pay_type),
        join_date=employee.join_date,
        resign_date=employee.resign_date,
        allowances=allowances,
        membership=BpjsMembership(
            kesehatan=bool(employee.bpjs_kesehatan_number),
            jht=employee.jht_registered,
            jp=employee.jp_registered,
            ketenagakerjaan=bool(employee.bpjs_ketenagakerjaan_number),
        ),
    )


def adjustment_applies(adjustment: PayrollAdjustment, period: PayPeriod) -> bool:
    """Whether an approved adjustment belongs to ``period``.

    One-off adjustments match by ``pay_period`` or by an ``effective_date``
    inside the month. Recurring ones apply from their first period until
    ``recurring_end_date``.
    """
    period_key = str(period)
    if not adjustment.is_recurring:
        if adjustment.pay_period:
            return adjustment.pay_period == period_key
        if adjustment.effective_date:
            return period.start <= adjustment.effective_date <= period.end
        return False

    if adjustment.pay_period:
        starts = PayPeriod.parse(adjustment.pay_period).start
    elif adjustment.effective_date:
        starts = adjustment.effective_date
    else:
        return False
    if starts > period.end:
        return False
    end = adjustment.recurring_end_date
    return end is None or end >= period.start


class PayrollInputLoader:
    """Fetches everything one payslip needs, once, before calculation.

    Attendance, overtime and unpaid leave are collected over the company's
    attendance window (cutoff-based when a cutoff day is configured).
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_employee(self, employee_id: int) -> Employee:
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise EmployeeNotFoundError(employee_id)
        return employee

    async def get_employees(
        self,
        company_id: int,
        period: PayPeriod,
        employee_ids: list[int] | None = None,
    ) -> list[Employee]:
        """Employees of the company employed at some point in the period."""
        query = select(Employee).where(
            Employee.company_id == company_id,
            or_(Employee.join_date.is_(None), Employee.join_date <= period.end),
            or_(Employee.is_active.is_(True), Employee.resign_date >= period.start),
            or_(Employee.resign_date.is_(None), Employee.resign_date >= period.start),
        )
        if employee_ids:
            query = query.where(Employee.id.in_(employee_ids))
        result = await self.session.execute(query.order_by(Employee.id))
        return list(result.scalars().all())

    async def load(
        self,
        employee: Employee,
        period: PayPeriod,
        config: PayrollConfig,
        custom_prorate_factor: Decimal | None = None,
    ) -> PayrollInputs:
        window = period.attendance_window(config.cutoff_day)
        holidays = await self.get_holidays(
            employee.company_id,
            min(window[0], period.start),
            max(window[1], period.end),
        )
        overtime_pay, overtime_hours = await self.get_overtime(employee.id, window)
        ytd = None
        if not config.use_ter_method:
            ytd = await self.get_year_to_date(employee.id, period)

        return PayrollInputs(
            profile=employee_profile(employee),
            period=period,
            holidays=holidays,
            attendance=await self.get_attendance_summary(
                employee.id,
                window,
                by_minutes=config.deduction_rates.late_by_minutes,
                tolerance=config.deduction_rates.late_tolerance_minutes,
            ),
            overtime_pay=overtime_pay,
            overtime_hours=overtime_hours,
            adjustments=await self.get_adjustments(employee.id, period),
            unpaid_leave_days=await self.get_unpaid_leave_days(employee.id, window, holidays),
            ytd=ytd,
            custom_prorate_factor=custom_prorate_factor,
        )

    async def get_holidays(self, company_id: int, start: date, end: date) -> tuple[date, ...]:
        """National and company holidays in ``[start, end]``."""
        result = await self.session.execute(
            select(Holiday.date)
            .where(
                Holiday.is_active.is_(True),
                Holiday.date >= start,
                Holiday.date <= end,
                or_(Holiday.company_id.is_(None), Holiday.company_id == company_id),
            )
            .distinct()
            .order_by(Holiday.date)
        )
        return tuple(result.scalars().all())

    async def get_attendance_summary(
        self,
        employee_id: int,
        window: tuple[date, date],
        by_minutes: bool,
        tolerance: int,
    ) -> AttendanceSummary:
        """Absence days plus lateness as total minutes or as late days.

        In day mode only days late by more than ``tolerance`` minutes count.
        """
        result = await self.session.execute(
            select(Attendance).where(
                Attendance.employee_id == employee_id,
                Attendance.date >= window[0],
                Attendance.date <= window[1],
            )
        )
        absence_days = 0
        late_minutes = 0
        late_days = 0
        for record in result.scalars().all():
            if record.status in ABSENT_STATUSES:
                absence_days += 1
            minutes = record.late_minutes or 0
            if minutes > 0:
                late_minutes += minutes
                if minutes > tolerance:
                    late_days += 1

        if by_minutes:
            return AttendanceSummary(absence_days=absence_days, late_minutes=late_minutes)
        return AttendanceSummary(absence_days=absence_days, late_days=late_days)

    async def get_overtime(
        self, employee_id: int, window: tuple[date, date]
    ) -> tuple[Decimal | None, Decimal]:
        """Sum of approved overtime amounts, and hours of records without one."""
        result = await self.session.execute(
            select(Overtime).where(
                Overtime.employee_id == employee_id,
                Overtime.status == "approved",
                Overtime.date >= window[0],
                Overtime.date <= window[1],
            )
        )
        amount: Decimal | None = None
        unpriced_hours = ZERO
        for record in result.scalars().all():
            if record.amount is not None:
                amount = (amount or ZERO) + record.amount
            else:
                unpriced_hours += record.hours or ZERO
        return amount, unpriced_hours

    async def get_unpaid_leave_days(
        self,
        employee_id: int,
        window: tuple[date, date],
        holidays: tuple[date, ...],
    ) -> int:
        """Working days of approved unpaid leave falling inside the window."""
        result = await self.session.execute(
            select(Leave).where(
                Leave.employee_id == employee_id,
                Leave.status == "approved",
                Leave.is_paid.is_(False),
                Leave.start_date <= window[1],
                Leave.end_date >= window[0],
            )
        )
        days = 0
        for leave in result.scalars().all():
            start = max(leave.start_date, window[0])
            end = min(leave.end_date, window[1])
            days += count_working_days(start, end, holidays)
        return days

    async def get_adjustments(
        self, employee_id: int, period: PayPeriod
    ) -> tuple[AdjustmentInput, ...]:
        """Approved adjustments for the period, oldest first."""
        result = await self.session.execute(
            select(PayrollAdjustment)
            .where(
                PayrollAdjustment.employee_id == employee_id,
                PayrollAdjustment.status == "approved",
            )
            .order_by(PayrollAdjustment.id)
        )
        return tuple(
            AdjustmentInput(
                adjustment_id=row.id,
                type=AdjustmentType(row.type),
                amount=row.amount,
                description=row.description,
                is_taxable=row.is_taxable,
                is_bpjs_base=row.is_bpjs_base,
            )
            for row in result.scalars().all()
            if adjustment_applies(row, period)
        )

    async def get_year_to_date(self, employee_id: int, period: PayPeriod) -> YearToDate | None:
        """Progressive-tax totals of approved or paid payslips earlier in the year.

        ``months`` counts elapsed calendar months, so a month without an
        approved payslip contributes nothing rather than shortening the year.
        """
        result = await self.session.execute(
            select(Payroll).where(
                Payroll.employee_id == employee_id,
                Payroll.status.in_(YTD_STATUSES),
                Payroll.period >= f"{period.year:04d}-01",
                Payroll.period < str(period),
            )
        )
        rows = list(result.scalars().all())
        if not rows:
            return None
        return YearToDate(
            months=period.month - 1,
            neto=sum((row.net_taxable_income for row in rows), ZERO),
            tax_paid=sum((row.tax_amount for row in rows), ZERO),
        )
