"""Payslip, payslip line item, and payroll adjustment models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_payroll.models.base import Base, Money, Rate, Timestamped

if TYPE_CHECKING:
    from hr_payroll.models.employee import Employee


class PayrollAdjustment(Base, Timestamped):
    """Ad-hoc earning or deduction for one employee and pay period.

    Only approved adjustments are picked up by payroll generation.
    """

    __tablename__ = "payroll_adjustment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("company.id", ondelete="RESTRICT"),
        nullable=False,
    )
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    reference_number: Mapped[str | None] = mapped_column(String(100))

    pay_period: Mapped[str | None] = mapped_column(String(7))
    effective_date: Mapped[date | None] = mapped_column(Date)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_end_date: Mapped[date | None] = mapped_column(Date)

    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_bpjs_base: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    approved_by: Mapped[int | None] = mapped_column(Integer)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("payroll_adjustment_employee_idx", "employee_id", "status"),
        CheckConstraint(
            "type IN ('bonus', 'allowance', 'reimbursement', 'deduction', "
            "'penalty', 'loan', 'advance', 'other')",
            name="payroll_adjustment_type_check",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="payroll_adjustment_status_check",
        ),
        CheckConstraint("amount >= 0", name="payroll_adjustment_amount_check"),
    )


class Payroll(Base, Timestamped):
    """Assembled payslip for one employee and one calendar month."""

    __tablename__ = "payroll"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("company.id", ondelete="RESTRICT"),
        nullable=False,
    )
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employee.id", ondelete="RESTRICT"),
        nullable=False,
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    pay_type: Mapped[str] = mapped_column(String(20), nullable=False, default="gross")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="IDR")

    # Earnings
    base_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    basic_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    transport_allowance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    meal_allowance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    position_allowance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    other_allowances: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    overtime_pay: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    adjustment_earnings: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    tax_allowance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    reimbursements: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    gross_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    # Deductions
    absence_deduction: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    late_deduction: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    leave_deduction: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    loan_deduction: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    advance_deduction: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    penalty_deduction: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    other_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    # BPJS contributions
    bpjs_base: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    bpjs_kes_employee: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    bpjs_jht_employee: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    bpjs_jp_employee: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    bpjs_employee_total: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    bpjs_kes_company: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    bpjs_jht_company: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    bpjs_jp_company: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    bpjs_jkk_company: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    bpjs_jkm_company: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    bpjs_company_total: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    # Tax
    tax_method: Mapped[str] = mapped_column(String(20), nullable=False, default="ter")
    ptkp_status: Mapped[str] = mapped_column(String(10), nullable=False, default="TK/0")
    ptkp_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    ter_category: Mapped[str | None] = mapped_column(String(1))
    ter_rate: Mapped[Decimal | None] = mapped_column(Rate)
    ter_rate_initial: Mapped[Decimal | None] = mapped_column(Rate)
    taxable_income: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    position_cost: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    net_taxable_income: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    gross_up_initial: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    final_gross_up: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    tax_borne_by_company: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Year-to-date snapshot the progressive tax was computed against
    ytd_months: Mapped[int | None] = mapped_column(Integer)
    ytd_neto: Mapped[Decimal | None] = mapped_column(Money)
    ytd_tax_paid: Mapped[Decimal | None] = mapped_column(Money)

    # Totals
    net_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    take_home_pay: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    total_employer_cost: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    # Attendance facts used
    working_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    absence_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    late_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    late_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unpaid_leave_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Proration
    is_prorated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    prorate_factor: Mapped[Decimal] = mapped_column(Numeric(12, 10), nullable=False, default=Decimal("1"))
    prorate_actual_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    prorate_total_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    prorate_reason: Mapped[str | None] = mapped_column(String(255))

    # Reproducibility
    inputs_fingerprint: Mapped[str | None] = mapped_column(String(64))
    calculation_id: Mapped[str | None] = mapped_column(String(36))
    calculated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Optimistic lock
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Audit trail
    created_by: Mapped[int | None] = mapped_column(Integer)
    validated_by: Mapped[int | None] = mapped_column(Integer)
    validated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    submitted_by: Mapped[int | None] = mapped_column(Integer)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[int | None] = mapped_column(Integer)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approval_notes: Mapped[str | None] = mapped_column(Text)
    rejected_by: Mapped[int | None] = mapped_column(Integer)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[str | None] = mapped_column(Text)
    paid_by: Mapped[int | None] = mapped_column(Integer)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    payment_reference: Mapped[str | None] = mapped_column(String(100))
    cancelled_by: Mapped[int | None] = mapped_column(Integer)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)

    employee: Mapped[Employee] = relationship()
    details: Mapped[list[PayrollDetail]] = relationship(
        back_populates="payroll",
        cascade="all, delete-orphan",
        order_by="PayrollDetail.sequence",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index(
            "payroll_employee_period_active_unique",
            "employee_id",
            "period",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index("payroll_company_period_idx", "company_id", "period"),
        CheckConstraint(
            "status IN ('draft', 'processing', 'validated', 'submitted', "
            "'approved', 'rejected', 'paid', 'cancelled')",
            name="payroll_status_check",
        ),
        CheckConstraint(
            "pay_type IN ('gross', 'net', 'gross_up')",
            name="payroll_pay_type_check",
        ),
        CheckConstraint(
            "prorate_factor >= 0 AND prorate_factor <= 1",
            name="payroll_prorate_factor_check",
        ),
    )


class PayrollDetail(Base):
    """Ordered payslip line item; frozen once the payslip is validated."""

    __tablename__ = "payroll_detail"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payroll_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payroll.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    component_type: Mapped[str] = mapped_column(String(20), nullable=False)
    component_code: Mapped[str] = mapped_column(String(50), nullable=False)
    component_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_bpjs_base: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reference_id: Mapped[int | None] = mapped_column(Integer)

    payroll: Mapped[Payroll] = relationship(back_populates="details")

    __table_args__ = (
        Index("payroll_detail_payroll_idx", "payroll_id", "sequence"),
        CheckConstraint(
            "component_type IN ('earning', 'deduction', 'tax', 'bpjs', 'employer', 'rounding')",
            name="payroll_detail_component_type_check",
        ),
    )
