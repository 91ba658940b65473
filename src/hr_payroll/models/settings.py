"""Company payroll settings and statutory tax tables."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from hr_payroll.models.base import Base, Money, Rate, Timestamped


class PayrollSetting(Base, Timestamped):
    """Per-company payroll configuration.

    Soft-disabled through ``is_active``; rows are never deleted.
    """

    __tablename__ = "payroll_setting"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("company.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # BPJS Kesehatan (health)
    bpjs_kes_employee_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0.01"))
    bpjs_kes_company_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0.04"))
    bpjs_kes_max_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("12000000"))

    # BPJS Ketenagakerjaan
    bpjs_jht_employee_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0.02"))
    bpjs_jht_company_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0.037"))
    bpjs_jp_employee_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0.01"))
    bpjs_jp_company_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0.02"))
    bpjs_jp_max_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("10042300"))
    bpjs_jkk_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0.0024"))
    bpjs_jkm_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0.003"))

    # Tax
    use_ter_method: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    position_cost_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0.05"))
    position_cost_max: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("500000"))

    # Overtime
    overtime_rate_weekday: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("1.5"))
    overtime_rate_weekend: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("2.0"))
    overtime_rate_holiday: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("3.0"))
    overtime_base: Mapped[str] = mapped_column(String(30), nullable=False, default="basic_salary")

    # Schedule
    payroll_cutoff_date: Mapped[int | None] = mapped_column(Integer)
    payment_date: Mapped[int] = mapped_column(Integer, nullable=False, default=28)

    # Proration and rounding
    prorate_method: Mapped[str] = mapped_column(String(20), nullable=False, default="working_days")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="IDR")
    enable_rounding: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    rounding_method: Mapped[str] = mapped_column(String(10), nullable=False, default="round")
    rounding_precision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Attendance deductions
    absence_deduction_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("1.0"))
    late_rate_per_minute: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0"))
    late_rate_per_day: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0.5"))
    late_tolerance_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=15)
    leave_deduction_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("1.0"))

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("payroll_setting_company_idx", "company_id"),
        CheckConstraint(
            "prorate_method IN ('working_days', 'calendar_days', 'custom')",
            name="payroll_setting_prorate_method_check",
        ),
        CheckConstraint(
            "rounding_method IN ('round', 'floor', 'ceil')",
            name="payroll_setting_rounding_method_check",
        ),
        CheckConstraint(
            "payroll_cutoff_date IS NULL OR (payroll_cutoff_date BETWEEN 1 AND 28)",
            name="payroll_setting_cutoff_check",
        ),
    )


class TaxConfiguration(Base, Timestamped):
    """TER withholding band: income above ``min_income`` up to ``max_income``."""

    __tablename__ = "tax_configuration"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=True,
    )
    category: Mapped[str] = mapped_column(String(1), nullable=False)
    min_income: Mapped[Decimal] = mapped_column(Money, nullable=False)
    max_income: Mapped[Decimal | None] = mapped_column(Money)
    rate: Mapped[Decimal] = mapped_column(Rate, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("tax_configuration_lookup_idx", "company_id", "category", "min_income"),
        CheckConstraint("category IN ('A', 'B', 'C')", name="tax_configuration_category_check"),
        CheckConstraint("rate >= 0 AND rate <= 1", name="tax_configuration_rate_check"),
    )


class TaxBracket(Base, Timestamped):
    """Progressive annual bracket, half-open ``[lower_bound, upper_bound)``."""

    __tablename__ = "tax_bracket"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=True,
    )
    lower_bound: Mapped[Decimal] = mapped_column(Money, nullable=False)
    upper_bound: Mapped[Decimal | None] = mapped_column(Money)
    rate: Mapped[Decimal] = mapped_column(Rate, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("rate >= 0 AND rate <= 1", name="tax_bracket_rate_check"),
        CheckConstraint(
            "upper_bound IS NULL OR upper_bound > lower_bound",
            name="tax_bracket_bounds_check",
        ),
    )


class PTKP(Base, Timestamped):
    """Annual non-taxable income threshold per dependent status."""

    __tablename__ = "ptkp"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(String(255))
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    ter_category: Mapped[str] = mapped_column(String(1), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
