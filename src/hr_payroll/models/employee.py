"""Employee profile and time-keeping models consumed by payroll."""

from __future__ import annotations

import datetime
from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from hr_payroll.models.base import Base, Money, Timestamped


class Employee(Base, Timestamped):
    """Employee profile fields the payroll engine reads."""

    __tablename__ = "employee"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("company.id", ondelete="RESTRICT"),
        nullable=False,
    )
    employee_code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[str | None] = mapped_column(String(255))

    basic_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    transport_allowance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    meal_allowance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    position_allowance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    other_allowance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))

    ptkp_status: Mapped[str] = mapped_column(String(10), nullable=False, default="TK/0")
    pay_type: Mapped[str] = mapped_column(String(20), nullable=False, default="gross")

    join_date: Mapped[date | None] = mapped_column(Date)
    resign_date: Mapped[date | None] = mapped_column(Date)

    # BPJS membership
    bpjs_kesehatan_number: Mapped[str | None] = mapped_column(String(50))
    bpjs_ketenagakerjaan_number: Mapped[str | None] = mapped_column(String(50))
    jht_registered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    jp_registered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("company_id", "employee_code", name="employee_company_code_unique"),
        CheckConstraint(
            "pay_type IN ('gross', 'net', 'gross_up')",
            name="employee_pay_type_check",
        ),
    )


class Attendance(Base):
    """Daily attendance record."""

    __tablename__ = "attendance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="present")
    late_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("employee_id", "date", name="attendance_employee_date_unique"),
        CheckConstraint(
            "status IN ('present', 'late', 'absent', 'alpha', 'leave', 'holiday')",
            name="attendance_status_check",
        ),
    )


class Overtime(Base):
    """Overtime claim with its pre-computed pay amount."""

    __tablename__ = "overtime"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))
    amount: Mapped[Decimal | None] = mapped_column(Money)

    __table_args__ = (
        Index("overtime_employee_date_idx", "employee_id", "date"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="overtime_status_check",
        ),
    )


class Leave(Base):
    """Leave request spanning one or more days."""

    __tablename__ = "leave"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="leave_dates_check"),
    )
