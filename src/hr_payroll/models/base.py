"""Declarative base and shared column types for the payroll schema."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Rupiah amounts keep sen; rates keep six places (0.0024 JKK, 0.025 TER)
Money = Numeric(18, 2)
Rate = Numeric(9, 6)


class Base(DeclarativeBase):
    """Base for payroll tables; bare ``Decimal`` annotations become ``Money``."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
        Decimal: Money,
    }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={getattr(self, 'id', None)}>"


class Timestamped:
    """``created_at``/``updated_at`` maintained by the database."""

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
    )
