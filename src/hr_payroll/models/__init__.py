"""ORM models."""

from hr_payroll.models.base import Base, Timestamped
from hr_payroll.models.company import Company, Holiday
from hr_payroll.models.employee import Attendance, Employee, Leave, Overtime
from hr_payroll.models.payroll import Payroll, PayrollAdjustment, PayrollDetail
from hr_payroll.models.settings import PTKP, PayrollSetting, TaxBracket, TaxConfiguration

__all__ = [
    "Attendance",
    "Base",
    "Company",
    "Employee",
    "Holiday",
    "Leave",
    "Overtime",
    "PTKP",
    "Payroll",
    "PayrollAdjustment",
    "PayrollDetail",
    "PayrollSetting",
    "TaxBracket",
    "TaxConfiguration",
    "Timestamped",
]
