"""Payroll calculation engine."""

from hr_payroll.calculators.contributions import ContributionCalculator
from hr_payroll.calculators.deductions import DeductionAggregator
from hr_payroll.calculators.engine import PayrollEngine, PayslipResult
from hr_payroll.calculators.line_builder import LineItemBuilder
from hr_payroll.calculators.proration import ProrationCalculator
from hr_payroll.calculators.settings_resolver import SettingsResolver
from hr_payroll.calculators.tax_calculator import TaxCalculator

__all__ = [
    "ContributionCalculator",
    "DeductionAggregator",
    "PayrollEngine",
    "PayslipResult",
    "LineItemBuilder",
    "ProrationCalculator",
    "SettingsResolver",
    "TaxCalculator",
]
