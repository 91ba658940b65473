"""BPJS social-insurance contributions.

Employee and employer sides are returned as two distinct types. Only
``EmployeeContributions`` is ever subtracted from the employee's pay;
``EmployerContributions`` only feeds the employer's cost.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from hr_payroll.calculators.types import ZERO, BpjsMembership, ContributionRates


@dataclass(frozen=True)
class EmployeeContributions:
    """Employee-side BPJS, withheld from pay."""

    jks: Decimal = ZERO  # BPJS Kesehatan
    jht: Decimal = ZERO  # Jaminan Hari Tua
    jp: Decimal = ZERO  # Jaminan Pensiun

    @property
    def total(self) -> Decimal:
        return self.jks + self.jht + self.jp

    @property
    def tax_deductible(self) -> Decimal:
        """Old-age and pension premiums, deductible from taxable neto."""
        return self.jht + self.jp

    def items(self) -> list[tuple[str, str, Decimal]]:
        return [
            ("bpjs_kes_employee", "BPJS Kesehatan (karyawan)", self.jks),
            ("bpjs_jht_employee", "BPJS JHT (karyawan)", self.jht),
            ("bpjs_jp_employee", "BPJS JP (karyawan)", self.jp),
        ]


@dataclass(frozen=True)
class EmployerContributions:
    """Employer-side BPJS, a cost to the company only."""

    jks: Decimal = ZERO
    jht: Decimal = ZERO
    jp: Decimal = ZERO
    jkk: Decimal = ZERO  # Jaminan Kecelakaan Kerja
    jkm: Decimal = ZERO  # Jaminan Kematian

    @property
    def total(self) -> Decimal:
        return self.jks + self.jht + self.jp + self.jkk + self.jkm

    @property
    def taxable_benefit(self) -> Decimal:
        """Employer premiums counted as the employee's taxable income."""
        return self.jkk + self.jkm + self.jks

    def items(self) -> list[tuple[str, str, Decimal]]:
        return [
            ("bpjs_kes_company", "BPJS Kesehatan (perusahaan)", self.jks),
            ("bpjs_jht_company", "BPJS JHT (perusahaan)", self.jht),
            ("bpjs_jp_company", "BPJS JP (perusahaan)", self.jp),
            ("bpjs_jkk_company", "BPJS JKK (perusahaan)", self.jkk),
            ("bpjs_jkm_company", "BPJS JKM (perusahaan)", self.jkm),
        ]


@dataclass(frozen=True)
class ContributionResult:
    salary: Decimal
    jks_base: Decimal
    jp_base: Decimal
    employee: EmployeeContributions
    employer: EmployerContributions


def capped_base(salary: Decimal, cap: Decimal | None) -> Decimal:
    """Contribution base for a class: the salary, limited by its cap."""
    if cap is None:
        return salary
    return min(salary, cap)


class ContributionCalculator:
    """Computes BPJS contributions from a contribution-base salary.

    JKS and JP are capped; JHT, JKK and JKM use the full salary. Each class
    computes its base once and applies both sides' rates to that base.
    """

    def __init__(self, rates: ContributionRates):
        self.rates = rates

    def calculate(
        self,
        salary: Decimal,
        membership: BpjsMembership | None = None,
    ) -> ContributionResult:
        if salary < 0:
            raise ValueError(f"Contribution salary cannot be negative: {salary}")
        membership = membership or BpjsMembership()
        r = self.rates

        jks_base = capped_base(salary, r.kes_cap)
        jp_base = capped_base(salary, r.jp_cap)

        employee = EmployeeContributions(
            jks=jks_base * r.kes_employee if membership.kesehatan else ZERO,
            jht=salary * r.jht_employee if membership.jht else ZERO,
            jp=jp_base * r.jp_employee if membership.jp else ZERO,
        )
        employer = EmployerContributions(
            jks=jks_base * r.kes_company if membership.kesehatan else ZERO,
            jht=salary * r.jht_company if membership.jht else ZERO,
            jp=jp_base * r.jp_company if membership.jp else ZERO,
            jkk=salary * r.jkk_company if membership.ketenagakerjaan else ZERO,
            jkm=salary * r.jkm_company if membership.ketenagakerjaan else ZERO,
        )
        return ContributionResult(
            salary=salary,
            jks_base=jks_base,
            jp_base=jp_base,
            employee=employee,
            employer=employer,
        )
