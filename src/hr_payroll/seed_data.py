"""Statutory defaults: payroll settings, PTKP, TER tables and PPh 21 brackets.

Amounts in IDR. Used by ``SeedService`` to populate the database and by
``PayrollConfig.default()`` for database-free calculation.
"""

from __future__ import annotations

from decimal import Decimal


def _d(value: int | str) -> Decimal:
    return Decimal(str(value))


DEFAULT_PAYROLL_SETTINGS: dict = {
    "bpjs_kes_employee_rate": _d("0.01"),
    "bpjs_kes_company_rate": _d("0.04"),
    "bpjs_kes_max_salary": _d(12000000),
    "bpjs_jht_employee_rate": _d("0.02"),
    "bpjs_jht_company_rate": _d("0.037"),
    "bpjs_jp_employee_rate": _d("0.01"),
    "bpjs_jp_company_rate": _d("0.02"),
    "bpjs_jp_max_salary": _d(10042300),
    "bpjs_jkk_rate": _d("0.0024"),
    "bpjs_jkm_rate": _d("0.003"),
    "use_ter_method": True,
    "position_cost_rate": _d("0.05"),
    "position_cost_max": _d(500000),
    "overtime_rate_weekday": _d("1.5"),
    "overtime_rate_weekend": _d("2.0"),
    "overtime_rate_holiday": _d("3.0"),
    "overtime_base": "basic_salary",
    "payroll_cutoff_date": 25,
    "payment_date": 28,
    "prorate_method": "working_days",
    "currency": "IDR",
    "enable_rounding": True,
    "rounding_method": "round",
    "rounding_precision": 0,
    "absence_deduction_rate": _d("1.0"),
    "late_rate_per_minute": _d("0"),
    "late_rate_per_day": _d("0.5"),
    "late_tolerance_minutes": 15,
    "leave_deduction_rate": _d("1.0"),
}

# status -> (annual amount, TER category, description)
PTKP_TABLE: dict[str, tuple[Decimal, str, str]] = {
    "TK/0": (_d(54000000), "A", "Tidak kawin, tanpa tanggungan"),
    "TK/1": (_d(58500000), "A", "Tidak kawin, 1 tanggungan"),
    "TK/2": (_d(63000000), "B", "Tidak kawin, 2 tanggungan"),
    "TK/3": (_d(67500000), "B", "Tidak kawin, 3 tanggungan"),
    "K/0": (_d(58500000), "A", "Kawin, tanpa tanggungan"),
    "K/1": (_d(63000000), "B", "Kawin, 1 tanggungan"),
    "K/2": (_d(67500000), "B", "Kawin, 2 tanggungan"),
    "K/3": (_d(72000000), "C", "Kawin, 3 tanggungan"),
    "K/I/0": (_d(112500000), "C", "Kawin, penghasilan istri digabung, tanpa tanggungan"),
    "K/I/1": (_d(117000000), "C", "Kawin, penghasilan istri digabung, 1 tanggungan"),
    "K/I/2": (_d(121500000), "C", "Kawin, penghasilan istri digabung, 2 tanggungan"),
    "K/I/3": (_d(126000000), "C", "Kawin, penghasilan istri digabung, 3 tanggungan"),
}

# Monthly TER: rate applies when gross income > threshold
_TER_A = [
    (0, "0"), (5400000, "0.0025"), (5650000, "0.005"), (5950000, "0.0075"),
    (6300000, "0.01"), (6750000, "0.0125"), (7500000, "0.015"), (8550000, "0.0175"),
    (9650000, "0.02"), (10050000, "0.0225"), (10350000, "0.025"), (10700000, "0.03"),
    (11050000, "0.035"), (11600000, "0.04"), (12500000, "0.05"), (13750000, "0.06"),
    (15100000, "0.07"), (16950000, "0.08"), (19750000, "0.09"), (24150000, "0.10"),
    (26450000, "0.11"), (28000000, "0.12"), (30050000, "0.13"), (32400000, "0.14"),
    (35400000, "0.15"), (39100000, "0.16"), (43850000, "0.17"), (47800000, "0.18"),
    (51400000, "0.19"), (56300000, "0.20"), (62200000, "0.21"), (68600000, "0.22"),
    (77500000, "0.23"), (89000000, "0.24"), (103000000, "0.25"), (125000000, "0.26"),
    (157000000, "0.27"), (206000000, "0.28"), (337000000, "0.29"), (454000000, "0.30"),
    (550000000, "0.31"), (695000000, "0.32"), (910000000, "0.33"), (1140000000, "0.34"),
]

_TER_B = [
    (0, "0"), (6200000, "0.0025"), (6500000, "0.005"), (6850000, "0.0075"),
    (7300000, "0.01"), (9200000, "0.015"), (10750000, "0.02"), (11250000, "0.025"),
    (11600000, "0.03"), (12600000, "0.04"), (13600000, "0.05"), (14950000, "0.06"),
    (16400000, "0.07"), (18450000, "0.08"), (21850000, "0.09"), (26000000, "0.10"),
    (27700000, "0.11"), (29350000, "0.12"), (31450000, "0.13"), (33950000, "0.14"),
    (37100000, "0.15"), (41100000, "0.16"), (45800000, "0.17"), (49500000, "0.18"),
    (53800000, "0.19"), (58500000, "0.20"), (64000000, "0.21"), (71000000, "0.22"),
    (80000000, "0.23"), (93000000, "0.24"), (109000000, "0.25"), (129000000, "0.26"),
    (163000000, "0.27"), (211000000, "0.28"), (374000000, "0.29"), (459000000, "0.30"),
    (555000000, "0.31"), (704000000, "0.32"), (957000000, "0.33"), (1405000000, "0.34"),
]

_TER_C = [
    (0, "0"), (6600000, "0.0025"), (6950000, "0.005"), (7350000, "0.0075"),
    (7800000, "0.01"), (8850000, "0.0125"), (9800000, "0.015"), (10950000, "0.0175"),
    (11200000, "0.02"), (12050000, "0.03"), (12950000, "0.04"), (14150000, "0.05"),
    (15550000, "0.06"), (17050000, "0.07"), (19500000, "0.08"), (22700000, "0.09"),
    (26600000, "0.10"), (28100000, "0.11"), (30100000, "0.12"), (32600000, "0.13"),
    (35400000, "0.14"), (38900000, "0.15"), (43000000, "0.16"), (47400000, "0.17"),
    (51200000, "0.18"), (55800000, "0.19"), (60400000, "0.20"), (66700000, "0.21"),
    (74500000, "0.22"), (83200000, "0.23"), (95600000, "0.24"), (110000000, "0.25"),
    (134000000, "0.26"), (169000000, "0.27"), (221000000, "0.28"), (390000000, "0.29"),
    (463000000, "0.30"), (561000000, "0.31"), (709000000, "0.32"), (965000000, "0.33"),
    (1419000000, "0.34"),
]

TER_THRESHOLDS: dict[str, list[tuple[Decimal, Decimal]]] = {
    category: [(_d(threshold), _d(rate)) for threshold, rate in rows]
    for category, rows in (("A", _TER_A), ("B", _TER_B), ("C", _TER_C))
}

# Annual PPh 21 brackets (UU HPP), [lower, upper)
PROGRESSIVE_BRACKETS: list[tuple[Decimal, Decimal | None, Decimal]] = [
    (_d(0), _d(60000000), _d("0.05")),
    (_d(60000000), _d(250000000), _d("0.15")),
    (_d(250000000), _d(500000000), _d("0.25")),
    (_d(500000000), _d(5000000000), _d("0.30")),
    (_d(5000000000), None, _d("0.35")),
]
