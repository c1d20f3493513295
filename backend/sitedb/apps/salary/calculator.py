"""
Pure payroll arithmetic for a single worker-day.

Rates are percentages. The income-tax rate covers both national income tax
and local resident tax, split 10:1. Amounts are rounded to whole won with
half-up rounding.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Mapping, Optional, Tuple

from .models import EmploymentType, TaxCalculationMethod

INCOME_TAX = "income_tax"
NATIONAL_PENSION = "national_pension"
HEALTH_INSURANCE = "health_insurance"
EMPLOYMENT_INSURANCE = "employment_insurance"
LONG_TERM_CARE = "long_term_care"

TAX_ORDER = (INCOME_TAX, NATIONAL_PENSION, HEALTH_INSURANCE, EMPLOYMENT_INSURANCE, LONG_TERM_CARE)

DEFAULT_TAX_RATES: Dict[EmploymentType, Dict[str, float]] = {
    EmploymentType.REGULAR_EMPLOYEE: {
        INCOME_TAX: 3.3,
        NATIONAL_PENSION: 4.5,
        HEALTH_INSURANCE: 3.545,
        EMPLOYMENT_INSURANCE: 0.9,
        LONG_TERM_CARE: 0.4591,
    },
    EmploymentType.FREELANCER: {
        INCOME_TAX: 3.3,
    },
    EmploymentType.DAILY_WORKER: {
        INCOME_TAX: 6.0,
    },
}

# Daily wages up to this amount per 공수 are exempt from income tax.
DAILY_WORKER_EXEMPT_AMOUNT = Decimal("150000")
DEFAULT_DAILY_PAY = Decimal("150000")

RESIDENT_TAX_SHARE = Decimal(1) / Decimal(11)

RateOverride = Tuple[float, TaxCalculationMethod]

_HUNDRED = Decimal(100)


def round_won(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _dec(value) -> Decimal:
    return Decimal(str(value))


def resolve_rates(
    employment_type: EmploymentType,
    *,
    table_rates: Optional[Mapping[str, RateOverride]] = None,
    custom_rates: Optional[Mapping[str, float]] = None,
) -> Dict[str, RateOverride]:
    """
    Defaults for the employment type, overridden by active tax-rate rows and
    then by the worker's own custom rates.
    """
    rates: Dict[str, RateOverride] = {
        name: (rate, TaxCalculationMethod.PERCENTAGE)
        for name, rate in DEFAULT_TAX_RATES.get(employment_type, {}).items()
    }
    for name, override in (table_rates or {}).items():
        rates[name] = override
    for name, rate in (custom_rates or {}).items():
        if rate is None:
            continue
        method = rates.get(name, (0.0, TaxCalculationMethod.PERCENTAGE))[1]
        rates[name] = (float(rate), method)
    return rates


def calculate_worker_day(
    *,
    employment_type: EmploymentType,
    daily_rate: float,
    labor_hours: float,
    rates: Mapping[str, RateOverride],
    additional_deductions: float = 0.0,
) -> dict:
    daily = _dec(daily_rate)
    units = _dec(labor_hours)
    gross = daily * units

    def taxable_base(name: str, method: TaxCalculationMethod) -> Decimal:
        per_day = daily
        if name == INCOME_TAX and employment_type == EmploymentType.DAILY_WORKER:
            per_day = max(daily - DAILY_WORKER_EXEMPT_AMOUNT, Decimal(0))
        # Fixed rates apply once per day regardless of 공수.
        if method == TaxCalculationMethod.FIXED:
            return per_day
        return per_day * units

    amounts: Dict[str, Decimal] = {}
    applied: Dict[str, float] = {}
    for name in TAX_ORDER:
        if name not in rates or name == LONG_TERM_CARE:
            continue
        rate, method = rates[name]
        applied[name] = rate
        amounts[name] = taxable_base(name, method) * _dec(rate) / _HUNDRED

    if LONG_TERM_CARE in rates:
        rate, _ = rates[LONG_TERM_CARE]
        applied[LONG_TERM_CARE] = rate
        amounts[LONG_TERM_CARE] = amounts.get(HEALTH_INSURANCE, Decimal(0)) * _dec(rate) / _HUNDRED

    combined_income = amounts.pop(INCOME_TAX, Decimal(0))
    resident = combined_income * RESIDENT_TAX_SHARE
    deductions = {
        "income_tax": round_won(combined_income - resident),
        "resident_tax": round_won(resident),
        "national_pension": round_won(amounts.get(NATIONAL_PENSION, Decimal(0))),
        "health_insurance": round_won(amounts.get(HEALTH_INSURANCE, Decimal(0))),
        "employment_insurance": round_won(amounts.get(EMPLOYMENT_INSURANCE, Decimal(0))),
        "long_term_care": round_won(amounts.get(LONG_TERM_CARE, Decimal(0))),
        "other_deductions": round_won(_dec(additional_deductions)),
    }
    gross_won = round_won(gross)
    total_tax = sum(deductions.values())

    taxable_income = gross
    if employment_type == EmploymentType.DAILY_WORKER:
        taxable_income = max(daily - DAILY_WORKER_EXEMPT_AMOUNT, Decimal(0)) * units

    return {
        "employment_type": employment_type,
        "daily_rate": float(daily),
        "labor_hours": float(units),
        "gross_pay": gross_won,
        "base_pay": gross_won,
        "deductions": deductions,
        "total_tax": total_tax,
        "net_pay": gross_won - total_tax,
        "tax_details": {
            "labor_hours": float(units),
            "rates": applied,
            "taxable_income": round_won(taxable_income),
            "additional_deductions": deductions["other_deductions"],
        },
    }


def split_hours(labor_hours: float) -> Tuple[float, float]:
    """Clock hours for a 공수 value: (regular, overtime)."""
    hours = float(labor_hours) * 8
    return min(hours, 8.0), max(hours - 8.0, 0.0)


def rule_based_pay(
    *,
    labor_hours: float,
    daily_rule_amount: Optional[float],
    hourly_rule_amount: Optional[float],
    overtime_multiplier: Optional[float],
) -> Tuple[int, int]:
    """
    (base_pay, overtime_pay) for a batch-calculated day. A daily rule wins
    over an hourly rule; without either the default daily pay applies.
    """
    units = _dec(labor_hours)
    regular, overtime = split_hours(labor_hours)
    if daily_rule_amount is not None:
        return round_won(units * _dec(daily_rule_amount)), 0
    if hourly_rule_amount is not None:
        rate = _dec(hourly_rule_amount)
        base = _dec(regular) * rate
        overtime_pay = Decimal(0)
        if overtime > 0:
            overtime_pay = _dec(overtime) * rate * _dec(overtime_multiplier or 1.5)
        return round_won(base), round_won(overtime_pay)
    return round_won(units * DEFAULT_DAILY_PAY), 0
