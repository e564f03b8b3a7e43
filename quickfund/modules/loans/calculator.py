"""
Loan arithmetic: amortized payments, balances, fees and dates.

All money values are Decimals rounded to cents (half-up); rates are annual
fractions (0.15 means 15% a year).
"""
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel

from quickfund.core.config import settings

CENT = Decimal("0.01")
Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class LoanTerms(BaseModel):
    interest_rate: Decimal
    monthly_payment: Decimal
    total_amount: Decimal
    total_interest: Decimal


def calculate_monthly_payment(principal: Number, annual_rate: Number, term_months: int) -> Decimal:
    """Standard amortization: P·r·(1+r)^n / ((1+r)^n − 1) with r the monthly rate"""
    principal = to_decimal(principal)
    monthly_rate = to_decimal(annual_rate) / 12

    if monthly_rate == 0:
        return round_money(principal / term_months)

    growth = (1 + monthly_rate) ** term_months
    return round_money(principal * monthly_rate * growth / (growth - 1))


def calculate_loan_terms(
    amount: Number,
    term_months: int,
    interest_rate: Number = settings.DEFAULT_INTEREST_RATE,
) -> LoanTerms:
    """Terms stored on a loan: the total is the sum of the amortized installments"""
    amount = to_decimal(amount)
    rate = to_decimal(interest_rate)
    monthly_payment = calculate_monthly_payment(amount, rate, term_months)
    total_amount = round_money(monthly_payment * term_months)

    return LoanTerms(
        interest_rate=rate,
        monthly_payment=monthly_payment,
        total_amount=total_amount,
        total_interest=total_amount - amount,
    )


def calculate_remaining_balance(total_amount: Number, total_paid: Number) -> Decimal:
    return max(Decimal("0"), round_money(to_decimal(total_amount) - to_decimal(total_paid)))


def calculate_payment_progress(total_amount: Number, total_paid: Number) -> float:
    """Percentage of the total already repaid, capped at 100"""
    total_amount = to_decimal(total_amount)
    if total_amount == 0:
        return 0.0
    return min(100.0, float(to_decimal(total_paid) / total_amount * 100))


def calculate_next_payment_date(disbursement_date: datetime, payments_made: int) -> datetime:
    """Installments fall due on the same day of each month after disbursement"""
    return disbursement_date + relativedelta(months=payments_made + 1)


def calculate_due_date(disbursement_date: datetime, term_months: int) -> datetime:
    """Final due date, approximating every month as 30 days"""
    return disbursement_date + timedelta(days=term_months * 30)


def calculate_late_fee(overdue_amount: Number, days_overdue: int, late_fee_rate: Number = Decimal("0.05")) -> Decimal:
    """Late fee accrues at ``late_fee_rate`` per 30 days overdue"""
    months_overdue = Decimal(days_overdue) / 30
    return round_money(to_decimal(overdue_amount) * to_decimal(late_fee_rate) * months_overdue)


def calculate_early_repayment_discount(
    remaining_amount: Number,
    months_remaining: int,
    discount_rate: Number = Decimal("0.02"),
) -> Decimal:
    if months_remaining <= 0:
        return Decimal("0.00")
    return round_money(to_decimal(remaining_amount) * to_decimal(discount_rate))
