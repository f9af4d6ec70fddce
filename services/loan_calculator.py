"""
loan_calculator.py

Level-payment amortization math.

Every other calculator (single-property sizing, blanket allocation,
manual allocation metrics) prices debt service through these functions,
so blanket and standalone loans always produce identical payments.
"""

from decimal import Decimal, localcontext
from typing import Any

from models.currency import ZERO, ONE, to_decimal, to_money, to_money_floor
from models.errors import InvalidInput, InvalidTerm

MONTHS_PER_YEAR = Decimal("12")


def _check_term(term_months: Any) -> int:
    if isinstance(term_months, bool) or not isinstance(term_months, int):
        try:
            as_int = int(term_months)
        except (TypeError, ValueError):
            raise InvalidTerm(term_months)
        if as_int != to_decimal(term_months):
            raise InvalidTerm(term_months)
        term_months = as_int
    if term_months <= 0:
        raise InvalidTerm(term_months)
    return term_months


def _check_rate(annual_rate: Any) -> Decimal:
    rate = to_decimal(annual_rate)
    if rate < 0 or rate >= 1:
        raise InvalidInput(f"annual_rate must be in [0, 1), got {annual_rate}")
    return rate


def _growth(monthly_rate: Decimal, n: int) -> Decimal:
    """(1 + r)^n at a fixed 28-digit precision."""
    with localcontext() as ctx:
        ctx.prec = 28
        return (ONE + monthly_rate) ** n


def payment_factor(annual_rate: Any, term_months: Any) -> Decimal:
    """
    Monthly payment per dollar borrowed.

    r (1+r)^n / ((1+r)^n - 1), or 1/n at a zero rate.
    """
    n = _check_term(term_months)
    rate = _check_rate(annual_rate)
    if rate == 0:
        return ONE / Decimal(n)

    r = rate / MONTHS_PER_YEAR
    growth = _growth(r, n)
    return r * growth / (growth - ONE)


def monthly_payment(principal: Any, annual_rate: Any, term_months: Any) -> Decimal:
    """
    Level monthly principal & interest payment.

    Zero rate returns principal / term_months exactly (no rounding);
    otherwise the standard amortization formula rounded to the cent with
    banker's rounding.
    """
    n = _check_term(term_months)
    rate = _check_rate(annual_rate)
    p = to_decimal(principal)
    if p < 0:
        raise InvalidInput(f"principal must be >= 0, got {principal}")

    if p == 0:
        return ZERO.quantize(Decimal("0.01"))
    if rate == 0:
        return p / Decimal(n)

    r = rate / MONTHS_PER_YEAR
    growth = _growth(r, n)
    return to_money(p * r * growth / (growth - ONE))


def principal_for_payment(payment: Any, annual_rate: Any, term_months: Any) -> Decimal:
    """
    Inverse of monthly_payment: the largest principal whose payment does
    not exceed `payment`.

    L = P * ((1+r)^n - 1) / (r (1+r)^n), truncated to the cent.
    A zero or negative payment supports no principal.
    """
    n = _check_term(term_months)
    rate = _check_rate(annual_rate)
    pay = to_decimal(payment)
    if pay <= 0:
        return ZERO.quantize(Decimal("0.01"))
    if rate == 0:
        return to_money_floor(pay * n)

    r = rate / MONTHS_PER_YEAR
    growth = _growth(r, n)
    principal = to_money_floor(pay * (growth - ONE) / (r * growth))

    # Banker's rounding of the forward payment can land one cent above
    # the target; step down until it does not.
    while principal > 0 and monthly_payment(principal, rate, n) > pay:
        principal -= Decimal("0.01")
    return principal


def interest_only_payment(principal: Any, annual_rate: Any) -> Decimal:
    rate = _check_rate(annual_rate)
    p = to_decimal(principal)
    if p < 0:
        raise InvalidInput(f"principal must be >= 0, got {principal}")
    return to_money(p * rate / MONTHS_PER_YEAR)


def annual_debt_service(principal: Any, annual_rate: Any, term_months: Any) -> Decimal:
    return to_money(monthly_payment(principal, annual_rate, term_months) * MONTHS_PER_YEAR)


def monthly_pitia(
    principal: Any,
    annual_rate: Any,
    term_months: Any,
    carrying_costs: Any = ZERO,
) -> Decimal:
    """
    Principal, interest, taxes, insurance and association dues.

    `carrying_costs` is the monthly total of taxes, insurance, HOA and
    flood insurance.
    """
    return to_money(monthly_payment(principal, annual_rate, term_months) + to_decimal(carrying_costs))


class LoanCalculator:
    """
    Standard mortgage amortization for a single loan.

    Wraps the module functions for callers that prefer an object bound to
    one set of terms.
    """

    def __init__(self, loan_amount: Any, annual_rate: Any, term_months: int):
        self.principal = to_decimal(loan_amount)
        self.rate = _check_rate(annual_rate)
        self.months = _check_term(term_months)

    def monthly_payment(self) -> Decimal:
        return monthly_payment(self.principal, self.rate, self.months)

    def interest_only_payment(self) -> Decimal:
        return interest_only_payment(self.principal, self.rate)

    def annual_debt_service(self) -> Decimal:
        return annual_debt_service(self.principal, self.rate, self.months)
