"""
underwriting.py

Coverage and leverage ratios: DSCR, LTV and monthly cash flow.
"""

from decimal import Decimal
from typing import Any, Union

from models.currency import to_decimal, to_money, to_ratio
from models.errors import InvalidInput


class _Uncapped:
    """
    DSCR of a property that carries no debt service.

    Orders above every number and equals only itself, so `dscr >= min_dscr`
    style comparisons keep working without a float infinity.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNCAPPED"

    def __eq__(self, other) -> bool:
        return other is self

    def __ne__(self, other) -> bool:
        return other is not self

    def __hash__(self) -> int:
        return hash("UNCAPPED")

    def __lt__(self, other) -> bool:
        return False

    def __le__(self, other) -> bool:
        return other is self

    def __gt__(self, other) -> bool:
        return other is not self

    def __ge__(self, other) -> bool:
        return True


UNCAPPED = _Uncapped()

Ratio = Union[Decimal, _Uncapped]


def is_uncapped(value: Any) -> bool:
    return value is UNCAPPED


def dscr(noi_monthly: Any, debt_service_monthly: Any) -> Ratio:
    """
    Debt service coverage ratio: NOI / debt service.

    No debt service (zero or negative) returns UNCAPPED. Negative NOI gives
    a negative ratio, which is a valid result.
    """
    noi = to_decimal(noi_monthly)
    debt_service = to_decimal(debt_service_monthly)
    if debt_service <= 0:
        return UNCAPPED
    return to_ratio(noi / debt_service)


def ltv(principal: Any, value: Any) -> Decimal:
    p = to_decimal(principal)
    v = to_decimal(value)
    if v <= 0:
        raise InvalidInput(f"value must be positive to compute LTV, got {value}")
    return to_ratio(p / v)


def monthly_cash_flow(noi_monthly: Any, debt_service_monthly: Any) -> Decimal:
    return to_money(to_decimal(noi_monthly) - to_decimal(debt_service_monthly))


class Underwriting:
    """
    Computes DSCR, cash flow, CoC return for one property and its debt.
    """

    def __init__(self, noi_monthly: Any, debt_service_monthly: Any, cash_invested: Any = 0):
        self.noi = to_decimal(noi_monthly)
        self.debt_service = to_decimal(debt_service_monthly)
        self.cash = to_decimal(cash_invested)

    def dscr(self) -> Ratio:
        return dscr(self.noi, self.debt_service)

    def monthly_cash_flow(self) -> Decimal:
        return monthly_cash_flow(self.noi, self.debt_service)

    def annual_cash_flow(self) -> Decimal:
        return to_money(self.monthly_cash_flow() * 12)

    def coc_return(self):
        if self.cash == 0:
            return None
        return to_ratio(self.annual_cash_flow() / self.cash)
