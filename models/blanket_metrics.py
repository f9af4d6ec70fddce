"""
blanket_metrics.py

Underwriting metrics for an allocation the caller already has in hand
(typed in by a loan officer, or an even split), as opposed to one the
allocator searched for.

Produces:
- Per-property P&I, PITIA, DSCR, LTV and risk tier
- Aggregate (portfolio) DSCR, LTV, P&I and PITIA
- Balance check: how far the allocations are from the loan principal
- Rate and rent stress scenarios on the aggregate DSCR
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from models.currency import CENT, ZERO, to_decimal, to_money, to_money_floor
from models.errors import InvalidInput
from models.loan_inputs import LoanTerms, PropertyFinancials
from models.risk_scoring import RiskScoring
from models.underwriting import dscr, is_uncapped, ltv
from services.loan_calculator import monthly_payment


def even_split(principal: Any, count: int) -> List[Decimal]:
    """
    Split principal into `count` cent amounts that sum exactly to it.
    Leftover cents go to the first properties.
    """
    if count <= 0:
        raise InvalidInput("At least one property is required")
    total = to_money(principal)
    base = to_money_floor(total / count)
    shares = [base] * count
    leftover_cents = int((total - base * count) / CENT)
    for i in range(leftover_cents):
        shares[i] += CENT
    return shares


# (label, rate delta, gross income delta)
DEFAULT_STRESS_SCENARIOS = (
    ("+50bps", Decimal("0.005"), ZERO),
    ("-50bps", Decimal("-0.005"), ZERO),
    ("5% rent decline", ZERO, Decimal("-0.05")),
    ("5% rent increase", ZERO, Decimal("0.05")),
)


def _ratio_out(value):
    return None if is_uncapped(value) else value


class BlanketMetrics:
    """
    Parameters:
        loan: LoanTerms of the blanket note
        properties: collateral, in the same order as `allocations`
        allocations: principal per property; None means an even split
        balance_tolerance: allowed gap between sum(allocations) and principal
    """

    def __init__(
        self,
        loan: LoanTerms,
        properties: Sequence[PropertyFinancials],
        allocations: Optional[Sequence[Any]] = None,
        balance_tolerance: Any = Decimal("1.00"),
        risk_scoring: Optional[RiskScoring] = None,
    ):
        loan.validate()
        if not properties:
            raise InvalidInput("At least one property is required")
        for prop in properties:
            prop.validate()

        if allocations is None:
            allocations = even_split(loan.principal, len(properties))
        if len(allocations) != len(properties):
            raise InvalidInput(
                f"Got {len(allocations)} allocations for {len(properties)} properties"
            )

        self.loan = loan
        self.properties = list(properties)
        self.allocations = [to_money(a) for a in allocations]
        if any(a < 0 for a in self.allocations):
            raise InvalidInput("Allocations must be >= 0")

        self.balance_tolerance = to_decimal(balance_tolerance)
        self.risk_scoring = risk_scoring or RiskScoring()

    # ------------------------------------------------------
    # Per property
    # ------------------------------------------------------

    def property_breakdowns(self) -> List[Dict]:
        rows = []
        for prop, amount in zip(self.properties, self.allocations):
            payment = monthly_payment(amount, self.loan.annual_rate, self.loan.term_months)
            coverage = dscr(prop.noi, payment)
            leverage = ltv(amount, prop.appraised_value)
            risk_score, risk_tier = self.risk_scoring.score(coverage, leverage)
            rows.append({
                "property_id": prop.property_id,
                "allocated_principal": amount,
                "pct_of_total": (
                    (amount / self.loan.principal).quantize(Decimal("0.0001"))
                    if self.loan.principal > 0 else ZERO
                ),
                "monthly_pi": payment,
                "monthly_pitia": to_money(payment + prop.monthly_carrying_costs),
                "noi": prop.noi,
                "dscr": _ratio_out(coverage),
                "ltv": leverage,
                "risk_score": risk_score,
                "risk_tier": risk_tier.value,
            })
        return rows

    # ------------------------------------------------------
    # Portfolio
    # ------------------------------------------------------

    def _aggregate_dscr(self, rate: Decimal, income_shift: Decimal):
        total_noi = ZERO
        total_payment = ZERO
        for prop, amount in zip(self.properties, self.allocations):
            total_noi += prop.noi + prop.gross_income * income_shift
            total_payment += monthly_payment(amount, rate, self.loan.term_months)
        return dscr(total_noi, total_payment)

    def aggregate(self) -> Dict:
        total_allocated = sum(self.allocations, ZERO)
        total_value = sum((p.appraised_value for p in self.properties), ZERO)
        total_pi = sum(
            (monthly_payment(a, self.loan.annual_rate, self.loan.term_months) for a in self.allocations),
            ZERO,
        )
        total_costs = sum((p.monthly_carrying_costs for p in self.properties), ZERO)
        difference = to_money(self.loan.principal - total_allocated)

        return {
            "dscr": _ratio_out(self._aggregate_dscr(self.loan.annual_rate, ZERO)),
            "ltv": ltv(total_allocated, total_value),
            "monthly_pi": to_money(total_pi),
            "monthly_pitia": to_money(total_pi + total_costs),
            "total_allocated": total_allocated,
            "difference": difference,
            "is_balanced": abs(difference) <= self.balance_tolerance,
        }

    def stress_scenarios(self, scenarios=DEFAULT_STRESS_SCENARIOS) -> List[Dict]:
        """
        Aggregate DSCR under shifted rates and gross income. Rates that
        would fall below zero are floored at zero.
        """
        results = []
        for label, rate_delta, income_delta in scenarios:
            rate = max(ZERO, self.loan.annual_rate + rate_delta)
            results.append({
                "scenario": label,
                "rate_delta": rate_delta,
                "income_delta": income_delta,
                "dscr_stressed": _ratio_out(self._aggregate_dscr(rate, income_delta)),
            })
        return results

    def summary(self) -> Dict:
        return {
            "aggregate": self.aggregate(),
            "property_breakdowns": self.property_breakdowns(),
            "stress_scenarios": self.stress_scenarios(),
        }
