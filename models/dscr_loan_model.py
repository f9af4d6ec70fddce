"""
dscr_loan_model.py

Single-property DSCR loan sizing.

This model uses:
- Monthly Net Operating Income (NOI)
- Minimum DSCR constraint (e.g., 1.20x)
- Maximum LTV (e.g., 75% of appraised value)
- Interest rate and amortization term in months

to determine:
- Maximum loan amount supported by DSCR
- Maximum loan amount allowed by LTV
- Binding (final) loan amount
- Monthly P&I and PITIA
- DSCR, LTV and risk tier at that loan amount

Payments come from services.loan_calculator, the same functions the
blanket allocator prices each property's share with.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from models.currency import ZERO, to_decimal, to_money, to_money_floor
from models.errors import InvalidInput
from models.loan_inputs import PropertyFinancials
from models.risk_scoring import RiskScoring
from models.underwriting import dscr, is_uncapped, ltv, monthly_cash_flow
from services.loan_calculator import (
    annual_debt_service,
    monthly_payment,
    monthly_pitia,
    principal_for_payment,
)


class DSCRLoanModel:
    """
    Parameters:
        prop: PropertyFinancials for the subject property
        annual_rate: annual interest rate (e.g., 0.065 for 6.5%)
        term_months: amortization term in months (e.g., 360)
        min_dscr: minimum DSCR required by the lender (e.g., 1.20)
        max_ltv: maximum loan-to-value (e.g., 0.75 for 75%)

    Example:
        model = DSCRLoanModel(
            prop=PropertyFinancials("subject", appraised_value=1_800_000, monthly_gross_rent=12_000),
            annual_rate="0.065",
            term_months=360,
            min_dscr="1.20",
            max_ltv="0.75",
        )
        result = model.summary()
    """

    def __init__(
        self,
        prop: PropertyFinancials,
        annual_rate: Any,
        term_months: int,
        min_dscr: Any = Decimal("1.20"),
        max_ltv: Optional[Any] = Decimal("0.75"),
        risk_scoring: Optional[RiskScoring] = None,
    ):
        prop.validate()
        self.prop = prop
        self.annual_rate = to_decimal(annual_rate)
        self.term_months = term_months
        self.min_dscr = to_decimal(min_dscr)
        self.max_ltv = to_decimal(max_ltv) if max_ltv is not None else None
        self.risk_scoring = risk_scoring or RiskScoring()

        if self.min_dscr <= 0:
            raise InvalidInput(f"min_dscr must be positive, got {min_dscr}")

    # ----------------------------------------------------------
    # Loan sizing
    # ----------------------------------------------------------

    def loan_by_dscr(self) -> Optional[Decimal]:
        """
        Maximum loan supported by NOI and minimum DSCR requirement.
        """
        noi = self.prop.noi
        if noi <= 0:
            return None
        return principal_for_payment(noi / self.min_dscr, self.annual_rate, self.term_months)

    def loan_by_ltv(self) -> Optional[Decimal]:
        if self.max_ltv is None or self.max_ltv <= 0:
            return None
        return to_money_floor(self.prop.appraised_value * self.max_ltv)

    def final_loan_amount(self) -> Decimal:
        """
        Returns the binding loan amount:
        - The lower of loan_by_dscr and loan_by_ltv
        """
        l_dscr = self.loan_by_dscr()
        l_ltv = self.loan_by_ltv()

        if l_dscr is None:
            # No positive NOI: DSCR supports nothing, whatever LTV allows.
            return to_money(ZERO)
        if l_ltv is None:
            return l_dscr
        return min(l_dscr, l_ltv)

    def binding_constraint(self) -> str:
        l_dscr = self.loan_by_dscr()
        l_ltv = self.loan_by_ltv()
        if l_dscr is None:
            return "DSCR"
        if l_ltv is None or l_dscr <= l_ltv:
            return "DSCR"
        return "LTV"

    # ----------------------------------------------------------
    # Metrics at a given loan amount
    # ----------------------------------------------------------

    def metrics_for_loan(self, loan_amount: Any) -> Dict:
        amount = to_decimal(loan_amount)
        payment = monthly_payment(amount, self.annual_rate, self.term_months)
        coverage = dscr(self.prop.noi, payment)
        leverage = ltv(amount, self.prop.appraised_value)
        risk_score, risk_tier = self.risk_scoring.score(coverage, leverage)

        return {
            "loan_amount": to_money(amount),
            "monthly_payment": payment,
            "monthly_pitia": monthly_pitia(
                amount, self.annual_rate, self.term_months, self.prop.monthly_carrying_costs
            ),
            "annual_debt_service": annual_debt_service(amount, self.annual_rate, self.term_months),
            "monthly_cash_flow": monthly_cash_flow(self.prop.noi, payment),
            "dscr": None if is_uncapped(coverage) else coverage,
            "ltv": leverage,
            "risk_score": risk_score,
            "risk_tier": risk_tier.value,
        }

    # ----------------------------------------------------------
    # Public summary
    # ----------------------------------------------------------

    def summary(self) -> Dict:
        """
        High-level summary for underwriting & reporting.
        """
        final_loan = self.final_loan_amount()
        metrics = self.metrics_for_loan(final_loan) if final_loan else None

        return {
            "inputs": {
                "property_id": self.prop.property_id,
                "noi": self.prop.noi,
                "appraised_value": self.prop.appraised_value,
                "annual_rate": self.annual_rate,
                "term_months": self.term_months,
                "min_dscr": self.min_dscr,
                "max_ltv": self.max_ltv,
            },
            "loan_by_dscr": self.loan_by_dscr(),
            "loan_by_ltv": self.loan_by_ltv(),
            "binding_constraint": self.binding_constraint(),
            "final_loan_amount": metrics["loan_amount"] if metrics else ZERO,
            "metrics": metrics,
        }
