"""
NarrativeBuilder

Turns a blanket AllocationResult into a plain-English summary a loan
officer can read back to a borrower.

It covers:
- Loan and collateral overview
- Outcome (feasible, infeasible, or not converged)
- Per-property coverage and leverage
- What to change when the allocation is infeasible

Outputs a structured narrative dictionary and a formatted text block.
"""

from typing import Dict, Sequence

from models.allocation_result import AllocationResult, Termination
from models.loan_inputs import AllocationConstraints, LoanTerms
from models.underwriting import is_uncapped


def _money(value) -> str:
    return f"${value:,.2f}"


def _pct(value) -> str:
    return f"{value * 100:.1f}%"


class NarrativeBuilder:

    def __init__(
        self,
        loan: LoanTerms,
        constraints: AllocationConstraints,
        result: AllocationResult,
    ):
        self.loan = loan
        self.constraints = constraints
        self.result = result

    # ---------------------------------------------------------
    # 1. Generate Narrative Sections
    # ---------------------------------------------------------

    def _loan_summary(self) -> str:
        count = len(self.result.allocations)
        return (
            f"The blanket loan of {_money(self.loan.principal)} at "
            f"{_pct(self.loan.annual_rate)} over {self.loan.term_months} months is "
            f"secured by {count} {'property' if count == 1 else 'properties'}, "
            f"each required to cover its share of debt service at "
            f"{self.constraints.min_dscr}x or better."
        )

    def _outcome_summary(self) -> str:
        r = self.result
        if r.feasible:
            return (
                f"An allocation satisfying minimum coverage on every property was found "
                f"after {r.iterations_used} iteration(s). Total monthly debt service is "
                f"{_money(r.total_monthly_debt_service)}."
            )
        if r.termination == Termination.MAX_ITERATIONS:
            return (
                f"The allocation did not settle within {r.iterations_used} iterations. "
                f"Treat the per-property figures as indicative only; an unresolved "
                f"excess of {_money(r.shortfall_amount)} remains."
            )
        return (
            "This blanket loan cannot satisfy minimum coverage on all properties. "
            f"Reduce principal by {_money(r.shortfall_amount)} or add collateral."
        )

    def _property_lines(self) -> Sequence[str]:
        lines = []
        for a in self.result.allocations:
            coverage = "no debt service" if is_uncapped(a.dscr) else f"DSCR {a.dscr}x"
            lines.append(
                f"{a.property_id}: {_money(a.allocated_principal)} allocated, "
                f"{_money(a.monthly_debt_service)}/mo P&I, {coverage}, "
                f"LTV {_pct(a.ltv)}, risk {a.risk_tier.value} ({a.risk_score})."
            )
        return lines

    def _aggregate_summary(self) -> str:
        r = self.result
        coverage = "uncapped" if is_uncapped(r.aggregate_dscr) else f"{r.aggregate_dscr}x"
        return (
            f"Across the collateral pool the aggregate DSCR is {coverage} and the "
            f"aggregate LTV is {_pct(r.aggregate_ltv)}."
        )

    # ---------------------------------------------------------
    # 2. Build Final Narrative
    # ---------------------------------------------------------

    def build_narrative(self) -> Dict:
        """
        Returns:
            {
                "full_text": "...",
                "sections": {
                    "loan": "...",
                    "outcome": "...",
                    "properties": ["...", ...],
                    "aggregate": "...",
                    "warnings": ["...", ...]
                }
            }
        """
        loan = self._loan_summary()
        outcome = self._outcome_summary()
        properties = list(self._property_lines())
        aggregate = self._aggregate_summary()
        warnings = list(self.result.warnings)

        full = "\n\n".join([loan, outcome, "\n".join(properties), aggregate] + warnings)

        return {
            "full_text": full,
            "sections": {
                "loan": loan,
                "outcome": outcome,
                "properties": properties,
                "aggregate": aggregate,
                "warnings": warnings,
            },
        }
