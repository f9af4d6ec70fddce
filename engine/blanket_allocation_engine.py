"""
blanket_allocation_engine.py

Splits one blanket-loan principal across its collateral properties so that
every property clears the minimum DSCR on its own share of the debt.

Procedure (bounded water-filling):

1) Seed     principal split by weight (appraised value or NOI), pinned to the
            allocation floor and the per-property LTV ceiling; ceiling excess
            is re-spread over the unpinned properties.
2) Evaluate monthly P&I and DSCR for every property's share.
3) Classify deficient properties (share above what their NOI supports at
            min_dscr, or above their LTV ceiling) and surplus properties
            (room left below both limits).
4) Transfer move the closed-form excess off deficient properties onto the
            surplus set, in proportion to each surplus property's slack.
5) Repeat   until nothing is deficient (feasible), no slack remains
            (infeasible) or max_iterations is hit (infeasible, not converged).
6) Score    RiskScoring runs on every property whatever the outcome.

All money is Decimal at cent precision. Every transfer moves whole cents
from one side to the other, so allocated principal always sums to the
loan principal exactly.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from models.allocation_result import AllocationResult, PropertyAllocation, Termination
from models.currency import ZERO, to_money, to_money_floor, to_ratio
from models.errors import InvalidInput
from models.loan_inputs import AllocationConstraints, LoanTerms, PropertyFinancials, WeightBasis
from models.risk_scoring import RiskScoring
from models.underwriting import dscr, ltv
from services.loan_calculator import monthly_payment, monthly_pitia, principal_for_payment

logger = logging.getLogger(__name__)

# Seed weight for a property whose income weight is zero or negative.
SEED_EPSILON = Decimal("0.01")


@dataclass
class _Position:
    """Working state for one property during the search."""

    prop: PropertyFinancials
    noi: Decimal
    capacity: Decimal
    ceiling: Optional[Decimal]
    weight: Decimal
    allocated: Decimal = ZERO

    @property
    def limit(self) -> Decimal:
        """Largest share this property can carry within DSCR and LTV."""
        if self.ceiling is None:
            return self.capacity
        return min(self.capacity, self.ceiling)

    @property
    def excess(self) -> Decimal:
        return self.allocated - self.limit

    @property
    def slack(self) -> Decimal:
        return max(ZERO, self.limit - self.allocated)


class BlanketAllocationEngine:
    """
    Parameters:
        risk_scoring: scorer used for the per-property diagnostics

    Example:
        engine = BlanketAllocationEngine()
        result = engine.allocate(
            LoanTerms(principal=1_000_000, annual_rate="0.075", term_months=360),
            [
                PropertyFinancials("A", appraised_value=1_400_000, monthly_gross_rent=6_000),
                PropertyFinancials("B", appraised_value=600_000, monthly_gross_rent=1_500),
            ],
            AllocationConstraints(min_dscr="1.0", max_ltv_per_property=None),
        )
        result.feasible, result.by_id("B").allocated_principal
    """

    def __init__(self, risk_scoring: Optional[RiskScoring] = None):
        self.risk_scoring = risk_scoring or RiskScoring()

    # ----------------------------------------------------------
    # Public entry point
    # ----------------------------------------------------------

    def allocate(
        self,
        loan: LoanTerms,
        properties: Sequence[PropertyFinancials],
        constraints: Optional[AllocationConstraints] = None,
    ) -> AllocationResult:
        constraints = constraints or AllocationConstraints()
        properties = list(properties or [])
        self._validate(loan, properties, constraints)

        positions = self._build_positions(loan, properties, constraints)
        self._seed(positions, loan.principal, constraints.min_allocation_floor)

        termination, iterations = self._rebalance(positions, constraints)
        result = self._finalize(loan, positions, constraints, termination, iterations)

        logger.info(
            "Blanket allocation of %s over %d properties: %s after %d iteration(s), shortfall %s",
            loan.principal,
            len(positions),
            result.termination.value,
            result.iterations_used,
            result.shortfall_amount,
        )
        return result

    # ----------------------------------------------------------
    # Validation
    # ----------------------------------------------------------

    def _validate(
        self,
        loan: LoanTerms,
        properties: List[PropertyFinancials],
        constraints: AllocationConstraints,
    ) -> None:
        loan.validate()
        constraints.validate()

        if not properties:
            raise InvalidInput("At least one property is required")

        seen = set()
        for prop in properties:
            prop.validate()
            if prop.property_id in seen:
                raise InvalidInput(f"Duplicate property_id {prop.property_id!r}")
            seen.add(prop.property_id)

        floor_total = constraints.min_allocation_floor * len(properties)
        if floor_total > loan.principal:
            raise InvalidInput(
                f"min_allocation_floor of {constraints.min_allocation_floor} across "
                f"{len(properties)} properties exceeds principal {loan.principal}"
            )

    # ----------------------------------------------------------
    # 1) Seed
    # ----------------------------------------------------------

    def _build_positions(
        self,
        loan: LoanTerms,
        properties: List[PropertyFinancials],
        constraints: AllocationConstraints,
    ) -> List[_Position]:
        raw: List[Decimal] = []
        for prop in properties:
            if prop.weight_basis == WeightBasis.BY_INCOME:
                raw.append(prop.noi if prop.noi > 0 else SEED_EPSILON)
            else:
                raw.append(prop.appraised_value)

        # Value and income weights are in different units, so each basis
        # is normalized within its own group; a group's share of the loan
        # follows its head count.
        totals: Dict[WeightBasis, Decimal] = {}
        counts: Dict[WeightBasis, int] = {}
        for prop, w in zip(properties, raw):
            totals[prop.weight_basis] = totals.get(prop.weight_basis, ZERO) + w
            counts[prop.weight_basis] = counts.get(prop.weight_basis, 0) + 1

        n = Decimal(len(properties))
        positions = []
        for prop, w in zip(properties, raw):
            basis = prop.weight_basis
            weight = w / totals[basis] * Decimal(counts[basis]) / n
            noi = prop.noi
            positions.append(
                _Position(
                    prop=prop,
                    noi=noi,
                    capacity=self._dscr_capacity(noi, loan, constraints.min_dscr),
                    ceiling=constraints.ceiling_for(prop),
                    weight=weight,
                )
            )
        return positions

    @staticmethod
    def _dscr_capacity(noi: Decimal, loan: LoanTerms, min_dscr: Decimal) -> Decimal:
        """Largest principal whose payment keeps NOI / payment >= min_dscr."""
        if noi <= 0:
            return to_money(ZERO)
        return principal_for_payment(noi / min_dscr, loan.annual_rate, loan.term_months)

    def _seed(self, positions: List[_Position], principal: Decimal, floor: Decimal) -> None:
        shares: Dict[int, Decimal] = {}
        free = list(range(len(positions)))

        while free:
            remaining = principal - sum(shares.values(), ZERO)
            total_weight = sum((positions[i].weight for i in free), ZERO)
            proposed = {i: remaining * positions[i].weight / total_weight for i in free}

            over = [
                i for i in free
                if positions[i].ceiling is not None and proposed[i] > positions[i].ceiling
            ]
            if over:
                for i in over:
                    shares[i] = max(positions[i].ceiling, floor)
                free = [i for i in free if i not in over]
                continue

            under = [i for i in free if proposed[i] < floor]
            if under:
                for i in under:
                    shares[i] = floor
                free = [i for i in free if i not in under]
                continue

            shares.update(proposed)
            free = []

        leftover = principal - sum(shares.values(), ZERO)
        if leftover > 0:
            # Every property pinned and principal still unplaced: spread the
            # rest by weight even though it breaks ceilings. The rebalance
            # step reports those properties as deficient.
            logger.debug("Seed could not place %s within LTV ceilings", leftover)
            for i, pos in enumerate(positions):
                shares[i] += leftover * pos.weight
        elif leftover < 0:
            # Floors pinned in a later pass overshot the principal. Only
            # shares above the floor give back, pro rata to their room.
            room = {i: s - floor for i, s in shares.items() if s > floor}
            total_room = sum(room.values(), ZERO)
            logger.debug("Seed floors overshoot principal by %s", -leftover)
            for i, r in room.items():
                shares[i] += leftover * r / total_room

        for i, pos in enumerate(positions):
            pos.allocated = to_money(shares[i])
        self._settle_rounding(positions, principal)

    @staticmethod
    def _settle_rounding(positions: List[_Position], principal: Decimal) -> None:
        residual = to_money(principal) - sum((p.allocated for p in positions), ZERO)
        if residual:
            largest = max(positions, key=lambda p: p.allocated)
            largest.allocated += residual

    # ----------------------------------------------------------
    # 2-5) Evaluate, classify, transfer, repeat
    # ----------------------------------------------------------

    def _rebalance(self, positions: List[_Position], constraints: AllocationConstraints):
        tolerance = constraints.convergence_tolerance
        floor = constraints.min_allocation_floor

        for iteration in range(1, constraints.max_iterations + 1):
            deficient = [p for p in positions if p.excess > tolerance]
            if not deficient:
                return Termination.CONVERGED, iteration

            deficient_ids = {id(p) for p in deficient}
            surplus = [p for p in positions if id(p) not in deficient_ids and p.slack > 0]
            reducible = {id(p): max(ZERO, p.allocated - max(p.limit, floor)) for p in deficient}
            needed = sum(reducible.values(), ZERO)
            available = sum((p.slack for p in surplus), ZERO)
            move = to_money_floor(min(needed, available))

            logger.debug(
                "Iteration %d: %d deficient, %d surplus, needed %s, available %s",
                iteration, len(deficient), len(surplus), needed, available,
            )

            if move <= 0:
                return Termination.NO_SURPLUS, iteration

            moved = self._transfer(deficient, surplus, reducible, needed, available, move)
            if moved <= 0:
                return Termination.NO_SURPLUS, iteration

        if not any(p.excess > tolerance for p in positions):
            return Termination.CONVERGED, constraints.max_iterations

        logger.warning(
            "Blanket allocation did not converge within %d iterations",
            constraints.max_iterations,
        )
        return Termination.MAX_ITERATIONS, constraints.max_iterations

    @staticmethod
    def _transfer(
        deficient: List[_Position],
        surplus: List[_Position],
        reducible: Dict[int, Decimal],
        needed: Decimal,
        available: Decimal,
        move: Decimal,
    ) -> Decimal:
        """
        Take `move` off the deficient set (pro rata to each one's excess)
        and place it on the surplus set (pro rata to slack). Returns the
        amount actually moved.
        """
        reductions = {}
        for p in deficient:
            share = reducible[id(p)]
            reductions[id(p)] = share if move == needed else to_money_floor(share * move / needed)
        moved = sum(reductions.values(), ZERO)
        if moved <= 0:
            return ZERO

        additions = {id(p): to_money_floor(p.slack * moved / available) for p in surplus}
        residual = moved - sum(additions.values(), ZERO)
        if residual:
            roomiest = max(surplus, key=lambda p: p.slack - additions[id(p)])
            additions[id(roomiest)] += residual

        for p in deficient:
            p.allocated -= reductions[id(p)]
        for p in surplus:
            p.allocated += additions[id(p)]
        return moved

    # ----------------------------------------------------------
    # 6) Finalize
    # ----------------------------------------------------------

    def _finalize(
        self,
        loan: LoanTerms,
        positions: List[_Position],
        constraints: AllocationConstraints,
        termination: Termination,
        iterations: int,
    ) -> AllocationResult:
        rate, term = loan.annual_rate, loan.term_months
        allocations = []
        warnings = []

        for pos in positions:
            payment = monthly_payment(pos.allocated, rate, term)
            coverage = dscr(pos.noi, payment)
            leverage = ltv(pos.allocated, pos.prop.appraised_value)
            risk_score, risk_tier = self.risk_scoring.score(coverage, leverage)

            allocations.append(
                PropertyAllocation(
                    property_id=pos.prop.property_id,
                    allocated_principal=pos.allocated,
                    monthly_debt_service=payment,
                    dscr=coverage,
                    ltv=leverage,
                    risk_score=risk_score,
                    risk_tier=risk_tier,
                    noi=pos.noi,
                    monthly_pitia=monthly_pitia(
                        pos.allocated, rate, term, pos.prop.monthly_carrying_costs
                    ),
                    max_supported_principal=pos.capacity,
                    ltv_ceiling=constraints.max_ltv_per_property,
                )
            )

            if pos.noi <= 0:
                warnings.append(f"Property {pos.prop.property_id} has non-positive NOI ({pos.noi}).")
            if pos.ceiling is not None and pos.allocated > pos.ceiling:
                warnings.append(
                    f"Property {pos.prop.property_id} is allocated above its LTV ceiling of {pos.ceiling}."
                )

        feasible = termination == Termination.CONVERGED
        shortfall = ZERO
        if not feasible:
            shortfall = sum(
                (p.excess for p in positions if p.excess > constraints.convergence_tolerance),
                ZERO,
            )

        total_allocated = sum((a.allocated_principal for a in allocations), ZERO)
        total_debt_service = sum((a.monthly_debt_service for a in allocations), ZERO)
        total_noi = sum((p.noi for p in positions), ZERO)
        total_value = sum((p.prop.appraised_value for p in positions), ZERO)

        return AllocationResult(
            allocations=tuple(allocations),
            total_allocated=to_money(total_allocated),
            feasible=feasible,
            iterations_used=iterations,
            shortfall_amount=to_money(shortfall),
            termination=termination,
            aggregate_dscr=dscr(total_noi, total_debt_service),
            aggregate_ltv=to_ratio(total_allocated / total_value),
            total_monthly_debt_service=to_money(total_debt_service),
            warnings=tuple(warnings),
        )


_default_engine = BlanketAllocationEngine()


def allocate(
    loan: LoanTerms,
    properties: Iterable[PropertyFinancials],
    constraints: Optional[AllocationConstraints] = None,
) -> AllocationResult:
    return _default_engine.allocate(loan, list(properties), constraints)
