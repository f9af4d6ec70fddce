"""Tests for the blanket allocation search."""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from engine.blanket_allocation_engine import BlanketAllocationEngine, allocate
from models.allocation_result import Termination
from models.errors import InvalidInput
from models.loan_inputs import AllocationConstraints, LoanTerms, WeightBasis
from models.underwriting import UNCAPPED, dscr
from services.loan_calculator import monthly_payment, principal_for_payment

RATE = Decimal("0.075")
TERM = 360


def capacity(noi):
    return principal_for_payment(Decimal(noi), RATE, TERM)


class TestConservation:
    """Allocated principal always sums to the loan."""

    @pytest.mark.parametrize("rents", [
        (6000, 1500),
        (4000, 4000, 4000),
        (9000, 100, 2500, 7000),
    ])
    def test_total_equals_principal(self, million_loan, no_ceiling, make_property, rents):
        props = [make_property(f"P{i}", 500000 + i * 100000, r) for i, r in enumerate(rents)]
        result = allocate(million_loan, props, no_ceiling)

        total = sum(a.allocated_principal for a in result.allocations)
        assert total == million_loan.principal
        assert result.total_allocated == million_loan.principal

    def test_uneven_weights_settle_to_the_cent(self, make_property):
        loan = LoanTerms(principal=Decimal("1000000.01"), annual_rate=RATE, term_months=TERM)
        props = [make_property(i, 333333, 9000) for i in range(3)]
        result = allocate(loan, props, AllocationConstraints(max_ltv_per_property=None))
        assert sum(a.allocated_principal for a in result.allocations) == loan.principal


class TestSingleProperty:
    """One property gets the whole loan and matches the direct calculation."""

    def test_single_property_equivalence(self, million_loan, make_property):
        prop = make_property("solo", 2000000, 10000)
        result = allocate(million_loan, [prop], AllocationConstraints(max_ltv_per_property=Decimal("0.80")))

        solo = result.by_id("solo")
        payment = monthly_payment(million_loan.principal, RATE, TERM)
        assert solo.allocated_principal == million_loan.principal
        assert solo.monthly_debt_service == payment
        assert solo.dscr == dscr(prop.noi, payment)
        assert result.feasible is True
        assert result.iterations_used == 1

    def test_single_underwater_property_keeps_whole_loan(self, million_loan, make_property):
        result = allocate(million_loan, [make_property("solo", 2000000, 3000)], AllocationConstraints())

        assert result.feasible is False
        assert result.termination == Termination.NO_SURPLUS
        assert result.by_id("solo").allocated_principal == million_loan.principal
        assert result.shortfall_amount == million_loan.principal - capacity(3000)


class TestRebalancing:
    """Principal moves from surplus properties to deficient ones."""

    def test_shifts_principal_off_the_weak_property(self, million_loan, no_ceiling, make_property):
        a = make_property("A", 700000, 6000)
        b = make_property("B", 300000, 1500)

        result = allocate(million_loan, [a, b], no_ceiling)
        alloc_a, alloc_b = result.by_id("A"), result.by_id("B")

        assert result.feasible is True
        assert result.termination == Termination.CONVERGED
        assert result.iterations_used == 2
        assert alloc_b.allocated_principal == capacity(1500)
        assert Decimal("214000") < alloc_b.allocated_principal < Decimal("215000")
        assert alloc_a.allocated_principal == million_loan.principal - alloc_b.allocated_principal
        assert alloc_a.dscr >= Decimal("1.0")
        assert alloc_b.dscr >= Decimal("1.0")
        assert result.shortfall_amount == 0

    def test_reported_metrics_match_direct_calculation(self, million_loan, no_ceiling, make_property):
        a = make_property("A", 700000, 6000)
        b = make_property("B", 300000, 1500)

        result = allocate(million_loan, [a, b], no_ceiling)
        for prop in (a, b):
            alloc = result.by_id(prop.property_id)
            payment = monthly_payment(alloc.allocated_principal, RATE, TERM)
            assert alloc.monthly_debt_service == payment
            assert alloc.dscr == dscr(prop.noi, payment)
            assert alloc.noi == prop.noi

    def test_pool_without_enough_income_is_infeasible(self, million_loan, no_ceiling, make_property):
        # $5,500/mo of NOI cannot carry ~$6,992/mo of debt service at 1.0x.
        a = make_property("A", 700000, 4000)
        b = make_property("B", 300000, 1500)

        result = allocate(million_loan, [a, b], no_ceiling)

        assert result.feasible is False
        assert result.termination == Termination.NO_SURPLUS
        assert result.iterations_used == 1
        assert result.shortfall_amount == million_loan.principal - capacity(4000) - capacity(1500)
        assert result.total_allocated == million_loan.principal

    def test_partial_transfer_then_no_surplus(self, million_loan, no_ceiling, make_property):
        a = make_property("A", 700000, 5000)
        b = make_property("B", 300000, 1500)

        result = allocate(million_loan, [a, b], no_ceiling)

        assert result.feasible is False
        assert result.termination == Termination.NO_SURPLUS
        assert result.iterations_used == 2
        assert result.by_id("A").allocated_principal == capacity(5000)
        assert result.shortfall_amount == million_loan.principal - capacity(5000) - capacity(1500)

    def test_iteration_bound_is_reported(self, million_loan, make_property):
        a = make_property("A", 700000, 5000)
        b = make_property("B", 300000, 1500)
        constraints = AllocationConstraints(min_dscr=Decimal("1.0"), max_ltv_per_property=None, max_iterations=1)

        result = allocate(million_loan, [a, b], constraints)

        assert result.feasible is False
        assert result.termination == Termination.MAX_ITERATIONS
        assert result.iterations_used == 1
        assert result.shortfall_amount > 0

    def test_zero_income_is_infeasible(self, million_loan, no_ceiling, make_property):
        props = [make_property("A", 700000, 0), make_property("B", 300000, 0)]

        result = allocate(million_loan, props, no_ceiling)

        assert result.feasible is False
        assert result.shortfall_amount > 0
        assert result.shortfall_amount == million_loan.principal
        for alloc in result.allocations:
            assert alloc.dscr == 0
            assert alloc.risk_tier.value == "HIGH"


class TestSeeding:
    """Proportional seed with floors and LTV ceilings."""

    def test_by_value_seed_is_kept_when_everything_clears(self, million_loan, no_ceiling, make_property):
        props = [make_property("A", 700000, 9000), make_property("B", 300000, 9000)]
        result = allocate(million_loan, props, no_ceiling)

        assert result.by_id("A").allocated_principal == Decimal("700000.00")
        assert result.by_id("B").allocated_principal == Decimal("300000.00")
        assert result.iterations_used == 1

    def test_ceiling_excess_moves_to_unclamped_property(self, make_property):
        loan = LoanTerms(principal=Decimal("500000"), annual_rate=RATE, term_months=TERM)
        props = [
            make_property("A", 1000000, 4000, weight_basis=WeightBasis.BY_INCOME),
            make_property("B", 250000, 16000, weight_basis=WeightBasis.BY_INCOME),
        ]
        result = allocate(loan, props, AllocationConstraints(max_ltv_per_property=Decimal("0.75")))

        assert result.feasible is True
        assert result.by_id("B").allocated_principal == Decimal("187500.00")
        assert result.by_id("B").ltv == Decimal("0.75")
        assert result.by_id("A").allocated_principal == Decimal("312500.00")

    def test_ceilings_too_small_for_the_loan(self, million_loan, make_property):
        props = [make_property("A", 700000, 9000), make_property("B", 300000, 9000)]
        result = allocate(million_loan, props, AllocationConstraints(max_ltv_per_property=Decimal("0.80")))

        assert result.feasible is False
        assert result.total_allocated == million_loan.principal
        assert result.shortfall_amount == Decimal("200000.00")
        assert any("LTV ceiling" in w for w in result.warnings)

    def test_negative_income_property_still_gets_a_seed(self, make_property):
        loan = LoanTerms(principal=Decimal("100000"), annual_rate=RATE, term_months=TERM)
        a = make_property("A", 500000, 5000, weight_basis=WeightBasis.BY_INCOME)
        b = make_property("B", 200000, 0, monthly_taxes=Decimal("500"), weight_basis=WeightBasis.BY_INCOME)

        result = allocate(loan, [a, b], AllocationConstraints())

        assert b.noi == Decimal("-500")
        assert result.feasible is True
        assert result.by_id("B").allocated_principal > 0
        assert sum(x.allocated_principal for x in result.allocations) == loan.principal
        assert any("non-positive NOI" in w for w in result.warnings)

    def test_allocation_floor_is_respected(self, million_loan, no_ceiling, make_property):
        props = [make_property("A", 950000, 9000), make_property("B", 50000, 9000)]
        constraints = AllocationConstraints(
            min_dscr=Decimal("1.0"),
            max_ltv_per_property=None,
            min_allocation_floor=Decimal("100000"),
        )
        result = allocate(million_loan, props, constraints)

        assert result.by_id("B").allocated_principal == Decimal("100000.00")
        assert result.by_id("A").allocated_principal == Decimal("900000.00")

    def test_floor_overshoot_is_taken_from_ceiling_pinned_share(self, make_property):
        # A is pinned at its 40,000 ceiling first; B, C and D are then pinned
        # at the floor, leaving 15,000 too much on the table.
        loan = LoanTerms(principal=Decimal("100000"), annual_rate=RATE, term_months=TERM)
        floor = Decimal("25000")
        props = [
            make_property("A", 50000, 100000, weight_basis=WeightBasis.BY_INCOME),
            make_property("B", 1000000, 1000, weight_basis=WeightBasis.BY_INCOME),
            make_property("C", 1000000, 1, weight_basis=WeightBasis.BY_INCOME),
            make_property("D", 1000000, 1, weight_basis=WeightBasis.BY_INCOME),
        ]
        constraints = AllocationConstraints(
            max_ltv_per_property=Decimal("0.80"),
            min_allocation_floor=floor,
        )
        result = allocate(loan, props, constraints)

        for alloc in result.allocations:
            assert alloc.allocated_principal == Decimal("25000.00")
        assert result.total_allocated == loan.principal
        # C and D cannot carry the floor on $1 of NOI.
        assert result.feasible is False
        assert result.termination == Termination.NO_SURPLUS

    def test_mixed_weight_bases_split_by_group_head_count(self, million_loan, no_ceiling, make_property):
        props = [
            make_property("A", 900000, 9000),
            make_property("B", 100000, 9000, weight_basis=WeightBasis.BY_INCOME),
        ]
        result = allocate(million_loan, props, no_ceiling)

        assert result.feasible is True
        assert result.iterations_used == 1
        assert result.by_id("A").allocated_principal == Decimal("500000.00")
        assert result.by_id("B").allocated_principal == Decimal("500000.00")


class TestEdgeCases:
    """Zero principal, zero rate and concurrent use."""

    def test_zero_principal(self, no_ceiling, make_property):
        loan = LoanTerms(principal=Decimal("0"), annual_rate=RATE, term_months=TERM)
        result = allocate(loan, [make_property("A", 100000, 1000)], no_ceiling)

        assert result.feasible is True
        assert result.by_id("A").allocated_principal == 0
        assert result.by_id("A").dscr is UNCAPPED

    def test_zero_rate_loan(self, no_ceiling, make_property):
        loan = LoanTerms(principal=Decimal("360000"), annual_rate=Decimal("0"), term_months=360)
        props = [make_property("A", 200000, 900), make_property("B", 200000, 300)]
        result = allocate(loan, props, no_ceiling)

        assert result.feasible is True
        assert result.by_id("B").allocated_principal == Decimal("108000.00")
        assert result.by_id("A").allocated_principal == Decimal("252000.00")

    def test_concurrent_calls_are_independent(self, million_loan, no_ceiling, make_property):
        engine = BlanketAllocationEngine()
        props = [make_property("A", 700000, 6000), make_property("B", 300000, 1500)]
        expected = engine.allocate(million_loan, props, no_ceiling)

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda _: engine.allocate(million_loan, props, no_ceiling), range(8)))

        assert all(r == expected for r in results)


class TestValidation:
    """Malformed input is rejected before any iteration."""

    def test_negative_principal(self, no_ceiling, make_property):
        loan = LoanTerms(principal=Decimal("-1"), annual_rate=RATE, term_months=TERM)
        with pytest.raises(InvalidInput):
            allocate(loan, [make_property("A", 100000, 1000)], no_ceiling)

    def test_no_properties(self, million_loan, no_ceiling):
        with pytest.raises(InvalidInput):
            allocate(million_loan, [], no_ceiling)

    def test_non_positive_value(self, million_loan, no_ceiling, make_property):
        with pytest.raises(InvalidInput):
            allocate(million_loan, [make_property("A", 0, 1000)], no_ceiling)

    def test_non_positive_term(self, no_ceiling, make_property):
        loan = LoanTerms(principal=Decimal("1000"), annual_rate=RATE, term_months=0)
        with pytest.raises(InvalidInput):
            allocate(loan, [make_property("A", 100000, 1000)], no_ceiling)

    def test_duplicate_property_ids(self, million_loan, no_ceiling, make_property):
        props = [make_property("A", 100000, 1000), make_property("A", 200000, 1000)]
        with pytest.raises(InvalidInput):
            allocate(million_loan, props, no_ceiling)

    def test_floors_exceeding_principal(self, million_loan, make_property):
        props = [make_property("A", 100000, 1000), make_property("B", 200000, 1000)]
        constraints = AllocationConstraints(min_allocation_floor=Decimal("600000"))
        with pytest.raises(InvalidInput):
            allocate(million_loan, props, constraints)

    def test_non_positive_min_dscr(self, million_loan, make_property):
        with pytest.raises(InvalidInput):
            allocate(million_loan, [make_property("A", 100000, 1000)], AllocationConstraints(min_dscr=0))

    def test_unknown_weight_basis(self, make_property):
        with pytest.raises(InvalidInput):
            make_property("A", 100000, 1000, weight_basis="BY_VIBES")
