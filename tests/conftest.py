"""Shared fixtures for the calculator tests."""

from decimal import Decimal

import pytest

from models.loan_inputs import AllocationConstraints, LoanTerms, PropertyFinancials


@pytest.fixture
def million_loan():
    """$1,000,000 at 7.5% over 360 months."""
    return LoanTerms(principal=Decimal("1000000"), annual_rate=Decimal("0.075"), term_months=360)


@pytest.fixture
def no_ceiling():
    """min DSCR 1.0 with no LTV ceiling."""
    return AllocationConstraints(min_dscr=Decimal("1.0"), max_ltv_per_property=None)


@pytest.fixture
def make_property():
    """Factory for a property whose NOI is its gross rent unless costs are passed."""

    def _make(property_id, value, rent, **kwargs):
        return PropertyFinancials(
            property_id=property_id,
            appraised_value=Decimal(str(value)),
            monthly_gross_rent=Decimal(str(rent)),
            **kwargs,
        )

    return _make
