"""Tests for DSCR, LTV and the UNCAPPED sentinel."""

from decimal import Decimal

import pytest

from models.errors import InvalidInput
from models.underwriting import UNCAPPED, Underwriting, dscr, is_uncapped, ltv, monthly_cash_flow
from services.loan_calculator import monthly_payment


class TestDSCR:
    """Tests for dscr()."""

    def test_ratio_of_noi_to_debt_service(self):
        assert dscr(Decimal("1500"), Decimal("1000")) == Decimal("1.5")

    def test_ratio_is_kept_to_four_places(self):
        assert dscr(Decimal("1000"), Decimal("3000")) == Decimal("0.3333")

    @pytest.mark.parametrize("debt_service", [Decimal("0"), Decimal("-10")])
    def test_no_debt_service_is_uncapped(self, debt_service):
        assert dscr(Decimal("1000"), debt_service) is UNCAPPED

    def test_negative_noi_gives_negative_ratio(self):
        assert dscr(Decimal("-500"), Decimal("1000")) == Decimal("-0.5")

    def test_more_noi_never_lowers_dscr(self):
        payment = monthly_payment(Decimal("300000"), Decimal("0.075"), 360)
        ratios = [dscr(Decimal(noi), payment) for noi in (-1000, 0, 1500, 2097, 4000)]
        assert ratios == sorted(ratios)

    def test_more_principal_never_raises_dscr(self):
        ratios = [
            dscr(Decimal("1500"), monthly_payment(Decimal(p), Decimal("0.075"), 360))
            for p in (100000, 200000, 214700, 300000, 700000)
        ]
        assert ratios == sorted(ratios, reverse=True)


class TestUncapped:
    """The sentinel orders above every number."""

    def test_greater_than_any_number(self):
        assert UNCAPPED > Decimal("1000000")
        assert Decimal("5") < UNCAPPED
        assert 5 < UNCAPPED

    def test_clears_every_threshold(self):
        assert UNCAPPED >= Decimal("1.25")
        assert not (UNCAPPED < Decimal("1.0"))

    def test_equality(self):
        assert UNCAPPED == UNCAPPED
        assert UNCAPPED != Decimal("1")
        assert is_uncapped(UNCAPPED)
        assert not is_uncapped(Decimal("1"))


class TestLTVAndCashFlow:
    """Tests for ltv() and cash flow helpers."""

    def test_ltv(self):
        assert ltv(Decimal("800000"), Decimal("1000000")) == Decimal("0.8")

    def test_ltv_requires_positive_value(self):
        with pytest.raises(InvalidInput):
            ltv(Decimal("1000"), Decimal("0"))

    def test_monthly_cash_flow(self):
        assert monthly_cash_flow(Decimal("4000"), Decimal("2500.50")) == Decimal("1499.50")

    def test_underwriting_wrapper(self):
        uw = Underwriting(Decimal("2000"), Decimal("1600"), cash_invested=Decimal("48000"))
        assert uw.dscr() == Decimal("1.25")
        assert uw.annual_cash_flow() == Decimal("4800.00")
        assert uw.coc_return() == Decimal("0.1")

    def test_coc_return_without_cash_is_none(self):
        assert Underwriting(Decimal("2000"), Decimal("1600")).coc_return() is None
