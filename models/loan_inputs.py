"""
loan_inputs.py

Request-side values for a blanket loan calculation:
- LoanTerms: principal, rate and term of the single blanket note
- PropertyFinancials: monthly income/expense lines and value of one collateral property
- AllocationConstraints: per-property limits and iteration bounds

Numeric fields are coerced to Decimal on construction. Domain checks run in
validate(), which the calculators call before doing any work.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from models.currency import ZERO, to_decimal, to_money, to_money_floor
from models.errors import InvalidInput


class WeightBasis(str, Enum):
    BY_VALUE = "BY_VALUE"
    BY_INCOME = "BY_INCOME"


def _coerce(instance, *names: str) -> None:
    for name in names:
        object.__setattr__(instance, name, to_decimal(getattr(instance, name)))


@dataclass(frozen=True)
class LoanTerms:
    principal: Decimal
    annual_rate: Decimal
    term_months: int

    def __post_init__(self):
        _coerce(self, "principal", "annual_rate")

    def validate(self) -> None:
        if self.principal < 0:
            raise InvalidInput(f"principal must be >= 0, got {self.principal}")
        if self.annual_rate < 0 or self.annual_rate >= 1:
            raise InvalidInput(f"annual_rate must be in [0, 1), got {self.annual_rate}")
        if isinstance(self.term_months, bool) or not isinstance(self.term_months, int):
            raise InvalidInput(f"term_months must be an integer, got {self.term_months!r}")
        if self.term_months <= 0:
            raise InvalidInput(f"term_months must be positive, got {self.term_months}")


_MONEY_FIELDS = (
    "monthly_gross_rent",
    "monthly_other_income",
    "monthly_taxes",
    "monthly_insurance",
    "monthly_hoa",
    "monthly_flood_insurance",
)


@dataclass(frozen=True)
class PropertyFinancials:
    property_id: Any
    appraised_value: Decimal
    monthly_gross_rent: Decimal = ZERO
    monthly_other_income: Decimal = ZERO
    monthly_taxes: Decimal = ZERO
    monthly_insurance: Decimal = ZERO
    monthly_hoa: Decimal = ZERO
    monthly_flood_insurance: Decimal = ZERO
    weight_basis: WeightBasis = WeightBasis.BY_VALUE

    def __post_init__(self):
        _coerce(self, "appraised_value", *_MONEY_FIELDS)
        try:
            object.__setattr__(self, "weight_basis", WeightBasis(self.weight_basis))
        except ValueError:
            raise InvalidInput(f"Unknown weight_basis {self.weight_basis!r}")

    @property
    def gross_income(self) -> Decimal:
        return self.monthly_gross_rent + self.monthly_other_income

    @property
    def monthly_carrying_costs(self) -> Decimal:
        """Taxes, insurance, HOA and flood insurance."""
        return (
            self.monthly_taxes
            + self.monthly_insurance
            + self.monthly_hoa
            + self.monthly_flood_insurance
        )

    @property
    def noi(self) -> Decimal:
        return to_money(self.gross_income - self.monthly_carrying_costs)

    def validate(self) -> None:
        if self.appraised_value <= 0:
            raise InvalidInput(
                f"Property {self.property_id}: appraised_value must be positive, got {self.appraised_value}"
            )
        for name in _MONEY_FIELDS:
            if getattr(self, name) < 0:
                raise InvalidInput(f"Property {self.property_id}: {name} must be >= 0")


@dataclass(frozen=True)
class AllocationConstraints:
    min_dscr: Decimal = Decimal("1.00")
    max_ltv_per_property: Optional[Decimal] = Decimal("0.80")
    min_allocation_floor: Decimal = ZERO
    max_iterations: int = 50
    convergence_tolerance: Decimal = Decimal("1.00")

    def __post_init__(self):
        _coerce(self, "min_dscr", "min_allocation_floor", "convergence_tolerance")
        if self.max_ltv_per_property is not None:
            _coerce(self, "max_ltv_per_property")

    def validate(self) -> None:
        if self.min_dscr <= 0:
            raise InvalidInput(f"min_dscr must be positive, got {self.min_dscr}")
        if self.max_ltv_per_property is not None and self.max_ltv_per_property <= 0:
            raise InvalidInput(
                f"max_ltv_per_property must be positive, got {self.max_ltv_per_property}"
            )
        if self.min_allocation_floor < 0:
            raise InvalidInput(
                f"min_allocation_floor must be >= 0, got {self.min_allocation_floor}"
            )
        if isinstance(self.max_iterations, bool) or not isinstance(self.max_iterations, int):
            raise InvalidInput(f"max_iterations must be an integer, got {self.max_iterations!r}")
        if self.max_iterations <= 0:
            raise InvalidInput(f"max_iterations must be positive, got {self.max_iterations}")
        if self.convergence_tolerance < 0:
            raise InvalidInput(
                f"convergence_tolerance must be >= 0, got {self.convergence_tolerance}"
            )

    def ceiling_for(self, prop: PropertyFinancials) -> Optional[Decimal]:
        if self.max_ltv_per_property is None:
            return None
        return to_money_floor(prop.appraised_value * self.max_ltv_per_property)
