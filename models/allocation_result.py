"""
allocation_result.py

Outputs of a blanket allocation: one PropertyAllocation per collateral
property plus request-level totals and the termination reason.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from models.risk_scoring import RiskTier
from models.underwriting import Ratio, is_uncapped


class Termination(str, Enum):
    CONVERGED = "CONVERGED"
    NO_SURPLUS = "NO_SURPLUS"
    MAX_ITERATIONS = "MAX_ITERATIONS"


def _ratio_out(value: Ratio) -> Optional[Decimal]:
    return None if is_uncapped(value) else value


@dataclass(frozen=True)
class PropertyAllocation:
    property_id: Any
    allocated_principal: Decimal
    monthly_debt_service: Decimal
    dscr: Ratio
    ltv: Decimal
    risk_score: int
    risk_tier: RiskTier

    noi: Decimal = Decimal("0")
    monthly_pitia: Decimal = Decimal("0")
    max_supported_principal: Decimal = Decimal("0")
    ltv_ceiling: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "property_id": self.property_id,
            "allocated_principal": self.allocated_principal,
            "monthly_debt_service": self.monthly_debt_service,
            "monthly_pitia": self.monthly_pitia,
            "noi": self.noi,
            "dscr": _ratio_out(self.dscr),
            "dscr_uncapped": is_uncapped(self.dscr),
            "ltv": self.ltv,
            "ltv_ceiling": self.ltv_ceiling,
            "max_supported_principal": self.max_supported_principal,
            "risk_score": self.risk_score,
            "risk_tier": self.risk_tier.value,
        }


@dataclass(frozen=True)
class AllocationResult:
    allocations: Tuple[PropertyAllocation, ...]
    total_allocated: Decimal
    feasible: bool
    iterations_used: int
    shortfall_amount: Decimal
    termination: Termination

    aggregate_dscr: Ratio = Decimal("0")
    aggregate_ltv: Decimal = Decimal("0")
    total_monthly_debt_service: Decimal = Decimal("0")
    warnings: Tuple[str, ...] = ()

    def by_id(self, property_id: Any) -> PropertyAllocation:
        for alloc in self.allocations:
            if alloc.property_id == property_id:
                return alloc
        raise KeyError(property_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feasible": self.feasible,
            "termination": self.termination.value,
            "iterations_used": self.iterations_used,
            "total_allocated": self.total_allocated,
            "shortfall_amount": self.shortfall_amount,
            "total_monthly_debt_service": self.total_monthly_debt_service,
            "aggregate_dscr": _ratio_out(self.aggregate_dscr),
            "aggregate_ltv": self.aggregate_ltv,
            "warnings": list(self.warnings),
            "allocations": [a.to_dict() for a in self.allocations],
        }
