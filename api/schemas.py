from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from models.loan_inputs import WeightBasis


class LoanTermsIn(BaseModel):
    principal: Decimal
    annual_rate: Decimal
    term_months: int


class PropertyIn(BaseModel):
    property_id: Union[str, int]
    appraised_value: Decimal
    monthly_gross_rent: Decimal = Decimal("0")
    monthly_other_income: Decimal = Decimal("0")
    monthly_taxes: Decimal = Decimal("0")
    monthly_insurance: Decimal = Decimal("0")
    monthly_hoa: Decimal = Decimal("0")
    monthly_flood_insurance: Decimal = Decimal("0")
    weight_basis: WeightBasis = WeightBasis.BY_VALUE


class ConstraintsIn(BaseModel):
    # Omitted fields fall back to api.config defaults.
    min_dscr: Optional[Decimal] = None
    max_ltv_per_property: Optional[Decimal] = None
    no_ltv_ceiling: bool = False
    min_allocation_floor: Decimal = Decimal("0")
    max_iterations: Optional[int] = None
    convergence_tolerance: Optional[Decimal] = None


class PaymentRequest(BaseModel):
    principal: Decimal
    annual_rate: Decimal
    term_months: int


class DSCRRequest(BaseModel):
    noi_monthly: Decimal
    debt_service_monthly: Decimal
    principal: Optional[Decimal] = None
    appraised_value: Optional[Decimal] = None


class SizeLoanRequest(BaseModel):
    subject: PropertyIn
    annual_rate: Decimal
    term_months: int
    min_dscr: Decimal = Decimal("1.20")
    max_ltv: Optional[Decimal] = Decimal("0.75")


class AllocationRequest(BaseModel):
    loan: LoanTermsIn
    properties: List[PropertyIn]
    constraints: Optional[ConstraintsIn] = None
    include_narrative: bool = True


class BlanketMetricsRequest(BaseModel):
    loan: LoanTermsIn
    properties: List[PropertyIn]
    # None means an even split.
    allocations: Optional[List[Decimal]] = None


class CalculationResponse(BaseModel):
    """
    Loose response model; wraps whatever the calculator returned.
    """
    success: bool
    data: Dict[str, Any]
