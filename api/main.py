import logging
from decimal import Decimal
from typing import Any, Dict

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from api import config
from api.schemas import (
    AllocationRequest,
    BlanketMetricsRequest,
    CalculationResponse,
    ConstraintsIn,
    DSCRRequest,
    LoanTermsIn,
    PaymentRequest,
    PropertyIn,
    SizeLoanRequest,
)
from engine.blanket_allocation_engine import BlanketAllocationEngine
from models.blanket_metrics import BlanketMetrics
from models.dscr_loan_model import DSCRLoanModel
from models.errors import InvalidInput
from models.loan_inputs import AllocationConstraints, LoanTerms, PropertyFinancials
from models.narrative_builder import NarrativeBuilder
from models.risk_scoring import RiskScoring
from models.underwriting import Underwriting, is_uncapped, ltv
from services.loan_calculator import LoanCalculator

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=config.API_TITLE,
    description="HTTP API wrapper around the blanket loan allocation and DSCR calculators.",
    version=config.API_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# The engine holds no per-request state, so one instance serves every request.
engine = BlanketAllocationEngine()
risk_scoring = RiskScoring()


# ---------------------------------------------------------
# Request -> domain conversion
# ---------------------------------------------------------

def _jsonable(value: Any) -> Any:
    """Decimals become strings so money keeps its exact cents on the wire."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _loan(payload: LoanTermsIn) -> LoanTerms:
    return LoanTerms(
        principal=payload.principal,
        annual_rate=payload.annual_rate,
        term_months=payload.term_months,
    )


def _property(payload: PropertyIn) -> PropertyFinancials:
    return PropertyFinancials(
        property_id=payload.property_id,
        appraised_value=payload.appraised_value,
        monthly_gross_rent=payload.monthly_gross_rent,
        monthly_other_income=payload.monthly_other_income,
        monthly_taxes=payload.monthly_taxes,
        monthly_insurance=payload.monthly_insurance,
        monthly_hoa=payload.monthly_hoa,
        monthly_flood_insurance=payload.monthly_flood_insurance,
        weight_basis=payload.weight_basis,
    )


def _constraints(payload: ConstraintsIn) -> AllocationConstraints:
    if payload.no_ltv_ceiling:
        max_ltv = None
    elif payload.max_ltv_per_property is not None:
        max_ltv = payload.max_ltv_per_property
    else:
        max_ltv = config.DEFAULT_MAX_LTV

    return AllocationConstraints(
        min_dscr=payload.min_dscr if payload.min_dscr is not None else config.DEFAULT_MIN_DSCR,
        max_ltv_per_property=max_ltv,
        min_allocation_floor=payload.min_allocation_floor,
        max_iterations=(
            payload.max_iterations if payload.max_iterations is not None
            else config.DEFAULT_MAX_ITERATIONS
        ),
        convergence_tolerance=(
            payload.convergence_tolerance if payload.convergence_tolerance is not None
            else config.DEFAULT_CONVERGENCE_TOLERANCE
        ),
    )


def _respond(data: Dict[str, Any]) -> CalculationResponse:
    return CalculationResponse(success=True, data=_jsonable(data))


def _bad_request(e: InvalidInput) -> HTTPException:
    logger.info("Rejected request: %s", e)
    return HTTPException(status_code=400, detail=str(e))


def _server_error(e: Exception, action: str) -> HTTPException:
    logger.exception("%s failed", action)
    return HTTPException(status_code=500, detail=str(e))


# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------

@app.get("/health", tags=["system"])
def health_check() -> Dict[str, Any]:
    """
    Simple health check endpoint.
    """
    return {"status": "ok", "message": "Blanket allocation API is running."}


@app.post("/payment", response_model=CalculationResponse, tags=["amortization"])
def calculate_payment(payload: PaymentRequest) -> CalculationResponse:
    try:
        calc = LoanCalculator(payload.principal, payload.annual_rate, payload.term_months)
        return _respond({
            "monthly_payment": calc.monthly_payment(),
            "interest_only_payment": calc.interest_only_payment(),
            "annual_debt_service": calc.annual_debt_service(),
        })
    except InvalidInput as e:
        raise _bad_request(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error(e, "Payment calculation")


@app.post("/dscr", response_model=CalculationResponse, tags=["underwriting"])
def calculate_dscr(payload: DSCRRequest) -> CalculationResponse:
    """
    Single-property coverage. LTV and risk are included when principal
    and appraised value are both supplied.
    """
    try:
        uw = Underwriting(payload.noi_monthly, payload.debt_service_monthly)
        coverage = uw.dscr()
        data: Dict[str, Any] = {
            "dscr": None if is_uncapped(coverage) else coverage,
            "dscr_uncapped": is_uncapped(coverage),
            "monthly_cash_flow": uw.monthly_cash_flow(),
            "annual_cash_flow": uw.annual_cash_flow(),
        }
        if payload.principal is not None and payload.appraised_value is not None:
            leverage = ltv(payload.principal, payload.appraised_value)
            data["ltv"] = leverage
            data.update(risk_scoring.evaluate(coverage, leverage))
        return _respond(data)
    except InvalidInput as e:
        raise _bad_request(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error(e, "DSCR calculation")


@app.post("/size-loan", response_model=CalculationResponse, tags=["underwriting"])
def size_loan(payload: SizeLoanRequest) -> CalculationResponse:
    try:
        model = DSCRLoanModel(
            prop=_property(payload.subject),
            annual_rate=payload.annual_rate,
            term_months=payload.term_months,
            min_dscr=payload.min_dscr,
            max_ltv=payload.max_ltv,
        )
        return _respond(model.summary())
    except InvalidInput as e:
        raise _bad_request(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error(e, "Loan sizing")


@app.post("/allocate", response_model=CalculationResponse, tags=["allocation"])
def run_allocation(payload: AllocationRequest) -> CalculationResponse:
    """
    Allocate a blanket loan across its properties.

    An infeasible allocation is still a 200: check data.feasible.
    """
    try:
        loan = _loan(payload.loan)
        properties = [_property(p) for p in payload.properties]
        constraints = _constraints(payload.constraints or ConstraintsIn())

        result = engine.allocate(loan, properties, constraints)

        data = result.to_dict()
        if payload.include_narrative:
            data["narrative"] = NarrativeBuilder(loan, constraints, result).build_narrative()
        return _respond(data)

    except InvalidInput as e:
        raise _bad_request(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error(e, "Allocation")


@app.post("/blanket-metrics", response_model=CalculationResponse, tags=["allocation"])
def blanket_metrics(payload: BlanketMetricsRequest) -> CalculationResponse:
    try:
        metrics = BlanketMetrics(
            loan=_loan(payload.loan),
            properties=[_property(p) for p in payload.properties],
            allocations=payload.allocations,
        )
        return _respond(metrics.summary())
    except InvalidInput as e:
        raise _bad_request(e)
    except HTTPException:
        raise
    except Exception as e:
        raise _server_error(e, "Blanket metrics")


if __name__ == "__main__":
    uvicorn.run("api.main:app", host=config.HOST, port=config.PORT)
