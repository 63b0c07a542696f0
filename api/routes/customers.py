"""Customer endpoints.

- GET  /api/v1/customers/search - Filtered customer search
- GET  /api/v1/customers/{customer_number} - Customer with ship-to addresses
- POST /api/v1/customers/{customer_number}/validate-shipto - Check an address
- POST /api/v1/customers/resolve - Resolve a PO customer
"""

from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from customer_resolver import ResolutionRequest, ResolutionResult
from models.customers import (
    CustomerRecord,
    CustomerSearchRequest,
    CustomerSearchResponse,
    ValidateShipToRequest,
    ValidateShipToResponse,
)
from models.health import ErrorResponse
from services import CustomerService

router = APIRouter()


def _service(request: Request) -> CustomerService:
    return request.app.state.customer_service


def _bad_request(error: str, error_code: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, error_code=error_code).model_dump(),
    )


@router.get("/search", response_model=CustomerSearchResponse)
async def search_customers(
    request: Request,
    name: Optional[str] = Query(default=None),
    city: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    phone: Optional[str] = Query(default=None),
    address: Optional[str] = Query(default=None),
    limit: Optional[int] = Query(default=None, ge=1),
):
    """Search by any combination of name, city, state, phone and address."""
    service = _service(request)
    search = CustomerSearchRequest(
        name=name,
        city=city,
        state=state,
        phone=phone,
        address=address,
        limit=limit or service.config.limits.search_result_limit,
    )
    if not search.has_criteria():
        return _bad_request("At least one search criterion is required", "MISSING_CRITERIA")
    return await run_in_threadpool(service.search, search)


@router.post("/resolve", response_model=ResolutionResult)
async def resolve_customer(request: Request, body: ResolutionRequest) -> ResolutionResult:
    """Resolve PO customer data to a Sage customer with a recommendation."""
    return await run_in_threadpool(_service(request).resolve, body)


@router.get("/{customer_number}", response_model=CustomerRecord)
async def get_customer(request: Request, customer_number: str):
    """Customer detail by "DD-NNNNNNN" (or a bare number in the default division)."""
    customer = await run_in_threadpool(_service(request).get_customer, customer_number)
    if customer is None:
        return _bad_request(f"Customer {customer_number} not found", "CUSTOMER_NOT_FOUND", 404)
    return customer


@router.post("/{customer_number}/validate-shipto", response_model=ValidateShipToResponse)
async def validate_ship_to(
    request: Request,
    customer_number: str,
    body: ValidateShipToRequest,
) -> ValidateShipToResponse:
    """Compare an address to the customer's ship-to addresses."""
    return await run_in_threadpool(_service(request).validate_ship_to, customer_number, body)
