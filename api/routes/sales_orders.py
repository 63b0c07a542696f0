"""Sales order endpoints."""

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from models.sales_orders import SalesOrderErrorCode, SalesOrderRequest, SalesOrderResponse

router = APIRouter()

# Failures caused by Sage availability rather than the order itself
_UNAVAILABLE_CODES = {
    SalesOrderErrorCode.SESSION_BUSY,
    SalesOrderErrorCode.EXTERNAL_OPERATION_FAILURE,
}


@router.post("", response_model=SalesOrderResponse, status_code=201)
async def create_sales_order(request: Request, body: SalesOrderRequest):
    """Create a sales order.

    201 on success, 422 when Sage rejects the order, 503 when Sage is busy
    or unavailable.
    """
    service = request.app.state.sales_order_service
    response: SalesOrderResponse = await run_in_threadpool(service.create_sales_order, body)

    if response.success:
        status_code = 201
    elif response.error_code in _UNAVAILABLE_CODES:
        status_code = 503
    else:
        status_code = 422
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))
