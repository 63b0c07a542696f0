"""Inventory endpoints."""

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from models.health import ErrorResponse
from models.inventory import ItemCheckResponse, ItemValidationRequest, ItemValidationResult

router = APIRouter()


@router.post("/validate", response_model=ItemValidationResult)
async def validate_item_codes(request: Request, body: ItemValidationRequest):
    """Check item codes before creating an order. 200 even when some are invalid."""
    if not body.item_codes:
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(
                error="At least one item code is required", error_code="MISSING_ITEM_CODES"
            ).model_dump(),
        )
    service = request.app.state.inventory_service
    return await run_in_threadpool(service.validate_item_codes, body.item_codes)


@router.get("/check/{item_code}", response_model=ItemCheckResponse)
async def check_item_exists(request: Request, item_code: str) -> ItemCheckResponse:
    service = request.app.state.inventory_service
    exists = await run_in_threadpool(service.item_exists, item_code)
    return ItemCheckResponse(
        item_code=item_code,
        exists=exists,
        message="Item exists in Sage 100" if exists else "Item not found in Sage 100",
    )
