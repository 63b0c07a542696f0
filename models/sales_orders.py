"""
Sales Order Models.

Request/response contracts for creating Sage 100 sales orders
(SO_SalesOrder_bus). A failed order is reported in the response with an
``error_code``; it is not an exception.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SalesOrderErrorCode(str, Enum):
    """Why a sales order was not created."""
    ORDER_NUMBER_ERROR = "ORDER_NUMBER_ERROR"     # nGetNextSalesOrderNo rejected
    SET_KEY_ERROR = "SET_KEY_ERROR"               # nSetKey rejected the new order number
    CUSTOMER_ERROR = "CUSTOMER_ERROR"             # Division or customer number rejected
    LINE_ERROR = "LINE_ERROR"                     # Item rejected or line write failed
    ORDER_WRITE_ERROR = "ORDER_WRITE_ERROR"       # Final nWrite rejected
    EXTERNAL_OPERATION_FAILURE = "EXTERNAL_OPERATION_FAILURE"  # Driver fault, session discarded
    SESSION_BUSY = "SESSION_BUSY"                 # No session within the timeout
    CANCELLED = "CANCELLED"                       # Caller cancelled mid-order


class ShipToAddress(BaseModel):
    """Explicit ship-to address written onto the order header."""
    name: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class SalesOrderLine(BaseModel):
    """One order line."""
    item_code: str = Field(..., min_length=1, description="Sage item code")
    quantity: float = Field(..., gt=0, description="Quantity ordered")
    unit_price: Optional[float] = Field(default=None, description="Overrides the item's price")
    description: Optional[str] = None
    warehouse_code: Optional[str] = Field(default=None, description="Overrides the order warehouse")

    @field_validator("item_code")
    @classmethod
    def _item_code_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Item code is required")
        return value.strip()


class SalesOrderRequest(BaseModel):
    """A sales order to create.

    Attributes:
        customer_number: "DD-NNNNNNN", or a bare number in ``ar_division_no``
        po_number: Customer PO number (CustomerPONo$)
        order_date: YYYYMMDD, defaults to today
        ship_to_code: Ship-to from customer resolution
        ship_to_address: Explicit address, written field by field
    """
    model_config = ConfigDict(populate_by_name=True)

    customer_number: str = Field(..., min_length=1, description="Customer number")
    po_number: str = Field(..., min_length=1, description="Customer PO number")
    order_date: Optional[str] = Field(default=None, description="YYYYMMDD")
    ship_date: Optional[str] = Field(default=None, description="YYYYMMDD")
    comment: Optional[str] = None
    ar_division_no: Optional[str] = Field(default=None, description="Division when the number has no prefix")

    ship_to_code: Optional[str] = None
    warehouse_code: Optional[str] = None
    ship_via: Optional[str] = None
    ship_to_address: Optional[ShipToAddress] = None

    lines: List[SalesOrderLine] = Field(..., min_length=1, description="At least one line item")


class SalesOrderResponse(BaseModel):
    """Outcome of a sales order request."""
    success: bool = False
    sales_order_number: Optional[str] = None
    message: Optional[str] = None
    error_code: Optional[SalesOrderErrorCode] = None
    error_message: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def failure(
        cls,
        error_code: SalesOrderErrorCode,
        error_message: str,
        warnings: Optional[List[str]] = None,
    ) -> "SalesOrderResponse":
        return cls(
            success=False,
            message="Failed to create sales order",
            error_code=error_code,
            error_message=error_message,
            warnings=warnings or [],
        )
