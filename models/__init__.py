"""Models Package.

Pydantic contracts for the Sage 100 middleware API:
- Customers and ship-to addresses, search and ship-to validation
- Sales order requests and responses
- Inventory item validation
- Health and error responses
"""

from models.customers import (
    CustomerRecord,
    CustomerSearchRequest,
    CustomerSearchResponse,
    ShipToRecord,
    ValidateShipToRequest,
    ValidateShipToResponse,
    format_customer_number,
    parse_customer_number,
)

from models.sales_orders import (
    SalesOrderErrorCode,
    SalesOrderLine,
    SalesOrderRequest,
    SalesOrderResponse,
    ShipToAddress,
)

from models.inventory import (
    ItemCheckResponse,
    ItemValidationRequest,
    ItemValidationResult,
)

from models.health import (
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    # Customers
    "CustomerRecord",
    "CustomerSearchRequest",
    "CustomerSearchResponse",
    "ShipToRecord",
    "ValidateShipToRequest",
    "ValidateShipToResponse",
    "format_customer_number",
    "parse_customer_number",

    # Sales orders
    "SalesOrderErrorCode",
    "SalesOrderLine",
    "SalesOrderRequest",
    "SalesOrderResponse",
    "ShipToAddress",

    # Inventory
    "ItemCheckResponse",
    "ItemValidationRequest",
    "ItemValidationResult",

    # Health
    "ErrorResponse",
    "HealthResponse",
]
