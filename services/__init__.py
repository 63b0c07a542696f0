"""Services Package.

Synchronous Sage 100 operations. Each runs inside a pooled session lease.
"""

from services.customers import CustomerService
from services.inventory import InventoryService
from services.sales_orders import SalesOrderService

__all__ = [
    "CustomerService",
    "InventoryService",
    "SalesOrderService",
]
