"""API Routes Package."""

from api.routes import customers, health, inventory, sales_orders

__all__ = [
    "customers",
    "health",
    "inventory",
    "sales_orders",
]
