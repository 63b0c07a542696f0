"""
Customer Models.

Pydantic contracts for Sage 100 customers and their ship-to addresses, plus
the search and ship-to validation request/response shapes.

Customer numbers are exposed as "DD-NNNNNNN" (AR division + customer number).
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Records
# =============================================================================

class ShipToRecord(BaseModel):
    """A ship-to address on a customer (SO_ShipToAddress_svc)."""
    model_config = ConfigDict(populate_by_name=True)

    ship_to_code: str = Field(..., description="Ship-to code (e.g. '001', 'MAIN')")
    name: str = Field(default="", description="Ship-to name")
    address1: str = Field(default="")
    address2: str = Field(default="")
    city: str = Field(default="")
    state: str = Field(default="")
    zip_code: str = Field(default="")
    country: str = Field(default="")
    phone: str = Field(default="")

    # Order defaults for this ship-to
    warehouse_code: str = Field(default="", description="Default warehouse for orders shipped here")
    ship_via: str = Field(default="", description="Default ship-via method")
    is_default: bool = Field(default=False, description="Customer's primary ship-to")


class CustomerRecord(BaseModel):
    """A customer (AR_Customer_svc) with its ship-to addresses."""
    model_config = ConfigDict(populate_by_name=True)

    customer_number: str = Field(..., description="Combined 'DD-NNNNNNN' number")
    ar_division_no: str = Field(..., description="AR division")
    customer_no: str = Field(..., description="Customer number within the division")
    customer_name: str = Field(default="")
    status: str = Field(default="")

    # Billing address
    address1: str = Field(default="")
    address2: str = Field(default="")
    city: str = Field(default="")
    state: str = Field(default="")
    zip_code: str = Field(default="")
    country: str = Field(default="")
    phone: str = Field(default="")

    # Defaults
    price_level: str = Field(default="")
    tax_schedule: str = Field(default="")
    terms_code: str = Field(default="")
    default_ship_to_code: str = Field(default="", description="Primary ship-to code on the customer")

    default_ship_to: Optional[ShipToRecord] = None
    ship_to_addresses: List[ShipToRecord] = Field(default_factory=list)

    def attach_ship_tos(self, ship_tos: List[ShipToRecord]) -> "CustomerRecord":
        """Set ship-tos, flag the one matching default_ship_to_code, pick default_ship_to."""
        for ship_to in ship_tos:
            ship_to.is_default = bool(self.default_ship_to_code) and ship_to.ship_to_code == self.default_ship_to_code
        self.ship_to_addresses = ship_tos
        self.default_ship_to = next((s for s in ship_tos if s.is_default), ship_tos[0] if ship_tos else None)
        return self


def parse_customer_number(customer_number: str, default_division: str = "00") -> Tuple[str, str]:
    """Split "DD-NNNNNNN" into (division, customer_no).

    Numbers without a division prefix use ``default_division``.
    """
    value = (customer_number or "").strip()
    if len(value) > 3 and value[2] == "-":
        return value[:2], value[3:]
    return default_division, value


def format_customer_number(division: str, customer_no: str) -> str:
    return f"{division}-{customer_no}"


# =============================================================================
# Search
# =============================================================================

class CustomerSearchRequest(BaseModel):
    """Filters for a customer search. At least one must be supplied."""
    name: Optional[str] = Field(default=None, description="Customer name (fuzzy)")
    address: Optional[str] = Field(default=None, description="Address line 1 (substring)")
    city: Optional[str] = Field(default=None, description="City (substring)")
    state: Optional[str] = Field(default=None, description="State (exact)")
    phone: Optional[str] = Field(default=None, description="Phone (digits substring)")
    limit: int = Field(default=20, ge=1, description="Maximum results")

    def has_criteria(self) -> bool:
        return any((self.name, self.address, self.city, self.state, self.phone))

    def describe(self) -> str:
        parts = []
        for label in ("name", "city", "state", "phone", "address"):
            value = getattr(self, label)
            if value:
                parts.append(f"{label}='{value}'")
        return ", ".join(parts)


class CustomerSearchResponse(BaseModel):
    customers: List[CustomerRecord] = Field(default_factory=list)
    total_count: int = 0
    search_criteria: Optional[str] = None


# =============================================================================
# Ship-to validation
# =============================================================================

class ValidateShipToRequest(BaseModel):
    """Address to check against a customer's ship-tos."""
    name: Optional[str] = None
    address1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class ValidateShipToResponse(BaseModel):
    matched: bool = False
    is_default_ship_to: bool = False
    matched_ship_to_code: Optional[str] = None
    warehouse_code: Optional[str] = None
    ship_via: Optional[str] = None
    match_confidence: float = 0.0
    matched_address: Optional[ShipToRecord] = None
    differences: List[str] = Field(default_factory=list)
