"""Customer Resolution Data Models.

This module defines the Pydantic models for customer resolution:
- AddressInfo: An address as read off a purchase order
- ResolutionRequest: What the PO says about the customer
- CustomerMatch: One scored Sage customer (best ship-to included)
- ResolutionResult: The decision plus the ranked candidates
- ResolutionConfig: Weights and thresholds
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from models.customers import CustomerRecord


class Recommendation(str, Enum):
    """What the caller should do with the PO."""
    AUTO_PROCESS = "AUTO_PROCESS"    # Create the order without review
    MANUAL_REVIEW = "MANUAL_REVIEW"  # A person must confirm the match
    REJECTED = "REJECTED"            # No usable match


class ResolutionFailure(Exception):
    """The record source failed during search or detail fetch.

    Distinct from "no candidates", which is a REJECTED result.
    """

    def __init__(self, message: str, stage: str = "search"):
        super().__init__(message)
        self.stage = stage


class AddressInfo(BaseModel):
    """An address extracted from a purchase order. Every field is optional."""
    name: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    phone: Optional[str] = None


class ResolutionRequest(BaseModel):
    """Customer data from a purchase order.

    Attributes:
        customer_name: Free-text customer name (required)
        ship_to_address: Ship-to block, the strongest disambiguator
        billing_address: Bill-to block
        phone: Customer phone number
        min_confidence: Score required for AUTO_PROCESS
    """
    customer_name: str = Field(..., description="Customer name as printed on the PO")
    ship_to_address: Optional[AddressInfo] = None
    billing_address: Optional[AddressInfo] = None
    phone: Optional[str] = None
    min_confidence: float = Field(default=0.8, ge=0.0, le=1.0)

    @field_validator("customer_name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("customer_name is required")
        return value


class MatchScoreBreakdown(BaseModel):
    """Component scores behind one candidate's total."""
    name_score: float = 0.0
    ship_to_score: float = 0.0
    billing_score: float = 0.0
    phone_score: float = 0.0
    default_ship_to_bonus: float = 0.0
    details: List[str] = Field(default_factory=list)


class CustomerMatch(BaseModel):
    """A scored candidate customer."""
    customer_number: str = Field(..., description="'DD-NNNNNNN'")
    ar_division_no: str = ""
    customer_no: str = ""
    customer_name: str = ""
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    score_breakdown: MatchScoreBreakdown = Field(default_factory=MatchScoreBreakdown)

    # Best ship-to for the PO address
    matched_ship_to_code: Optional[str] = None
    is_default_ship_to: bool = False
    warehouse_code: Optional[str] = None
    ship_via: Optional[str] = None

    customer_details: Optional[CustomerRecord] = None


class ResolutionResult(BaseModel):
    """Outcome of resolving one PO customer.

    ``resolved`` is True only for AUTO_PROCESS.
    """
    resolved: bool = False
    confidence: float = 0.0
    recommendation: Recommendation = Recommendation.REJECTED
    best_match: Optional[CustomerMatch] = None
    candidates: List[CustomerMatch] = Field(default_factory=list)
    message: str = ""
    scoring_details: List[str] = Field(default_factory=list)
    resolution_time_ms: Optional[int] = None


class ResolutionConfig(BaseModel):
    """Weights and thresholds for customer resolution."""
    name_weight: float = Field(default=0.20, description="Weight of the name score")
    ship_to_weight: float = Field(default=0.50, description="Weight of the best ship-to score")
    billing_weight: float = Field(default=0.20, description="Weight of the billing address score")
    phone_weight: float = Field(default=0.10, description="Weight of the phone score")

    default_ship_to_bonus: float = Field(default=0.10, description="Bonus when the default ship-to matches")
    default_bonus_min_ship_to_score: float = Field(
        default=0.7, description="Ship-to score that must be exceeded for the bonus"
    )

    shortlist_min_name_score: float = Field(default=0.5, description="Name score to reach detail fetch")
    shortlist_size: int = Field(default=5, description="Candidates whose details are fetched")
    review_threshold: float = Field(default=0.5, description="Below this the result is REJECTED")


DEFAULT_RESOLUTION_CONFIG = ResolutionConfig()
