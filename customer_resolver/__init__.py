"""Customer Resolver Module.

Resolves customer data read off a purchase order (name, ship-to, billing,
phone) to a Sage 100 customer with a weighted confidence score.

Components:
- normalize: Name, address and phone normalization
- matching: Field and address scoring
- ranker: Shortlisting and composite scoring
- resolver: Core resolution algorithm and recommendation policy
- models: Pydantic models for requests, matches and results
"""

from customer_resolver.models import (
    AddressInfo,
    CustomerMatch,
    DEFAULT_RESOLUTION_CONFIG,
    MatchScoreBreakdown,
    Recommendation,
    ResolutionConfig,
    ResolutionFailure,
    ResolutionRequest,
    ResolutionResult,
)
from customer_resolver.ranker import CandidateRanker
from customer_resolver.resolver import CustomerSource, ResolutionEngine

__all__ = [
    "AddressInfo",
    "CandidateRanker",
    "CustomerMatch",
    "CustomerSource",
    "DEFAULT_RESOLUTION_CONFIG",
    "MatchScoreBreakdown",
    "Recommendation",
    "ResolutionConfig",
    "ResolutionEngine",
    "ResolutionFailure",
    "ResolutionRequest",
    "ResolutionResult",
]
