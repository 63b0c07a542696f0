"""Customer Resolution Algorithm.

This module implements the customer resolution algorithm that:
1. Searches Sage customers by the PO's customer name (fuzzy predicate)
2. Shortlists the best name matches
3. Loads each shortlisted customer with its ship-to addresses
4. Scores name, ship-to, billing and phone into one weighted confidence
5. Recommends AUTO_PROCESS, MANUAL_REVIEW or REJECTED

The ship-to address carries half the weight: two customers can share a name,
but rarely a delivery address.
"""

import time
from typing import List, Optional, Protocol

from connectors.record_session import ExternalCallError, ExternalOperationFailure
from core.observability.logging import get_logger
from core.pool.errors import HandleCorrupted
from customer_resolver.models import (
    CustomerMatch,
    DEFAULT_RESOLUTION_CONFIG,
    Recommendation,
    ResolutionConfig,
    ResolutionFailure,
    ResolutionRequest,
    ResolutionResult,
)
from customer_resolver.normalize import extract_search_name
from customer_resolver.ranker import CandidateRanker
from models.customers import CustomerRecord

logger = get_logger(__name__)

# Record source faults that turn into ResolutionFailure
_SOURCE_FAULTS = (ExternalCallError, ExternalOperationFailure, HandleCorrupted)

ISSUE_NOT_DEFAULT_SHIP_TO = "PO ship-to does NOT match customer's default ship-to address"
ISSUE_NO_WAREHOUSE = "Ship-to address has no warehouse code configured in Sage"
ISSUE_NO_SHIP_VIA = "Ship-to address has no ship via method configured in Sage"


class CustomerSource(Protocol):
    """Protocol for customer record retrieval.

    ``connectors.sage100.CustomerRecordSource`` implements this over a leased
    BOI session.
    """

    def search_by_name(self, name: str) -> List[CustomerRecord]:
        """Customers whose name passes the fuzzy name predicate."""
        ...

    def get_customer(self, division: str, customer_no: str) -> Optional[CustomerRecord]:
        """One customer with ship-to addresses loaded, or None."""
        ...


class ResolutionEngine:
    """Resolves a PO customer to a Sage 100 customer.

    Example:
        engine = ResolutionEngine()

        with pool.lease(operation="resolve_customer") as lease:
            source = CustomerRecordSource(lease, config.limits)
            result = engine.resolve(request, source)

        if result.resolved:
            print(f"Matched to: {result.best_match.customer_number}")
    """

    def __init__(self, config: ResolutionConfig = DEFAULT_RESOLUTION_CONFIG):
        self.config = config
        self.ranker = CandidateRanker(config)

    def resolve(self, request: ResolutionRequest, source: CustomerSource) -> ResolutionResult:
        """Resolve ``request`` against ``source``.

        Raises:
            ResolutionFailure: The record source failed during search or detail fetch
        """
        start_time = time.time()
        result = self._resolve(request, source)
        result.resolution_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Resolved '{request.customer_name}': {result.recommendation.value} "
            f"(confidence {result.confidence:.2f}, {len(result.candidates)} candidates, "
            f"{result.resolution_time_ms}ms)"
        )
        return result

    def _resolve(self, request: ResolutionRequest, source: CustomerSource) -> ResolutionResult:
        # Step 1: Search by name
        search_name = extract_search_name(request.customer_name)
        try:
            hits = source.search_by_name(search_name)
        except _SOURCE_FAULTS as e:
            raise ResolutionFailure(f"Customer search failed: {e}", stage="search") from e

        if not hits:
            return ResolutionResult(message=f"No customers found matching name '{search_name}'")

        # Step 2: Shortlist by name score
        shortlist = self.ranker.shortlist(request.customer_name, hits)
        logger.debug(f"{len(hits)} name hits, {len(shortlist)} shortlisted")

        # Step 3: Load details and score
        candidates: List[CustomerMatch] = []
        for hit, _name_score in shortlist:
            try:
                customer = source.get_customer(hit.ar_division_no, hit.customer_no)
            except _SOURCE_FAULTS as e:
                raise ResolutionFailure(
                    f"Customer detail fetch failed for {hit.customer_number}: {e}", stage="detail"
                ) from e
            if customer is None:
                logger.warning(f"Skipping {hit.customer_number}: details not found")
                continue
            candidates.append(self.ranker.score_candidate(request, customer))

        if not candidates:
            return ResolutionResult(message="Could not score any customer matches")

        # Step 4: Rank and decide
        candidates.sort(key=lambda c: c.score, reverse=True)
        return self._decide(request, candidates)

    def _decide(self, request: ResolutionRequest, candidates: List[CustomerMatch]) -> ResolutionResult:
        best = candidates[0]
        confidence = best.score
        issues: List[str] = []

        # The review floor wins over a caller's lower min_confidence
        if confidence < self.config.review_threshold:
            recommendation = Recommendation.REJECTED
        elif confidence >= request.min_confidence:
            recommendation = Recommendation.AUTO_PROCESS
            if not best.is_default_ship_to:
                issues.append(ISSUE_NOT_DEFAULT_SHIP_TO)
            issues.extend(self._ship_to_setup_issues(best))
            if issues:
                recommendation = Recommendation.MANUAL_REVIEW
        else:
            recommendation = Recommendation.MANUAL_REVIEW
            issues.extend(self._ship_to_setup_issues(best))

        pct = f"{confidence:.0%}"
        if recommendation == Recommendation.AUTO_PROCESS:
            message = f"High confidence match: {best.customer_name} (Score: {pct})"
        elif recommendation == Recommendation.MANUAL_REVIEW:
            message = (
                f"Medium confidence match: {best.customer_name} (Score: {pct}). "
                "Manual verification recommended."
            )
        else:
            message = (
                f"Low confidence: Best match is {best.customer_name} (Score: {pct}). "
                "Cannot auto-process."
            )
        if issues:
            message += " - ISSUES: " + "; ".join(issues)

        scoring_details = list(best.score_breakdown.details)
        scoring_details.extend(f"ISSUE: {issue}" for issue in issues)

        return ResolutionResult(
            resolved=recommendation == Recommendation.AUTO_PROCESS,
            confidence=confidence,
            recommendation=recommendation,
            best_match=best,
            candidates=candidates,
            message=message,
            scoring_details=scoring_details,
        )

    @staticmethod
    def _ship_to_setup_issues(match: CustomerMatch) -> List[str]:
        """Missing warehouse / ship-via on the matched ship-to (or no ship-to at all)."""
        issues = []
        if not match.warehouse_code:
            issues.append(ISSUE_NO_WAREHOUSE)
        if not match.ship_via:
            issues.append(ISSUE_NO_SHIP_VIA)
        return issues
