"""Candidate Ranking.

Narrows name-search hits to a shortlist and scores each shortlisted
customer against the full PO (name, ship-to, billing, phone).
"""

from typing import List, Optional, Sequence, Tuple

from customer_resolver.matching import score_address, score_name, score_phone
from customer_resolver.models import (
    AddressInfo,
    CustomerMatch,
    DEFAULT_RESOLUTION_CONFIG,
    MatchScoreBreakdown,
    ResolutionConfig,
    ResolutionRequest,
)
from models.customers import CustomerRecord, ShipToRecord


def _pct(value: float) -> str:
    return f"{value:.0%}"


class CandidateRanker:
    """Scores customers for one resolution request.

    Example:
        ranker = CandidateRanker()
        shortlist = ranker.shortlist("Acme Corp", search_hits)
        match = ranker.score_candidate(request, customer_with_ship_tos)
    """

    def __init__(self, config: ResolutionConfig = DEFAULT_RESOLUTION_CONFIG):
        self.config = config

    def shortlist(
        self,
        customer_name: str,
        customers: Sequence[CustomerRecord],
    ) -> List[Tuple[CustomerRecord, float]]:
        """Candidates with name score >= the shortlist minimum, best first, capped."""
        scored = [(c, score_name(customer_name, c.customer_name)) for c in customers]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        kept = [pair for pair in scored if pair[1] >= self.config.shortlist_min_name_score]
        return kept[: self.config.shortlist_size]

    @staticmethod
    def best_ship_to(
        address: AddressInfo,
        ship_tos: Sequence[ShipToRecord],
    ) -> Tuple[Optional[ShipToRecord], float, bool]:
        """Best-scoring ship-to for ``address``.

        When both sides have a name, the name score is averaged in. Ties keep
        the earlier ship-to.

        Returns:
            (ship_to or None, score, is_default)
        """
        best: Optional[ShipToRecord] = None
        best_score = 0.0
        for ship_to in ship_tos:
            score = score_address(
                address,
                ship_to.address1,
                ship_to.city,
                ship_to.state,
                ship_to.zip_code,
                ship_to.address2,
            )
            if address.name and address.name.strip() and ship_to.name:
                score = (score + score_name(address.name, ship_to.name)) / 2
            if score > best_score:
                best, best_score = ship_to, score
        return best, best_score, bool(best and best.is_default)

    def score_candidate(self, request: ResolutionRequest, customer: CustomerRecord) -> CustomerMatch:
        """Composite score for one customer with its ship-tos loaded."""
        cfg = self.config
        breakdown = MatchScoreBreakdown()
        match = CustomerMatch(
            customer_number=customer.customer_number,
            ar_division_no=customer.ar_division_no,
            customer_no=customer.customer_no,
            customer_name=customer.customer_name,
        )

        # Name
        breakdown.name_score = score_name(request.customer_name, customer.customer_name)
        breakdown.details.append(
            f"Name match: {_pct(breakdown.name_score)} "
            f"('{request.customer_name}' vs '{customer.customer_name}')"
        )

        # Ship-to
        if request.ship_to_address is not None and customer.ship_to_addresses:
            ship_to, score, is_default = self.best_ship_to(request.ship_to_address, customer.ship_to_addresses)
            breakdown.ship_to_score = score
            match.is_default_ship_to = is_default
            if ship_to is not None:
                match.matched_ship_to_code = ship_to.ship_to_code
                match.warehouse_code = ship_to.warehouse_code
                match.ship_via = ship_to.ship_via
            breakdown.details.append(
                f"Ship-to match: {_pct(score)} "
                f"(matched code: {match.matched_ship_to_code or 'none'}, isDefault: {is_default})"
            )
            if is_default and score > cfg.default_bonus_min_ship_to_score:
                breakdown.default_ship_to_bonus = cfg.default_ship_to_bonus
                breakdown.details.append(f"Default ship-to bonus: +{_pct(breakdown.default_ship_to_bonus)}")
        else:
            breakdown.details.append("Ship-to match: N/A (no ship-to data)")

        # Billing
        if request.billing_address is not None:
            breakdown.billing_score = score_address(
                request.billing_address,
                customer.address1,
                customer.city,
                customer.state,
                customer.zip_code,
                customer.address2,
            )
            breakdown.details.append(f"Billing address match: {_pct(breakdown.billing_score)}")

        # Phone
        if request.phone and request.phone.strip():
            breakdown.phone_score = score_phone(request.phone, customer.phone)
            breakdown.details.append(f"Phone match: {_pct(breakdown.phone_score)}")

        total = (
            breakdown.name_score * cfg.name_weight
            + breakdown.ship_to_score * cfg.ship_to_weight
            + breakdown.billing_score * cfg.billing_weight
            + breakdown.phone_score * cfg.phone_weight
            + breakdown.default_ship_to_bonus
        )
        # Rounded so 0.7 + 0.1 compares equal to 0.8
        match.score = round(min(1.0, max(0.0, total)), 6)
        breakdown.details.append(f"Total weighted score: {_pct(match.score)}")

        match.score_breakdown = breakdown
        match.customer_details = customer
        return match
