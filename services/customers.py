"""
Customer Service.

Customer search, detail, ship-to validation and PO customer resolution.
Every call holds one pooled session for its whole duration.

Pool errors (PoolTimeout, PoolDisposed, HandleCreationFailure) propagate to
the caller; the API maps them to 503.
"""

import threading
import time
from typing import Optional

from connectors.sage100.records import CustomerRecordSource
from core.config import SageConfig
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics
from core.pool import SessionPool
from customer_resolver import (
    DEFAULT_RESOLUTION_CONFIG,
    ResolutionConfig,
    ResolutionEngine,
    ResolutionRequest,
    ResolutionResult,
)
from customer_resolver.matching import compare_address
from models.customers import (
    CustomerRecord,
    CustomerSearchRequest,
    CustomerSearchResponse,
    ValidateShipToRequest,
    ValidateShipToResponse,
    parse_customer_number,
)

logger = get_logger(__name__)

SHIP_TO_MATCH_THRESHOLD = 0.8


class CustomerService:
    """Customer operations against Sage 100.

    Usage:
        service = CustomerService(pool, sage_config)
        result = service.resolve(ResolutionRequest(customer_name="Acme Corp", ...))
    """

    def __init__(
        self,
        pool: SessionPool,
        config: SageConfig,
        resolution_config: Optional[ResolutionConfig] = None,
    ):
        self.pool = pool
        self.config = config
        if resolution_config is None:
            resolution_config = DEFAULT_RESOLUTION_CONFIG.model_copy(
                update={"shortlist_size": config.limits.shortlist_size}
            )
        self.engine = ResolutionEngine(resolution_config)

    def search(
        self,
        request: CustomerSearchRequest,
        cancel: Optional[threading.Event] = None,
    ) -> CustomerSearchResponse:
        """Customers matching every supplied filter (capped scan)."""
        criteria = request.describe()
        logger.info(f"Searching customers: {criteria}")

        with self.pool.lease(cancel=cancel, operation="search_customers") as lease:
            source = CustomerRecordSource(lease, self.config.limits)
            customers, _scanned = source.search(request)

        return CustomerSearchResponse(
            customers=customers,
            total_count=len(customers),
            search_criteria=criteria,
        )

    def get_customer(
        self,
        customer_number: str,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[CustomerRecord]:
        """One customer with ship-to addresses, or None."""
        division, customer_no = parse_customer_number(customer_number, self.config.default_division)

        with with_correlation(customer_number=f"{division}-{customer_no}"):
            with self.pool.lease(cancel=cancel, operation="get_customer") as lease:
                source = CustomerRecordSource(lease, self.config.limits)
                return source.get_customer(division, customer_no)

    def validate_ship_to(
        self,
        customer_number: str,
        request: ValidateShipToRequest,
        cancel: Optional[threading.Event] = None,
    ) -> ValidateShipToResponse:
        """Check an address against a customer's ship-tos.

        The best ship-to wins (ties keep the first); matched when its
        confidence reaches 0.8.
        """
        customer = self.get_customer(customer_number, cancel=cancel)
        if customer is None:
            return ValidateShipToResponse(differences=["Customer not found"])
        if not customer.ship_to_addresses:
            return ValidateShipToResponse(differences=["No ship-to addresses found for customer"])

        best = None
        best_score = -1.0
        best_differences = []
        for ship_to in customer.ship_to_addresses:
            score, differences = compare_address(
                request.name, request.address1, request.city, request.state, request.zip_code,
                ship_to.name, ship_to.address1, ship_to.city, ship_to.state, ship_to.zip_code,
            )
            if score > best_score:
                best, best_score, best_differences = ship_to, score, differences

        logger.info(
            f"Ship-to validation for {customer.customer_number}: best {best.ship_to_code} "
            f"({best_score:.0%})"
        )
        return ValidateShipToResponse(
            matched=best_score >= SHIP_TO_MATCH_THRESHOLD,
            is_default_ship_to=best.is_default,
            matched_ship_to_code=best.ship_to_code,
            warehouse_code=best.warehouse_code or None,
            ship_via=best.ship_via or None,
            match_confidence=best_score,
            matched_address=best,
            differences=best_differences,
        )

    def resolve(
        self,
        request: ResolutionRequest,
        cancel: Optional[threading.Event] = None,
    ) -> ResolutionResult:
        """Resolve a PO customer. Search and detail reads share one session.

        Raises:
            ResolutionFailure: Sage failed during search or detail fetch
        """
        start_time = time.time()
        with self.pool.lease(cancel=cancel, operation="resolve_customer") as lease:
            source = CustomerRecordSource(lease, self.config.limits)
            result = self.engine.resolve(request, source)

        get_metrics().record_resolution(
            result.recommendation.value,
            duration_ms=(time.time() - start_time) * 1000,
        )
        return result
