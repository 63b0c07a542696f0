"""
Inventory Service.

Item code validation ahead of sales order creation. Codes are checked with a
key lookup on CI_Item_svc. When the item object cannot be created or has no
key lookup, non-blank codes are accepted and left for order creation to
reject.
"""

import threading
from typing import List, Optional

from connectors.sage100.records import CustomerRecordSource
from core.config import SageConfig
from core.observability.logging import get_logger
from core.pool import SessionPool
from models.inventory import ItemValidationResult

logger = get_logger(__name__)


class InventoryService:
    """Item existence checks against Sage 100."""

    def __init__(self, pool: SessionPool, config: SageConfig):
        self.pool = pool
        self.config = config

    def validate_item_codes(
        self,
        item_codes: List[str],
        cancel: Optional[threading.Event] = None,
    ) -> ItemValidationResult:
        """Split ``item_codes`` into valid and invalid. Blank codes are invalid."""
        result = ItemValidationResult(total_checked=len(item_codes))
        if not item_codes:
            result.message = "No item codes provided"
            return result

        unverified = 0
        with self.pool.lease(cancel=cancel, operation="validate_item_codes") as lease:
            source = CustomerRecordSource(lease, self.config.limits)
            for code in item_codes:
                lease.check_cancelled()
                if not code or not code.strip():
                    result.invalid_item_codes.append(code or "(empty)")
                    continue
                found = source.find_item(code.strip())
                if found is False:
                    result.invalid_item_codes.append(code.strip())
                    continue
                if found is None:
                    unverified += 1
                result.valid_item_codes.append(code.strip())

        if result.all_valid and unverified:
            result.message = (
                f"All {result.total_checked} item codes accepted (will be validated at order creation)"
            )
        elif result.all_valid:
            result.message = f"All {result.total_checked} item codes are valid"
        else:
            result.message = (
                f"{len(result.invalid_item_codes)} of {result.total_checked} item codes not found in Sage 100"
            )
        logger.info(result.message)
        return result

    def item_exists(self, item_code: str, cancel: Optional[threading.Event] = None) -> bool:
        """True when the item exists, or cannot be checked and the code is non-blank."""
        if not item_code or not item_code.strip():
            return False
        with self.pool.lease(cancel=cancel, operation="item_exists") as lease:
            found = CustomerRecordSource(lease, self.config.limits).find_item(item_code.strip())
        return found is not False
