"""Customer, ship-to and item reads against Sage 100.

BOI ``_svc`` objects offer no filtered query, so reads are capped linear
scans filtered in code. Locating one record by key uses ``nSetKeyValue`` +
``nFind`` when the object supports it; support is probed per object type
and the answer is cached for the process.
"""

import threading
from typing import Dict, Iterator, List, Optional, Tuple

from connectors.record_session import ObjectUnavailable, RecordObject, UnsupportedCapability
from connectors.sage100 import fields
from core.config import ScanLimits
from core.observability.logging import get_logger
from customer_resolver.matching import fuzzy_name_match
from customer_resolver.normalize import normalize_phone
from models.customers import (
    CustomerRecord,
    CustomerSearchRequest,
    ShipToRecord,
    format_customer_number,
)

logger = get_logger(__name__)

# object type -> True (key lookup verified) / False (unsupported, scan instead)
_key_lookup_support: Dict[str, bool] = {}
_key_lookup_lock = threading.Lock()


def key_lookup_supported(object_name: str) -> Optional[bool]:
    with _key_lookup_lock:
        return _key_lookup_support.get(object_name)


def _remember_key_lookup(object_name: str, supported: bool) -> None:
    with _key_lookup_lock:
        previous = _key_lookup_support.get(object_name)
        _key_lookup_support[object_name] = supported
    if previous != supported:
        state = "supported" if supported else "unsupported - falling back to scans"
        logger.info(f"Key lookup on {object_name}: {state}")


def reset_key_lookup_cache() -> None:
    with _key_lookup_lock:
        _key_lookup_support.clear()


def scan(obj: RecordObject, limit: int, lease=None) -> Iterator[int]:
    """Walk the cursor from the first record, yielding the 1-based position.

    Stops at end of file or after ``limit`` records.
    """
    if not obj.move_first().ok:
        return
    scanned = 0
    while scanned < limit:
        if lease is not None:
            lease.check_cancelled()
        scanned += 1
        yield scanned
        if not obj.move_next().ok:
            return


class CustomerRecordSource:
    """Reads customers through one leased session.

    Usage:
        with pool.lease(operation="resolve_customer") as lease:
            source = CustomerRecordSource(lease, config.limits)
            matches = source.search_by_name("ACME")
            detail = source.get_customer("01", "ACME01")
    """

    def __init__(self, lease, limits: Optional[ScanLimits] = None):
        self.lease = lease
        self.limits = limits or ScanLimits()
        self._item_svc: Optional[RecordObject] = None

    # =========================================================================
    # Record extraction
    # =========================================================================

    @staticmethod
    def read_customer(svc: RecordObject) -> CustomerRecord:
        """Build a CustomerRecord from the current cursor position."""
        division = svc.get_string(fields.AR_DIVISION_NO)
        customer_no = svc.get_string(fields.CUSTOMER_NO)
        default_code = svc.get_string(fields.PRIMARY_SHIP_TO_CODE) or svc.get_string(fields.DEFAULT_SHIP_TO_CODE)
        return CustomerRecord(
            customer_number=format_customer_number(division, customer_no),
            ar_division_no=division,
            customer_no=customer_no,
            customer_name=svc.get_string(fields.CUSTOMER_NAME),
            status=svc.get_string(fields.CUSTOMER_STATUS),
            address1=svc.get_string(fields.ADDRESS_LINE1),
            address2=svc.get_string(fields.ADDRESS_LINE2),
            city=svc.get_string(fields.CITY),
            state=svc.get_string(fields.STATE),
            zip_code=svc.get_string(fields.ZIP_CODE),
            country=svc.get_string(fields.COUNTRY_CODE),
            phone=svc.get_string(fields.TELEPHONE_NO),
            price_level=svc.get_string(fields.PRICE_LEVEL),
            tax_schedule=svc.get_string(fields.TAX_SCHEDULE),
            terms_code=svc.get_string(fields.TERMS_CODE),
            default_ship_to_code=default_code,
        )

    @staticmethod
    def read_ship_to(svc: RecordObject) -> ShipToRecord:
        return ShipToRecord(
            ship_to_code=svc.get_string(fields.SHIP_TO_CODE),
            name=svc.get_string(fields.SHIP_TO_NAME),
            address1=svc.get_string(fields.SHIP_TO_ADDRESS1),
            address2=svc.get_string(fields.SHIP_TO_ADDRESS2),
            city=svc.get_string(fields.SHIP_TO_CITY),
            state=svc.get_string(fields.SHIP_TO_STATE),
            zip_code=svc.get_string(fields.SHIP_TO_ZIP_CODE),
            country=svc.get_string(fields.SHIP_TO_COUNTRY_CODE),
            warehouse_code=svc.get_string(fields.WAREHOUSE_CODE),
            ship_via=svc.get_string(fields.SHIP_VIA),
        )

    # =========================================================================
    # Search
    # =========================================================================

    def search(self, request: CustomerSearchRequest) -> Tuple[List[CustomerRecord], int]:
        """Scan customers, keeping those that pass every supplied filter.

        Returns:
            (matches, records_scanned)
        """
        svc = self.lease.new_object(fields.CUSTOMER_SVC)
        phone_digits = normalize_phone(request.phone) if request.phone else ""
        matches: List[CustomerRecord] = []
        scanned = 0

        for scanned in scan(svc, self.limits.customer_scan, self.lease):
            if self._matches(svc, request, phone_digits):
                matches.append(self.read_customer(svc))
                if len(matches) >= request.limit:
                    break

        if scanned >= self.limits.customer_scan and len(matches) < request.limit:
            logger.warning(
                f"Stopped scanning after {self.limits.customer_scan} records. Found {len(matches)} matches. "
                "Use more specific search criteria for better results."
            )
        logger.info(f"Found {len(matches)} customers matching {request.describe()} ({scanned} scanned)")
        return matches, scanned

    @staticmethod
    def _matches(svc: RecordObject, request: CustomerSearchRequest, phone_digits: str) -> bool:
        if request.name and not fuzzy_name_match(request.name, svc.get_string(fields.CUSTOMER_NAME)):
            return False
        if request.city and request.city.upper() not in svc.get_string(fields.CITY).upper():
            return False
        if request.state and request.state.strip().upper() != svc.get_string(fields.STATE).upper():
            return False
        if request.phone:
            if not phone_digits or phone_digits not in normalize_phone(svc.get_string(fields.TELEPHONE_NO)):
                return False
        if request.address and request.address.upper() not in svc.get_string(fields.ADDRESS_LINE1).upper():
            return False
        return True

    def search_by_name(self, name: str) -> List[CustomerRecord]:
        """Customers whose name passes the fuzzy name predicate."""
        request = CustomerSearchRequest(name=name, limit=self.limits.search_result_limit)
        matches, _ = self.search(request)
        return matches

    # =========================================================================
    # Detail
    # =========================================================================

    def get_customer(self, division: str, customer_no: str, include_ship_tos: bool = True) -> Optional[CustomerRecord]:
        """One customer by key, with ship-tos. None when not found."""
        svc = self.lease.new_object(fields.CUSTOMER_SVC)
        key = {fields.AR_DIVISION_NO: division, fields.CUSTOMER_NO: customer_no}

        if not self._locate(svc, key):
            logger.warning(f"Customer not found: {division}-{customer_no}")
            return None

        customer = self.read_customer(svc)
        if include_ship_tos:
            customer.attach_ship_tos(self.get_ship_tos(division, customer_no))
        return customer

    def _locate(self, svc: RecordObject, key: Dict[str, str]) -> bool:
        """Position ``svc`` on the record matching ``key``: key lookup, then scan."""
        if key_lookup_supported(svc.name) is not False:
            try:
                result = svc.find(key)
            except UnsupportedCapability:
                _remember_key_lookup(svc.name, False)
            else:
                if result.ok:
                    if self._cursor_matches(svc, key):
                        _remember_key_lookup(svc.name, True)
                        return True
                    # Found something, but not the requested record
                    _remember_key_lookup(svc.name, False)
                else:
                    logger.debug(f"Key lookup on {svc.name} missed ({result.message}); scanning")

        for scanned in scan(svc, self.limits.detail_scan, self.lease):
            if self._cursor_matches(svc, key):
                logger.debug(f"Found {key} on {svc.name} after scanning {scanned} records")
                return True
        return False

    @staticmethod
    def _cursor_matches(svc: RecordObject, key: Dict[str, str]) -> bool:
        return all(svc.get_string(name) == str(value).strip() for name, value in key.items())

    def get_ship_tos(self, division: str, customer_no: str) -> List[ShipToRecord]:
        """Ship-to addresses of one customer (capped scan, early exit)."""
        try:
            svc = self.lease.new_object(fields.SHIP_TO_SVC)
        except ObjectUnavailable as e:
            logger.warning(f"Could not create {fields.SHIP_TO_SVC}: {e}")
            return []

        ship_tos: List[ShipToRecord] = []
        scanned = 0
        for scanned in scan(svc, self.limits.ship_to_scan, self.lease):
            if (
                svc.get_string(fields.AR_DIVISION_NO) == division
                and svc.get_string(fields.CUSTOMER_NO) == customer_no
            ):
                ship_tos.append(self.read_ship_to(svc))
                if len(ship_tos) >= self.limits.ship_to_max:
                    break

        logger.info(
            f"Found {len(ship_tos)} ship-to addresses for {division}-{customer_no} "
            f"after scanning {scanned} records"
        )
        return ship_tos

    # =========================================================================
    # Items
    # =========================================================================

    def find_item(self, item_code: str) -> Optional[bool]:
        """Whether ``item_code`` exists in CI_Item_svc.

        Returns None when existence cannot be determined (object unavailable
        or no key lookup), so callers can decide how to treat unknowns.
        """
        if self._item_svc is None:
            try:
                self._item_svc = self.lease.new_object(fields.ITEM_SVC)
            except ObjectUnavailable as e:
                logger.warning(f"Could not create {fields.ITEM_SVC}: {e}")
                return None
        svc = self._item_svc

        if key_lookup_supported(svc.name) is False:
            return None
        try:
            result = svc.find({fields.ITEM_CODE: item_code})
        except UnsupportedCapability:
            _remember_key_lookup(svc.name, False)
            return None
        if not result.ok:
            return False
        if svc.get_string(fields.ITEM_CODE) != item_code:
            _remember_key_lookup(svc.name, False)
            return None
        _remember_key_lookup(svc.name, True)
        return True
