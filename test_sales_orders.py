"""
Sales Order and Inventory Tests

Order creation through SO_SalesOrder_bus on the in-memory driver, including
how each failure class affects the pooled session.
"""

import threading
from datetime import datetime

import pytest

from connectors.sage100 import fields
from core.observability.metrics import get_metrics
from core.pool import SessionPool
from models.sales_orders import (
    SalesOrderErrorCode,
    SalesOrderLine,
    SalesOrderRequest,
    ShipToAddress,
)
from services import InventoryService, SalesOrderService

ORDER_DAY = datetime(2026, 10, 17, 9, 30, 0)


@pytest.fixture
def order_service(pool, sage_config):
    return SalesOrderService(pool, sage_config, clock=lambda: ORDER_DAY)


@pytest.fixture
def inventory_service(pool, sage_config):
    return InventoryService(pool, sage_config)


def make_order(customer_number="01-ACME01", lines=None, **kwargs) -> SalesOrderRequest:
    if lines is None:
        lines = [SalesOrderLine(item_code="WIDGET-100", quantity=5, unit_price=2.5)]
    return SalesOrderRequest(customer_number=customer_number, po_number="PO-1001", lines=lines, **kwargs)


def pool_counters():
    return get_metrics().get_summary()["pool"]


# =============================================================================
# Request validation
# =============================================================================

class TestSalesOrderModels:

    def test_requires_a_line(self):
        with pytest.raises(ValueError):
            SalesOrderRequest(customer_number="01-ACME01", po_number="PO-1", lines=[])

    def test_line_item_code_is_trimmed(self):
        assert SalesOrderLine(item_code=" WIDGET-100 ", quantity=1).item_code == "WIDGET-100"

    @pytest.mark.parametrize("item_code,quantity", [("   ", 1), ("WIDGET-100", 0), ("WIDGET-100", -2)])
    def test_invalid_lines(self, item_code, quantity):
        with pytest.raises(ValueError):
            SalesOrderLine(item_code=item_code, quantity=quantity)


# =============================================================================
# Order creation
# =============================================================================

class TestCreateSalesOrder:

    def test_creates_order(self, order_service, memory_db):
        request = make_order(lines=[
            SalesOrderLine(item_code="WIDGET-100", quantity=5, unit_price=2.5),
            SalesOrderLine(item_code="GASKET-2IN", quantity=1, warehouse_code="EST", description="Spare"),
        ], comment="Rush")

        response = order_service.create_sales_order(request)

        assert response.success
        assert response.sales_order_number == "0000001"
        assert response.message == "Sales order 0000001 created successfully"
        assert response.error_code is None
        assert response.warnings == []

        stored = memory_db.sales_orders["0000001"]
        header = stored["header"]
        assert header[fields.AR_DIVISION_NO] == "01"
        assert header[fields.CUSTOMER_NO] == "ACME01"
        assert header[fields.CUSTOMER_PO_NO] == "PO-1001"
        assert header[fields.ORDER_DATE] == "20261017"
        assert header[fields.COMMENT] == "Rush"
        assert fields.SHIP_EXPIRE_DATE not in header

        first, second = stored["lines"]
        assert first[fields.ITEM_CODE] == "WIDGET-100"
        assert first[fields.WAREHOUSE_CODE] == fields.DEFAULT_LINE_WAREHOUSE
        assert first[fields.QUANTITY_ORDERED] == 5
        assert first[fields.UNIT_PRICE] == 2.5
        assert second[fields.WAREHOUSE_CODE] == "EST"
        assert second[fields.ITEM_CODE_DESC] == "Spare"
        assert fields.UNIT_PRICE not in second

    def test_sets_program_context(self, order_service, memory_db):
        order_service.create_sales_order(make_order())
        assert memory_db.calls[fields.LOOKUP_TASK] == 1
        assert memory_db.calls[fields.SET_PROGRAM] == 1

    def test_ship_to_fields_written_to_header(self, order_service, memory_db):
        request = make_order(
            ship_to_code="002",
            warehouse_code="EST",
            ship_via="FEDEX",
            order_date="20261020",
            ship_to_address=ShipToAddress(name="ACME EAST DC", address1="45 Harbor Blvd", city="Newark", state="NJ"),
        )

        response = order_service.create_sales_order(request)

        header = memory_db.sales_orders[response.sales_order_number]["header"]
        assert header[fields.SHIP_TO_CODE] == "002"
        assert header[fields.SHIP_VIA] == "FEDEX"
        assert header[fields.ORDER_DATE] == "20261020"
        assert header[fields.SHIP_TO_NAME] == "ACME EAST DC"
        assert header[fields.SHIP_TO_CITY] == "Newark"
        assert fields.SHIP_TO_ZIP_CODE not in header
        # Order warehouse is the line default
        assert memory_db.sales_orders[response.sales_order_number]["lines"][0][fields.WAREHOUSE_CODE] == "EST"

    def test_bare_customer_number_uses_division(self, order_service, memory_db):
        response = order_service.create_sales_order(make_order("ACME01", ar_division_no="01"))
        assert response.success
        assert memory_db.sales_orders[response.sales_order_number]["header"][fields.CUSTOMER_NO] == "ACME01"

    def test_unknown_customer(self, order_service, memory_db):
        response = order_service.create_sales_order(make_order("01-NOPE"))

        assert not response.success
        assert response.message == "Failed to create sales order"
        assert response.error_code == SalesOrderErrorCode.CUSTOMER_ERROR
        assert response.error_message == "Invalid customer 01-NOPE: Customer number 01-NOPE is invalid."
        assert memory_db.sales_orders == {}

    def test_bare_number_falls_back_to_default_division(self, order_service):
        response = order_service.create_sales_order(make_order("ACME01"))
        assert response.error_code == SalesOrderErrorCode.CUSTOMER_ERROR
        assert "00-ACME01" in response.error_message

    def test_unknown_item_releases_session(self, order_service, memory_db):
        response = order_service.create_sales_order(make_order(lines=[
            SalesOrderLine(item_code="WIDGET-100", quantity=1),
            SalesOrderLine(item_code="NOPE-1", quantity=1),
        ]))

        assert response.error_code == SalesOrderErrorCode.LINE_ERROR
        assert response.error_message == "Line 2: item 'NOPE-1' rejected: Item NOPE-1 is not on file."
        assert memory_db.sales_orders == {}
        counters = pool_counters()
        assert counters["released"] == 1
        assert counters["invalidated"] == 0

    def test_existing_order_number(self, order_service, memory_db):
        memory_db.sales_orders["0000001"] = {"header": {}, "lines": []}

        response = order_service.create_sales_order(make_order())

        assert response.error_code == SalesOrderErrorCode.SET_KEY_ERROR
        assert "Sales order 0000001 already exists" in response.error_message

    def test_driver_fault_discards_session(self, pool, order_service, memory_db):
        pool.release(pool.acquire())
        memory_db.arm_fault(after_calls=3)

        response = order_service.create_sales_order(make_order())

        assert not response.success
        assert response.error_code == SalesOrderErrorCode.EXTERNAL_OPERATION_FAILURE
        assert response.error_message.startswith("Sage 100 call failed:")
        assert pool_counters()["invalidated"] == 1
        assert memory_db.sales_orders == {}

        retry = order_service.create_sales_order(make_order())
        assert retry.success

    def test_session_busy(self, session_factory, sage_config):
        pool = SessionPool(session_factory.create, size=1, acquire_timeout=0.05)
        service = SalesOrderService(pool, sage_config, clock=lambda: ORDER_DAY)
        try:
            held = pool.acquire()
            response = service.create_sales_order(make_order())
            pool.release(held)
        finally:
            pool.shutdown()

        assert response.error_code == SalesOrderErrorCode.SESSION_BUSY
        assert pool_counters()["timeouts"] == 1

    def test_cancelled_before_lines(self, pool, sage_config, memory_db):
        cancel = threading.Event()

        def cancelling_clock():
            cancel.set()
            return ORDER_DAY

        service = SalesOrderService(pool, sage_config, clock=cancelling_clock)
        response = service.create_sales_order(make_order(), cancel=cancel)

        assert response.error_code == SalesOrderErrorCode.CANCELLED
        assert memory_db.sales_orders == {}
        assert pool_counters()["released"] == 1
        assert pool_counters()["invalidated"] == 0

    def test_cancelled_while_waiting(self, order_service):
        cancel = threading.Event()
        cancel.set()
        response = order_service.create_sales_order(make_order(), cancel=cancel)
        assert response.error_code == SalesOrderErrorCode.CANCELLED


# =============================================================================
# Inventory
# =============================================================================

class TestInventory:

    def test_all_valid(self, inventory_service):
        result = inventory_service.validate_item_codes(["WIDGET-100", " GASKET-2IN "])
        assert result.all_valid
        assert result.valid_item_codes == ["WIDGET-100", "GASKET-2IN"]
        assert result.message == "All 2 item codes are valid"

    def test_invalid_and_blank_codes(self, inventory_service):
        result = inventory_service.validate_item_codes(["WIDGET-100", "NOPE", "", "WIDGET-500"])
        assert not result.all_valid
        assert result.invalid_item_codes == ["NOPE", "(empty)"]
        assert result.total_checked == 4
        assert result.message == "2 of 4 item codes not found in Sage 100"

    def test_no_codes(self, inventory_service, memory_db):
        result = inventory_service.validate_item_codes([])
        assert result.message == "No item codes provided"
        assert result.total_checked == 0
        assert memory_db.sessions_created == 0

    def test_unverifiable_codes_are_accepted(self, inventory_service, memory_db):
        memory_db.unavailable_objects.add(fields.ITEM_SVC)
        result = inventory_service.validate_item_codes(["WIDGET-100", "ANYTHING"])
        assert result.all_valid
        assert result.message == "All 2 item codes accepted (will be validated at order creation)"

    def test_item_exists(self, inventory_service, memory_db):
        assert inventory_service.item_exists("WIDGET-500")
        assert not inventory_service.item_exists("NOPE")
        assert not inventory_service.item_exists("  ")

        memory_db.key_lookup[fields.ITEM_SVC] = "unsupported"
        assert inventory_service.item_exists("ANYTHING")
