"""
Sales Order Service.

Creates a sales order through SO_SalesOrder_bus:

    program context -> next order number -> nSetKey -> header fields
        -> lines (oLines: nAddLine, fields, nWrite) -> nWrite

Business rejections come back as ``SalesOrderResponse(success=False)`` with
an error code. A driver fault discards the session and is reported as
EXTERNAL_OPERATION_FAILURE.
"""

import threading
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

from connectors.record_session import (
    ExternalCallError,
    ExternalOperationFailure,
    RecordObject,
    UnsupportedCapability,
)
from connectors.sage100 import fields
from core.config import SageConfig
from core.observability.logging import get_logger, with_correlation
from core.pool import (
    AcquireCancelled,
    HandleCorrupted,
    OperationCancelled,
    PoolTimeout,
    SessionLease,
    SessionPool,
)
from models.customers import parse_customer_number
from models.sales_orders import (
    SalesOrderErrorCode,
    SalesOrderLine,
    SalesOrderRequest,
    SalesOrderResponse,
)

logger = get_logger(__name__)


class _OrderRejected(ExternalOperationFailure):
    """A business failure that ends order creation; becomes a failure response.

    The session stays healthy, so the lease releases it.
    """

    def __init__(self, error_code: SalesOrderErrorCode, message: str):
        super().__init__(message)
        self.error_code = error_code


class SalesOrderService:
    """Sales order creation against Sage 100.

    Usage:
        service = SalesOrderService(pool, sage_config)
        response = service.create_sales_order(request)
        if response.success:
            print(response.sales_order_number)
    """

    def __init__(
        self,
        pool: SessionPool,
        config: SageConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.pool = pool
        self.config = config
        self._clock = clock or datetime.now

    def create_sales_order(
        self,
        request: SalesOrderRequest,
        cancel: Optional[threading.Event] = None,
    ) -> SalesOrderResponse:
        """Create one sales order. Never raises for Sage-side failures."""
        warnings: List[str] = []

        with with_correlation(po_number=request.po_number, customer_number=request.customer_number):
            logger.info(
                f"Creating sales order for customer {request.customer_number}, "
                f"PO {request.po_number} ({len(request.lines)} lines)"
            )
            try:
                with self.pool.lease(cancel=cancel, operation="create_sales_order") as lease:
                    order_no = self._create(lease, request, warnings)
            except _OrderRejected as e:
                logger.warning(f"Sales order rejected ({e.error_code.value}): {e}")
                return SalesOrderResponse.failure(e.error_code, str(e), warnings)
            except (OperationCancelled, AcquireCancelled) as e:
                logger.info(f"Sales order cancelled: {e}")
                return SalesOrderResponse.failure(SalesOrderErrorCode.CANCELLED, str(e), warnings)
            except PoolTimeout as e:
                logger.warning(f"No session available for sales order: {e}")
                return SalesOrderResponse.failure(SalesOrderErrorCode.SESSION_BUSY, str(e), warnings)
            except (ExternalCallError, ExternalOperationFailure, HandleCorrupted) as e:
                logger.error(f"Sage 100 failure while creating sales order: {e}")
                return SalesOrderResponse.failure(
                    SalesOrderErrorCode.EXTERNAL_OPERATION_FAILURE,
                    f"Sage 100 call failed: {e}",
                    warnings,
                )

            logger.info(f"Sales order {order_no} created")
            return SalesOrderResponse(
                success=True,
                sales_order_number=order_no,
                message=f"Sales order {order_no} created successfully",
                warnings=warnings,
            )

    # =========================================================================
    # Steps
    # =========================================================================

    def _create(self, lease: SessionLease, request: SalesOrderRequest, warnings: List[str]) -> str:
        self._set_program_context(lease)

        order = lease.new_object(fields.SALES_ORDER_BUS)
        order_no = self._next_order_number(order)

        result = order.set_key(order_no)
        if not result.ok:
            raise _OrderRejected(
                SalesOrderErrorCode.SET_KEY_ERROR,
                f"Failed to set sales order key {order_no}: {result.message}",
            )

        self._set_customer(order, request)
        self._set_header(order, request, warnings)

        lines = order.child(fields.LINES)
        for number, line in enumerate(request.lines, start=1):
            lease.check_cancelled()
            self._add_line(lines, number, line, request, warnings)

        result = order.write()
        if not result.ok:
            raise _OrderRejected(
                SalesOrderErrorCode.ORDER_WRITE_ERROR,
                f"Failed to create sales order: {result.message}",
            )
        return order_no

    @staticmethod
    def _set_program_context(lease: SessionLease) -> None:
        """Point the session at the Sales Order Entry task. Best effort."""
        session = lease.session
        try:
            task = session.call(fields.LOOKUP_TASK, fields.SALES_ORDER_UI)
            if not task.ok or not task.value:
                logger.debug(f"{fields.LOOKUP_TASK} failed: {task.message}")
                return
            result = session.call(fields.SET_PROGRAM, task.value)
            if not result.ok:
                logger.debug(f"{fields.SET_PROGRAM} failed: {result.message}")
        except UnsupportedCapability as e:
            logger.debug(f"Program context unavailable: {e}")

    @staticmethod
    def _next_order_number(order: RecordObject) -> str:
        result = order.call(fields.GET_NEXT_SALES_ORDER_NO, "")
        order_no = str(result.value or "").strip() if result.ok else ""
        if not order_no:
            raise _OrderRejected(
                SalesOrderErrorCode.ORDER_NUMBER_ERROR,
                f"Failed to get next sales order number: {result.message or 'no number returned'}",
            )
        return order_no

    def _split_customer(self, request: SalesOrderRequest) -> Tuple[str, str]:
        return parse_customer_number(
            request.customer_number,
            request.ar_division_no or self.config.default_division,
        )

    def _set_customer(self, order: RecordObject, request: SalesOrderRequest) -> None:
        division, customer_no = self._split_customer(request)
        for field_name, value in ((fields.AR_DIVISION_NO, division), (fields.CUSTOMER_NO, customer_no)):
            result = order.set_value(field_name, value)
            if not result.ok:
                raise _OrderRejected(
                    SalesOrderErrorCode.CUSTOMER_ERROR,
                    f"Invalid customer {division}-{customer_no}: {result.message}",
                )

    def _set_header(self, order: RecordObject, request: SalesOrderRequest, warnings: List[str]) -> None:
        values: List[Tuple[str, Any]] = [
            (fields.CUSTOMER_PO_NO, request.po_number),
            (fields.ORDER_DATE, request.order_date or self._clock().strftime("%Y%m%d")),
            (fields.SHIP_EXPIRE_DATE, request.ship_date),
            (fields.COMMENT, request.comment),
            (fields.SHIP_TO_CODE, request.ship_to_code),
            (fields.WAREHOUSE_CODE, request.warehouse_code),
            (fields.SHIP_VIA, request.ship_via),
        ]
        if request.ship_to_address is not None:
            for attribute, field_name in fields.SHIP_TO_OVERRIDE_FIELDS.items():
                values.append((field_name, getattr(request.ship_to_address, attribute)))

        for field_name, value in values:
            if not value:
                continue
            result = order.set_value(field_name, value)
            if not result.ok:
                logger.warning(f"{field_name} set warning: {result.message}")
                warnings.append(f"{field_name} not set: {result.message}")

    @staticmethod
    def _add_line(
        lines: RecordObject,
        number: int,
        line: SalesOrderLine,
        request: SalesOrderRequest,
        warnings: List[str],
    ) -> None:
        result = lines.call(fields.ADD_LINE)
        if not result.ok:
            raise _OrderRejected(
                SalesOrderErrorCode.LINE_ERROR,
                f"Line {number}: could not add line: {result.message}",
            )

        warehouse = line.warehouse_code or request.warehouse_code or fields.DEFAULT_LINE_WAREHOUSE
        result = lines.set_value(fields.WAREHOUSE_CODE, warehouse)
        if not result.ok:
            warnings.append(f"Line {number}: {fields.WAREHOUSE_CODE} not set: {result.message}")

        result = lines.set_value(fields.ITEM_CODE, line.item_code)
        if not result.ok:
            raise _OrderRejected(
                SalesOrderErrorCode.LINE_ERROR,
                f"Line {number}: item '{line.item_code}' rejected: {result.message}",
            )

        optional: List[Tuple[str, Any]] = [(fields.QUANTITY_ORDERED, line.quantity)]
        if line.unit_price is not None:
            optional.append((fields.UNIT_PRICE, line.unit_price))
        if line.description:
            optional.append((fields.ITEM_CODE_DESC, line.description))
        for field_name, value in optional:
            result = lines.set_value(field_name, value)
            if not result.ok:
                warnings.append(f"Line {number}: {field_name} not set: {result.message}")

        result = lines.write()
        if not result.ok:
            raise _OrderRejected(
                SalesOrderErrorCode.LINE_ERROR,
                f"Line {number}: failed to write line: {result.message}",
            )
