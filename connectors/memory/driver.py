"""In-memory Sage 100 driver.

Mimics the BOI calling convention (numeric codes, ``sLastErrorMsg``,
cursor-based ``_svc`` objects, ``SO_SalesOrder_bus`` with ``oLines``) on top
of plain Python tables, so the pool, the record source and the services can
be exercised without Windows or a Sage server.

Fault injection for tests:
- ``fail_engine``: ``open()`` raises like a broken ProvideX install
- ``fail_auth`` / ``fail_company``: nSetUser / nSetCompany return 0
- ``arm_fault(after_calls)``: the next call after ``after_calls`` successful
  calls raises ExternalCallError (a dead COM object)
- ``kill_sessions()``: every existing session starts faulting
- ``key_lookup[object]``: "supported", "unsupported" or "unreliable"
- ``unavailable_objects``: object types NewObject refuses to create
"""

import threading
import time
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from connectors.record_session import (
    CallResult,
    DriverType,
    ExternalCallError,
    ObjectUnavailable,
    RecordDriver,
    RecordObject,
    ScriptEngine,
    UnsupportedCapability,
    register_driver,
)
from connectors.sage100 import fields

# Key fields per table, in key order
TABLE_KEYS = {
    fields.CUSTOMER_SVC: (fields.AR_DIVISION_NO, fields.CUSTOMER_NO),
    fields.SHIP_TO_SVC: (fields.AR_DIVISION_NO, fields.CUSTOMER_NO, fields.SHIP_TO_CODE),
    fields.ITEM_SVC: (fields.ITEM_CODE,),
}

# Friendly keyword -> BOI field, for seeding
CUSTOMER_FIELDS = {
    "name": fields.CUSTOMER_NAME,
    "status": fields.CUSTOMER_STATUS,
    "address1": fields.ADDRESS_LINE1,
    "address2": fields.ADDRESS_LINE2,
    "city": fields.CITY,
    "state": fields.STATE,
    "zip_code": fields.ZIP_CODE,
    "country": fields.COUNTRY_CODE,
    "phone": fields.TELEPHONE_NO,
    "price_level": fields.PRICE_LEVEL,
    "tax_schedule": fields.TAX_SCHEDULE,
    "terms_code": fields.TERMS_CODE,
    "default_ship_to_code": fields.PRIMARY_SHIP_TO_CODE,
}

SHIP_TO_FIELDS = {
    "name": fields.SHIP_TO_NAME,
    "address1": fields.SHIP_TO_ADDRESS1,
    "address2": fields.SHIP_TO_ADDRESS2,
    "city": fields.SHIP_TO_CITY,
    "state": fields.SHIP_TO_STATE,
    "zip_code": fields.SHIP_TO_ZIP_CODE,
    "country": fields.SHIP_TO_COUNTRY_CODE,
    "warehouse_code": fields.WAREHOUSE_CODE,
    "ship_via": fields.SHIP_VIA,
}


# =============================================================================
# Database
# =============================================================================

class MemoryDatabase:
    """Shared state behind every engine opened by one MemoryDriver."""

    def __init__(
        self,
        users: Optional[Dict[str, str]] = None,
        companies: Optional[List[str]] = None,
    ):
        self.users = dict(users or {"admin": "secret"})
        self.companies = set(companies or ["ABC"])
        self.tables: Dict[str, List[Dict[str, Any]]] = {name: [] for name in TABLE_KEYS}
        self.sales_orders: Dict[str, Dict[str, Any]] = {}
        self.next_order_number = 1

        # Fault injection
        self.fail_engine = False
        self.fail_auth = False
        self.fail_company = False
        self.key_lookup: Dict[str, str] = {name: "supported" for name in TABLE_KEYS}
        self.unavailable_objects: set = set()
        self.creation_delay = 0.0
        self._fault_countdown: Optional[int] = None
        self._fault_message = "The remote procedure call failed"

        # Instrumentation
        self.calls: Dict[str, int] = defaultdict(int)
        self.sessions_created = 0
        self.open_objects = 0
        self.generation = 0
        self.module_context: List[Tuple[str, str]] = []

        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    def add_customer(self, division: str, customer_no: str, **kwargs: Any) -> Dict[str, Any]:
        row = {fields.AR_DIVISION_NO: division, fields.CUSTOMER_NO: customer_no}
        for key, value in kwargs.items():
            row[CUSTOMER_FIELDS.get(key, key)] = value
        self.tables[fields.CUSTOMER_SVC].append(row)
        return row

    def add_ship_to(self, division: str, customer_no: str, ship_to_code: str, **kwargs: Any) -> Dict[str, Any]:
        row = {
            fields.AR_DIVISION_NO: division,
            fields.CUSTOMER_NO: customer_no,
            fields.SHIP_TO_CODE: ship_to_code,
        }
        for key, value in kwargs.items():
            row[SHIP_TO_FIELDS.get(key, key)] = value
        self.tables[fields.SHIP_TO_SVC].append(row)
        return row

    def add_item(self, item_code: str, description: str = "") -> Dict[str, Any]:
        row = {fields.ITEM_CODE: item_code, fields.ITEM_CODE_DESC: description}
        self.tables[fields.ITEM_SVC].append(row)
        return row

    def customer_exists(self, division: str, customer_no: str) -> bool:
        return any(
            r.get(fields.AR_DIVISION_NO) == division and r.get(fields.CUSTOMER_NO) == customer_no
            for r in self.tables[fields.CUSTOMER_SVC]
        )

    def item_exists(self, item_code: str) -> bool:
        return any(r.get(fields.ITEM_CODE) == item_code for r in self.tables[fields.ITEM_SVC])

    # -------------------------------------------------------------------------
    # Fault injection
    # -------------------------------------------------------------------------

    def arm_fault(self, after_calls: int = 0, message: Optional[str] = None) -> None:
        """Let ``after_calls`` calls succeed, then raise on the next one."""
        with self._lock:
            self._fault_countdown = after_calls
            if message:
                self._fault_message = message

    def disarm_fault(self) -> None:
        with self._lock:
            self._fault_countdown = None

    def kill_sessions(self) -> None:
        """Every session created so far faults on its next call."""
        with self._lock:
            self.generation += 1

    def tick(self, object_name: str, method: str) -> None:
        """Count a call and fire an armed fault."""
        with self._lock:
            self.calls[method] += 1
            if self._fault_countdown is None:
                return
            if self._fault_countdown > 0:
                self._fault_countdown -= 1
                return
            self._fault_countdown = None
            message = self._fault_message
        raise ExternalCallError(f"{object_name}.{method} raised: {message}", method=method, hresult=-2147023170)

    def allocate_order_number(self) -> str:
        with self._lock:
            number = f"{self.next_order_number:07d}"
            self.next_order_number += 1
            return number

    def object_opened(self) -> None:
        with self._lock:
            self.open_objects += 1

    def object_closed(self) -> None:
        with self._lock:
            self.open_objects -= 1


# =============================================================================
# Record objects
# =============================================================================

class MemoryObject(RecordObject):
    """Base for in-memory BOI objects: error side-channel, liveness, faults."""

    def __init__(self, db: MemoryDatabase, name: str, session: Optional["MemorySession"] = None):
        self.db = db
        self.name = name
        self._session = session
        self._generation = db.generation
        self._closed = False
        self._last_error = ""
        db.object_opened()

    def _check(self, method: str) -> None:
        if self._closed:
            raise ExternalCallError(f"{self.name}.{method} called on a released object", method=method)
        owner = self._session or self
        if owner._generation != self.db.generation:
            raise ExternalCallError(f"{self.name}.{method} raised: session is no longer valid", method=method)
        self.db.tick(self.name, method)

    def _ok(self, method: str, value: Any = 1) -> CallResult:
        self._last_error = ""
        return CallResult.success(value, method=method)

    def _fail(self, method: str, message: str) -> CallResult:
        self._last_error = message
        return CallResult.failure(message, method=method)

    def get_value(self, field_name: str) -> CallResult:
        self._check("nGetValue")
        return self._fail("nGetValue", f"Field {field_name} is not available")

    def set_value(self, field_name: str, value: Any) -> CallResult:
        self._check("nSetValue")
        return self._fail("nSetValue", f"{self.name} is read-only")

    def move_first(self) -> CallResult:
        self._check("nMoveFirst")
        return self._fail("nMoveFirst", "No records")

    def move_next(self) -> CallResult:
        self._check("nMoveNext")
        return self._fail("nMoveNext", "End of file")

    def set_key(self, key: str) -> CallResult:
        self._check("nSetKey")
        return self._fail("nSetKey", f"{self.name} does not support nSetKey")

    def write(self) -> CallResult:
        self._check("nWrite")
        return self._fail("nWrite", f"{self.name} is read-only")

    def call(self, method: str, *args: Any) -> CallResult:
        self._check(method)
        handler = getattr(self, f"_call_{method}", None)
        if handler is None:
            raise UnsupportedCapability(method, self.name)
        return handler(*args)

    def child(self, attribute: str) -> RecordObject:
        self._check(attribute)
        raise UnsupportedCapability(attribute, self.name)

    def last_error_message(self) -> str:
        return self._last_error

    def ping(self) -> bool:
        self._check("ping")
        return True

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self.db.object_closed()


class MemorySession(MemoryObject):
    """SY_Session: user, company, module and program context."""

    def __init__(self, db: MemoryDatabase):
        super().__init__(db, fields.SESSION)
        self.user: Optional[str] = None
        self.company: Optional[str] = None
        self.module: Optional[str] = None
        self.program: Optional[int] = None

    @property
    def ready(self) -> bool:
        return self.user is not None and self.company is not None

    def _call_nSetUser(self, username: str, password: str) -> CallResult:
        if self.db.fail_auth or self.db.users.get(username) != password:
            return self._fail(fields.SET_USER, "User logon failed. Invalid user or password.")
        self.user = username
        return self._ok(fields.SET_USER)

    def _call_nSetCompany(self, company: str) -> CallResult:
        if self.db.fail_company or company not in self.db.companies:
            return self._fail(fields.SET_COMPANY, f"Company {company} is not on file.")
        self.company = company
        return self._ok(fields.SET_COMPANY)

    def _call_nSetModule(self, module: str) -> CallResult:
        self.module = module
        return self._ok(fields.SET_MODULE)

    def _call_nSetDate(self, module: str, date: str) -> CallResult:
        self.db.module_context.append((module, date))
        return self._ok(fields.SET_DATE)

    def _call_nLookupTask(self, task_name: str) -> CallResult:
        if task_name != fields.SALES_ORDER_UI:
            return self._fail(fields.LOOKUP_TASK, f"Task {task_name} not found")
        return self._ok(fields.LOOKUP_TASK, 101)

    def _call_nSetProgram(self, task_id: int) -> CallResult:
        self.program = task_id
        return self._ok(fields.SET_PROGRAM)


class MemoryTable(MemoryObject):
    """A read-only ``_svc`` object with a cursor over one table."""

    def __init__(self, db: MemoryDatabase, name: str, session: "MemorySession"):
        super().__init__(db, name, session)
        self._rows = list(db.tables[name])
        self._cursor = -1

    def _row(self) -> Optional[Dict[str, Any]]:
        if 0 <= self._cursor < len(self._rows):
            return self._rows[self._cursor]
        return None

    def get_value(self, field_name: str) -> CallResult:
        self._check("nGetValue")
        row = self._row()
        if row is None:
            return self._fail("nGetValue", "No current record")
        return self._ok("nGetValue", row.get(field_name, ""))

    def move_first(self) -> CallResult:
        self._check("nMoveFirst")
        if not self._rows:
            return self._fail("nMoveFirst", "No records")
        self._cursor = 0
        return self._ok("nMoveFirst")

    def move_next(self) -> CallResult:
        self._check("nMoveNext")
        if self._cursor + 1 >= len(self._rows):
            self._cursor = len(self._rows)
            return self._fail("nMoveNext", "End of file")
        self._cursor += 1
        return self._ok("nMoveNext")

    def find(self, key: Dict[str, Any]) -> CallResult:
        mode = self.db.key_lookup.get(self.name, "unsupported")
        if mode == "unsupported":
            raise UnsupportedCapability("key lookup", self.name)
        self._check("nFind")
        if mode == "unreliable":
            # nFind ignores the key and reports success on whatever is first
            self._cursor = 0 if self._rows else -1
            return self._ok("nFind") if self._rows else self._fail("nFind", "Record not found")
        for index, row in enumerate(self._rows):
            if all(row.get(name) == value for name, value in key.items()):
                self._cursor = index
                return self._ok("nFind")
        return self._fail("nFind", "Record not found")


class MemorySalesOrder(MemoryObject):
    """SO_SalesOrder_bus: header fields, ``oLines``, commit on nWrite."""

    def __init__(self, db: MemoryDatabase, session: "MemorySession"):
        super().__init__(db, fields.SALES_ORDER_BUS, session)
        self.order_no: Optional[str] = None
        self.header: Dict[str, Any] = {}
        self.lines = MemoryLines(db, self)

    def _call_nGetNextSalesOrderNo(self, _placeholder: str = "") -> CallResult:
        return self._ok(fields.GET_NEXT_SALES_ORDER_NO, self.db.allocate_order_number())

    def set_key(self, key: str) -> CallResult:
        self._check("nSetKey")
        if not key:
            return self._fail("nSetKey", "Sales order number is required")
        if key in self.db.sales_orders:
            return self._fail("nSetKey", f"Sales order {key} already exists")
        self.order_no = key
        self.header = {}
        return self._ok("nSetKey")

    def set_value(self, field_name: str, value: Any) -> CallResult:
        self._check("nSetValue")
        if self.order_no is None:
            return self._fail("nSetValue", "No current sales order. Call nSetKey first.")
        if field_name == fields.CUSTOMER_NO:
            division = self.header.get(fields.AR_DIVISION_NO, "00")
            if not self.db.customer_exists(division, value):
                return self._fail("nSetValue", f"Customer number {division}-{value} is invalid.")
        self.header[field_name] = value
        return self._ok("nSetValue")

    def get_value(self, field_name: str) -> CallResult:
        self._check("nGetValue")
        if field_name not in self.header:
            return self._fail("nGetValue", f"Field {field_name} is not set")
        return self._ok("nGetValue", self.header[field_name])

    def child(self, attribute: str) -> RecordObject:
        self._check(attribute)
        if attribute != fields.LINES:
            raise UnsupportedCapability(attribute, self.name)
        return self.lines

    def write(self) -> CallResult:
        self._check("nWrite")
        if self.order_no is None:
            return self._fail("nWrite", "No current sales order")
        if fields.CUSTOMER_NO not in self.header:
            return self._fail("nWrite", "Customer number is required")
        if not self.lines.committed:
            return self._fail("nWrite", "Sales order has no lines")
        self.db.sales_orders[self.order_no] = {
            "header": dict(self.header),
            "lines": [dict(line) for line in self.lines.committed],
        }
        self.order_no = None
        self.lines.committed = []
        return self._ok("nWrite")

    def close(self) -> None:
        self.lines.close()
        super().close()


class MemoryLines(MemoryObject):
    """``oLines`` of a sales order."""

    def __init__(self, db: MemoryDatabase, order: MemorySalesOrder):
        super().__init__(db, f"{fields.SALES_ORDER_BUS}.{fields.LINES}", order._session)
        self.order = order
        self.pending: Optional[Dict[str, Any]] = None
        self.committed: List[Dict[str, Any]] = []

    def _call_nAddLine(self) -> CallResult:
        if self.order.order_no is None:
            return self._fail(fields.ADD_LINE, "No current sales order")
        self.pending = {}
        return self._ok(fields.ADD_LINE)

    def set_value(self, field_name: str, value: Any) -> CallResult:
        self._check("nSetValue")
        if self.pending is None:
            return self._fail("nSetValue", "No current line. Call nAddLine first.")
        if field_name == fields.ITEM_CODE and not self.db.item_exists(value):
            return self._fail("nSetValue", f"Item {value} is not on file.")
        if field_name == fields.QUANTITY_ORDERED and float(value) <= 0:
            return self._fail("nSetValue", "Quantity must be greater than zero.")
        self.pending[field_name] = value
        return self._ok("nSetValue")

    def write(self) -> CallResult:
        self._check("nWrite")
        if self.pending is None or fields.ITEM_CODE not in self.pending:
            return self._fail("nWrite", "Item code is required")
        self.committed.append(self.pending)
        self.pending = None
        return self._ok("nWrite")


# =============================================================================
# Engine / Driver
# =============================================================================

class MemoryEngine(ScriptEngine):
    """Stand-in for an initialized ProvideX.Script."""

    def __init__(self, db: MemoryDatabase, path: str):
        self.db = db
        self.path = path
        self.closed = False

    def new_object(self, type_name: str, *args: Any) -> RecordObject:
        if self.closed:
            raise ExternalCallError("NewObject called on a closed script engine", method="NewObject")
        if type_name in self.db.unavailable_objects:
            raise ObjectUnavailable(f"Failed to create {type_name} object - NewObject returned nothing", method="NewObject")

        if type_name == fields.SESSION:
            if self.db.creation_delay:
                time.sleep(self.db.creation_delay)
            with self.db._lock:
                self.db.sessions_created += 1
            return MemorySession(self.db)

        session = args[0] if args else None
        if not isinstance(session, MemorySession) or not session.ready:
            raise ObjectUnavailable(f"{type_name} requires an authenticated session", method="NewObject")
        session._check("NewObject")

        if type_name in TABLE_KEYS:
            return MemoryTable(self.db, type_name, session)
        if type_name == fields.SALES_ORDER_BUS:
            return MemorySalesOrder(self.db, session)
        raise ObjectUnavailable(f"Unknown object {type_name}", method="NewObject")

    def close(self) -> None:
        self.closed = True


@register_driver(DriverType.MEMORY.value)
class MemoryDriver(RecordDriver):
    """Opens MemoryEngines over one shared MemoryDatabase."""

    def __init__(self, database: Optional[MemoryDatabase] = None):
        if database is None:
            from connectors.memory.seed import sample_database
            database = sample_database()
        self.database = database

    def open(self, path: str) -> ScriptEngine:
        if self.database.fail_engine:
            raise ExternalCallError(f"ProvideX.Script.Init({path}) failed: path not found", method="Init")
        return MemoryEngine(self.database, path)
