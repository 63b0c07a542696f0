"""Abstract External Record Session Interface.

This module defines the interface every Sage 100 BOI driver must implement.
It is intentionally transport-agnostic - no COM, no ProvideX specifics here.

The Business Object Interface has a peculiar calling convention: most methods
return a numeric code (``0`` = failure, non-zero = success) and the reason for
a failure is only available through a side-channel (``sLastErrorMsg``).
Drivers translate that convention ONCE, at this boundary, into ``CallResult``
objects. Core logic never inspects raw numeric codes.

Two kinds of failure are kept strictly apart:

- Business failure: the call returned ``0``. The object and the session are
  fine ("item not found", "invalid customer"). Reported as a ``CallResult``
  with ``ok=False``.
- Driver fault: the call itself blew up (COM exception, dead session). The
  session handle can no longer be trusted. Raised as ``ExternalCallError``.

Drivers implement:
1. ``RecordDriver.open()`` - initialize a script engine for a server path
2. ``ScriptEngine.new_object()`` - instantiate a BOI object (SY_Session, *_svc, *_bus)
3. ``RecordObject`` - field get/set, cursor navigation, key lookup, write
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# Enums
# =============================================================================

class DriverType(str, Enum):
    """Available driver implementations."""
    COM = "com"
    MEMORY = "memory"


# =============================================================================
# Errors
# =============================================================================

class ExternalCallError(Exception):
    """A driver-level fault: the external call raised instead of returning a code.

    Seeing this mid-operation means the session handle may be corrupted.
    """
    def __init__(self, message: str, method: str = "", hresult: Optional[int] = None):
        super().__init__(message)
        self.method = method
        self.hresult = hresult


class ExternalOperationFailure(Exception):
    """A business-rule rejection reported by the external system.

    Not fatal to the handle. Carries the side-channel error message.
    """
    def __init__(self, message: str, method: str = "", external_message: str = ""):
        super().__init__(message)
        self.method = method
        self.external_message = external_message


class ObjectUnavailable(ExternalOperationFailure):
    """The engine refused to instantiate a BOI object (e.g. no access rights)."""
    pass


class UnsupportedCapability(Exception):
    """The object does not support an optional capability (e.g. key lookup)."""
    def __init__(self, capability: str, object_name: str = ""):
        super().__init__(f"{object_name or 'object'} does not support {capability}")
        self.capability = capability
        self.object_name = object_name


# =============================================================================
# Call Results
# =============================================================================

@dataclass(frozen=True)
class CallResult:
    """Outcome of a single external call.

    Attributes:
        ok: True when the external system reported success
        value: Returned value (out-parameter, numeric code, or field value)
        message: Side-channel error message when ok is False
        method: Name of the external method that was called
    """
    ok: bool
    value: Any = None
    message: str = ""
    method: str = ""

    @classmethod
    def success(cls, value: Any = None, method: str = "") -> "CallResult":
        return cls(ok=True, value=value, method=method)

    @classmethod
    def failure(cls, message: str, method: str = "") -> "CallResult":
        return cls(ok=False, message=message or "Unknown error", method=method)

    def unwrap(self) -> Any:
        """Return the value or raise ExternalOperationFailure."""
        if not self.ok:
            raise ExternalOperationFailure(
                f"{self.method or 'call'} failed: {self.message}",
                method=self.method,
                external_message=self.message,
            )
        return self.value

    def __bool__(self) -> bool:
        return self.ok


# =============================================================================
# Driver Interface
# =============================================================================

class RecordObject(ABC):
    """A single BOI object instance (SY_Session, AR_Customer_svc, SO_SalesOrder_bus...).

    Objects are stateful: they hold a current-record cursor. They must never
    be shared between callers.
    """

    name: str = ""

    @abstractmethod
    def get_value(self, field_name: str) -> CallResult:
        """Read a field from the current record (``nGetValue``)."""
        pass

    @abstractmethod
    def set_value(self, field_name: str, value: Any) -> CallResult:
        """Set a field on the current record (``nSetValue``)."""
        pass

    @abstractmethod
    def move_first(self) -> CallResult:
        """Position the cursor on the first record (``nMoveFirst``)."""
        pass

    @abstractmethod
    def move_next(self) -> CallResult:
        """Advance the cursor (``nMoveNext``). ok=False at end of file."""
        pass

    @abstractmethod
    def set_key(self, key: str) -> CallResult:
        """Start a new or existing record by key (``nSetKey``)."""
        pass

    @abstractmethod
    def write(self) -> CallResult:
        """Commit the current record (``nWrite``)."""
        pass

    @abstractmethod
    def call(self, method: str, *args: Any) -> CallResult:
        """Invoke an arbitrary numeric-returning BOI method.

        Out-parameters, if any, come back in ``CallResult.value``.
        """
        pass

    @abstractmethod
    def child(self, attribute: str) -> "RecordObject":
        """Return a child object exposed as a property (e.g. ``oLines``)."""
        pass

    @abstractmethod
    def last_error_message(self) -> str:
        """Read the side-channel error message (``sLastErrorMsg``)."""
        pass

    @abstractmethod
    def ping(self) -> bool:
        """Trivial liveness probe. Raises ExternalCallError when the object is dead."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the underlying external object. Must not raise."""
        pass

    def find(self, key: Dict[str, Any]) -> CallResult:
        """Position the cursor by key (``nSetKeyValue`` + ``nFind``).

        Optional capability. Drivers that cannot do indexed lookup raise
        UnsupportedCapability so callers fall back to a scan.
        """
        raise UnsupportedCapability("key lookup", self.name)

    def get_string(self, field_name: str) -> str:
        """Read a field as a trimmed string, "" when the read is rejected."""
        result = self.get_value(field_name)
        if not result.ok or result.value is None:
            return ""
        return str(result.value).strip()


class ScriptEngine(ABC):
    """An initialized ProvideX script engine bound to a server path."""

    @abstractmethod
    def new_object(self, type_name: str, *args: Any) -> RecordObject:
        """Instantiate a BOI object.

        Raises:
            ObjectUnavailable: The engine returned no object
            ExternalCallError: The engine itself faulted
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the engine. Must not raise."""
        pass


class RecordDriver(ABC):
    """Factory for script engines."""

    driver_type: str = ""

    @abstractmethod
    def open(self, path: str) -> ScriptEngine:
        """Initialize a script engine for the given Sage 100 server path.

        Raises:
            ExternalCallError: The engine could not be created or initialized
        """
        pass


# =============================================================================
# Driver Registry
# =============================================================================

_driver_registry: Dict[str, type] = {}


def register_driver(driver_type: str):
    """Decorator to register a driver implementation."""
    def decorator(cls):
        cls.driver_type = driver_type
        _driver_registry[driver_type] = cls
        return cls
    return decorator


def create_driver(driver_type: str, **kwargs: Any) -> RecordDriver:
    """Create a driver instance by type name.

    Args:
        driver_type: Registered driver name ("com", "memory")
        **kwargs: Driver-specific constructor arguments

    Raises:
        ValueError: If driver_type is not registered
    """
    # Importing the packages registers their drivers
    import connectors.sage100  # noqa: F401
    import connectors.memory  # noqa: F401

    if driver_type not in _driver_registry:
        available = list(_driver_registry.keys())
        raise ValueError(
            f"Unknown driver type: {driver_type}. Available: {available}"
        )
    return _driver_registry[driver_type](**kwargs)


def list_available_drivers() -> List[str]:
    """List all registered driver types."""
    import connectors.sage100  # noqa: F401
    import connectors.memory  # noqa: F401
    return list(_driver_registry.keys())
