"""Sage 100 record-session drivers.

This package contains the abstract record-session interface and its
concrete drivers:

- sage100/: real Business Object Interface over COM (pywin32), plus the
  session handshake and the customer/ship-to record source
- memory/: in-process tables with the same calling convention, used by
  tests and the development server

Key Design Principle:
- Numeric BOI return codes are translated into CallResult exactly once,
  inside the driver. Services never see a raw 0/1.

To add a new driver:
1. Create a new folder
2. Implement RecordDriver / ScriptEngine / RecordObject
3. Register using the @register_driver decorator
"""

from connectors.record_session import (
    # Interface
    RecordDriver,
    ScriptEngine,
    RecordObject,
    CallResult,
    DriverType,

    # Errors
    ExternalCallError,
    ExternalOperationFailure,
    ObjectUnavailable,
    UnsupportedCapability,

    # Factory functions
    create_driver,
    register_driver,
    list_available_drivers,
)

__all__ = [
    # Interface
    "RecordDriver",
    "ScriptEngine",
    "RecordObject",
    "CallResult",
    "DriverType",

    # Errors
    "ExternalCallError",
    "ExternalOperationFailure",
    "ObjectUnavailable",
    "UnsupportedCapability",

    # Factory
    "create_driver",
    "register_driver",
    "list_available_drivers",
]
