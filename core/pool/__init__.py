"""
Session Pool

Bounded pool of exclusive, expensive-to-create Sage 100 BOI sessions plus the
lease wrapper every external operation runs inside.
"""

from core.pool.errors import (
    PoolError,
    PoolTimeout,
    AcquireCancelled,
    PoolDisposed,
    HandleCreationFailure,
    EngineInitError,
    AuthenticationError,
    CompanySelectionError,
    HandleCorrupted,
    OperationCancelled,
)
from core.pool.handle import SessionHandle, HandleState
from core.pool.pool import SessionPool, AdmissionGate
from core.pool.lease import SessionLease, is_handle_safe

__all__ = [
    # Errors
    "PoolError",
    "PoolTimeout",
    "AcquireCancelled",
    "PoolDisposed",
    "HandleCreationFailure",
    "EngineInitError",
    "AuthenticationError",
    "CompanySelectionError",
    "HandleCorrupted",
    "OperationCancelled",
    # Pool
    "SessionHandle",
    "HandleState",
    "SessionPool",
    "AdmissionGate",
    "SessionLease",
    "is_handle_safe",
]
