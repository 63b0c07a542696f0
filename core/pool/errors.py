"""Session pool error taxonomy.

Pool-level faults propagate to the immediate caller:

- PoolTimeout: no handle became available in time (retryable, "service busy")
- PoolDisposed: the pool was shut down (fatal)
- HandleCreationFailure: the BOI handshake failed at a specific stage
- HandleCorrupted: a sentinel call against a leased handle failed
- OperationCancelled: the caller cancelled between steps
"""

from typing import Optional


class PoolError(Exception):
    """Base class for session pool errors."""
    pass


class PoolTimeout(PoolError):
    """No session became available within the caller's deadline."""
    retryable = True

    def __init__(self, timeout_seconds: float, message: Optional[str] = None):
        super().__init__(
            message or f"Timeout waiting for available session after {timeout_seconds:g}s"
        )
        self.timeout_seconds = timeout_seconds


class AcquireCancelled(PoolTimeout):
    """The caller cancelled while waiting for a session."""

    def __init__(self, waited_seconds: float = 0.0):
        super().__init__(waited_seconds, "Cancelled while waiting for available session")


class PoolDisposed(PoolError):
    """Operation attempted after the pool was shut down."""
    retryable = False

    def __init__(self, message: str = "Session pool has been shut down"):
        super().__init__(message)


class HandleCreationFailure(PoolError):
    """Creating a new session handle failed.

    Attributes:
        stage: Handshake stage that failed ("engine", "auth", "company")
        external_message: Message reported by the external system, if any
    """
    stage = "unknown"

    def __init__(self, message: str, external_message: str = ""):
        super().__init__(message)
        self.external_message = external_message


class EngineInitError(HandleCreationFailure):
    """The script engine could not be created or initialized."""
    stage = "engine"


class AuthenticationError(HandleCreationFailure):
    """The session rejected the configured user credentials."""
    stage = "auth"


class CompanySelectionError(HandleCreationFailure):
    """The session rejected the configured company code."""
    stage = "company"


class HandleCorrupted(PoolError):
    """The external session behind a leased handle appears unusable."""

    def __init__(self, session_id: str, reason: str):
        super().__init__(f"Session {session_id} corrupted: {reason}")
        self.session_id = session_id
        self.reason = reason


class OperationCancelled(Exception):
    """The caller cancelled an operation between steps."""

    def __init__(self, operation: str = "operation"):
        super().__init__(f"{operation} cancelled")
        self.operation = operation
