"""Sessioned operation wrapper.

Every unit of work against Sage 100 follows the same shape:

    acquire -> operate -> classify outcome -> release OR invalidate (exactly once)

``SessionLease`` is that shape as a context manager:

    with pool.lease(operation="create_sales_order", cancel=cancel) as lease:
        order = lease.new_object("SO_SalesOrder_bus")
        ...
        lease.check_cancelled()

Outcome classification when the body exits:
- clean exit, or a business failure (ExternalOperationFailure, including
  ObjectUnavailable) or OperationCancelled: the handle is released
- anything else (ExternalCallError, HandleCorrupted, unexpected errors) or an
  explicit mark_corrupted(): the handle is invalidated

Exceptions are never swallowed; callers normalize them into result objects.
"""

import threading
import time
from typing import Any, List, Optional

from connectors.record_session import ExternalOperationFailure, RecordObject
from core.observability.logging import get_logger, with_correlation
from core.pool.errors import OperationCancelled
from core.pool.handle import SessionHandle

logger = get_logger(__name__)

# Errors that leave the external session in a known-good state
_HANDLE_SAFE_ERRORS = (ExternalOperationFailure, OperationCancelled)


def is_handle_safe(exc: Optional[BaseException]) -> bool:
    """True if ``exc`` (or what it wraps) is a business failure or a cancellation."""
    seen = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, _HANDLE_SAFE_ERRORS):
            return True
        seen.add(id(exc))
        exc = exc.__cause__
    return False


class SessionLease:
    """Exclusive use of one pooled session for the duration of a ``with`` block."""

    def __init__(
        self,
        pool,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
        operation: str = "operation",
    ):
        self._pool = pool
        self._timeout = timeout
        self._cancel = cancel
        self.operation = operation
        self.handle: Optional[SessionHandle] = None
        self.corrupted_reason: Optional[str] = None
        self.outcome: Optional[str] = None
        self._objects: List[RecordObject] = []
        self._started = 0.0
        self._correlation = None

    @property
    def session(self) -> RecordObject:
        """The SY_Session object of the leased handle."""
        return self.handle.session

    @property
    def session_id(self) -> Optional[str]:
        return self.handle.session_id if self.handle else None

    @property
    def is_corrupted(self) -> bool:
        return self.corrupted_reason is not None

    def __enter__(self) -> "SessionLease":
        self.handle = self._pool.acquire(timeout=self._timeout, cancel=self._cancel)
        self._started = time.monotonic()
        self._pool._metrics.record_operation_started(self.operation)
        self._correlation = with_correlation(
            session_id=self.handle.session_id, operation=self.operation
        )
        self._correlation.__enter__()
        return self

    def new_object(self, type_name: str, *args: Any) -> RecordObject:
        """Create a BOI object bound to this session; it is closed when the lease ends.

        Raises:
            ObjectUnavailable: The engine refused to create the object
            ExternalCallError: The engine faulted
        """
        obj = self.handle.engine.new_object(type_name, self.session, *args)
        self._objects.append(obj)
        return obj

    def mark_corrupted(self, reason: str) -> None:
        """Flag the handle so it is invalidated instead of released."""
        if self.corrupted_reason is None:
            logger.warning(f"Session {self.session_id} marked corrupted during {self.operation}: {reason}")
            self.corrupted_reason = reason

    def check_cancelled(self) -> None:
        """Raise OperationCancelled if the caller's cancel event is set."""
        if self._cancel is not None and self._cancel.is_set():
            raise OperationCancelled(self.operation)

    def _close_objects(self) -> None:
        while self._objects:
            obj = self._objects.pop()
            try:
                obj.close()
            except Exception as e:
                logger.warning(f"Error closing {obj.name or 'object'} on session {self.session_id}: {e}")

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is not None and not is_handle_safe(exc):
            self.mark_corrupted(f"{type(exc).__name__}: {exc}")

        duration_ms = (time.monotonic() - self._started) * 1000
        metrics = self._pool._metrics
        try:
            self._close_objects()
        finally:
            handle = self.handle
            if self.is_corrupted:
                self.outcome = "invalidated"
                self._pool.invalidate(handle)
            else:
                self.outcome = "released"
                self._pool.release(handle)

            if exc is None:
                metrics.record_operation_completed(self.operation, duration_ms)
            else:
                metrics.record_operation_failed(self.operation, invalidated=self.is_corrupted)
            logger.debug(
                f"{self.operation} on session {handle.session_id} {self.outcome} "
                f"after {duration_ms:.1f}ms"
            )
            if self._correlation is not None:
                self._correlation.__exit__(None, None, None)
                self._correlation = None

        return False
