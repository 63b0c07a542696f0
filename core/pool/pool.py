"""Bounded pool of exclusive Sage 100 session handles.

Creating a BOI session is expensive (engine init, SY_Session, user, company)
and a session is stateful: it carries a record cursor and a module/date
context. The pool hands each caller an exclusive handle and takes it back
afterwards, or destroys it when the caller reports it corrupted.

Coordination:
- AdmissionGate: counting gate with N permits; one permit per ACTIVE handle
- _available: deque of AVAILABLE handles (bookkeeping lock only)
- _active: dict of ACTIVE handles keyed by session_id (bookkeeping lock only)
- _init_lock: serializes the one-time pool fill

No lock is ever held while talking to the external system.

Invariants:
- len(_available) + len(_active) <= capacity
- outstanding gate permits == len(_active) at quiescent points
- an invalidated session_id is never handed out again
"""

import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional, Set

from core.observability.logging import get_logger
from core.observability.metrics import MetricsCollector, get_metrics
from core.pool.errors import (
    AcquireCancelled,
    HandleCreationFailure,
    PoolDisposed,
    PoolTimeout,
)
from core.pool.handle import SessionHandle, new_session_id

logger = get_logger(__name__)

# How often a waiter with a cancel event re-checks it
CANCEL_POLL_SECONDS = 0.05


class AdmissionGate:
    """Counting gate bounded at ``permits``.

    Like a BoundedSemaphore, but a waiter can be woken by cancellation or by
    the gate closing. No FIFO guarantee between waiters.
    """

    def __init__(self, permits: int):
        if permits < 1:
            raise ValueError("permits must be >= 1")
        self._capacity = permits
        self._free = permits
        self._closed = False
        self._cond = threading.Condition(threading.Lock())

    @property
    def free(self) -> int:
        with self._cond:
            return self._free

    def acquire(self, timeout: float, cancel: Optional[threading.Event] = None) -> bool:
        """Take one permit. Returns False once ``timeout`` seconds have elapsed.

        Raises:
            AcquireCancelled: ``cancel`` was set while waiting
            PoolDisposed: the gate was closed while waiting
        """
        started = time.monotonic()
        deadline = started + max(0.0, timeout)
        with self._cond:
            while True:
                if self._closed:
                    raise PoolDisposed()
                if cancel is not None and cancel.is_set():
                    raise AcquireCancelled(time.monotonic() - started)
                if self._free > 0:
                    self._free -= 1
                    return True
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                if cancel is not None:
                    remaining = min(remaining, CANCEL_POLL_SECONDS)
                self._cond.wait(remaining)

    def release(self) -> None:
        with self._cond:
            if self._free >= self._capacity:
                raise ValueError("AdmissionGate released more times than acquired")
            self._free += 1
            self._cond.notify()

    def close(self) -> None:
        """Wake every waiter; subsequent acquires raise PoolDisposed."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()


class SessionPool:
    """Thread-safe pool of ``SessionHandle`` objects.

    Example:
        pool = SessionPool(factory=SessionFactory(driver, config).create, size=2)

        with pool.lease(operation="get_customer") as lease:
            customers = lease.new_object("AR_Customer_svc")
            ...

        pool.shutdown()
    """

    def __init__(
        self,
        factory: Callable[[], SessionHandle],
        size: int = 1,
        acquire_timeout: float = 30.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize the pool. No session is created until first use.

        Args:
            factory: Creates a new, authenticated SessionHandle (may raise
                HandleCreationFailure)
            size: Pool capacity N
            acquire_timeout: Default seconds to wait in acquire()
            metrics: Metrics collector (defaults to the global one)
        """
        if size < 1:
            raise ValueError("Session pool size must be >= 1")

        self._factory = factory
        self._capacity = size
        self.acquire_timeout = acquire_timeout
        self._metrics = metrics or get_metrics()

        self._gate = AdmissionGate(size)
        self._available: Deque[SessionHandle] = deque()
        self._active: Dict[str, SessionHandle] = {}
        self._retired: Set[str] = set()
        self._lock = threading.Lock()
        self._init_lock = threading.Lock()
        self._initialized = False
        self._disposed = False

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def available_count(self) -> int:
        with self._lock:
            return len(self._available)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "capacity": self._capacity,
                "available_sessions": len(self._available),
                "active_sessions": len(self._active),
                "initialized": self._initialized,
                "disposed": self._disposed,
                "active": [h.to_dict() for h in self._active.values()],
            }

    # =========================================================================
    # Initialization
    # =========================================================================

    def _ensure_initialized(self, timeout: Optional[float] = None) -> None:
        """Fill the pool once. Individual creation failures are logged, not raised.

        A caller that finds another thread filling the pool waits at most
        ``timeout`` seconds for it, then raises PoolTimeout.
        """
        if self._initialized:
            return

        if timeout is None:
            self._init_lock.acquire()
        elif not self._init_lock.acquire(timeout=max(0.0, timeout)):
            self._metrics.record_pool_timeout()
            logger.warning(f"Timeout after {timeout:g}s waiting for pool initialization")
            raise PoolTimeout(timeout)

        try:
            if self._initialized:
                return

            logger.info(f"Initializing session pool with {self._capacity} sessions")
            success_count = 0
            for i in range(self._capacity):
                if self._disposed:
                    break
                try:
                    logger.info(f"Creating session {i + 1}/{self._capacity}...")
                    handle = self._create_handle()
                except HandleCreationFailure as e:
                    logger.error(
                        f"Failed to create session {i + 1} during pool initialization "
                        f"({e.stage}): {e}"
                    )
                    continue
                except Exception as e:
                    logger.exception(f"Failed to create session {i + 1} during pool initialization: {e}")
                    continue

                with self._lock:
                    disposed = self._disposed
                    if not disposed:
                        handle.mark_available()
                        self._available.append(handle)
                if disposed:
                    logger.info(f"Pool shut down during initialization, destroying session {handle.session_id}")
                    handle.destroy()
                    break
                success_count += 1

            self._initialized = True
            logger.info(
                f"Session pool initialized. Created {success_count}/{self._capacity} sessions"
            )
        finally:
            self._init_lock.release()

    def _create_handle(self) -> SessionHandle:
        """Run the factory and record the outcome."""
        try:
            handle = self._factory()
        except HandleCreationFailure as e:
            self._metrics.record_session_creation_failed(e.stage)
            raise
        except Exception:
            self._metrics.record_session_creation_failed("unknown")
            raise

        with self._lock:
            while handle.session_id in self._retired or handle.session_id in self._active:
                handle.session_id = new_session_id()
        self._metrics.record_session_created()
        logger.info(f"Created new session {handle.session_id}")
        return handle

    # =========================================================================
    # Acquire / Release / Invalidate
    # =========================================================================

    def acquire(
        self,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> SessionHandle:
        """Check out an exclusive session handle.

        Args:
            timeout: Seconds to wait for a free slot (default: pool setting)
            cancel: Event that aborts the wait when set

        Returns:
            An ACTIVE SessionHandle owned by the caller

        Raises:
            PoolTimeout: No slot freed up within ``timeout``
            AcquireCancelled: ``cancel`` was set while waiting
            PoolDisposed: The pool was shut down
            HandleCreationFailure: A replacement session could not be created
        """
        if self._disposed:
            raise PoolDisposed()

        wait = self.acquire_timeout if timeout is None else timeout
        started = time.monotonic()
        self._ensure_initialized(wait)

        if not self._gate.acquire(wait - (time.monotonic() - started), cancel):
            self._metrics.record_pool_timeout()
            logger.warning(
                f"Timeout waiting for session after {wait:g}s "
                f"(available={self.available_count}, active={self.active_count})"
            )
            raise PoolTimeout(wait)

        try:
            handle = self._take_available()
            if handle is None:
                logger.warning(
                    f"No sessions available in pool (active={self.active_count}), creating new session"
                )
                handle = self._create_handle()

            with self._lock:
                if self._disposed:
                    handle.destroy()
                    raise PoolDisposed()
                handle.mark_active()
                self._active[handle.session_id] = handle
        except BaseException:
            self._gate.release()
            raise

        wait_ms = (time.monotonic() - started) * 1000
        self._metrics.record_session_acquired(wait_ms)
        logger.debug(
            f"Acquired session {handle.session_id} "
            f"(available={self.available_count}, active={self.active_count})"
        )
        return handle

    def _take_available(self) -> Optional[SessionHandle]:
        with self._lock:
            if self._available:
                return self._available.popleft()
            return None

    def release(self, handle: SessionHandle) -> None:
        """Return an ACTIVE handle to the pool.

        Releasing a handle the pool does not consider active is a caller bug;
        it is logged and ignored.
        """
        if handle is None:
            return

        with self._lock:
            owned = self._active.pop(handle.session_id, None)
            if owned is not handle:
                if owned is not None:
                    self._active[owned.session_id] = owned
                logger.error(
                    f"Release of session {handle.session_id} ignored: not active "
                    f"(state={handle.state.value})"
                )
                return

            handle.mark_available()
            self._available.append(handle)

        self._gate.release()
        self._metrics.record_session_released()
        logger.debug(f"Released session {handle.session_id} back to pool")

    def invalidate(self, handle: SessionHandle) -> None:
        """Destroy an ACTIVE handle instead of returning it.

        The freed slot lets the next acquire create a brand-new session.
        """
        if handle is None:
            return

        with self._lock:
            owned = self._active.pop(handle.session_id, None)
            if owned is not handle:
                if owned is not None:
                    self._active[owned.session_id] = owned
                logger.error(
                    f"Invalidate of session {handle.session_id} ignored: not active "
                    f"(state={handle.state.value})"
                )
                return
            self._retired.add(handle.session_id)

        logger.warning(
            f"Invalidating session {handle.session_id} - will be disposed and not returned to pool"
        )
        try:
            handle.destroy()
        finally:
            self._gate.release()
            self._metrics.record_session_invalidated()

        logger.info(
            f"Session {handle.session_id} invalidated. A new session will be created on next request."
        )

    # =========================================================================
    # Health / Lifecycle
    # =========================================================================

    def is_healthy(self, timeout: float = 5.0) -> bool:
        """Acquire a session, probe it, give it back. Never raises."""
        try:
            handle = self.acquire(timeout=timeout)
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            return False

        try:
            alive = handle.is_alive()
        except Exception as e:
            logger.warning(f"Health check probe failed on session {handle.session_id}: {e}")
            self.invalidate(handle)
            return False

        self.release(handle)
        return alive

    def lease(
        self,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
        operation: str = "operation",
    ):
        """Context manager wrapping acquire -> operate -> release-or-invalidate."""
        from core.pool.lease import SessionLease
        return SessionLease(self, timeout=timeout, cancel=cancel, operation=operation)

    def shutdown(self) -> None:
        """Destroy every session. Idempotent."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            handles = list(self._available) + list(self._active.values())
            self._available.clear()
            self._active.clear()

        logger.info(f"Shutting down session pool ({len(handles)} sessions)")
        self._gate.close()
        for handle in handles:
            handle.destroy()

    def __enter__(self) -> "SessionPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
