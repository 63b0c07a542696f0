"""
Session Pool Tests

Validates the pooled-session lifecycle against the in-memory driver:
1. Handshake stages fail with distinct error types
2. Lazy initialization, acquire/release/invalidate bookkeeping
3. Timeouts, cancellation and shutdown
4. Lease outcome classification (release vs invalidate, exactly once)
5. Health probe
"""

import threading
import time

import pytest

from connectors.memory import MemoryDriver
from connectors.record_session import ExternalCallError, ExternalOperationFailure
from connectors.sage100 import SessionFactory, fields
from core.config import SageConfig
from core.observability.metrics import get_metrics
from core.pool import (
    AcquireCancelled,
    AdmissionGate,
    AuthenticationError,
    CompanySelectionError,
    EngineInitError,
    HandleCorrupted,
    HandleState,
    OperationCancelled,
    PoolDisposed,
    PoolTimeout,
    SessionPool,
    is_handle_safe,
)


# =============================================================================
# Handshake
# =============================================================================

class TestHandshake:
    """SessionFactory.create() stages."""

    def test_creates_authenticated_session(self, session_factory, memory_db):
        handle = session_factory.create()
        try:
            assert handle.session.ready
            assert handle.session.user == "admin"
            assert handle.session.company == "ABC"
            assert handle.state == HandleState.CREATED
            assert len(handle.session_id) == 8
        finally:
            handle.destroy()

    def test_module_and_date_context_set(self, session_factory, memory_db):
        handle = session_factory.create()
        handle.destroy()
        assert memory_db.module_context == [("S/O", "20261017")]

    def test_engine_failure_is_engine_init_error(self, session_factory, memory_db):
        memory_db.fail_engine = True
        with pytest.raises(EngineInitError) as exc_info:
            session_factory.create()
        assert exc_info.value.stage == "engine"

    def test_session_object_failure_is_engine_init_error(self, session_factory, memory_db):
        memory_db.unavailable_objects.add(fields.SESSION)
        with pytest.raises(EngineInitError):
            session_factory.create()

    def test_bad_credentials_are_authentication_error(self, memory_db, sage_config):
        sage_config.password = "wrong"
        factory = SessionFactory(MemoryDriver(memory_db), sage_config)
        with pytest.raises(AuthenticationError) as exc_info:
            factory.create()
        assert exc_info.value.stage == "auth"
        assert "Invalid user or password" in exc_info.value.external_message

    def test_bad_company_is_company_selection_error(self, memory_db, sage_config):
        sage_config.company = "XYZ"
        factory = SessionFactory(MemoryDriver(memory_db), sage_config)
        with pytest.raises(CompanySelectionError) as exc_info:
            factory.create()
        assert exc_info.value.stage == "company"
        assert "XYZ" in exc_info.value.external_message

    def test_failed_handshake_closes_opened_objects(self, session_factory, memory_db):
        memory_db.fail_company = True
        with pytest.raises(CompanySelectionError):
            session_factory.create()
        assert memory_db.open_objects == 0

    def test_module_context_fault_is_engine_init_error(self, session_factory, memory_db):
        # nSetUser and nSetCompany succeed, nSetModule raises
        memory_db.arm_fault(after_calls=2)
        with pytest.raises(EngineInitError) as exc_info:
            session_factory.create()
        assert exc_info.value.__cause__ is not None
        assert fields.SET_MODULE in str(exc_info.value)
        assert memory_db.module_context == []
        assert memory_db.open_objects == 0

    def test_module_context_fault_keeps_session_out_of_pool(self, pool, memory_db):
        memory_db.arm_fault(after_calls=2)
        handle = pool.acquire(timeout=0.5)
        assert get_metrics().get_summary()["pool"]["creation_failures_by_stage"] == {"engine": 1}
        assert pool.available_count == 0
        assert get_metrics().get_summary()["pool"]["created"] == 1
        pool.release(handle)


# =============================================================================
# Admission gate
# =============================================================================

class TestAdmissionGate:

    def test_permits_are_bounded(self):
        gate = AdmissionGate(2)
        assert gate.acquire(0.01)
        assert gate.acquire(0.01)
        assert not gate.acquire(0.05)
        gate.release()
        assert gate.acquire(0.01)

    def test_over_release_is_rejected(self):
        gate = AdmissionGate(1)
        with pytest.raises(ValueError):
            gate.release()

    def test_close_wakes_waiters(self):
        gate = AdmissionGate(1)
        gate.acquire(0.01)
        threading.Timer(0.05, gate.close).start()
        with pytest.raises(PoolDisposed):
            gate.acquire(5.0)


# =============================================================================
# Pool
# =============================================================================

class TestSessionPool:
    """Acquire / release / invalidate bookkeeping."""

    def test_initialization_is_lazy(self, pool, memory_db):
        assert not pool.is_initialized
        assert memory_db.sessions_created == 0

        handle = pool.acquire()
        assert pool.is_initialized
        assert memory_db.sessions_created == 2
        assert pool.active_count == 1
        assert pool.available_count == 1
        pool.release(handle)

    def test_release_returns_handle(self, pool):
        handle = pool.acquire()
        assert handle.state == HandleState.ACTIVE
        pool.release(handle)
        assert handle.state == HandleState.AVAILABLE
        assert pool.active_count == 0
        assert pool.available_count == 2

    def test_double_release_is_ignored(self, pool):
        handle = pool.acquire()
        pool.release(handle)
        pool.release(handle)
        assert pool.available_count == 2
        assert get_metrics().get_summary()["pool"]["released"] == 1

    def test_invalidated_handle_is_never_reused(self, pool, memory_db):
        first = pool.acquire()
        second = pool.acquire()
        pool.invalidate(first)
        assert first.state == HandleState.INVALIDATED
        assert pool.active_count == 1

        third = pool.acquire()
        assert third is not first
        assert third.session_id != first.session_id
        assert memory_db.sessions_created == 3
        pool.release(second)
        pool.release(third)
        assert get_metrics().get_summary()["pool"]["invalidated"] == 1

    def test_invalidate_unknown_handle_is_ignored(self, pool):
        handle = pool.acquire()
        pool.release(handle)
        pool.invalidate(handle)
        assert handle.state == HandleState.AVAILABLE
        assert pool.available_count == 2

    def test_timeout_when_exhausted(self, pool):
        held = [pool.acquire(), pool.acquire()]
        started = time.monotonic()
        with pytest.raises(PoolTimeout) as exc_info:
            pool.acquire(timeout=0.2)
        assert time.monotonic() - started >= 0.19
        assert exc_info.value.retryable
        assert get_metrics().get_summary()["pool"]["timeouts"] == 1
        for handle in held:
            pool.release(handle)

    def test_waiter_gets_released_handle(self, pool):
        held = [pool.acquire(), pool.acquire()]
        threading.Timer(0.05, pool.release, args=(held[0],)).start()
        handle = pool.acquire(timeout=2.0)
        assert handle is held[0]
        pool.release(handle)
        pool.release(held[1])

    def test_cancel_aborts_waiting_acquire(self, pool):
        held = [pool.acquire(), pool.acquire()]
        cancel = threading.Event()
        threading.Timer(0.05, cancel.set).start()
        started = time.monotonic()
        with pytest.raises(AcquireCancelled):
            pool.acquire(timeout=5.0, cancel=cancel)
        assert time.monotonic() - started < 2.0
        for handle in held:
            pool.release(handle)

    def test_creation_failure_returns_slot(self, pool, memory_db):
        memory_db.fail_auth = True
        with pytest.raises(AuthenticationError):
            pool.acquire(timeout=0.1)
        assert pool.active_count == 0
        assert get_metrics().get_summary()["pool"]["creation_failures_by_stage"]["auth"] >= 1

        memory_db.fail_auth = False
        handle = pool.acquire(timeout=0.1)
        assert handle.state == HandleState.ACTIVE
        pool.release(handle)

    def test_shutdown_disposes_everything(self, pool):
        handle = pool.acquire()
        pool.release(handle)
        active = pool.acquire()

        pool.shutdown()
        pool.shutdown()
        assert pool.is_disposed
        assert handle.state == HandleState.INVALIDATED
        assert active.state == HandleState.INVALIDATED
        with pytest.raises(PoolDisposed):
            pool.acquire()

    def test_context_manager_shuts_down(self, session_factory):
        with SessionPool(session_factory.create, size=1) as pool:
            pool.release(pool.acquire())
        assert pool.is_disposed

    def test_shutdown_during_initialization_destroys_new_session(self, pool, memory_db):
        memory_db.creation_delay = 0.3
        outcome = []

        def first_caller():
            try:
                outcome.append(pool.acquire(timeout=2.0))
            except PoolDisposed as e:
                outcome.append(e)

        caller = threading.Thread(target=first_caller)
        caller.start()
        time.sleep(0.1)
        pool.shutdown()
        caller.join()

        assert isinstance(outcome[0], PoolDisposed)
        assert memory_db.sessions_created == 1
        assert pool.available_count == 0
        assert memory_db.open_objects == 0

    def test_initialization_wait_honors_timeout(self, pool, memory_db):
        memory_db.creation_delay = 0.3
        filler = threading.Thread(target=lambda: pool.release(pool.acquire(timeout=2.0)))
        filler.start()
        time.sleep(0.05)

        started = time.monotonic()
        with pytest.raises(PoolTimeout):
            pool.acquire(timeout=0.1)
        elapsed = time.monotonic() - started
        filler.join()

        assert elapsed < 0.4
        assert get_metrics().get_summary()["pool"]["timeouts"] == 1
        assert pool.available_count == 2

    def test_capacity_never_exceeded_under_load(self, pool):
        lock = threading.Lock()
        in_use = {"now": 0, "max": 0}
        held_ids = set()
        shared = []
        errors = []

        def worker():
            for _ in range(10):
                try:
                    with pool.lease(timeout=5.0, operation="load") as lease:
                        session_id = lease.handle.session_id
                        with lock:
                            if session_id in held_ids:
                                shared.append(session_id)
                            held_ids.add(session_id)
                            in_use["now"] += 1
                            in_use["max"] = max(in_use["max"], in_use["now"])
                        time.sleep(0.002)
                        with lock:
                            held_ids.discard(session_id)
                            in_use["now"] -= 1
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert in_use["max"] <= pool.capacity
        assert shared == []
        assert pool.active_count == 0
        assert pool.available_count + pool.active_count <= pool.capacity

    def test_stats_snapshot(self, pool):
        handle = pool.acquire()
        stats = pool.stats()
        assert stats["capacity"] == 2
        assert stats["active_sessions"] == 1
        assert stats["active"][0]["session_id"] == handle.session_id
        pool.release(handle)

    def test_size_must_be_positive(self, session_factory):
        with pytest.raises(ValueError):
            SessionPool(session_factory.create, size=0)


# =============================================================================
# Health
# =============================================================================

class TestHealth:

    def test_healthy_pool(self, pool):
        assert pool.is_healthy()
        assert pool.active_count == 0

    def test_dead_session_is_invalidated(self, session_factory, memory_db):
        pool = SessionPool(session_factory.create, size=1)
        try:
            pool.release(pool.acquire())
            memory_db.kill_sessions()
            assert not pool.is_healthy()
            assert get_metrics().get_summary()["pool"]["invalidated"] == 1
            # The next probe gets a fresh session
            assert pool.is_healthy()
            assert memory_db.sessions_created == 2
        finally:
            pool.shutdown()

    def test_unreachable_sage_is_unhealthy(self, memory_db, sage_config):
        memory_db.fail_engine = True
        factory = SessionFactory(MemoryDriver(memory_db), sage_config)
        pool = SessionPool(factory.create, size=1)
        try:
            assert pool.is_healthy(timeout=0.1) is False
        finally:
            pool.shutdown()


# =============================================================================
# Lease
# =============================================================================

class TestSessionLease:
    """Outcome classification: release on success or business failure, invalidate on faults."""

    def test_clean_exit_releases(self, pool):
        with pool.lease(operation="read") as lease:
            lease.new_object(fields.CUSTOMER_SVC)
            handle = lease.handle
        assert lease.outcome == "released"
        assert handle.state == HandleState.AVAILABLE
        summary = get_metrics().get_summary()
        assert summary["pool"]["released"] == 1
        assert summary["operations"]["by_name"]["read"]["completed"] == 1

    def test_objects_closed_on_exit(self, pool, memory_db):
        pool.release(pool.acquire())
        baseline = memory_db.open_objects
        with pool.lease() as lease:
            lease.new_object(fields.CUSTOMER_SVC)
            lease.new_object(fields.ITEM_SVC)
            assert memory_db.open_objects == baseline + 2
        assert memory_db.open_objects == baseline

    def test_driver_fault_invalidates(self, pool, memory_db):
        with pytest.raises(ExternalCallError):
            with pool.lease(operation="read") as lease:
                svc = lease.new_object(fields.CUSTOMER_SVC)
                memory_db.arm_fault()
                svc.move_first()
        assert lease.outcome == "invalidated"
        assert lease.handle.state == HandleState.INVALIDATED
        summary = get_metrics().get_summary()
        assert summary["pool"]["invalidated"] == 1
        assert summary["operations"]["by_name"]["read"]["invalidated"] == 1

    def test_business_failure_releases(self, pool):
        with pytest.raises(ExternalOperationFailure):
            with pool.lease() as lease:
                lease.new_object(fields.CUSTOMER_SVC).set_value(fields.CUSTOMER_NAME, "X").unwrap()
        assert lease.outcome == "released"

    def test_wrapped_business_failure_releases(self, pool):
        with pytest.raises(RuntimeError):
            with pool.lease() as lease:
                try:
                    raise ExternalOperationFailure("Record not found")
                except ExternalOperationFailure as e:
                    raise RuntimeError("lookup failed") from e
        assert lease.outcome == "released"

    def test_mark_corrupted_invalidates(self, pool):
        with pool.lease() as lease:
            lease.mark_corrupted("sentinel read failed")
        assert lease.outcome == "invalidated"
        assert pool.active_count == 0

    def test_handle_corrupted_invalidates(self, pool):
        with pytest.raises(HandleCorrupted):
            with pool.lease() as lease:
                raise HandleCorrupted(lease.session_id, "cursor lost")
        assert lease.outcome == "invalidated"

    def test_unexpected_error_invalidates(self, pool):
        with pytest.raises(KeyError):
            with pool.lease() as lease:
                raise KeyError("boom")
        assert lease.outcome == "invalidated"

    def test_cancellation_releases(self, pool):
        cancel = threading.Event()
        with pytest.raises(OperationCancelled):
            with pool.lease(cancel=cancel) as lease:
                cancel.set()
                lease.check_cancelled()
        assert lease.outcome == "released"

    def test_pool_timeout_propagates_without_release(self, pool):
        held = [pool.acquire(), pool.acquire()]
        with pytest.raises(PoolTimeout):
            with pool.lease(timeout=0.05):
                pass
        assert pool.active_count == 2
        for handle in held:
            pool.release(handle)

    def test_is_handle_safe(self):
        assert is_handle_safe(ExternalOperationFailure("x"))
        assert is_handle_safe(OperationCancelled("op"))
        assert not is_handle_safe(ExternalCallError("x"))
        assert not is_handle_safe(ValueError("x"))


class TestConfig:
    """Environment-driven settings."""

    def test_defaults(self):
        config = SageConfig.from_env({})
        assert config.pool_size == 1
        assert config.acquire_timeout_seconds == 30.0
        assert config.module == "S/O"
        assert config.limits.customer_scan == 500
        assert config.limits.ship_to_max == 30

    def test_overrides(self):
        config = SageConfig.from_env({
            "SAGE_POOL_SIZE": "3",
            "SAGE_DRIVER": "Memory",
            "SAGE_CUSTOMER_SCAN_LIMIT": "50",
        })
        assert config.pool_size == 3
        assert config.driver == "memory"
        assert config.limits.customer_scan == 50

    def test_invalid_number_names_variable(self):
        with pytest.raises(ValueError, match="SAGE_POOL_SIZE"):
            SageConfig.from_env({"SAGE_POOL_SIZE": "two"})

    def test_missing_credentials(self):
        assert SageConfig.from_env({}).missing_credentials() == [
            "SAGE_SERVER_PATH", "SAGE_USERNAME", "SAGE_PASSWORD", "SAGE_COMPANY",
        ]
