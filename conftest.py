"""Shared pytest fixtures: in-memory Sage 100 and a pool over it."""

from datetime import datetime

import pytest

from connectors.memory import MemoryDriver, sample_database
from connectors.sage100 import SessionFactory, reset_key_lookup_cache
from core.config import SageConfig
from core.observability.metrics import get_metrics
from core.pool import SessionPool

FIXED_NOW = datetime(2026, 10, 17, 9, 30, 0)


@pytest.fixture(autouse=True)
def _reset_process_state():
    """Metrics and the key-lookup cache are process-wide."""
    get_metrics().reset()
    reset_key_lookup_cache()
    yield
    reset_key_lookup_cache()


@pytest.fixture
def memory_db():
    return sample_database()


@pytest.fixture
def sage_config():
    return SageConfig(
        server_path=r"\\sage\MAS90\Home",
        username="admin",
        password="secret",
        company="ABC",
        pool_size=2,
        acquire_timeout_seconds=1.0,
        driver="memory",
        default_division="00",
    )


@pytest.fixture
def session_factory(memory_db, sage_config):
    return SessionFactory(MemoryDriver(memory_db), sage_config, clock=lambda: FIXED_NOW)


@pytest.fixture
def pool(session_factory, sage_config):
    pool = SessionPool(
        session_factory.create,
        size=sage_config.pool_size,
        acquire_timeout=sage_config.acquire_timeout_seconds,
    )
    yield pool
    pool.shutdown()
