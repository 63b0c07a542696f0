"""In-memory driver. Importing this package registers the "memory" driver."""

from connectors.memory.driver import (
    MemoryDatabase,
    MemoryDriver,
    MemoryEngine,
    MemorySession,
)
from connectors.memory.seed import sample_database

__all__ = [
    "MemoryDatabase",
    "MemoryDriver",
    "MemoryEngine",
    "MemorySession",
    "sample_database",
]
