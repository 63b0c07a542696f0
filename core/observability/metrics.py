"""
Metrics Collection for the Sage 100 middleware

In-memory counters and timing windows for:
- Session pool lifecycle (created, acquired, released, invalidated, timeouts)
- Pooled operations, per operation name
- Customer resolution outcomes, per recommendation

Everything resets on restart; /health/metrics serves ``get_summary()``.
"""

import statistics
from collections import defaultdict, deque
from dataclasses import asdict, dataclass, field
from threading import Lock
from typing import Any, Deque, Dict, Iterable, Optional

MAX_TIMING_SAMPLES = 1000


# =============================================================================
# Counters
# =============================================================================

@dataclass
class PoolCounters:
    created: int = 0
    creation_failed: int = 0
    acquired: int = 0
    released: int = 0
    invalidated: int = 0
    timeouts: int = 0
    # Keyed by handshake stage (engine, auth, company, unknown)
    creation_failures_by_stage: Dict[str, int] = field(default_factory=dict)


def _operation_row() -> Dict[str, int]:
    return {"completed": 0, "failed": 0, "invalidated": 0}


@dataclass
class OperationCounters:
    started: int = 0
    completed: int = 0
    failed: int = 0
    by_name: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(_operation_row))


# =============================================================================
# Timings
# =============================================================================

def _p95(samples: Iterable[float]) -> float:
    ordered = sorted(samples)
    if not ordered:
        return 0.0
    return ordered[min(int(len(ordered) * 0.95), len(ordered) - 1)]


class TimingWindows:
    """Last ``MAX_TIMING_SAMPLES`` durations overall and per stage."""

    def __init__(self, max_samples: int = MAX_TIMING_SAMPLES):
        self._max = max_samples
        self.overall: Deque[float] = deque(maxlen=max_samples)
        self.stages: Dict[str, Deque[float]] = {}

    def add(self, stage: str, duration_ms: float) -> None:
        self.overall.append(duration_ms)
        self.stages.setdefault(stage, deque(maxlen=self._max)).append(duration_ms)

    def window(self, stage: Optional[str] = None) -> Deque[float]:
        if stage is None:
            return self.overall
        return self.stages.get(stage, deque())

    def stats(self, stage: Optional[str] = None) -> Dict[str, float]:
        samples = self.window(stage)
        return {
            "average_ms": statistics.mean(samples) if samples else 0.0,
            "p95_ms": _p95(samples),
        }


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector shared by the pool, leases and services.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_session_acquired(wait_ms=3.2)
        metrics.record_operation_completed("resolve_customer", duration_ms=85)
    """

    _instance: Optional["MetricsCollector"] = None
    _instance_lock = Lock()

    def __init__(self):
        self._lock = Lock()
        self.reset()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def reset(self) -> None:
        """Clear everything (tests and operator resets)."""
        with self._lock:
            self.pool = PoolCounters()
            self.operations = OperationCounters()
            self.timings = TimingWindows()
            self.recommendations: Dict[str, int] = defaultdict(int)

    # -- pool ------------------------------------------------------------

    def record_session_created(self):
        with self._lock:
            self.pool.created += 1

    def record_session_creation_failed(self, stage: str):
        with self._lock:
            self.pool.creation_failed += 1
            by_stage = self.pool.creation_failures_by_stage
            by_stage[stage] = by_stage.get(stage, 0) + 1

    def record_session_acquired(self, wait_ms: Optional[float] = None):
        with self._lock:
            self.pool.acquired += 1
            if wait_ms is not None:
                self.timings.add("pool.acquire_wait", wait_ms)

    def record_session_released(self):
        with self._lock:
            self.pool.released += 1

    def record_session_invalidated(self):
        with self._lock:
            self.pool.invalidated += 1

    def record_pool_timeout(self):
        with self._lock:
            self.pool.timeouts += 1

    # -- operations ------------------------------------------------------

    def record_operation_started(self, operation: str):
        with self._lock:
            self.operations.started += 1

    def record_operation_completed(self, operation: str, duration_ms: Optional[float] = None):
        with self._lock:
            self.operations.completed += 1
            self.operations.by_name[operation]["completed"] += 1
            if duration_ms is not None:
                self.timings.add(f"operation.{operation}", duration_ms)

    def record_operation_failed(self, operation: str, invalidated: bool = False):
        with self._lock:
            row = self.operations.by_name[operation]
            self.operations.failed += 1
            row["failed"] += 1
            if invalidated:
                row["invalidated"] += 1

    def record_resolution(self, recommendation: str, duration_ms: Optional[float] = None):
        with self._lock:
            self.recommendations[recommendation] += 1
            if duration_ms is not None:
                self.timings.add("resolution", duration_ms)

    # -- timings ---------------------------------------------------------

    def record_processing_time(self, stage: str, duration_ms: float):
        with self._lock:
            self.timings.add(stage, duration_ms)

    def get_timing_stats(self, stage: Optional[str] = None) -> Dict[str, float]:
        with self._lock:
            stats = self.timings.stats(stage)
            stats["sample_count"] = len(self.timings.window(stage))
            return stats

    # -- summary ---------------------------------------------------------

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            ops = self.operations
            return {
                "pool": asdict(self.pool),
                "operations": {
                    "started": ops.started,
                    "completed": ops.completed,
                    "failed": ops.failed,
                    "by_name": {name: dict(row) for name, row in ops.by_name.items()},
                },
                "resolutions": dict(self.recommendations),
                "timings": {
                    "overall": self.timings.stats(),
                    "by_stage": {stage: self.timings.stats(stage) for stage in self.timings.stages},
                },
            }


def get_metrics() -> MetricsCollector:
    """The process-wide collector."""
    return MetricsCollector.instance()


def record_processing_time(stage: str, duration_ms: float):
    get_metrics().record_processing_time(stage, duration_ms)
