"""Health check endpoints."""

import time
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from core import __version__
from core.observability.metrics import get_metrics
from models.health import HealthResponse


router = APIRouter()


def _uptime(started_at: float) -> str:
    seconds = int(time.time() - started_at)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    return f"{days}d {hours}h {minutes}m {seconds}s"


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness: the process is up. Does not touch Sage."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        uptime=_uptime(request.app.state.started_at),
    )


@router.get("/ready", response_model=HealthResponse)
async def readiness_check(request: Request):
    """Readiness: a pooled session answers. 503 when degraded."""
    pool = request.app.state.pool
    healthy = await run_in_threadpool(pool.is_healthy)
    response = HealthResponse(
        status="healthy" if healthy else "degraded",
        sage100="connected" if healthy else "unavailable",
        version=__version__,
        uptime=_uptime(request.app.state.started_at),
        details=pool.stats(),
    )
    if not healthy:
        return JSONResponse(status_code=503, content=response.model_dump(mode="json"))
    return response


@router.get("/metrics")
async def metrics_snapshot(request: Request) -> Dict[str, Any]:
    """In-process counters and timings plus current pool occupancy."""
    summary = get_metrics().get_summary()
    summary["pool_state"] = request.app.state.pool.stats()
    return summary
