"""FastAPI server for the Sage 100 middleware.

Main entry point for the API server.
"""

import asyncio
import secrets
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Importing the driver packages registers "com" and "memory"
import connectors.memory  # noqa: F401
import connectors.sage100  # noqa: F401
from connectors.record_session import (
    ExternalCallError,
    ExternalOperationFailure,
    create_driver,
)
from connectors.sage100.handshake import SessionFactory
from core import __version__
from core.config import ApiConfig, SageConfig, load_config
from core.observability.logging import configure_logging, get_logger, with_correlation
from core.observability.metrics import record_processing_time
from core.pool import (
    HandleCorrupted,
    HandleCreationFailure,
    PoolDisposed,
    PoolTimeout,
    SessionPool,
)
from customer_resolver import ResolutionFailure
from models.health import ErrorResponse
from services import CustomerService, InventoryService, SalesOrderService

from api.routes import customers, health, inventory, sales_orders

logger = get_logger(__name__)

# Requests under this prefix skip the API key check
PUBLIC_PREFIX = "/health"


def build_pool(config: SageConfig) -> SessionPool:
    """Session pool over the configured driver."""
    if config.driver == "com":
        missing = config.missing_credentials()
        if missing:
            logger.warning(f"Sage 100 settings missing: {', '.join(missing)}")
    factory = SessionFactory(create_driver(config.driver), config)
    return SessionPool(
        factory.create,
        size=config.pool_size,
        acquire_timeout=config.acquire_timeout_seconds,
    )


async def _monitor_health(pool: SessionPool, interval: float, initial_delay: float) -> None:
    """Log pool health periodically until cancelled."""
    await asyncio.sleep(initial_delay)
    while True:
        healthy = await run_in_threadpool(pool.is_healthy)
        if healthy:
            logger.info(f"Sage 100 health check passed ({pool.available_count} available sessions)")
        else:
            logger.warning("Sage 100 health check failed - sessions unavailable")
        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    api_config: ApiConfig = app.state.api_config
    sage_config: SageConfig = app.state.sage_config
    configure_logging(level=api_config.log_level, json_format=api_config.log_json)
    logger.info(f"Sage 100 middleware {__version__} starting up (driver={sage_config.driver})")

    if app.state.pool is None:
        app.state.pool = build_pool(sage_config)
    pool = app.state.pool
    app.state.customer_service = CustomerService(pool, sage_config)
    app.state.sales_order_service = SalesOrderService(pool, sage_config)
    app.state.inventory_service = InventoryService(pool, sage_config)
    app.state.started_at = time.time()

    monitor = asyncio.create_task(
        _monitor_health(
            pool,
            api_config.health_check_interval_seconds,
            api_config.health_check_initial_delay_seconds,
        )
    )

    yield

    # Shutdown
    logger.info("Sage 100 middleware shutting down...")
    monitor.cancel()
    try:
        await monitor
    except asyncio.CancelledError:
        pass
    await run_in_threadpool(pool.shutdown)


def _error(status_code: int, error: str, error_code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, error_code=error_code).model_dump(),
    )


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(PoolTimeout)
    async def pool_timeout_handler(request: Request, exc: PoolTimeout) -> JSONResponse:
        logger.warning(f"{request.url.path}: {exc}")
        return _error(503, "Service is busy, please try again", "SESSION_BUSY")

    async def sage_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"{request.url.path}: Sage 100 unavailable: {exc}")
        return _error(503, f"Sage 100 is unavailable: {exc}", "SAGE_UNAVAILABLE")

    for exc_type in (
        ResolutionFailure,
        PoolDisposed,
        HandleCreationFailure,
        HandleCorrupted,
        ExternalCallError,
        ExternalOperationFailure,
    ):
        app.add_exception_handler(exc_type, sage_unavailable_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
        return _error(400, "; ".join(messages) or "Invalid request", "VALIDATION_ERROR")


def create_app(
    pool: Optional[SessionPool] = None,
    sage_config: Optional[SageConfig] = None,
    api_config: Optional[ApiConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        pool: Pre-built session pool (tests); built from ``sage_config`` at startup otherwise
        sage_config: Sage settings, from the environment when omitted
        api_config: HTTP settings, from the environment when omitted
    """
    if sage_config is None or api_config is None:
        env_sage, env_api = load_config()
        sage_config = sage_config or env_sage
        api_config = api_config or env_api

    app = FastAPI(
        title="Sage 100 Middleware API",
        description="Customer resolution, inventory checks and sales order creation against Sage 100",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.pool = pool
    app.state.sage_config = sage_config
    app.state.api_config = api_config

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def require_api_key(request: Request, call_next):
        expected = app.state.api_config.api_key
        if expected and not request.url.path.startswith(PUBLIC_PREFIX):
            provided = request.headers.get("X-API-Key", "")
            if not secrets.compare_digest(provided.encode(), expected.encode()):
                logger.warning(f"Rejected request to {request.url.path}: invalid or missing API key")
                return _error(401, "Invalid or missing API key", "UNAUTHORIZED")
        return await call_next(request)

    @app.middleware("http")
    async def correlate_request(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        started = time.monotonic()
        with with_correlation(request_id=request_id):
            response = await call_next(request)
        record_processing_time("http_request", (time.monotonic() - started) * 1000)
        response.headers["X-Request-ID"] = request_id
        return response

    _install_error_handlers(app)

    # Include routers
    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(customers.router, prefix="/api/v1/customers", tags=["Customers"])
    app.include_router(inventory.router, prefix="/api/v1/inventory", tags=["Inventory"])
    app.include_router(sales_orders.router, prefix="/api/v1/sales-orders", tags=["Sales Orders"])

    return app


if __name__ == "__main__":
    import uvicorn

    _, api_settings = load_config()
    uvicorn.run("api.server:create_app", factory=True, host="0.0.0.0", port=api_settings.port)
