"""
Structured Logging with Correlation IDs

Every record written through ``get_logger`` is stamped with the correlation
context active when it was created:
- request_id: one inbound HTTP request (X-Request-ID)
- session_id: the pooled Sage 100 session serving it
- operation: the BOI operation in progress (resolve_customer, create_sales_order...)
- customer_number / po_number: business identifiers of the request

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(request_id="req-001", customer_number="01-ACME01"):
        logger.info("Resolving customer")  # record carries request_id and customer_number
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Union

# Packages whose level follows LOG_LEVEL
APP_LOGGERS = ("api", "core", "connectors", "services", "customer_resolver")

# Third-party loggers kept at WARNING
QUIET_LOGGERS = ("httpx", "uvicorn.access")

_HANDLER_NAME = "sage100-middleware"


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    """Identifiers that tie log lines to one request and one pooled session."""
    request_id: Optional[str] = None
    session_id: Optional[str] = None
    operation: Optional[str] = None
    customer_number: Optional[str] = None
    po_number: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Set fields only."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        """A copy with the non-None ``kwargs`` applied on top."""
        data = self.to_dict()
        data.update({k: v for k, v in kwargs.items() if v is not None})
        return CorrelationContext(**data)


_correlation_context: ContextVar[CorrelationContext] = ContextVar(
    "correlation_context",
    default=CorrelationContext(),
)


def get_correlation_context() -> CorrelationContext:
    return _correlation_context.get()


@contextmanager
def with_correlation(**kwargs):
    """Bind correlation IDs for the duration of the block.

    Nested blocks add to the outer context; leaving a block restores it.
    ContextVars follow asyncio tasks and ``run_in_threadpool`` calls, so IDs
    bound in HTTP middleware reach the service code.
    """
    token = _correlation_context.set(get_correlation_context().merge(**kwargs))
    try:
        yield _correlation_context.get()
    finally:
        _correlation_context.reset(token)


def _record_correlation(record: logging.LogRecord) -> Dict[str, Any]:
    """Context stamped on the record, or the current one for foreign records."""
    stamped = getattr(record, "correlation", None)
    if stamped is not None:
        return stamped
    return get_correlation_context().to_dict()


# =============================================================================
# Formatters
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line:

    {"timestamp": "2026-10-17T09:30:00.000000Z", "level": "INFO",
     "logger": "services.customers", "message": "Resolving customer",
     "request_id": "req-001", "session_id": "a1b2c3d4", "duration_ms": 12.5}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_record_correlation(record))
        payload.update(getattr(record, "extra_fields", None) or {})
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    2026-10-17 09:30:00 [INFO ] services.customers [req-001/s:a1b2c3d4/po:PO-1001]: Resolving customer
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = _record_correlation(record)
        parts = []
        if ctx.get("request_id"):
            parts.append(ctx["request_id"][:12])
        if ctx.get("session_id"):
            parts.append(f"s:{ctx['session_id']}")
        if ctx.get("po_number"):
            parts.append(f"po:{ctx['po_number']}")

        line = (
            f"{datetime.utcnow():%Y-%m-%d %H:%M:%S} [{record.levelname:5}] {record.name} "
            f"[{'/'.join(parts) or '-'}]: {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Logger with Correlation Support
# =============================================================================

class CorrelatedLogger:
    """Thin wrapper over ``logging.Logger``.

    Records are stamped with the current correlation context, and each call
    may pass ``extra_fields={...}`` for the JSON formatter.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, *args, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        exc_info = kwargs.pop("exc_info", None)
        if exc_info is True:
            exc_info = sys.exc_info()
        record = self._logger.makeRecord(
            self._logger.name, level, "(unknown file)", 0, msg, args, exc_info or None,
        )
        record.extra_fields = kwargs.pop("extra_fields", {})
        record.correlation = get_correlation_context().to_dict()
        self._logger.handle(record)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs["exc_info"] = True
        self._log(logging.ERROR, msg, *args, **kwargs)

    def setLevel(self, level):
        self._logger.setLevel(level)

    def isEnabledFor(self, level):
        return self._logger.isEnabledFor(level)


# =============================================================================
# Setup
# =============================================================================

_loggers: Dict[str, CorrelatedLogger] = {}


def configure_logging(level: Union[int, str] = logging.INFO, json_format: bool = False) -> None:
    """Install the stdout handler on the root logger.

    Safe to call again (each app startup does): the handler installed by a
    previous call is replaced, not duplicated.

    Args:
        level: Logging level, as a number or a name ("DEBUG", "INFO"...)
        json_format: JSON lines instead of the human-readable format
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in APP_LOGGERS:
        logging.getLogger(name).setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> CorrelatedLogger:
    """Correlated logger for ``name`` (typically ``__name__``)."""
    if name not in _loggers:
        _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return _loggers[name]
