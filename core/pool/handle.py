"""Session handle - one exclusively owned BOI script engine + SY_Session pair."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from connectors.record_session import RecordObject, ScriptEngine
from core.observability.logging import get_logger

logger = get_logger(__name__)


class HandleState(str, Enum):
    """Lifecycle state of a session handle."""
    CREATED = "created"
    AVAILABLE = "available"
    ACTIVE = "active"
    INVALIDATED = "invalidated"


def new_session_id() -> str:
    """Short id used in logs (8 hex chars)."""
    return uuid.uuid4().hex[:8]


class SessionHandle:
    """An authenticated session against Sage 100.

    Owns exactly two external objects: the ProvideX script engine and the
    SY_Session created from it. Both are released by ``destroy()``.

    State transitions:
        CREATED -> AVAILABLE <-> ACTIVE -> INVALIDATED
        CREATED -> ACTIVE (created on demand for a waiting caller)
        AVAILABLE -> INVALIDATED (pool shutdown only)
    """

    def __init__(self, engine: ScriptEngine, session: RecordObject, session_id: Optional[str] = None):
        self.engine = engine
        self.session = session
        self.session_id = session_id or new_session_id()
        self.created_at = datetime.utcnow()
        self.last_used = self.created_at
        self.state = HandleState.CREATED

    def mark_available(self) -> None:
        self.state = HandleState.AVAILABLE
        self.last_used = datetime.utcnow()

    def mark_active(self) -> None:
        self.state = HandleState.ACTIVE
        self.last_used = datetime.utcnow()

    def is_alive(self) -> bool:
        """Liveness probe. Raises ExternalCallError if the session faults."""
        if self.state == HandleState.INVALIDATED or self.session is None:
            return False
        return self.session.ping()

    def destroy(self) -> None:
        """Release both external objects. Never raises; safe to call twice."""
        if self.state == HandleState.INVALIDATED:
            return
        self.state = HandleState.INVALIDATED
        for label, obj in (("session", self.session), ("engine", self.engine)):
            if obj is None:
                continue
            try:
                obj.close()
            except Exception as e:
                logger.warning(f"Error disposing {label} of session {self.session_id}: {e}")
        self.session = None
        self.engine = None
        logger.debug(f"Disposed session {self.session_id}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "last_used": self.last_used.isoformat(),
        }

    def __repr__(self) -> str:
        return f"SessionHandle({self.session_id}, {self.state.value})"
