"""Health and error response models."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "healthy"
    sage100: Optional[str] = None
    version: Optional[str] = None
    uptime: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """JSON body for every non-2xx response."""
    success: bool = False
    error: str
    error_code: Optional[str] = None
