"""Operational status schemas."""

from datetime import datetime
from enum import Enum
from typing import Dict

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    """Overall service status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"


class CheckStatus(str, Enum):
    """Status of one dependency probe."""
    OK = "ok"
    UNAVAILABLE = "unavailable"


class HealthResponse(BaseModel):
    """Ping response: service status plus one entry per probed dependency."""

    status: HealthStatus = Field(..., description="Degraded when any dependency check fails")
    service: str = Field(..., description="Service name")
    version: str = Field("1.0.0", description="API version")
    timestamp: datetime = Field(..., description="Current server time (ISO 8601)")
    checks: Dict[str, CheckStatus] = Field(default_factory=dict, description="Dependency probe results")
