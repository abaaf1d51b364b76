"""Health check models for the gateway API."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _HealthModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MemoryUsage(_HealthModel):
    """Process memory usage in megabytes.

    Attributes:
        rss_mb: Resident set size
        vms_mb: Virtual memory size
    """
    rss_mb: float
    vms_mb: float


class HealthResponse(_HealthModel):
    """Liveness response.

    Attributes:
        status: Always "healthy" when the process answers
        timestamp: Current UTC timestamp (ISO-8601)
        uptime: Seconds since the process started
        version: Application version
        environment: Deployment environment
        memory: Process memory usage
    """
    status: Literal["healthy"] = "healthy"
    timestamp: str
    uptime: float = Field(..., description="Process uptime in seconds")
    version: str
    environment: str
    memory: MemoryUsage


class BlockchainHealth(_HealthModel):
    """Ledger connectivity probe result."""
    status: Literal["healthy", "warning", "unhealthy"]
    message: str
    channel: Optional[str] = None
    contract: Optional[str] = None
    response_time_ms: Optional[float] = None
    error: Optional[str] = None


class BlockchainHealthResponse(_HealthModel):
    status: Literal["healthy", "unhealthy"]
    timestamp: str
    blockchain: BlockchainHealth


class SystemHealth(_HealthModel):
    status: Literal["healthy"] = "healthy"
    uptime: float
    memory: MemoryUsage
    cpu_percent: float


class HealthComponents(_HealthModel):
    system: SystemHealth
    blockchain: BlockchainHealth


class DetailedHealthResponse(_HealthModel):
    """Combined system and ledger health.

    Attributes:
        status: "healthy" only when every component is healthy
        components: Per-component health
    """
    status: Literal["healthy", "degraded"]
    timestamp: str
    version: str
    environment: str
    components: HealthComponents
