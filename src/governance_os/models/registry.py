"""Pydantic models for the model catalog."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import IntEnum, StrEnum

from pydantic import BaseModel, Field

from governance_os.models.task import Capability  # noqa: TC001 - pydantic needs it at runtime


class ModelProvider(StrEnum):
    """Inference backends a model can be served by."""

    OLLAMA = "ollama"
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    MOCK = "mock"


class Tier(IntEnum):
    """Cost/locality class of a model."""

    NONE = 0
    LOCAL = 1
    HOSTED = 2


class ModelStatus(StrEnum):
    """Availability of a registered model."""

    AVAILABLE = "available"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


class ModelEntry(BaseModel):
    """A catalog entry describing one inference model."""

    id: str = Field(min_length=1, description="Model identifier sent to the provider")
    name: str = Field(min_length=1, description="Human-readable name")
    provider: ModelProvider
    tier: Tier
    capabilities: list[Capability] = Field(default_factory=list)
    context_window: int = Field(ge=1, description="Context window in tokens")
    tokens_per_second: float = Field(ge=0, description="Measured or estimated throughput")
    cost_per_1k_tokens: float = Field(default=0.0, ge=0, description="USD per 1k tokens")
    languages: list[str] = Field(default_factory=lambda: ["en"])
    specializations: list[str] = Field(default_factory=list)
    status: ModelStatus = ModelStatus.AVAILABLE
    last_health_check: datetime | None = None


class HealthCheckResult(BaseModel):
    """Outcome of a single model health check."""

    model_id: str
    status: ModelStatus
    latency_ms: float | None = None
    tokens_per_second: float | None = None
    error: str | None = None
    checked_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
