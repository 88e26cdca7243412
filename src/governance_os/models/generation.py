"""Pydantic models for model selection and generation results."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from governance_os.models.quality import (  # noqa: TC001 - pydantic needs it at runtime
    QualityCheckResult,
    QualityGateConfig,
)
from governance_os.models.registry import Tier

MAX_FALLBACK_MODELS = 3


class ModelSelection(BaseModel):
    """Routing decision for one task: primary model plus fallback chain."""

    primary_model: str = Field(min_length=1)
    fallback_models: list[str] = Field(
        default_factory=list,
        description="Ordered, deduplicated alternates; never contains the primary",
    )
    tier: Tier
    max_retries: int = Field(ge=1, description="Maximum attempts across the chain")
    quality_gate: QualityGateConfig = Field(default_factory=QualityGateConfig)
    reasoning: str = ""

    @model_validator(mode="after")
    def _normalize_fallbacks(self) -> ModelSelection:
        chain: list[str] = []
        for model_id in self.fallback_models:
            if model_id != self.primary_model and model_id not in chain:
                chain.append(model_id)
        self.fallback_models = chain[:MAX_FALLBACK_MODELS]
        return self

    @property
    def candidates(self) -> list[str]:
        """Primary model followed by the fallback chain."""
        return [self.primary_model, *self.fallback_models]


class TokenUsage(BaseModel):
    """Token accounting for one generation."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _fill_total(self) -> TokenUsage:
        if self.total_tokens == 0:
            self.total_tokens = self.prompt_tokens + self.completion_tokens
        return self


class GenerationResult(BaseModel):
    """Output of one provider generation call."""

    content: str
    model: str
    provider: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    latency_ms: float = Field(default=0.0, ge=0)
    cost_usd: float = Field(default=0.0, ge=0)
    finish_reason: str = "stop"
    quality_check: QualityCheckResult | None = None


class EmbeddingBatch(BaseModel):
    """Output of one provider embedding call."""

    embeddings: list[list[float]]
    prompt_tokens: int = Field(default=0, ge=0)
    latency_ms: float = Field(default=0.0, ge=0)

    @field_validator("embeddings")
    @classmethod
    def _same_dimensions(cls, value: list[list[float]]) -> list[list[float]]:
        if len({len(vector) for vector in value}) > 1:
            raise ValueError("embedding vectors must share one dimension")
        return value
