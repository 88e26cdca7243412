"""Default model selection per difficulty level."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from governance_os.models import Difficulty, QualityGateConfig, Tier


@dataclass(frozen=True)
class SelectionTemplate:
    """Base routing choice for one difficulty level, before availability checks."""

    primary_model: str
    fallback_models: tuple[str, ...] = ()
    tier: Tier = Tier.LOCAL
    max_retries: int = 2
    quality_gate: QualityGateConfig = field(
        default_factory=lambda: QualityGateConfig(enabled=False, min_confidence=0)
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SelectionTemplate:
        """Create a template from a config mapping.

        Args:
            data: Mapping with ``primary_model`` and optional
                ``fallback_models``, ``tier``, ``max_retries`` and
                ``quality_gate`` (a QualityGateConfig mapping).
        """
        gate = data.get("quality_gate")
        return cls(
            primary_model=data["primary_model"],
            fallback_models=tuple(data.get("fallback_models", ())),
            tier=Tier(int(data.get("tier", Tier.LOCAL))),
            max_retries=int(data.get("max_retries", 2)),
            quality_gate=(
                QualityGateConfig.model_validate(gate)
                if gate is not None
                else QualityGateConfig(enabled=False, min_confidence=0)
            ),
        )


_GATE_OFF = QualityGateConfig(enabled=False, min_confidence=0)

DEFAULT_MODEL_SELECTIONS: dict[Difficulty, SelectionTemplate] = {
    Difficulty.TRIVIAL: SelectionTemplate(
        primary_model="llama3.2:8b",
        fallback_models=("phi4:14b",),
        tier=Tier.LOCAL,
        max_retries=2,
        quality_gate=_GATE_OFF,
    ),
    Difficulty.SIMPLE: SelectionTemplate(
        primary_model="qwen2.5:14b",
        fallback_models=("mistral-small-3:24b", "llama3.2:8b"),
        tier=Tier.LOCAL,
        max_retries=2,
        quality_gate=_GATE_OFF,
    ),
    Difficulty.MODERATE: SelectionTemplate(
        primary_model="qwen2.5:32b",
        fallback_models=("mistral-small-3:24b",),
        tier=Tier.LOCAL,
        max_retries=3,
        quality_gate=QualityGateConfig(enabled=True, min_confidence=70),
    ),
    Difficulty.COMPLEX: SelectionTemplate(
        primary_model="qwen2.5:32b",
        fallback_models=("claude-sonnet-4-20250514",),
        tier=Tier.LOCAL,
        max_retries=3,
        quality_gate=QualityGateConfig(
            enabled=True, min_confidence=80, require_review=True, escalate_on_failure=True
        ),
    ),
    Difficulty.CRITICAL: SelectionTemplate(
        primary_model="claude-sonnet-4-20250514",
        fallback_models=("gpt-4o", "qwen2.5:72b"),
        tier=Tier.HOSTED,
        max_retries=5,
        quality_gate=QualityGateConfig(
            enabled=True, min_confidence=90, require_review=True, escalate_on_failure=True
        ),
    ),
}
