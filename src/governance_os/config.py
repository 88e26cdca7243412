"""Configuration loading for governance-os.

Configuration comes from an optional YAML file with three sections
(``router``, ``pipeline``, ``provider``); every key is optional. A few
environment variables override the file:

- ``GOS_PROVIDER``: inference backend (``ollama`` or ``mock``)
- ``OLLAMA_HOST``: Ollama server URL
- ``GOS_DAILY_BUDGET_USD``: router daily budget
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import TYPE_CHECKING, Any

from ruamel.yaml import YAML

from governance_os.models import Difficulty, Tier

if TYPE_CHECKING:
    from governance_os.routing.selections import SelectionTemplate

DEFAULT_CONFIG_FILENAME = "governance.yaml"
KNOWN_PROVIDERS = ("ollama", "mock")


class ConfigError(Exception):
    """Raised when configuration cannot be loaded."""

    def __init__(self, path: Path | None, reason: str) -> None:
        self.path = path
        self.reason = reason
        location = f" at {path}" if path is not None else ""
        super().__init__(f"Failed to load config{location}: {reason}")


@dataclass
class RouterConfig:
    """Model router policy.

    Attributes:
        daily_budget_usd: Spend ceiling for tier-2 selection.
        budget_spent_today: Running spend counter, updated after each attempt.
        retry_same_model_on_quality_failure: Give a model one more attempt
            after a failed quality check before escalating to the next one.
        model_selections: Per-difficulty overrides of the default selections.
    """

    daily_budget_usd: float = 10.0
    budget_spent_today: float = 0.0
    health_check_interval_seconds: float = 60.0
    enable_quality_gates: bool = True
    default_tier: Tier = Tier.LOCAL
    enable_tier2_fallback: bool = True
    retry_same_model_on_quality_failure: bool = False
    model_selections: dict[Difficulty, SelectionTemplate] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RouterConfig:
        from governance_os.routing.selections import SelectionTemplate

        selections = {
            Difficulty(level): SelectionTemplate.from_dict(dict(spec))
            for level, spec in (data.get("model_selections") or {}).items()
        }
        return cls(
            daily_budget_usd=float(data.get("daily_budget_usd", 10.0)),
            budget_spent_today=float(data.get("budget_spent_today", 0.0)),
            health_check_interval_seconds=float(data.get("health_check_interval_seconds", 60.0)),
            enable_quality_gates=bool(data.get("enable_quality_gates", True)),
            default_tier=Tier(int(data.get("default_tier", Tier.LOCAL))),
            enable_tier2_fallback=bool(data.get("enable_tier2_fallback", True)),
            retry_same_model_on_quality_failure=bool(
                data.get("retry_same_model_on_quality_failure", False)
            ),
            model_selections=selections,
        )


@dataclass
class PipelineConfig:
    """Governance pipeline execution policy.

    Worst-case run time is roughly
    ``9 * max_retries_per_stage * stage_timeout_seconds`` plus backoff.
    """

    max_retries_per_stage: int = 3
    stage_timeout_seconds: float = 300.0
    backoff_base_seconds: float = 1.0
    context_store_path: Path | None = None
    active_run_warning_threshold: int = 100

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipelineConfig:
        store_path = data.get("context_store_path")
        return cls(
            max_retries_per_stage=int(data.get("max_retries_per_stage", 3)),
            stage_timeout_seconds=float(data.get("stage_timeout_seconds", 300.0)),
            backoff_base_seconds=float(data.get("backoff_base_seconds", 1.0)),
            context_store_path=Path(store_path) if store_path else None,
            active_run_warning_threshold=int(data.get("active_run_warning_threshold", 100)),
        )


@dataclass
class ProviderConfig:
    """Inference backend selection."""

    name: str = "ollama"
    ollama_host: str | None = None
    timeout_seconds: float = 300.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProviderConfig:
        return cls(
            name=str(data.get("name", "ollama")),
            ollama_host=data.get("ollama_host"),
            timeout_seconds=float(data.get("timeout_seconds", 300.0)),
        )


@dataclass
class GovernanceConfig:
    """Top-level configuration."""

    router: RouterConfig = field(default_factory=RouterConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GovernanceConfig:
        return cls(
            router=RouterConfig.from_dict(dict(data.get("router") or {})),
            pipeline=PipelineConfig.from_dict(dict(data.get("pipeline") or {})),
            provider=ProviderConfig.from_dict(dict(data.get("provider") or {})),
        )


def apply_env_overrides(config: GovernanceConfig) -> GovernanceConfig:
    """Apply ``GOS_PROVIDER``, ``OLLAMA_HOST`` and ``GOS_DAILY_BUDGET_USD``.

    Raises:
        ConfigError: If an override has an invalid value.
    """
    provider = os.getenv("GOS_PROVIDER")
    if provider:
        config.provider.name = provider
    host = os.getenv("OLLAMA_HOST")
    if host:
        config.provider.ollama_host = host
    budget = os.getenv("GOS_DAILY_BUDGET_USD")
    if budget:
        try:
            config.router.daily_budget_usd = float(budget)
        except ValueError as e:
            raise ConfigError(None, f"GOS_DAILY_BUDGET_USD is not a number: {budget!r}") from e
    if config.provider.name not in KNOWN_PROVIDERS:
        raise ConfigError(
            None,
            f"Unknown provider {config.provider.name!r} (expected one of {', '.join(KNOWN_PROVIDERS)})",
        )
    return config


def load_config(path: Path | None = None) -> GovernanceConfig:
    """Load configuration from YAML, then apply environment overrides.

    Args:
        path: YAML file. When None or missing, defaults are used.

    Returns:
        GovernanceConfig instance.

    Raises:
        ConfigError: If the file exists but cannot be parsed or validated.
    """
    if path is None or not path.exists():
        return apply_env_overrides(GovernanceConfig())

    yaml = YAML(typ="safe")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(path, "Top level must be a mapping")
        config = GovernanceConfig.from_dict(data)
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(path, str(e)) from e

    return apply_env_overrides(config)
