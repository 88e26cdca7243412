"""Tests for configuration loading and environment overrides."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from governance_os.config import (
    ConfigError,
    GovernanceConfig,
    PipelineConfig,
    RouterConfig,
    load_config,
)
from governance_os.models import Difficulty, Tier

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("GOS_PROVIDER", "OLLAMA_HOST", "GOS_DAILY_BUDGET_USD"):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_router_defaults(self) -> None:
        config = RouterConfig()

        assert config.daily_budget_usd == 10.0
        assert config.enable_tier2_fallback is True
        assert config.enable_quality_gates is True
        assert config.retry_same_model_on_quality_failure is False
        assert config.default_tier == Tier.LOCAL

    def test_pipeline_defaults(self) -> None:
        config = PipelineConfig()

        assert config.max_retries_per_stage == 3
        assert config.stage_timeout_seconds == 300.0
        assert config.context_store_path is None

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path / "absent.yaml")

        assert config.provider.name == "ollama"
        assert config.router.daily_budget_usd == 10.0

    def test_none_path_gives_defaults(self) -> None:
        assert isinstance(load_config(None), GovernanceConfig)


class TestLoadConfig:
    def test_parses_all_sections(self, tmp_path: Path) -> None:
        path = tmp_path / "governance.yaml"
        path.write_text(
            "router:\n"
            "  daily_budget_usd: 2.5\n"
            "  retry_same_model_on_quality_failure: true\n"
            "  model_selections:\n"
            "    critical:\n"
            "      primary_model: gpt-4o\n"
            "      fallback_models: [claude-sonnet-4-20250514]\n"
            "      tier: 2\n"
            "      quality_gate:\n"
            "        enabled: true\n"
            "        min_confidence: 90\n"
            "pipeline:\n"
            "  max_retries_per_stage: 5\n"
            "  stage_timeout_seconds: 30\n"
            f"  context_store_path: {tmp_path / 'runs'}\n"
            "provider:\n"
            "  name: mock\n"
        )

        config = load_config(path)

        assert config.router.daily_budget_usd == 2.5
        assert config.router.retry_same_model_on_quality_failure is True
        selection = config.router.model_selections[Difficulty.CRITICAL]
        assert selection.primary_model == "gpt-4o"
        assert selection.fallback_models == ("claude-sonnet-4-20250514",)
        assert selection.tier == Tier.HOSTED
        assert selection.quality_gate.min_confidence == 90
        assert config.pipeline.max_retries_per_stage == 5
        assert config.pipeline.stage_timeout_seconds == 30.0
        assert config.pipeline.context_store_path == tmp_path / "runs"
        assert config.provider.name == "mock"

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "governance.yaml"
        path.write_text("")

        assert load_config(path).pipeline.max_retries_per_stage == 3

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "governance.yaml"
        path.write_text("router: [unclosed\n")

        with pytest.raises(ConfigError) as exc_info:
            load_config(path)

        assert exc_info.value.path == path

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "governance.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_invalid_difficulty_key(self, tmp_path: Path) -> None:
        path = tmp_path / "governance.yaml"
        path.write_text("router:\n  model_selections:\n    extreme:\n      primary_model: x\n")

        with pytest.raises(ConfigError):
            load_config(path)


class TestEnvironmentOverrides:
    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "governance.yaml"
        path.write_text("router:\n  daily_budget_usd: 2.5\n")
        monkeypatch.setenv("GOS_PROVIDER", "mock")
        monkeypatch.setenv("OLLAMA_HOST", "http://gpu-box:11434")
        monkeypatch.setenv("GOS_DAILY_BUDGET_USD", "0.5")

        config = load_config(path)

        assert config.provider.name == "mock"
        assert config.provider.ollama_host == "http://gpu-box:11434"
        assert config.router.daily_budget_usd == 0.5

    def test_invalid_budget(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GOS_DAILY_BUDGET_USD", "lots")

        with pytest.raises(ConfigError, match="not a number"):
            load_config()

    def test_unknown_provider(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GOS_PROVIDER", "carrier-pigeon")

        with pytest.raises(ConfigError, match="Unknown provider"):
            load_config()
