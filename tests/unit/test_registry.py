"""Tests for the model registry, its store and the default catalog."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from governance_os.models import (
    Capability,
    HealthCheckResult,
    ModelEntry,
    ModelProvider,
    ModelStatus,
    Tier,
)
from governance_os.observability.events import EventBus, EventName
from governance_os.providers import StaticHealthCheckProvider
from governance_os.routing import InMemoryModelStore, ModelCriteria, ModelRegistry
from governance_os.routing.catalog import default_models


def _entry(model_id: str, **overrides: object) -> ModelEntry:
    data: dict[str, object] = {
        "id": model_id,
        "name": model_id,
        "provider": ModelProvider.OLLAMA,
        "tier": Tier.LOCAL,
        "capabilities": [Capability.TEXT],
        "context_window": 4096,
        "tokens_per_second": 10,
    }
    data.update(overrides)
    return ModelEntry.model_validate(data)


# --- Catalog ---


def test_default_catalog_has_fourteen_models() -> None:
    models = default_models()

    assert len(models) == 14
    assert len({m.id for m in models}) == 14
    hosted = [m for m in models if m.tier == Tier.HOSTED]
    assert {m.id for m in hosted} == {"claude-sonnet-4-20250514", "gpt-4o"}
    assert all(m.cost_per_1k_tokens == 0 for m in models if m.tier == Tier.LOCAL)


def test_default_catalog_returns_fresh_copies() -> None:
    first = default_models()
    first[0].status = ModelStatus.UNAVAILABLE

    assert default_models()[0].status == ModelStatus.AVAILABLE


# --- CRUD ---


def test_register_is_last_write_wins(events: EventBus) -> None:
    registry = ModelRegistry(events=events)
    registry.register(_entry("m1", tokens_per_second=10))
    registry.register(_entry("m1", tokens_per_second=99))

    assert len(registry.get_all()) == 1
    assert registry.get("m1").tokens_per_second == 99
    assert events.names().count(EventName.MODEL_REGISTERED) == 2


def test_unregister(registry: ModelRegistry) -> None:
    assert registry.unregister("gpt-4o") is True
    assert registry.unregister("gpt-4o") is False
    assert registry.get("gpt-4o") is None


def test_update_status_emits_only_on_change(registry: ModelRegistry, events: EventBus) -> None:
    assert registry.update_status("phi4:14b", ModelStatus.DEGRADED) is True
    assert registry.update_status("phi4:14b", ModelStatus.DEGRADED) is True
    assert registry.update_status("nope", ModelStatus.DEGRADED) is False

    changes = [e for e in events.history if e.name == EventName.STATUS_CHANGED]
    assert len(changes) == 1
    assert changes[0].payload == {
        "model_id": "phi4:14b",
        "previous": "available",
        "status": "degraded",
    }


def test_store_returns_copies() -> None:
    store = InMemoryModelStore()
    store.save(_entry("m1"))

    fetched = store.get("m1")
    fetched.status = ModelStatus.UNAVAILABLE

    assert store.get("m1").status == ModelStatus.AVAILABLE


# --- Search ---


def test_find_models_by_capability(registry: ModelRegistry) -> None:
    found = registry.find_models(ModelCriteria(capabilities=[Capability.EMBEDDING]))

    assert {m.id for m in found} == {"nomic-embed-text", "mxbai-embed-large", "bge-m3"}


def test_find_models_by_language_and_tier(registry: ModelRegistry) -> None:
    found = registry.find_models(ModelCriteria(tier=Tier.LOCAL, languages=["ko"]))

    assert "exaone3.5:32b" in {m.id for m in found}
    assert all(m.tier == Tier.LOCAL for m in found)


def test_find_models_available_only(registry: ModelRegistry) -> None:
    registry.update_status("bge-m3", ModelStatus.UNAVAILABLE)

    found = registry.find_models(
        ModelCriteria(capabilities=[Capability.EMBEDDING], available_only=True)
    )

    assert "bge-m3" not in {m.id for m in found}


def test_get_best_model_prefers_local_then_cheapest_then_fastest(registry: ModelRegistry) -> None:
    best = registry.get_best_model(ModelCriteria(capabilities=[Capability.TEXT]))

    assert best is not None
    assert best.tier == Tier.LOCAL
    # All local models are free; llama3.2:8b is the fastest text model
    assert best.id == "llama3.2:8b"


def test_get_best_model_hosted_only(registry: ModelRegistry) -> None:
    best = registry.get_best_model(ModelCriteria(tier=Tier.HOSTED))

    assert best is not None
    assert best.id == "claude-sonnet-4-20250514"


def test_get_best_model_none_when_nothing_matches(registry: ModelRegistry) -> None:
    assert registry.get_best_model(ModelCriteria(provider=ModelProvider.MOCK)) is None


def test_fallback_chain_excludes_primary_and_sorts_by_cost(registry: ModelRegistry) -> None:
    chain = registry.get_fallback_chain("claude-sonnet-4-20250514", same_tier=True)

    assert [m.id for m in chain] == ["gpt-4o"]

    full = registry.get_fallback_chain("qwen2.5:32b")
    assert "qwen2.5:32b" not in {m.id for m in full}
    costs = [m.cost_per_1k_tokens for m in full]
    assert costs == sorted(costs)


def test_fallback_chain_same_capabilities(registry: ModelRegistry) -> None:
    chain = registry.get_fallback_chain("qwen2.5-coder:32b", same_capabilities=True)

    assert all(Capability.CODE in m.capabilities for m in chain)


def test_fallback_chain_for_unknown_primary_ignores_relative_filters(
    registry: ModelRegistry,
) -> None:
    chain = registry.get_fallback_chain("unknown-model", same_tier=True, same_provider=True)

    assert len(chain) == 14


# --- Health ---


@pytest.mark.asyncio
async def test_check_health_unknown_model_returns_unavailable(registry: ModelRegistry) -> None:
    result = await registry.check_health("not-registered")

    assert result.status == ModelStatus.UNAVAILABLE
    assert result.error == "Model not found"


@pytest.mark.asyncio
async def test_check_health_updates_entry_and_emits(events: EventBus) -> None:
    registry = ModelRegistry(
        health_provider=StaticHealthCheckProvider({"phi4:14b": ModelStatus.DEGRADED}),
        events=events,
    )
    registry.seed_default_models()

    result = await registry.check_health("phi4:14b")

    assert result.status == ModelStatus.DEGRADED
    entry = registry.get("phi4:14b")
    assert entry.status == ModelStatus.DEGRADED
    assert entry.last_health_check is not None
    names = events.names()
    assert EventName.HEALTH_CHECKED in names
    assert EventName.HEALTH_DEGRADED in names
    assert EventName.STATUS_CHANGED in names


@pytest.mark.asyncio
async def test_check_health_provider_exception_marks_unavailable(events: EventBus) -> None:
    provider = AsyncMock()
    provider.check.side_effect = RuntimeError("health check crashed")
    registry = ModelRegistry(health_provider=provider, events=events)
    registry.register(_entry("m1"))

    result = await registry.check_health("m1")

    assert result.status == ModelStatus.UNAVAILABLE
    assert result.error == "health check crashed"
    assert registry.get("m1").status == ModelStatus.UNAVAILABLE


@pytest.mark.asyncio
async def test_check_all_health(registry: ModelRegistry) -> None:
    results = await registry.check_all_health()

    assert len(results) == 14
    assert all(r.status == ModelStatus.AVAILABLE for r in results.values())


@pytest.mark.asyncio
async def test_health_sweep_start_and_stop(events: EventBus) -> None:
    provider = AsyncMock()
    provider.check.return_value = HealthCheckResult(model_id="m1", status=ModelStatus.AVAILABLE)
    registry = ModelRegistry(health_provider=provider, events=events)
    registry.register(_entry("m1"))

    registry.start_health_checks(interval_seconds=0.01)
    registry.start_health_checks(interval_seconds=0.01)
    await asyncio.sleep(0.05)
    assert registry.health_checks_running is True

    await registry.stop_health_checks()

    assert registry.health_checks_running is False
    assert provider.check.await_count >= 1


# --- Stats ---


def test_registry_stats(registry: ModelRegistry) -> None:
    stats = registry.stats()

    assert stats["total_models"] == 14
    assert stats["available_models"] == 14
    assert stats["by_tier"] == {1: 12, 2: 2}
    assert stats["by_provider"]["anthropic"] == 1
    assert stats["by_capability"]["embedding"] == 3
