"""Tests for the model router: selection, budget, fallback and quality escalation."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from governance_os.config import RouterConfig
from governance_os.models import Capability, Task, TaskType, Tier
from governance_os.observability.events import EventBus, EventName
from governance_os.observability.generation_log import GenerationLogger
from governance_os.providers import MockProvider
from governance_os.routing import (
    AllModelsFailedError,
    ModelRegistry,
    ModelRouter,
    RouterTaskExecutor,
    create_quality_gate,
)
from governance_os.routing.selections import SelectionTemplate

if TYPE_CHECKING:
    from pathlib import Path

CRITICAL_PROMPT = "Allocate $500,000 from treasury to fund X"


def _router(
    registry: ModelRegistry,
    provider: MockProvider,
    events: EventBus,
    **config: object,
) -> ModelRouter:
    return ModelRouter(
        registry,
        provider,
        quality_gate=create_quality_gate(),
        config=RouterConfig(**config),  # type: ignore[arg-type]
        events=events,
    )


# --- route() ---


def test_critical_task_routes_to_tier2(router: ModelRouter) -> None:
    selection = router.route(Task.new(TaskType.CORE_DECISION, CRITICAL_PROMPT))

    assert selection.tier == Tier.HOSTED
    assert selection.primary_model == "claude-sonnet-4-20250514"
    assert selection.fallback_models[0] == "gpt-4o"
    assert "Tier 2 required for critical task" in selection.reasoning


@pytest.mark.parametrize(
    "prompt",
    ["hi", "Summarize the thread", "Compare both proposals", "Recommend a strategy", CRITICAL_PROMPT],
)
def test_fallbacks_exclude_primary_and_are_capped(router: ModelRouter, prompt: str) -> None:
    selection = router.route(Task.new(TaskType.CORE_DECISION, prompt))

    assert selection.primary_model not in selection.fallback_models
    assert len(selection.fallback_models) <= 3
    assert len(set(selection.fallback_models)) == len(selection.fallback_models)


def test_unregistered_template_model_is_skipped(router: ModelRouter) -> None:
    """qwen2.5:72b is in the critical template but not in the catalog."""
    selection = router.route(Task.new(TaskType.CORE_DECISION, CRITICAL_PROMPT))

    assert "qwen2.5:72b" not in selection.fallback_models


def test_unavailable_primary_falls_to_cheapest_allowed(
    registry: ModelRegistry, mock_provider: MockProvider, events: EventBus
) -> None:
    from governance_os.models import ModelStatus

    registry.update_status("llama3.2:8b", ModelStatus.UNAVAILABLE)
    router = _router(registry, mock_provider, events)

    selection = router.route(Task.new(TaskType.CHATTER, "hi"))

    assert selection.primary_model != "llama3.2:8b"
    assert registry.get(selection.primary_model).tier == Tier.LOCAL


def test_embedding_task_needs_embedding_capability(router: ModelRouter) -> None:
    selection = router.route(Task.new(TaskType.EMBEDDING, "embed me"))

    for model_id in selection.candidates:
        entry = router.registry.get(model_id)
        assert entry is None or Capability.EMBEDDING in entry.capabilities


def test_configured_selection_overrides_default(
    registry: ModelRegistry, mock_provider: MockProvider, events: EventBus
) -> None:
    from governance_os.models import Difficulty

    router = _router(
        registry,
        mock_provider,
        events,
        model_selections={Difficulty.TRIVIAL: SelectionTemplate(primary_model="phi4:14b")},
    )

    assert router.recommended_model(Task.new(TaskType.CHATTER, "hi")) == "phi4:14b"


def test_route_emits_model_selected(router: ModelRouter, events: EventBus) -> None:
    task = Task.new(TaskType.CHATTER, "hi")

    router.route(task)

    selected = [e for e in events.history if e.name == EventName.MODEL_SELECTED]
    assert selected[-1].payload["task_id"] == task.id
    assert selected[-1].payload["primary_model"] == "llama3.2:8b"


# --- Budget ---


def test_exhausted_budget_falls_back_to_tier1(
    registry: ModelRegistry, mock_provider: MockProvider, events: EventBus
) -> None:
    router = _router(registry, mock_provider, events, daily_budget_usd=10.0, budget_spent_today=10.0)

    selection = router.route(Task.new(TaskType.CORE_DECISION, CRITICAL_PROMPT))

    assert selection.tier == Tier.LOCAL
    assert selection.primary_model == "llama3.2:8b"
    assert selection.fallback_models == ["phi4:14b", "qwen2.5:14b"]
    assert selection.reasoning.startswith("Budget exceeded. Falling back to Tier 1 model")
    names = events.names()
    assert EventName.BUDGET_WARNING in names
    assert EventName.BUDGET_EXCEEDED in names


def test_budget_warning_at_eighty_percent(
    registry: ModelRegistry, mock_provider: MockProvider, events: EventBus
) -> None:
    router = _router(registry, mock_provider, events, daily_budget_usd=10.0, budget_spent_today=8.0)

    selection = router.route(Task.new(TaskType.CORE_DECISION, CRITICAL_PROMPT))

    assert selection.tier == Tier.HOSTED
    warnings = [e for e in events.history if e.name == EventName.BUDGET_WARNING]
    assert warnings[0].payload["percentage"] == pytest.approx(80.0)
    assert EventName.BUDGET_EXCEEDED not in events.names()


def test_budget_not_checked_for_tier1_tasks(router: ModelRouter, events: EventBus) -> None:
    router.config.budget_spent_today = router.config.daily_budget_usd

    router.route(Task.new(TaskType.CHATTER, "hi"))

    assert EventName.BUDGET_EXCEEDED not in events.names()


def test_exhausted_budget_drops_hosted_fallbacks(router: ModelRouter, events: EventBus) -> None:
    task = Task.new(TaskType.CORE_DECISION, "Recommend a strategy")
    assert "claude-sonnet-4-20250514" in router.route(task).fallback_models

    router.config.budget_spent_today = router.config.daily_budget_usd
    selection = router.route(task)

    assert selection.tier == Tier.LOCAL
    assert selection.primary_model == "qwen2.5:32b"
    assert selection.fallback_models
    assert all(
        router.registry.get(model_id).tier == Tier.LOCAL  # type: ignore[union-attr]
        for model_id in selection.fallback_models
    )
    assert EventName.BUDGET_EXCEEDED not in events.names()


@pytest.mark.asyncio
async def test_exhausted_budget_never_executes_hosted_fallback(
    router: ModelRouter, mock_provider: MockProvider
) -> None:
    router.config.budget_spent_today = router.config.daily_budget_usd
    mock_provider.responses["qwen2.5:32b"] = "bad"

    await router.execute(Task.new(TaskType.CORE_DECISION, "Recommend a strategy"))

    assert "claude-sonnet-4-20250514" not in [call.model for call in mock_provider.calls]


def test_budget_status_and_setters(router: ModelRouter) -> None:
    router.set_daily_budget(20.0)
    router.config.budget_spent_today = 5.0

    status = router.budget_status()

    assert status["remaining_usd"] == 15.0
    assert status["percentage_used"] == 25.0
    assert status["exceeded"] is False

    router.reset_daily_budget()
    assert router.budget_status()["spent_today_usd"] == 0.0

    with pytest.raises(ValueError, match="non-negative"):
        router.set_daily_budget(-1)


# --- execute() ---


@pytest.mark.asyncio
async def test_execute_uses_primary(router: ModelRouter, mock_provider: MockProvider) -> None:
    result = await router.execute(Task.new(TaskType.CHATTER, "hi"))

    assert result.model == "llama3.2:8b"
    assert [call.model for call in mock_provider.calls] == ["llama3.2:8b"]


@pytest.mark.asyncio
async def test_execute_falls_back_on_provider_error(
    router: ModelRouter, mock_provider: MockProvider, events: EventBus
) -> None:
    mock_provider.failing_models.add("llama3.2:8b")

    result = await router.execute(Task.new(TaskType.CHATTER, "hi"))

    assert result.model == "phi4:14b"
    fallback = [e for e in events.history if e.name == EventName.MODEL_FALLBACK]
    assert fallback[0].payload["failed_model"] == "llama3.2:8b"
    assert fallback[0].payload["next_model"] == "phi4:14b"


@pytest.mark.asyncio
async def test_execute_all_models_failed_names_every_model(
    router: ModelRouter, mock_provider: MockProvider, events: EventBus
) -> None:
    mock_provider.failing_models.update({"llama3.2:8b", "phi4:14b", "qwen2.5:14b"})

    with pytest.raises(AllModelsFailedError) as excinfo:
        await router.execute(Task.new(TaskType.CHATTER, "hi"))

    # Trivial tasks allow two attempts
    assert excinfo.value.tried == ["llama3.2:8b", "phi4:14b"]
    assert "llama3.2:8b" in str(excinfo.value)
    assert "phi4:14b" in str(excinfo.value)
    assert "Scripted failure" in str(excinfo.value)
    assert EventName.MODEL_EXHAUSTED in events.names()
    assert router.stats().failed_requests == 1


@pytest.mark.asyncio
async def test_quality_failure_escalates_to_next_model(
    router: ModelRouter, mock_provider: MockProvider, events: EventBus
) -> None:
    mock_provider.responses["qwen2.5:32b"] = "bad"

    result = await router.execute(Task.new(TaskType.CORE_DECISION, "Recommend a strategy"))

    assert result.model == "claude-sonnet-4-20250514"
    assert result.quality_check is not None
    assert result.quality_check.passed is True
    assert [call.model for call in mock_provider.calls] == [
        "qwen2.5:32b",
        "claude-sonnet-4-20250514",
    ]
    assert EventName.QUALITY_FAILED in events.names()


@pytest.mark.asyncio
async def test_quality_failure_can_retry_same_model_once(
    registry: ModelRegistry, mock_provider: MockProvider, events: EventBus
) -> None:
    router = _router(registry, mock_provider, events, retry_same_model_on_quality_failure=True)
    mock_provider.responses["qwen2.5:32b"] = "bad"

    result = await router.execute(Task.new(TaskType.CORE_DECISION, "Recommend a strategy"))

    assert result.model == "claude-sonnet-4-20250514"
    assert [call.model for call in mock_provider.calls] == [
        "qwen2.5:32b",
        "qwen2.5:32b",
        "claude-sonnet-4-20250514",
    ]


@pytest.mark.asyncio
async def test_disabled_quality_gates_skip_checks(
    registry: ModelRegistry, mock_provider: MockProvider, events: EventBus
) -> None:
    router = _router(registry, mock_provider, events, enable_quality_gates=False)
    mock_provider.responses["qwen2.5:32b"] = "bad"

    result = await router.execute(Task.new(TaskType.CORE_DECISION, "Recommend a strategy"))

    assert result.model == "qwen2.5:32b"
    assert result.quality_check is None


@pytest.mark.asyncio
async def test_hosted_cost_comes_from_catalog_and_counts_against_budget(
    router: ModelRouter,
) -> None:
    result = await router.execute(Task.new(TaskType.CORE_DECISION, CRITICAL_PROMPT))

    assert result.model == "claude-sonnet-4-20250514"
    assert result.cost_usd == pytest.approx(0.003 * result.usage.total_tokens / 1000)
    assert router.config.budget_spent_today == pytest.approx(result.cost_usd)


# --- Stats ---


@pytest.mark.asyncio
async def test_stats_are_idempotent_snapshots(router: ModelRouter) -> None:
    await router.execute(Task.new(TaskType.CHATTER, "hi"))

    first = router.stats()
    second = router.stats()

    assert first == second
    assert first is not second
    first.model_usage["tampered"] = 1
    assert "tampered" not in router.stats().model_usage


@pytest.mark.asyncio
async def test_stats_track_usage(router: ModelRouter, mock_provider: MockProvider) -> None:
    mock_provider.failing_models.add("llama3.2:8b")

    await router.execute(Task.new(TaskType.CHATTER, "hi"))
    stats = router.stats()

    assert stats.total_requests == 2
    assert stats.successful_requests == 1
    assert stats.model_usage == {"phi4:14b": 1}
    assert stats.tier_usage[1] == 1
    assert stats.total_tokens > 0


@pytest.mark.asyncio
async def test_reset_stats_keeps_budget_when_asked(router: ModelRouter) -> None:
    await router.execute(Task.new(TaskType.CORE_DECISION, CRITICAL_PROMPT))
    spent = router.config.budget_spent_today

    router.reset_stats(keep_budget=True)

    assert router.stats().total_requests == 0
    assert router.config.budget_spent_today == spent

    router.reset_stats()
    assert router.config.budget_spent_today == 0.0


# --- Generation log and executor facade ---


@pytest.mark.asyncio
async def test_generation_log_records_each_attempt(
    registry: ModelRegistry, mock_provider: MockProvider, events: EventBus, tmp_path: Path
) -> None:
    logger = GenerationLogger(tmp_path)
    router = ModelRouter(registry, mock_provider, events=events, generation_logger=logger)
    mock_provider.failing_models.add("llama3.2:8b")

    await router.execute(Task.new(TaskType.CHATTER, "hi"))

    lines = logger.log_path.read_text().strip().splitlines()
    entries = [json.loads(line) for line in lines]
    assert [e["model"] for e in entries] == ["llama3.2:8b", "phi4:14b"]
    assert entries[0]["error"] is not None
    assert entries[1]["attempt"] == 1


@pytest.mark.asyncio
async def test_task_executor_returns_content(router: ModelRouter) -> None:
    executor = RouterTaskExecutor(router)

    output = await executor.execute_task("hi", TaskType.CHATTER, max_tokens=50)

    assert output.model == "llama3.2:8b"
    assert "Response from llama3.2:8b" in output.content
    assert output.cost_usd == 0.0
