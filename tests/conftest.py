"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os

import pytest

from governance_os.config import PipelineConfig, RouterConfig
from governance_os.observability.events import EventBus
from governance_os.pipeline import (
    GovernancePipeline,
    InMemoryDocumentRegistry,
    InMemoryDualHouse,
    InMemoryOrchestrator,
    InMemorySafeAutonomy,
    PipelineServices,
)
from governance_os.providers import MockProvider
from governance_os.routing import (
    EmbeddingService,
    ModelRegistry,
    ModelRouter,
    RouterTaskExecutor,
    create_quality_gate,
)


@pytest.fixture(autouse=True, scope="session")
def disable_langsmith_tracing() -> None:
    """Disable LangSmith tracing during test runs.

    Set LANGSMITH_TEST_TRACING=true to override for debugging.
    """
    if os.environ.get("LANGSMITH_TEST_TRACING", "").lower() != "true":
        os.environ["LANGSMITH_TRACING"] = "false"


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def mock_provider() -> MockProvider:
    """Deterministic provider; tests script failures per model."""
    return MockProvider()


@pytest.fixture
def registry(events: EventBus) -> ModelRegistry:
    """Registry seeded with the default fourteen-model catalog."""
    registry = ModelRegistry(events=events)
    registry.seed_default_models()
    return registry


@pytest.fixture
def router(registry: ModelRegistry, mock_provider: MockProvider, events: EventBus) -> ModelRouter:
    return ModelRouter(
        registry,
        mock_provider,
        quality_gate=create_quality_gate(),
        config=RouterConfig(),
        events=events,
    )


@pytest.fixture
def services(router: ModelRouter, mock_provider: MockProvider) -> PipelineServices:
    """In-memory service bundle backed by the mock router."""
    documents = InMemoryDocumentRegistry()
    return PipelineServices(
        safe_autonomy=InMemorySafeAutonomy(),
        orchestrator=InMemoryOrchestrator(document_registry=documents),
        document_registry=documents,
        model_router=RouterTaskExecutor(router),
        dual_house=InMemoryDualHouse(),
        embeddings=EmbeddingService(mock_provider),
    )


@pytest.fixture
def fast_pipeline_config() -> PipelineConfig:
    """Short timeouts and no backoff so failure paths finish quickly."""
    return PipelineConfig(max_retries_per_stage=2, stage_timeout_seconds=1.0, backoff_base_seconds=0.0)


@pytest.fixture
def pipeline(
    services: PipelineServices, fast_pipeline_config: PipelineConfig, events: EventBus
) -> GovernancePipeline:
    return GovernancePipeline(services, config=fast_pipeline_config, events=events)
