"""GovernanceOS: wires the router, the model registry and the pipeline together.

The facade owns every long-lived object of a process (event bus, registry,
router, embedding service, in-memory collaborators and the pipeline engine)
and exposes the handful of operations the CLI needs.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from governance_os.config import GovernanceConfig
from governance_os.models import ModelProvider, RiskLevel
from governance_os.observability.events import EventBus, EventName
from governance_os.observability.logging import get_logger
from governance_os.pipeline import (
    FileContextStore,
    GovernancePipeline,
    InMemoryContextStore,
    InMemoryDocumentRegistry,
    InMemoryDualHouse,
    InMemoryOrchestrator,
    InMemorySafeAutonomy,
    PipelineServices,
)
from governance_os.pipeline.memory import HOUSES
from governance_os.providers import (
    CompositeHealthCheckProvider,
    CompositeProvider,
    LangChainProvider,
    MockProvider,
    OllamaHealthCheckProvider,
    OllamaProvider,
    StaticHealthCheckProvider,
)
from governance_os.routing import (
    EmbeddingService,
    ModelRegistry,
    ModelRouter,
    RouterTaskExecutor,
    TaskClassifier,
    create_quality_gate,
)

if TYPE_CHECKING:
    from pathlib import Path

    from governance_os.models import PipelineResult, WorkflowType
    from governance_os.observability.events import Event
    from governance_os.observability.generation_log import GenerationLogger
    from governance_os.pipeline import ContextStore
    from governance_os.providers import HealthCheckProvider, InferenceProvider

log = get_logger(__name__)

HealthStatus = Literal["healthy", "degraded", "unhealthy"]

# Active runs at or above this count mark the pipeline component unhealthy
MAX_HEALTHY_ACTIVE_RUNS = 100


@dataclass
class GovernanceStats:
    """Process-wide counters reported by :meth:`GovernanceOS.stats`."""

    uptime_hours: float = 0.0
    total_pipelines: int = 0
    successful_pipelines: int = 0
    failed_pipelines: int = 0
    locked_pipelines: int = 0
    locked_actions: int = 0
    documents_produced: int = 0
    voting_sessions: int = 0
    llm_tokens_today: int = 0
    llm_cost_today_usd: float = 0.0


@dataclass
class SystemHealth:
    """Component health snapshot."""

    healthy: bool
    status: HealthStatus
    uptime_seconds: float
    components: dict[str, bool]


class GovernanceOS:
    """Top-level facade over routing and the governance pipeline.

    Args:
        config: Loaded configuration; defaults when omitted.
        provider: Inference backend override. When omitted it is built from
            ``config.provider`` (``mock`` or ``ollama`` plus hosted backends).
        health_provider: Registry health-check override.
        context_store: Where locked runs are retained; file-backed when
            ``config.pipeline.context_store_path`` is set.
        generation_logger: Optional per-attempt JSONL log.
    """

    def __init__(
        self,
        config: GovernanceConfig | None = None,
        *,
        provider: InferenceProvider | None = None,
        health_provider: HealthCheckProvider | None = None,
        context_store: ContextStore | None = None,
        generation_logger: GenerationLogger | None = None,
    ) -> None:
        self.config = config or GovernanceConfig()
        self.events = EventBus()
        self._started = time.monotonic()
        self._counters = GovernanceStats()

        self._ollama: OllamaProvider | None = None
        self.provider = provider if provider is not None else self._build_provider()
        self.registry = ModelRegistry(
            health_provider=health_provider or self._build_health_provider(),
            events=self.events,
        )
        self.registry.seed_default_models()

        self.router = ModelRouter(
            self.registry,
            self.provider,
            classifier=TaskClassifier(),
            quality_gate=create_quality_gate(),
            config=self.config.router,
            events=self.events,
            generation_logger=generation_logger,
        )
        self.embeddings = EmbeddingService(self.provider)

        self.safe_autonomy = InMemorySafeAutonomy()
        self.documents = InMemoryDocumentRegistry()
        self.dual_house = InMemoryDualHouse()
        self.orchestrator = InMemoryOrchestrator(document_registry=self.documents)
        self.services = PipelineServices(
            safe_autonomy=self.safe_autonomy,
            orchestrator=self.orchestrator,
            document_registry=self.documents,
            model_router=RouterTaskExecutor(self.router),
            dual_house=self.dual_house,
            embeddings=self.embeddings,
        )

        if context_store is None:
            store_path = self.config.pipeline.context_store_path
            context_store = FileContextStore(store_path) if store_path else InMemoryContextStore()
        self.pipeline = GovernancePipeline(
            self.services,
            config=self.config.pipeline,
            store=context_store,
            events=self.events,
        )
        self.events.subscribe(EventName.PIPELINE_COMPLETED, self._on_pipeline_completed)
        self.events.subscribe(EventName.PIPELINE_ERROR, self._on_pipeline_error)

    # -- Wiring ------------------------------------------------------------------

    def _resolve_provider(self, model_id: str) -> str | None:
        entry = self.registry.get(model_id)
        return str(entry.provider) if entry is not None else None

    def _build_provider(self) -> InferenceProvider:
        settings = self.config.provider
        if settings.name == "mock":
            return MockProvider()

        self._ollama = OllamaProvider(host=settings.ollama_host, timeout=settings.timeout_seconds)
        return CompositeProvider(
            {
                ModelProvider.OLLAMA: self._ollama,
                ModelProvider.ANTHROPIC: LangChainProvider("anthropic"),
                ModelProvider.OPENAI: LangChainProvider("openai"),
            },
            resolve=self._resolve_provider,
            default=ModelProvider.OLLAMA,
        )

    def _build_health_provider(self) -> HealthCheckProvider:
        if self._ollama is None:
            return StaticHealthCheckProvider()
        return CompositeHealthCheckProvider(
            {ModelProvider.OLLAMA: OllamaHealthCheckProvider(self._ollama)},
            resolve=self._resolve_provider,
        )

    def _on_pipeline_completed(self, event: Event) -> None:
        self._counters.total_pipelines += 1
        status = event.payload.get("status")
        if event.payload.get("success"):
            self._counters.successful_pipelines += 1
        elif status == "locked":
            self._counters.locked_pipelines += 1
        else:
            self._counters.failed_pipelines += 1

    def _on_pipeline_error(self, event: Event) -> None:
        self._counters.total_pipelines += 1
        self._counters.failed_pipelines += 1

    # -- Operations ----------------------------------------------------------------

    def classify_risk(self, action: str) -> RiskLevel:
        """Risk level of a governance action; unknown actions are LOW."""
        return self.safe_autonomy.classify_risk(action)

    async def run_pipeline(
        self,
        issue_id: str | None = None,
        workflow_type: WorkflowType | None = None,
        risk_level: RiskLevel | str | None = None,
        *,
        action: str | None = None,
        signal_ids: list[str] | None = None,
        extras: dict[str, Any] | None = None,
    ) -> PipelineResult:
        """Run a fresh pipeline.

        When ``risk_level`` is omitted it is derived from ``action`` through
        :meth:`classify_risk` (LOW when neither is given).
        """
        if risk_level is None:
            risk_level = self.classify_risk(action) if action else RiskLevel.LOW
        context = self.pipeline.create_context(
            issue_id=issue_id,
            workflow_type=workflow_type,
            risk_level=risk_level,
            signal_ids=signal_ids,
            extras=extras,
        )
        if action:
            context.extras.setdefault("action", action)
        return await self.pipeline.run(context)

    async def resume_pipeline(self, context_id: str) -> PipelineResult | None:
        """Resume a locked run; None when no such run is retained or it is already running."""
        return await self.pipeline.resume(context_id)

    def approve(self, context_id: str, approvers: list[str] | tuple[str, ...] = HOUSES) -> bool:
        """Approve the locked action and the dual-house approval of a locked run.

        Returns:
            False when the run is unknown or has nothing awaiting approval.
        """
        context = self.pipeline.get_context(context_id)
        if context is None or context.locked_action_id is None:
            return False
        if not self.safe_autonomy.approve(context.locked_action_id, by=approvers):
            return False
        if context.approval_id:
            for house in approvers:
                self.dual_house.approve(context.approval_id, house)
        log.info("run_approved", run_id=context_id, approvers=list(approvers))
        return True

    def stats(self) -> GovernanceStats:
        router_stats = self.router.stats()
        return GovernanceStats(
            uptime_hours=(time.monotonic() - self._started) / 3600,
            total_pipelines=self._counters.total_pipelines,
            successful_pipelines=self._counters.successful_pipelines,
            failed_pipelines=self._counters.failed_pipelines,
            locked_pipelines=self._counters.locked_pipelines,
            locked_actions=sum(
                1 for a in self.safe_autonomy.locked_actions.values() if not a.approved
            ),
            documents_produced=len(self.documents.documents),
            voting_sessions=len(self.dual_house.votings),
            llm_tokens_today=router_stats.total_tokens,
            llm_cost_today_usd=router_stats.total_cost_usd,
        )

    def health(self) -> SystemHealth:
        components = {
            "safe_autonomy": True,
            "orchestrator": True,
            "document_registry": True,
            "model_router": True,
            "dual_house": True,
            "pipeline": self.pipeline.active_run_count < MAX_HEALTHY_ACTIVE_RUNS,
        }
        down = sum(1 for ok in components.values() if not ok)
        status: HealthStatus = "healthy" if down == 0 else "degraded" if down <= 2 else "unhealthy"
        return SystemHealth(
            healthy=down == 0,
            status=status,
            uptime_seconds=time.monotonic() - self._started,
            components=components,
        )

    async def close(self) -> None:
        """Stop background health checks and release provider connections."""
        await self.registry.stop_health_checks()
        await self.provider.close()

    async def __aenter__(self) -> GovernanceOS:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()
