"""Model router: classify, select, execute with fallback, account for cost.

``route()`` turns a task into a :class:`ModelSelection` (primary model,
fallback chain, tier, retry budget, quality policy). ``execute()`` walks
that chain strictly sequentially, so cost, latency and budget accounting
always see a consistent running total.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from governance_os.config import RouterConfig
from governance_os.models import (
    Capability,
    Difficulty,
    GenerationResult,
    ModelEntry,
    ModelSelection,
    QualityCheckResult,
    QualityGateConfig,
    Task,
    TaskClassification,
    TaskType,
    Tier,
)
from governance_os.observability.events import EventBus, EventName
from governance_os.observability.logging import get_logger
from governance_os.routing.classifier import TaskClassifier
from governance_os.routing.quality_gate import QualityCheckOptions, QualityGate
from governance_os.routing.registry import ModelCriteria
from governance_os.routing.selections import DEFAULT_MODEL_SELECTIONS, SelectionTemplate

if TYPE_CHECKING:
    from governance_os.models import OutputFormat
    from governance_os.observability.generation_log import GenerationLogger
    from governance_os.providers.base import InferenceProvider
    from governance_os.routing.registry import ModelRegistry

log = get_logger(__name__)

BUDGET_WARNING_PERCENT = 80.0
MAX_FALLBACKS = 3

_DEFAULT_CAPABILITIES: dict[TaskType, list[Capability]] = {
    TaskType.EMBEDDING: [Capability.EMBEDDING],
    TaskType.RERANKING: [Capability.RERANK],
    TaskType.VISION: [Capability.TEXT, Capability.VISION],
    TaskType.CODING: [Capability.TEXT, Capability.CODE],
}


class RouterError(Exception):
    """Base exception for router faults."""


class AllModelsFailedError(RouterError):
    """Raised when every candidate model failed generation or quality checks."""

    def __init__(self, tried: list[str], last_error: str | None) -> None:
        self.tried = list(tried)
        self.last_error = last_error
        super().__init__(
            f"All models exhausted. Tried: {', '.join(tried) or 'none'}. "
            f"Last error: {last_error or 'unknown'}"
        )


@dataclass
class RouterStats:
    """Cumulative router statistics."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_tokens: int = 0
    total_cost_usd: float = 0.0
    average_latency_ms: float = 0.0
    model_usage: dict[str, int] = field(default_factory=dict)
    tier_usage: dict[int, int] = field(default_factory=lambda: {0: 0, 1: 0, 2: 0})
    quality_checks: int = 0
    quality_passed: int = 0
    quality_pass_rate: float = 0.0

    def snapshot(self) -> RouterStats:
        """Independent copy (mutable fields copied)."""
        return replace(self, model_usage=dict(self.model_usage), tier_usage=dict(self.tier_usage))


class ModelRouter:
    """Route tasks to models under a daily cost budget.

    Args:
        registry: Model catalog used for availability and pricing.
        provider: Inference backend (any :class:`InferenceProvider`).
        classifier: Difficulty classifier; a default one when omitted.
        quality_gate: Gate run on generated content; a bare one when omitted.
        config: Router policy; defaults when omitted.
        events: Event bus; the registry's bus when omitted.
        generation_logger: Optional JSONL log of every attempt.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        provider: InferenceProvider,
        classifier: TaskClassifier | None = None,
        quality_gate: QualityGate | None = None,
        config: RouterConfig | None = None,
        events: EventBus | None = None,
        generation_logger: GenerationLogger | None = None,
    ) -> None:
        self.registry = registry
        self.provider = provider
        self.classifier = classifier or TaskClassifier()
        self.quality_gate = quality_gate or QualityGate()
        self.config = config or RouterConfig()
        self.events = events if events is not None else registry.events
        self._generation_logger = generation_logger
        self._stats = RouterStats()
        self._latency_total = 0.0
        self._latency_count = 0

    # -- Routing -----------------------------------------------------------------

    def classify(self, task: Task) -> TaskClassification:
        return self.classifier.classify(task)

    def route(self, task: Task) -> ModelSelection:
        """Select a primary model and fallback chain for a task.

        Never raises on budget exhaustion: a tier-2 selection over budget is
        replaced by a tier-1 selection whose reasoning cites the budget.
        """
        classification = self.classifier.classify(task)
        template = self._template(classification.difficulty)
        available = self._available_models(task)

        primary = self._select_primary(classification, available, template.primary_model)
        tier = Tier.HOSTED if classification.requires_tier2 else Tier.LOCAL
        fallbacks = self._build_fallbacks(available, primary, template.fallback_models, tier)

        if tier == Tier.HOSTED and not self._check_budget():
            return self._fallback_to_tier1(task, classification, available, template)

        selection = ModelSelection(
            primary_model=primary,
            fallback_models=fallbacks,
            tier=tier,
            max_retries=template.max_retries,
            quality_gate=self._gate_config(template),
            reasoning=self._reasoning(classification, primary, tier),
        )
        self._emit_selected(task, classification, selection)
        return selection

    def recommended_model(self, task: Task) -> str:
        """Primary model ``route()`` would pick for a task."""
        return self.route(task).primary_model

    def _template(self, difficulty: Difficulty) -> SelectionTemplate:
        return self.config.model_selections.get(difficulty) or DEFAULT_MODEL_SELECTIONS[difficulty]

    def _available_models(self, task: Task) -> list[ModelEntry]:
        capabilities = list(task.required_capabilities) or _DEFAULT_CAPABILITIES.get(
            task.type, [Capability.TEXT]
        )
        return self.registry.find_models(
            ModelCriteria(
                capabilities=capabilities,
                languages=[task.language] if task.language else [],
                available_only=True,
            )
        )

    def _select_primary(
        self,
        classification: TaskClassification,
        available: list[ModelEntry],
        preferred: str,
    ) -> str:
        if any(entry.id == preferred for entry in available):
            return preferred

        max_tier = Tier.HOSTED if classification.requires_tier2 else Tier.LOCAL
        alternatives = [entry for entry in available if entry.tier <= max_tier]
        if alternatives:
            return min(alternatives, key=lambda entry: entry.cost_per_1k_tokens).id
        if available:
            return available[0].id
        # Nothing available: keep the preferred id and let execution fail over
        return preferred

    def _build_fallbacks(
        self,
        available: list[ModelEntry],
        primary: str,
        preferred: tuple[str, ...],
        tier: Tier,
    ) -> list[str]:
        hosted_allowed = (
            self.config.enable_tier2_fallback or tier == Tier.HOSTED
        ) and self._within_budget()
        allowed = [entry for entry in available if hosted_allowed or entry.tier != Tier.HOSTED]
        allowed_ids = [entry.id for entry in allowed]
        chain: list[str] = []
        for model_id in (*preferred, *allowed_ids):
            if len(chain) >= MAX_FALLBACKS:
                break
            if model_id != primary and model_id not in chain and model_id in allowed_ids:
                chain.append(model_id)
        return chain

    def _gate_config(self, template: SelectionTemplate) -> QualityGateConfig:
        if not self.config.enable_quality_gates:
            return template.quality_gate.model_copy(update={"enabled": False})
        return template.quality_gate.model_copy()

    def _check_budget(self) -> bool:
        """Whether tier-2 spend is still allowed; emits budget events."""
        spent = self.config.budget_spent_today
        budget = self.config.daily_budget_usd
        percentage = (spent / budget * 100) if budget > 0 else 100.0
        if percentage >= BUDGET_WARNING_PERCENT:
            self.events.emit(
                EventName.BUDGET_WARNING, spent=spent, budget=budget, percentage=percentage
            )
        if spent >= budget:
            self.events.emit(EventName.BUDGET_EXCEEDED, spent=spent, budget=budget)
            log.warning("budget_exceeded", spent=spent, budget=budget)
            return False
        return True

    def _within_budget(self) -> bool:
        return self.config.budget_spent_today < self.config.daily_budget_usd

    def _fallback_to_tier1(
        self,
        task: Task,
        classification: TaskClassification,
        available: list[ModelEntry],
        template: SelectionTemplate,
    ) -> ModelSelection:
        tier1 = sorted(
            (entry for entry in available if entry.tier == Tier.LOCAL),
            key=lambda entry: entry.tokens_per_second,
            reverse=True,
        )
        if tier1:
            primary = tier1[0].id
            fallbacks = [entry.id for entry in tier1[1:3]]
        else:
            primary = self._first_tier1_id(template)
            fallbacks = []

        selection = ModelSelection(
            primary_model=primary,
            fallback_models=fallbacks,
            tier=Tier.LOCAL,
            max_retries=template.max_retries,
            quality_gate=self._gate_config(template),
            reasoning=f"Budget exceeded. Falling back to Tier 1 model: {primary}",
        )
        self._emit_selected(task, classification, selection)
        return selection

    def _first_tier1_id(self, template: SelectionTemplate) -> str:
        for model_id in (template.primary_model, *template.fallback_models):
            entry = self.registry.get(model_id)
            if entry is not None and entry.tier == Tier.LOCAL:
                return model_id
        return DEFAULT_MODEL_SELECTIONS[Difficulty.TRIVIAL].primary_model

    def _reasoning(self, classification: TaskClassification, primary: str, tier: Tier) -> str:
        parts = [
            f"Task difficulty: {classification.difficulty}",
            f"Selected model: {primary}",
            f"Tier: {int(tier)}",
        ]
        if classification.requires_tier2:
            parts.append("Tier 2 required for critical task")
        if classification.requires_review:
            parts.append("Human review required")
        return ". ".join(parts)

    def _emit_selected(
        self, task: Task, classification: TaskClassification, selection: ModelSelection
    ) -> None:
        log.debug(
            "model_selected",
            task_id=task.id,
            difficulty=str(classification.difficulty),
            primary=selection.primary_model,
            fallbacks=selection.fallback_models,
            tier=int(selection.tier),
        )
        self.events.emit(
            EventName.MODEL_SELECTED,
            task_id=task.id,
            difficulty=str(classification.difficulty),
            primary_model=selection.primary_model,
            fallback_models=list(selection.fallback_models),
            tier=int(selection.tier),
            reasoning=selection.reasoning,
        )

    # -- Execution ---------------------------------------------------------------

    async def execute(self, task: Task) -> GenerationResult:
        """Generate with the routed model, falling back down the chain.

        Raises:
            AllModelsFailedError: When every candidate failed or was rejected
                by the quality gate within ``max_retries`` attempts.
        """
        selection = self.route(task)
        candidates = selection.candidates
        tried: list[str] = []
        last_error: str | None = None
        attempts = 0

        for index, model_id in enumerate(candidates):
            if attempts >= selection.max_retries:
                break
            next_model = candidates[index + 1] if index + 1 < len(candidates) else None
            same_model_retry = self.config.retry_same_model_on_quality_failure

            while attempts < selection.max_retries:
                attempt = attempts
                attempts += 1
                self._stats.total_requests += 1
                self.events.emit(EventName.GENERATION_STARTED, task_id=task.id, model=model_id)
                try:
                    result = await self.provider.generate(
                        model_id,
                        task.prompt,
                        system_prompt=task.system_prompt,
                        max_tokens=task.max_tokens,
                        temperature=task.temperature,
                    )
                except Exception as e:
                    last_error = str(e)
                    tried.append(model_id)
                    log.warning("generation_failed", task_id=task.id, model=model_id, error=last_error)
                    self.events.emit(
                        EventName.GENERATION_FAILED, task_id=task.id, model=model_id, error=last_error
                    )
                    self._log_attempt(task, model_id, attempt, error=last_error)
                    if next_model is not None:
                        self.events.emit(
                            EventName.MODEL_FALLBACK,
                            task_id=task.id,
                            failed_model=model_id,
                            next_model=next_model,
                            error=last_error,
                        )
                    break

                result = self._price(result)
                self._update_stats(result, selection.tier)

                if selection.quality_gate.enabled:
                    check = self._quality_check(task, selection.quality_gate, result.content)
                    result = result.model_copy(update={"quality_check": check})
                    if not check.passed and selection.quality_gate.escalate_on_failure:
                        last_error = (
                            f"Quality gate rejected {model_id} (confidence {check.confidence:.0f})"
                        )
                        self._log_attempt(task, model_id, attempt, result=result, error=last_error)
                        if same_model_retry and attempts < selection.max_retries:
                            same_model_retry = False
                            log.info("quality_retry_same_model", task_id=task.id, model=model_id)
                            continue
                        tried.append(model_id)
                        if next_model is not None:
                            self.events.emit(
                                EventName.MODEL_FALLBACK,
                                task_id=task.id,
                                failed_model=model_id,
                                next_model=next_model,
                                error=last_error,
                            )
                        break

                self._stats.successful_requests += 1
                self._log_attempt(task, model_id, attempt, result=result)
                self.events.emit(
                    EventName.GENERATION_COMPLETED,
                    task_id=task.id,
                    model=result.model,
                    tokens=result.usage.total_tokens,
                    cost_usd=result.cost_usd,
                    latency_ms=result.latency_ms,
                )
                return result

        self._stats.failed_requests += 1
        self.events.emit(
            EventName.MODEL_EXHAUSTED, task_id=task.id, tried_models=list(tried), error=last_error
        )
        log.error("models_exhausted", task_id=task.id, tried=tried, last_error=last_error)
        raise AllModelsFailedError(tried, last_error)

    def _price(self, result: GenerationResult) -> GenerationResult:
        """Fill in cost from the catalog when the provider reports none."""
        if result.cost_usd > 0:
            return result
        entry = self.registry.get(result.model)
        if entry is None or entry.cost_per_1k_tokens <= 0:
            return result
        cost = entry.cost_per_1k_tokens * result.usage.total_tokens / 1000
        return result.model_copy(update={"cost_usd": cost})

    def _quality_check(
        self, task: Task, gate_config: QualityGateConfig, content: str
    ) -> QualityCheckResult:
        check = self.quality_gate.check(
            content,
            QualityCheckOptions(
                min_confidence=gate_config.min_confidence,
                require_review=gate_config.require_review,
                escalate_on_failure=gate_config.escalate_on_failure,
                expected_format=task.output_format,
                validators=list(gate_config.validators),
            ),
        )
        self._stats.quality_checks += 1
        if check.passed:
            self._stats.quality_passed += 1
        self._stats.quality_pass_rate = self._stats.quality_passed / self._stats.quality_checks * 100

        self.events.emit(
            EventName.QUALITY_CHECKED,
            task_id=task.id,
            passed=check.passed,
            confidence=check.confidence,
        )
        if not check.passed:
            self.events.emit(
                EventName.QUALITY_FAILED,
                task_id=task.id,
                confidence=check.confidence,
                issues=[issue.message for issue in check.issues],
            )
        return check

    def _update_stats(self, result: GenerationResult, tier: Tier) -> None:
        stats = self._stats
        stats.total_tokens += result.usage.total_tokens
        stats.total_cost_usd += result.cost_usd
        self.config.budget_spent_today += result.cost_usd
        self._latency_total += result.latency_ms
        self._latency_count += 1
        stats.average_latency_ms = self._latency_total / self._latency_count
        stats.model_usage[result.model] = stats.model_usage.get(result.model, 0) + 1
        stats.tier_usage[int(tier)] = stats.tier_usage.get(int(tier), 0) + 1

    def _log_attempt(
        self,
        task: Task,
        model_id: str,
        attempt: int,
        result: GenerationResult | None = None,
        error: str | None = None,
    ) -> None:
        if self._generation_logger is None:
            return
        check = result.quality_check if result is not None else None
        self._generation_logger.log(
            self._generation_logger.create_entry(
                task_id=task.id,
                task_type=str(task.type),
                model=model_id,
                attempt=attempt,
                prompt=task.prompt,
                system_prompt=task.system_prompt,
                content=result.content if result is not None else "",
                total_tokens=result.usage.total_tokens if result is not None else 0,
                cost_usd=result.cost_usd if result is not None else 0.0,
                latency_ms=result.latency_ms if result is not None else 0.0,
                finish_reason=result.finish_reason if result is not None else "error",
                quality_passed=check.passed if check is not None else None,
                quality_confidence=check.confidence if check is not None else None,
                error=error,
            )
        )

    # -- Stats and budget ----------------------------------------------------------

    def stats(self) -> RouterStats:
        """Snapshot of cumulative statistics (a copy; reading never mutates)."""
        return self._stats.snapshot()

    def reset_stats(self, keep_budget: bool = False) -> None:
        """Zero the statistics; also zero today's spend unless ``keep_budget``."""
        self._stats = RouterStats()
        self._latency_total = 0.0
        self._latency_count = 0
        if not keep_budget:
            self.config.budget_spent_today = 0.0

    def budget_status(self) -> dict[str, Any]:
        spent = self.config.budget_spent_today
        budget = self.config.daily_budget_usd
        return {
            "daily_budget_usd": budget,
            "spent_today_usd": spent,
            "remaining_usd": max(0.0, budget - spent),
            "percentage_used": (spent / budget * 100) if budget > 0 else 100.0,
            "exceeded": spent >= budget,
        }

    def set_daily_budget(self, usd: float) -> None:
        if usd < 0:
            raise ValueError("daily budget must be non-negative")
        self.config.daily_budget_usd = usd

    def reset_daily_budget(self) -> None:
        """Start a new budget day."""
        self.config.budget_spent_today = 0.0


@dataclass
class TaskOutput:
    """What pipeline stages get back from :class:`RouterTaskExecutor`."""

    content: str
    model: str
    cost_usd: float = 0.0
    quality_check: QualityCheckResult | None = None


class RouterTaskExecutor:
    """Thin facade the pipeline uses to run a prompt through the router."""

    def __init__(self, router: ModelRouter) -> None:
        self._router = router

    async def execute_task(
        self,
        prompt: str,
        task_type: TaskType | str = TaskType.SUMMARIZATION,
        *,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        output_format: OutputFormat | None = None,
        required_capabilities: list[Capability] | None = None,
    ) -> TaskOutput:
        """Build a task, execute it and return the generated content.

        Raises:
            AllModelsFailedError: When every candidate model failed.
        """
        task = Task.new(
            task_type,
            prompt,
            system_prompt=system_prompt,
            max_tokens=max_tokens,
            output_format=output_format,
            required_capabilities=list(required_capabilities or []),
        )
        result = await self._router.execute(task)
        return TaskOutput(
            content=result.content,
            model=result.model,
            cost_usd=result.cost_usd,
            quality_check=result.quality_check,
        )
