"""Governance pipeline engine.

Walks the nine fixed stages in order, one at a time per run. Each handler
attempt is bounded by a timeout and failed attempts are retried with
exponential backoff. A run ends in one of four states:

- ``completed``: every stage ran;
- ``locked``: execution is waiting for HIGH-risk approval (resumable);
- ``rejected``: a handler raised :class:`PipelineRejectedError`;
- ``error``: a stage failed on every attempt.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import governance_os.pipeline.handlers  # noqa: F401 - registers the default handlers
from governance_os.config import PipelineConfig
from governance_os.models import (
    STAGE_ORDER,
    STAGE_PAYLOAD_KINDS,
    ExecutionResult,
    PipelineContext,
    PipelineResult,
    PipelineStage,
    RiskLevel,
)
from governance_os.observability.events import EventBus, EventName
from governance_os.observability.logging import get_logger, log_context
from governance_os.pipeline.errors import (
    HandlerNotFoundError,
    PipelineError,
    PipelineRejectedError,
    StageExhaustedError,
    StagePayloadError,
    StageTimeoutError,
)
from governance_os.pipeline.stages import default_handlers
from governance_os.pipeline.store import InMemoryContextStore

if TYPE_CHECKING:
    from governance_os.models import (
        Document,
        HighRiskApproval,
        PipelineStatus,
        VotingSession,
        WorkflowType,
    )
    from governance_os.pipeline.services import PipelineServices
    from governance_os.pipeline.stages import StageHandler
    from governance_os.pipeline.store import ContextStore

log = get_logger(__name__)

BLOCKED_REASON = "Awaiting approval for HIGH-risk action"


class GovernancePipeline:
    """Run governance pipelines against an injected service bundle.

    Args:
        services: Collaborators passed to every stage handler.
        config: Retry, timeout and backoff policy.
        handlers: Per-stage overrides of the default handlers.
        store: Where blocked contexts are kept for :meth:`resume`.
        events: Event bus for pipeline events.
    """

    def __init__(
        self,
        services: PipelineServices,
        config: PipelineConfig | None = None,
        handlers: dict[PipelineStage, StageHandler] | None = None,
        store: ContextStore | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.services = services
        self.config = config or PipelineConfig()
        self._handlers = default_handlers()
        for stage, handler in (handlers or {}).items():
            self.register_handler(stage, handler)
        self.store: ContextStore = store if store is not None else InMemoryContextStore()
        self.events = events if events is not None else EventBus()
        self._active: dict[str, PipelineContext] = {}

    # -- Handlers ----------------------------------------------------------------

    def register_handler(self, stage: PipelineStage | str, handler: StageHandler) -> None:
        """Replace this engine's handler for one stage."""
        self._handlers[PipelineStage(stage)] = handler

    def get_handler(self, stage: PipelineStage | str) -> StageHandler | None:
        return self._handlers.get(PipelineStage(stage))

    # -- Runs --------------------------------------------------------------------

    def create_context(
        self,
        issue_id: str | None = None,
        workflow_type: WorkflowType | None = None,
        risk_level: RiskLevel | str = RiskLevel.LOW,
        signal_ids: list[str] | None = None,
        extras: dict[str, Any] | None = None,
    ) -> PipelineContext:
        """Fresh context positioned at ``signal_intake``."""
        return PipelineContext(
            issue_id=issue_id,
            workflow_type=workflow_type,
            risk_level=RiskLevel(risk_level),
            signal_ids=list(signal_ids or []),
            extras=dict(extras or {}),
        )

    async def run(self, context: PipelineContext) -> PipelineResult:
        """Run the remaining stages of ``context``. Never raises for stage failures.

        Raises:
            ValueError: A run with the same context id is already executing.
        """
        if context.id in self._active:
            raise ValueError(f"Pipeline run '{context.id}' is already executing")
        self._active[context.id] = context
        with log_context(run_id=context.id):
            return await self._run_stages(context)

    async def _run_stages(self, context: PipelineContext) -> PipelineResult:
        if len(self._active) > self.config.active_run_warning_threshold:
            log.warning("active_runs_high", active=len(self._active))
        if not context.completed_stages:
            self.events.emit(
                EventName.PIPELINE_STARTED,
                run_id=context.id,
                risk_level=str(context.risk_level),
                issue_id=context.issue_id,
            )
        log.info("pipeline_started", run_id=context.id, next_stage=str(context.next_stage()))

        try:
            while (stage := context.next_stage()) is not None:
                self.events.emit(EventName.STAGE_ENTERED, run_id=context.id, stage=str(stage))
                context.stage = stage
                context = await self._run_stage(stage, context)
                context.completed_stages = [*context.completed_stages, stage]
                self.events.emit(EventName.STAGE_COMPLETED, run_id=context.id, stage=str(stage))
                log.debug("stage_completed", run_id=context.id, stage=str(stage))

                if context.execution_blocked:
                    return await self._finish_blocked(context)
        except PipelineRejectedError as e:
            return self._finish_failed(context, "rejected", e)
        except PipelineError as e:
            return self._finish_failed(context, "error", e)
        finally:
            self._active.pop(context.id, None)

        context.completed_at = datetime.now(UTC)
        self.store.delete(context.id)
        result = await self._build_result(context, "completed")
        self.events.emit(
            EventName.PIPELINE_COMPLETED, run_id=context.id, status="completed", success=True
        )
        log.info("pipeline_completed", run_id=context.id, documents=len(context.documents))
        return result

    async def resume(self, context_id: str) -> PipelineResult | None:
        """Continue a ``locked`` run from its blocked stage.

        Returns:
            The new result, or None when no retained context has this id or
            the run is already executing.
        """
        if context_id in self._active:
            log.warning("resume_already_running", run_id=context_id)
            return None
        context = self.store.load(context_id)
        if context is None:
            log.info("resume_not_found", run_id=context_id)
            return None

        context.execution_blocked = False
        context.completed_at = None
        if context.completed_stages and context.completed_stages[-1] == context.stage:
            context.completed_stages = context.completed_stages[:-1]
        log.info("pipeline_resumed", run_id=context_id, stage=str(context.stage))
        return await self.run(context)

    def active_runs(self) -> list[str]:
        """Ids of runs currently executing."""
        return list(self._active)

    @property
    def active_run_count(self) -> int:
        return len(self._active)

    def get_context(self, context_id: str) -> PipelineContext | None:
        """An executing context, or a retained blocked one."""
        return self._active.get(context_id) or self.store.load(context_id)

    # -- Stage execution ---------------------------------------------------------

    async def _run_stage(self, stage: PipelineStage, context: PipelineContext) -> PipelineContext:
        handler = self._handlers.get(stage)
        if handler is None:
            raise HandlerNotFoundError(stage)

        attempts = max(1, self.config.max_retries_per_stage)
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                updated = await asyncio.wait_for(
                    handler(context, self.services), timeout=self.config.stage_timeout_seconds
                )
                _validate_stage_output(stage, context, updated)
                return updated
            except PipelineRejectedError:
                raise
            except TimeoutError:
                last_error = StageTimeoutError(stage, self.config.stage_timeout_seconds)
            except Exception as e:
                last_error = e

            log.warning(
                "stage_attempt_failed",
                run_id=context.id,
                stage=str(stage),
                attempt=attempt + 1,
                max_attempts=attempts,
                error=str(last_error),
            )
            if attempt + 1 < attempts:
                await asyncio.sleep(self.config.backoff_base_seconds * 2**attempt)

        raise StageExhaustedError(stage, attempts, last_error)

    # -- Results -----------------------------------------------------------------

    async def _finish_blocked(self, context: PipelineContext) -> PipelineResult:
        context.completed_at = datetime.now(UTC)
        self.store.save(context)
        self.events.emit(
            EventName.PIPELINE_BLOCKED,
            run_id=context.id,
            reason=BLOCKED_REASON,
            locked_action_id=context.locked_action_id,
        )
        result = await self._build_result(context, "locked")
        self.events.emit(
            EventName.PIPELINE_COMPLETED, run_id=context.id, status="locked", success=False
        )
        log.info("pipeline_blocked", run_id=context.id, locked_action_id=context.locked_action_id)
        return result

    def _finish_failed(
        self, context: PipelineContext, status: PipelineStatus, error: PipelineError
    ) -> PipelineResult:
        context.error = str(error)
        context.completed_at = datetime.now(UTC)
        self.store.delete(context.id)
        if status == "error":
            self.events.emit(
                EventName.PIPELINE_ERROR, run_id=context.id, stage=error.stage, error=str(error)
            )
            log.error("pipeline_failed", run_id=context.id, stage=error.stage, error=str(error))
        else:
            self.events.emit(
                EventName.PIPELINE_COMPLETED, run_id=context.id, status=status, success=False
            )
            log.info("pipeline_rejected", run_id=context.id, stage=error.stage)
        return PipelineResult(
            context=context,
            success=False,
            status=status,
            execution_result=_execution_result(context),
        )

    async def _build_result(self, context: PipelineContext, status: PipelineStatus) -> PipelineResult:
        services = self.services
        documents: list[Document] = []
        for document_id in context.documents:
            try:
                document = await services.document_registry.get_document(document_id)
            except Exception as e:
                log.debug("result_lookup_failed", kind="document", id=document_id, error=str(e))
                continue
            if document is not None:
                documents.append(document)

        voting: VotingSession | None = None
        if context.voting_id:
            try:
                voting = await services.dual_house.get_voting(context.voting_id)
            except Exception as e:
                log.debug("result_lookup_failed", kind="voting", id=context.voting_id, error=str(e))

        approval: HighRiskApproval | None = None
        if context.approval_id:
            try:
                approval = await services.dual_house.get_high_risk_approval(context.approval_id)
            except Exception as e:
                log.debug(
                    "result_lookup_failed", kind="approval", id=context.approval_id, error=str(e)
                )

        return PipelineResult(
            context=context,
            success=status == "completed",
            status=status,
            documents=documents,
            voting_result=voting,
            approval_status=approval,
            execution_result=_execution_result(context),
        )


def _validate_stage_output(
    stage: PipelineStage, before: PipelineContext, after: object
) -> None:
    """Check a handler returned the run's context with well-formed payloads.

    Raises:
        StagePayloadError: On a foreign object or a payload of the wrong kind.
    """
    if not isinstance(after, PipelineContext) or after.id != before.id:
        raise StagePayloadError(stage, "Handler must return the run's PipelineContext")
    for payload_stage, payload in after.payloads.items():
        expected = STAGE_PAYLOAD_KINDS.get(payload_stage)
        if expected is None or payload.kind != expected:
            raise StagePayloadError(
                stage,
                f"Payload for '{payload_stage}' has kind '{payload.kind}', expected '{expected}'",
            )
    if list(after.completed_stages) != list(STAGE_ORDER[: len(after.completed_stages)]):
        raise StagePayloadError(stage, "Handler reordered completed stages")


def _execution_result(context: PipelineContext) -> ExecutionResult | None:
    if not context.executed:
        return None
    return ExecutionResult(
        execution=context.payload(PipelineStage.EXECUTION),
        verification=context.payload(PipelineStage.OUTCOME_VERIFICATION),
    )
