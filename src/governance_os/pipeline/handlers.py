"""Default handlers for the nine pipeline stages.

Each handler takes the run context and the service bundle, mutates the
context in place and returns it. Structured output is recorded as the
stage's payload; see :mod:`governance_os.models.pipeline`.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from governance_os.models import (
    DocumentProductionPayload,
    ExecutionPayload,
    IntakePayload,
    Issue,
    IssuePayload,
    ItemVerification,
    PipelineStage,
    RiskLevel,
    TaskType,
    VerificationPayload,
)
from governance_os.observability.logging import get_logger
from governance_os.pipeline.stages import stage_handler
from governance_os.routing.embeddings import cosine_similarity

if TYPE_CHECKING:
    from governance_os.models import PipelineContext
    from governance_os.pipeline.services import PipelineServices

log = get_logger(__name__)

# Execution action performed for each workflow type
EXECUTION_ACTIONS: dict[str, str] = {
    "A": "scheduled_deliberation",
    "B": "free_debate",
    "C": "community_poll",
    "D": "snap_vote",
    "E": "emergency_protocol",
}
DEFAULT_EXECUTION_ACTION = "standard"

DECISION_PACKET_TYPE = "DP"
PIPELINE_ACTION_TYPE = "pipeline_execution"
DUPLICATE_SIGNAL_SIMILARITY = 0.95
SIGNAL_TEXTS_KEY = "signal_texts"


def _now() -> datetime:
    return datetime.now(UTC)


# -- signal_intake ---------------------------------------------------------------


@stage_handler(PipelineStage.SIGNAL_INTAKE)
async def signal_intake(ctx: PipelineContext, services: PipelineServices) -> PipelineContext:
    """Classify the trigger source and summarize signals when there are any."""
    ctx.stage = PipelineStage.SIGNAL_INTAKE

    if ctx.signal_ids:
        payload = IntakePayload(source="signals", signal_count=len(ctx.signal_ids))
        texts = [str(text) for text in ctx.extras.get(SIGNAL_TEXTS_KEY, [])]
        payload.duplicate_signals = await _count_duplicate_signals(texts, services)
        try:
            summary = await services.model_router.execute_task(
                f"Analyze signals: {json.dumps(ctx.signal_ids)}"
                + ("\n\nSignal contents:\n- " + "\n- ".join(texts) if texts else ""),
                TaskType.SUMMARIZATION,
                max_tokens=100,
            )
            payload.signal_analysis = summary.content
        except Exception as e:
            log.warning("signal_analysis_skipped", error=str(e))
            payload.signal_analysis = "Signal analysis skipped"
    elif ctx.issue_id:
        payload = IntakePayload(source="issue")
    else:
        payload = IntakePayload(source="direct")

    ctx.set_payload(PipelineStage.SIGNAL_INTAKE, payload)
    return ctx


async def _count_duplicate_signals(texts: list[str], services: PipelineServices) -> int:
    """Signals nearly identical to an earlier one; 0 when embeddings are unavailable."""
    if services.embeddings is None or len(texts) < 2:
        return 0
    try:
        result = await services.embeddings.embed_texts(texts)
    except Exception as e:
        log.warning("signal_dedup_skipped", error=str(e))
        return 0

    duplicates = 0
    vectors = result.embeddings
    for i, vector in enumerate(vectors):
        if any(
            cosine_similarity(vector, earlier) >= DUPLICATE_SIGNAL_SIMILARITY
            for earlier in vectors[:i]
        ):
            duplicates += 1
    return duplicates


# -- issue_detection -------------------------------------------------------------


@stage_handler(PipelineStage.ISSUE_DETECTION)
async def issue_detection(ctx: PipelineContext, services: PipelineServices) -> PipelineContext:
    """Validate the given issue, or synthesize one from the signals."""
    ctx.stage = PipelineStage.ISSUE_DETECTION

    if ctx.issue_id:
        payload = IssuePayload(status="existing", validated=True)
    elif ctx.signal_ids:
        intake = ctx.payload(PipelineStage.SIGNAL_INTAKE)
        analysis = getattr(intake, "signal_analysis", None) or "Multiple signals detected"
        try:
            generated = await services.model_router.execute_task(
                "Based on these signals, generate a concise issue title and description "
                f"for governance review: {analysis}",
                TaskType.SUMMARIZATION,
                max_tokens=200,
            )
            lines = [line.strip("# ").strip() for line in generated.content.splitlines()]
            title = next((line for line in lines if line), "") or "Signal-detected issue"
            payload = IssuePayload(
                status="generated",
                title=title,
                description=generated.content,
                signal_ids=list(ctx.signal_ids),
            )
        except Exception as e:
            log.warning("issue_generation_fallback", error=str(e))
            payload = IssuePayload(
                status="generated_fallback",
                title=f"Auto-detected issue from {len(ctx.signal_ids)} signals",
                description="This issue was automatically generated from signal analysis.",
                signal_ids=list(ctx.signal_ids),
            )
    else:
        payload = IssuePayload(status="none")

    ctx.set_payload(PipelineStage.ISSUE_DETECTION, payload)
    return ctx


def _issue_title(ctx: PipelineContext) -> str:
    issue = ctx.payload(PipelineStage.ISSUE_DETECTION)
    if issue is not None and issue.title:
        return str(issue.title)
    if ctx.issue_id:
        return f"Issue {ctx.issue_id}"
    return f"Pipeline {ctx.id}"


def _issue_description(ctx: PipelineContext) -> str:
    issue = ctx.payload(PipelineStage.ISSUE_DETECTION)
    return str(issue.description) if issue is not None and issue.description else ""


# -- workflow_dispatch / specialist_work ------------------------------------------


@stage_handler(PipelineStage.WORKFLOW_DISPATCH)
async def workflow_dispatch(ctx: PipelineContext, services: PipelineServices) -> PipelineContext:
    """Create a workflow instance when the run names an issue and a workflow type."""
    ctx.stage = PipelineStage.WORKFLOW_DISPATCH
    if ctx.issue_id and ctx.workflow_type:
        issue = Issue(
            id=ctx.issue_id,
            title=_issue_title(ctx),
            description=_issue_description(ctx),
            signal_ids=list(ctx.signal_ids),
        )
        handle = await services.orchestrator.create_workflow(issue, ctx.workflow_type)
        ctx.workflow_id = handle.id
        log.info("workflow_dispatched", workflow_id=handle.id, type=ctx.workflow_type)
    return ctx


@stage_handler(PipelineStage.SPECIALIST_WORK)
async def specialist_work(ctx: PipelineContext, services: PipelineServices) -> PipelineContext:
    """Run the dispatched workflow and collect the documents it produced."""
    ctx.stage = PipelineStage.SPECIALIST_WORK
    if ctx.workflow_id:
        output = await services.orchestrator.run_workflow(ctx.workflow_id)
        ctx.documents = [*ctx.documents, *output.documents]
    return ctx


# -- document_production -----------------------------------------------------------


@stage_handler(PipelineStage.DOCUMENT_PRODUCTION)
async def document_production(
    ctx: PipelineContext, services: PipelineServices
) -> PipelineContext:
    """Produce a decision packet when upstream stages produced no document."""
    ctx.stage = PipelineStage.DOCUMENT_PRODUCTION
    issue = ctx.payload(PipelineStage.ISSUE_DETECTION)
    has_issue = bool(ctx.issue_id) or (issue is not None and issue.title is not None)

    if ctx.documents:
        payload = DocumentProductionPayload(
            status="from_workflow", documents_count=len(ctx.documents)
        )
    elif has_issue:
        try:
            document_id = await _create_decision_packet(ctx, services)
        except Exception as e:
            log.error("decision_packet_failed", error=str(e))
            payload = DocumentProductionPayload(status="failed", error=str(e))
        else:
            ctx.documents = [*ctx.documents, document_id]
            payload = DocumentProductionPayload(
                status="completed",
                documents_created=1,
                documents_count=1,
                decision_packet_id=document_id,
            )
    else:
        payload = DocumentProductionPayload(status="skipped", reason="No issue to document")

    ctx.set_payload(PipelineStage.DOCUMENT_PRODUCTION, payload)
    return ctx


async def _create_decision_packet(ctx: PipelineContext, services: PipelineServices) -> str:
    title = _issue_title(ctx)
    description = _issue_description(ctx)
    try:
        analysis = await services.model_router.execute_task(
            "Analyze this governance issue and provide a recommendation.\n"
            f"Title: {title}\n"
            f"Description: {description}\n"
            f"Risk Level: {ctx.risk_level}\n"
            f"Workflow Type: {ctx.workflow_type or DEFAULT_EXECUTION_ACTION}",
            TaskType.CORE_DECISION,
            max_tokens=300,
        )
        recommendation = analysis.content
    except Exception as e:
        log.warning("recommendation_fallback", error=str(e))
        recommendation = (
            f"Recommendation pending for issue: {title}. Risk level: {ctx.risk_level}."
        )

    document = await services.document_registry.create_document(
        type=DECISION_PACKET_TYPE,
        title=f"Decision Packet: {title}",
        summary=recommendation[:200],
        content=json.dumps(
            {
                "issue_id": ctx.issue_id,
                "issue_title": title,
                "issue_description": description,
                "workflow_id": ctx.workflow_id,
                "workflow_type": ctx.workflow_type,
                "risk_level": str(ctx.risk_level),
                "recommendation": recommendation,
                "pipeline_id": ctx.id,
                "generated_at": _now().isoformat(),
            }
        ),
        created_by="governance-pipeline",
    )
    return document.id


# -- dual_house_review / approval_routing ---------------------------------------------


@stage_handler(PipelineStage.DUAL_HOUSE_REVIEW)
async def dual_house_review(ctx: PipelineContext, services: PipelineServices) -> PipelineContext:
    """Open a dual-house voting session for MID and HIGH risk."""
    ctx.stage = PipelineStage.DUAL_HOUSE_REVIEW
    if ctx.risk_level in (RiskLevel.MID, RiskLevel.HIGH):
        voting = await services.dual_house.create_voting(
            proposal_id=ctx.issue_id or ctx.id,
            title=f"Pipeline {ctx.id} Review",
            summary=f"Review for pipeline with risk level {ctx.risk_level}",
            risk_level=ctx.risk_level,
            category=ctx.workflow_type or "general",
            created_by="pipeline",
        )
        ctx.voting_id = voting.id
    return ctx


@stage_handler(PipelineStage.APPROVAL_ROUTING)
async def approval_routing(ctx: PipelineContext, services: PipelineServices) -> PipelineContext:
    """Lock HIGH-risk execution behind an approval tied to the voting session."""
    ctx.stage = PipelineStage.APPROVAL_ROUTING
    if ctx.risk_level != RiskLevel.HIGH:
        return ctx

    action = await services.safe_autonomy.create_locked_action(
        action_type=PIPELINE_ACTION_TYPE,
        description=f"Execute pipeline {ctx.id}",
        risk_level=ctx.risk_level,
        payload={"pipeline_id": ctx.id, "issue_id": ctx.issue_id, "documents": list(ctx.documents)},
    )
    ctx.locked_action_id = action.id

    if ctx.voting_id:
        approval = await services.dual_house.create_high_risk_approval(
            proposal_id=ctx.issue_id or ctx.id,
            voting_id=ctx.voting_id,
            action_description=f"Execute pipeline {ctx.id}",
            action_type=PIPELINE_ACTION_TYPE,
        )
        ctx.approval_id = approval.id
    log.info("execution_locked", locked_action_id=action.id)
    return ctx


# -- execution ---------------------------------------------------------------------


@stage_handler(PipelineStage.EXECUTION)
async def execution(ctx: PipelineContext, services: PipelineServices) -> PipelineContext:
    """Execute the workflow action, or block until a HIGH-risk lock is approved."""
    ctx.stage = PipelineStage.EXECUTION
    started_at = _now()
    approved_by: list[str] = []
    approval_status = None

    if ctx.risk_level == RiskLevel.HIGH and ctx.locked_action_id:
        approval = await services.safe_autonomy.check_approval(ctx.locked_action_id)
        if not approval.approved:
            ctx.execution_blocked = True
            ctx.set_payload(
                PipelineStage.EXECUTION,
                ExecutionPayload(
                    status="blocked",
                    risk_level=ctx.risk_level,
                    started_at=started_at,
                    reason="Awaiting HIGH-risk approval",
                    locked_action_id=ctx.locked_action_id,
                    approved_by=list(approval.by),
                ),
            )
            log.info("execution_blocked", locked_action_id=ctx.locked_action_id)
            return ctx
        approved_by = list(approval.by)
        approval_status = "approved"

    action_type = (
        EXECUTION_ACTIONS.get(ctx.workflow_type, DEFAULT_EXECUTION_ACTION)
        if ctx.workflow_type
        else DEFAULT_EXECUTION_ACTION
    )

    publish_failures: list[str] = []
    for document_id in ctx.documents:
        try:
            await services.document_registry.publish_document(document_id)
        except Exception as e:
            log.warning("document_publish_failed", document_id=document_id, error=str(e))
            publish_failures.append(document_id)

    ctx.executed = True
    ctx.set_payload(
        PipelineStage.EXECUTION,
        ExecutionPayload(
            status="completed",
            risk_level=ctx.risk_level,
            started_at=started_at,
            completed_at=_now(),
            approved_by=approved_by,
            approval_status=approval_status,
            action_type=action_type,
            documents_published=len(ctx.documents) - len(publish_failures),
            publish_failures=publish_failures,
        ),
    )
    return ctx


# -- outcome_verification -------------------------------------------------------------


@stage_handler(PipelineStage.OUTCOME_VERIFICATION)
async def outcome_verification(
    ctx: PipelineContext, services: PipelineServices
) -> PipelineContext:
    """Re-fetch every produced record and compute duration and overall success.

    A lookup that fails or returns nothing marks that item unverified; it
    never fails the stage.
    """
    ctx.stage = PipelineStage.OUTCOME_VERIFICATION

    documents: list[ItemVerification] = []
    for document_id in ctx.documents:
        try:
            document = await services.document_registry.get_document(document_id)
        except Exception as e:
            log.warning("verification_lookup_failed", kind="document", id=document_id, error=str(e))
            document = None
        documents.append(
            ItemVerification(
                id=document_id,
                verified=document is not None,
                state=document.state if document is not None else None,
            )
        )

    voting = None
    if ctx.voting_id:
        try:
            session = await services.dual_house.get_voting(ctx.voting_id)
        except Exception as e:
            log.warning("verification_lookup_failed", kind="voting", id=ctx.voting_id, error=str(e))
            session = None
        voting = ItemVerification(
            id=ctx.voting_id,
            verified=session is not None,
            state=session.status if session is not None else None,
        )

    approval = None
    if ctx.approval_id:
        try:
            record = await services.dual_house.get_high_risk_approval(ctx.approval_id)
        except Exception as e:
            log.warning(
                "verification_lookup_failed", kind="approval", id=ctx.approval_id, error=str(e)
            )
            record = None
        approval = ItemVerification(
            id=ctx.approval_id,
            verified=record is not None,
            state=record.lock_status if record is not None else None,
        )

    duration_ms = int((_now() - ctx.started_at).total_seconds() * 1000)
    ctx.set_payload(
        PipelineStage.OUTCOME_VERIFICATION,
        VerificationPayload(
            documents_verified=documents,
            all_documents_valid=all(item.verified for item in documents),
            voting=voting,
            approval=approval,
            duration_ms=duration_ms,
            duration_formatted=f"{round(duration_ms / 1000)}s",
            success=ctx.executed,
        ),
    )
    return ctx
