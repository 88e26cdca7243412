"""Pydantic models for governance pipeline runs.

Stage handlers exchange state through :class:`PipelineContext`. Structured
per-stage output goes into ``payloads`` as a tagged union keyed by stage;
anything else goes into the ``extras`` escape hatch.
"""

from __future__ import annotations

import time
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from governance_os.models.governance import (  # noqa: TC001 - pydantic needs it at runtime
    Document,
    HighRiskApproval,
    RiskLevel,
    VotingSession,
    WorkflowType,
)


def _now() -> datetime:
    return datetime.now(UTC)


class PipelineStage(StrEnum):
    """The nine fixed pipeline stages."""

    SIGNAL_INTAKE = "signal_intake"
    ISSUE_DETECTION = "issue_detection"
    WORKFLOW_DISPATCH = "workflow_dispatch"
    SPECIALIST_WORK = "specialist_work"
    DOCUMENT_PRODUCTION = "document_production"
    DUAL_HOUSE_REVIEW = "dual_house_review"
    APPROVAL_ROUTING = "approval_routing"
    EXECUTION = "execution"
    OUTCOME_VERIFICATION = "outcome_verification"


STAGE_ORDER: tuple[PipelineStage, ...] = tuple(PipelineStage)

PipelineStatus = Literal["completed", "pending_approval", "locked", "rejected", "error"]


# -- Stage payloads -------------------------------------------------------------


class IntakePayload(BaseModel):
    """signal_intake output."""

    kind: Literal["intake"] = "intake"
    source: Literal["direct", "signals", "issue"]
    received_at: datetime = Field(default_factory=_now)
    signal_count: int = 0
    duplicate_signals: int = 0
    signal_analysis: str | None = None


class IssuePayload(BaseModel):
    """issue_detection output."""

    kind: Literal["issue"] = "issue"
    status: Literal["existing", "generated", "generated_fallback", "none"]
    validated: bool = False
    title: str | None = None
    description: str | None = None
    signal_ids: list[str] = Field(default_factory=list)
    detected_at: datetime = Field(default_factory=_now)


class DocumentProductionPayload(BaseModel):
    """document_production output."""

    kind: Literal["document_production"] = "document_production"
    status: Literal["completed", "from_workflow", "skipped", "failed"]
    documents_created: int = 0
    documents_count: int = 0
    decision_packet_id: str | None = None
    reason: str | None = None
    error: str | None = None
    timestamp: datetime = Field(default_factory=_now)


class ExecutionPayload(BaseModel):
    """execution output."""

    kind: Literal["execution"] = "execution"
    status: Literal["blocked", "completed"]
    risk_level: RiskLevel
    started_at: datetime = Field(default_factory=_now)
    completed_at: datetime | None = None
    reason: str | None = None
    locked_action_id: str | None = None
    approved_by: list[str] = Field(default_factory=list)
    approval_status: Literal["approved"] | None = None
    action_type: str | None = None
    documents_published: int = 0
    publish_failures: list[str] = Field(default_factory=list)


class ItemVerification(BaseModel):
    """Whether one referenced record could be re-fetched."""

    id: str
    verified: bool
    state: str | None = None


class VerificationPayload(BaseModel):
    """outcome_verification output."""

    kind: Literal["verification"] = "verification"
    documents_verified: list[ItemVerification] = Field(default_factory=list)
    all_documents_valid: bool = True
    voting: ItemVerification | None = None
    approval: ItemVerification | None = None
    duration_ms: int = 0
    duration_formatted: str = "0s"
    success: bool = False
    completed_at: datetime = Field(default_factory=_now)


StagePayload = Annotated[
    IntakePayload
    | IssuePayload
    | DocumentProductionPayload
    | ExecutionPayload
    | VerificationPayload,
    Field(discriminator="kind"),
]

STAGE_PAYLOAD_KINDS: dict[PipelineStage, str] = {
    PipelineStage.SIGNAL_INTAKE: "intake",
    PipelineStage.ISSUE_DETECTION: "issue",
    PipelineStage.DOCUMENT_PRODUCTION: "document_production",
    PipelineStage.EXECUTION: "execution",
    PipelineStage.OUTCOME_VERIFICATION: "verification",
}


# -- Context and result ---------------------------------------------------------


def generate_pipeline_id() -> str:
    """Return a ``pipe-<epoch ms>-<hex>`` run id."""
    return f"pipe-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


class PipelineContext(BaseModel):
    """Mutable state of one pipeline run, owned by the engine."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=generate_pipeline_id)
    stage: PipelineStage = PipelineStage.SIGNAL_INTAKE
    issue_id: str | None = None
    workflow_type: WorkflowType | None = None
    signal_ids: list[str] = Field(default_factory=list)
    documents: list[str] = Field(default_factory=list, description="Produced document ids")
    risk_level: RiskLevel = RiskLevel.LOW
    started_at: datetime = Field(default_factory=_now)
    completed_at: datetime | None = None
    completed_stages: list[PipelineStage] = Field(default_factory=list)
    voting_id: str | None = None
    approval_id: str | None = None
    locked_action_id: str | None = None
    workflow_id: str | None = None
    payloads: dict[PipelineStage, StagePayload] = Field(default_factory=dict)
    extras: dict[str, Any] = Field(default_factory=dict, description="Untyped escape hatch")
    execution_blocked: bool = False
    executed: bool = False
    error: str | None = None

    def payload(self, stage: PipelineStage) -> Any:
        """Payload recorded by a stage, or None."""
        return self.payloads.get(stage)

    def set_payload(self, stage: PipelineStage, payload: BaseModel) -> None:
        """Record a stage payload (re-assigned so assignment validation runs)."""
        self.payloads = {**self.payloads, stage: payload}  # type: ignore[dict-item]

    def next_stage(self) -> PipelineStage | None:
        """First stage not yet completed, or None when all nine are done."""
        done = len(self.completed_stages)
        return STAGE_ORDER[done] if done < len(STAGE_ORDER) else None


class ExecutionResult(BaseModel):
    """Execution and verification details of a run that executed."""

    executed: bool = True
    execution: ExecutionPayload | None = None
    verification: VerificationPayload | None = None


class PipelineResult(BaseModel):
    """Immutable final snapshot of a run."""

    model_config = ConfigDict(frozen=True)

    context: PipelineContext
    success: bool
    status: PipelineStatus
    documents: list[Document] = Field(default_factory=list)
    voting_result: VotingSession | None = None
    approval_status: HighRiskApproval | None = None
    execution_result: ExecutionResult | None = None
