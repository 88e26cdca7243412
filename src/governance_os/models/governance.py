"""Records exchanged with the pipeline's external collaborators.

The document registry, dual-house voting, the safe-autonomy lock manager and
the workflow orchestrator live outside this package; these models describe
only the fields the pipeline reads or writes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(UTC)


class RiskLevel(StrEnum):
    """Consequence severity of a governance action."""

    LOW = "LOW"
    MID = "MID"
    HIGH = "HIGH"


WorkflowType = Literal["A", "B", "C", "D", "E"]


class Issue(BaseModel):
    """A governance issue handed to a workflow."""

    id: str
    title: str
    description: str = ""
    category: str = "community_governance"
    source: str = "pipeline"
    signal_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)


class WorkflowHandle(BaseModel):
    """Reference to a created workflow instance."""

    id: str


class WorkflowOutput(BaseModel):
    """Documents produced by a workflow run."""

    documents: list[str] = Field(default_factory=list)


class WorkflowState(BaseModel):
    """Lifecycle state of a workflow instance."""

    state: str


class Document(BaseModel):
    """A versioned governance document."""

    id: str
    type: str = Field(description="Document type code, e.g. DP for decision packet")
    title: str
    summary: str = ""
    content: str = ""
    created_by: str = "governance-pipeline"
    state: Literal["draft", "published", "archived"] = "draft"
    version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=_now)
    published_at: datetime | None = None


class VotingSession(BaseModel):
    """A dual-house voting session."""

    id: str
    proposal_id: str
    title: str
    summary: str = ""
    risk_level: RiskLevel
    category: str = "general"
    created_by: str = "pipeline"
    status: Literal["open", "passed", "rejected"] = "open"
    houses_passed: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)


class HighRiskApproval(BaseModel):
    """Approval record tied to a voting session for a HIGH-risk action."""

    id: str
    proposal_id: str
    voting_id: str
    action_description: str
    action_type: str
    lock_status: Literal["locked", "unlocked"] = "locked"
    approvers: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)


class LockedAction(BaseModel):
    """A HIGH-risk action held until explicitly approved."""

    id: str
    action_type: str
    description: str
    risk_level: RiskLevel
    payload: dict[str, Any] = Field(default_factory=dict)
    approved: bool = False
    approved_by: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)


class ApprovalCheck(BaseModel):
    """Answer to "may this locked action execute yet?"."""

    approved: bool
    by: list[str] = Field(default_factory=list)
