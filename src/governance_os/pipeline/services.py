"""Collaborator interfaces the pipeline stages call.

The document registry, dual-house voting, the safe-autonomy lock manager,
the workflow orchestrator and the model router are injected as a
:class:`PipelineServices` bundle. Any object satisfying these protocols
works; :mod:`governance_os.pipeline.memory` ships in-memory versions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from governance_os.models import (
        ApprovalCheck,
        Capability,
        Document,
        HighRiskApproval,
        Issue,
        LockedAction,
        OutputFormat,
        RiskLevel,
        TaskType,
        VotingSession,
        WorkflowHandle,
        WorkflowOutput,
        WorkflowState,
        WorkflowType,
    )
    from governance_os.routing.embeddings import EmbeddingService
    from governance_os.routing.router import TaskOutput


class SafeAutonomyService(Protocol):
    """Risk classification and the lock manager for HIGH-risk actions."""

    def classify_risk(self, action: str) -> RiskLevel: ...

    async def create_locked_action(
        self,
        action_type: str,
        description: str,
        risk_level: RiskLevel,
        payload: dict[str, Any] | None = None,
    ) -> LockedAction: ...

    async def check_approval(self, action_id: str) -> ApprovalCheck: ...


class WorkflowOrchestrator(Protocol):
    """Creates and runs workflow instances (types A-E)."""

    async def create_workflow(self, issue: Issue, workflow_type: WorkflowType) -> WorkflowHandle: ...

    async def run_workflow(self, workflow_id: str) -> WorkflowOutput: ...

    async def get_workflow_state(self, workflow_id: str) -> WorkflowState: ...


class DocumentRegistry(Protocol):
    """Versioned governance documents."""

    async def get_document(self, document_id: str) -> Document | None: ...

    async def create_document(
        self,
        type: str,
        title: str,
        summary: str = "",
        content: str = "",
        created_by: str = "governance-pipeline",
    ) -> Document: ...

    async def publish_document(self, document_id: str) -> None: ...


class TaskExecutor(Protocol):
    """Runs a prompt through the model router."""

    async def execute_task(
        self,
        prompt: str,
        task_type: TaskType | str = ...,
        *,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        output_format: OutputFormat | None = None,
        required_capabilities: list[Capability] | None = None,
    ) -> TaskOutput: ...


class DualHouse(Protocol):
    """Dual-house voting and high-risk approvals."""

    async def create_voting(
        self,
        proposal_id: str,
        title: str,
        summary: str,
        risk_level: RiskLevel,
        category: str = "general",
        created_by: str = "pipeline",
    ) -> VotingSession: ...

    async def get_voting(self, voting_id: str) -> VotingSession | None: ...

    async def create_high_risk_approval(
        self,
        proposal_id: str,
        voting_id: str,
        action_description: str,
        action_type: str,
    ) -> HighRiskApproval: ...

    async def get_high_risk_approval(self, approval_id: str) -> HighRiskApproval | None: ...


@dataclass
class PipelineServices:
    """Everything a stage handler may call.

    ``embeddings`` is optional; stages use it when present and skip the
    work otherwise.
    """

    safe_autonomy: SafeAutonomyService
    orchestrator: WorkflowOrchestrator
    document_registry: DocumentRegistry
    model_router: TaskExecutor
    dual_house: DualHouse
    embeddings: EmbeddingService | None = None
