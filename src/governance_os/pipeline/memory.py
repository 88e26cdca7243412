"""In-memory collaborators satisfying the pipeline service protocols.

They back the CLI and the test suite. Approval is explicit:
:meth:`InMemorySafeAutonomy.approve` unlocks a locked action and
:meth:`InMemoryDualHouse.approve` records house votes on an approval.
"""

from __future__ import annotations

import time
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from governance_os.models import (
    ApprovalCheck,
    Document,
    HighRiskApproval,
    LockedAction,
    RiskLevel,
    VotingSession,
    WorkflowHandle,
    WorkflowOutput,
    WorkflowState,
)
from governance_os.observability.logging import get_logger

if TYPE_CHECKING:
    from governance_os.models import Issue, WorkflowType

log = get_logger(__name__)

HOUSES = ("mosscoin_house", "opensource_house")

# Governance actions and their consequence severity; unknown actions are LOW
ACTION_RISK_LEVELS: dict[str, RiskLevel] = {
    "publish_research_digest": RiskLevel.LOW,
    "publish_technology_assessment": RiskLevel.LOW,
    "update_working_group_report": RiskLevel.LOW,
    "agent_chatter": RiskLevel.LOW,
    "create_governance_proposal": RiskLevel.MID,
    "create_partnership_proposal": RiskLevel.MID,
    "form_working_group": RiskLevel.MID,
    "grant_under_threshold": RiskLevel.MID,
    "execute_fund_transfer": RiskLevel.HIGH,
    "execute_contract_deployment": RiskLevel.HIGH,
    "execute_partnership_agreement": RiskLevel.HIGH,
    "execute_treasury_allocation": RiskLevel.HIGH,
    "execute_token_operation": RiskLevel.HIGH,
    "execute_protocol_upgrade": RiskLevel.HIGH,
    "grant_over_threshold": RiskLevel.HIGH,
}


def _new_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


class InMemorySafeAutonomy:
    """Risk table lookup plus a dict of locked actions."""

    def __init__(self, risk_levels: dict[str, RiskLevel] | None = None) -> None:
        self.risk_levels = dict(ACTION_RISK_LEVELS if risk_levels is None else risk_levels)
        self.locked_actions: dict[str, LockedAction] = {}

    def classify_risk(self, action: str) -> RiskLevel:
        return self.risk_levels.get(action, RiskLevel.LOW)

    async def create_locked_action(
        self,
        action_type: str,
        description: str,
        risk_level: RiskLevel,
        payload: dict[str, Any] | None = None,
    ) -> LockedAction:
        action = LockedAction(
            id=_new_id("lock"),
            action_type=action_type,
            description=description,
            risk_level=risk_level,
            payload=dict(payload or {}),
        )
        self.locked_actions[action.id] = action
        log.info("action_locked", action_id=action.id, risk_level=str(risk_level))
        return action

    async def check_approval(self, action_id: str) -> ApprovalCheck:
        action = self.locked_actions.get(action_id)
        if action is None:
            return ApprovalCheck(approved=False)
        return ApprovalCheck(approved=action.approved, by=list(action.approved_by))

    def approve(self, action_id: str, by: list[str] | tuple[str, ...] = HOUSES) -> bool:
        """Unlock an action. Returns False for an unknown id."""
        action = self.locked_actions.get(action_id)
        if action is None:
            return False
        self.locked_actions[action_id] = action.model_copy(
            update={"approved": True, "approved_by": list(by)}
        )
        return True


class InMemoryDocumentRegistry:
    """Documents keyed by id; publishing moves a draft to ``published``."""

    def __init__(self) -> None:
        self.documents: dict[str, Document] = {}

    async def get_document(self, document_id: str) -> Document | None:
        return self.documents.get(document_id)

    async def create_document(
        self,
        type: str,
        title: str,
        summary: str = "",
        content: str = "",
        created_by: str = "governance-pipeline",
    ) -> Document:
        document = Document(
            id=_new_id(f"doc-{type.lower()}"),
            type=type,
            title=title,
            summary=summary,
            content=content,
            created_by=created_by,
        )
        self.documents[document.id] = document
        return document

    async def publish_document(self, document_id: str) -> None:
        """Publish a document.

        Raises:
            KeyError: If the document does not exist.
        """
        document = self.documents[document_id]
        self.documents[document_id] = document.model_copy(
            update={"state": "published", "published_at": datetime.now(UTC)}
        )


class InMemoryDualHouse:
    """Voting sessions and high-risk approvals.

    An approval unlocks once every house in :data:`HOUSES` has approved.
    """

    def __init__(self) -> None:
        self.votings: dict[str, VotingSession] = {}
        self.approvals: dict[str, HighRiskApproval] = {}

    async def create_voting(
        self,
        proposal_id: str,
        title: str,
        summary: str,
        risk_level: RiskLevel,
        category: str = "general",
        created_by: str = "pipeline",
    ) -> VotingSession:
        voting = VotingSession(
            id=_new_id("vote"),
            proposal_id=proposal_id,
            title=title,
            summary=summary,
            risk_level=risk_level,
            category=category,
            created_by=created_by,
        )
        self.votings[voting.id] = voting
        return voting

    async def get_voting(self, voting_id: str) -> VotingSession | None:
        return self.votings.get(voting_id)

    async def create_high_risk_approval(
        self,
        proposal_id: str,
        voting_id: str,
        action_description: str,
        action_type: str,
    ) -> HighRiskApproval:
        approval = HighRiskApproval(
            id=_new_id("appr"),
            proposal_id=proposal_id,
            voting_id=voting_id,
            action_description=action_description,
            action_type=action_type,
        )
        self.approvals[approval.id] = approval
        return approval

    async def get_high_risk_approval(self, approval_id: str) -> HighRiskApproval | None:
        return self.approvals.get(approval_id)

    def approve(self, approval_id: str, house: str) -> HighRiskApproval | None:
        """Record one house's approval; the voting passes once all houses agree."""
        approval = self.approvals.get(approval_id)
        if approval is None:
            return None
        approvers = sorted({*approval.approvers, house})
        unlocked = all(h in approvers for h in HOUSES)
        approval = approval.model_copy(
            update={"approvers": approvers, "lock_status": "unlocked" if unlocked else "locked"}
        )
        self.approvals[approval_id] = approval

        voting = self.votings.get(approval.voting_id)
        if voting is not None:
            self.votings[voting.id] = voting.model_copy(
                update={
                    "houses_passed": [h for h in approvers if h in HOUSES],
                    "status": "passed" if unlocked else voting.status,
                }
            )
        return approval


class InMemoryOrchestrator:
    """Workflow instances that complete immediately.

    When ``document_registry`` is given and ``reports_per_run`` is positive,
    each run produces that many workflow report (``WR``) documents.
    """

    def __init__(
        self,
        document_registry: InMemoryDocumentRegistry | None = None,
        reports_per_run: int = 0,
    ) -> None:
        self._documents = document_registry
        self.reports_per_run = reports_per_run
        self.workflows: dict[str, tuple[Issue, WorkflowType]] = {}
        self.states: dict[str, str] = {}

    async def create_workflow(self, issue: Issue, workflow_type: WorkflowType) -> WorkflowHandle:
        handle = WorkflowHandle(id=_new_id(f"wf-{workflow_type.lower()}"))
        self.workflows[handle.id] = (issue, workflow_type)
        self.states[handle.id] = "created"
        return handle

    async def run_workflow(self, workflow_id: str) -> WorkflowOutput:
        """Run a workflow.

        Raises:
            KeyError: If the workflow does not exist.
        """
        issue, workflow_type = self.workflows[workflow_id]
        self.states[workflow_id] = "running"
        documents: list[str] = []
        if self._documents is not None:
            for n in range(self.reports_per_run):
                document = await self._documents.create_document(
                    type="WR",
                    title=f"Workflow {workflow_type} report {n + 1}: {issue.title}",
                    summary=issue.description[:200],
                    created_by=f"workflow-{workflow_type}",
                )
                documents.append(document.id)
        self.states[workflow_id] = "completed"
        return WorkflowOutput(documents=documents)

    async def get_workflow_state(self, workflow_id: str) -> WorkflowState:
        return WorkflowState(state=self.states.get(workflow_id, "unknown"))
