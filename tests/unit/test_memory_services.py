"""Tests for the in-memory pipeline collaborators."""

from __future__ import annotations

import pytest

from governance_os.models import Issue, RiskLevel
from governance_os.pipeline import (
    ACTION_RISK_LEVELS,
    InMemoryDocumentRegistry,
    InMemoryDualHouse,
    InMemoryOrchestrator,
    InMemorySafeAutonomy,
)
from governance_os.pipeline.memory import HOUSES


class TestSafeAutonomy:
    @pytest.mark.parametrize(
        ("action", "expected"),
        [
            ("agent_chatter", RiskLevel.LOW),
            ("create_governance_proposal", RiskLevel.MID),
            ("execute_treasury_allocation", RiskLevel.HIGH),
            ("something_unlisted", RiskLevel.LOW),
        ],
    )
    def test_classify_risk(self, action: str, expected: RiskLevel) -> None:
        assert InMemorySafeAutonomy().classify_risk(action) == expected

    def test_every_execute_action_is_high(self) -> None:
        assert all(
            level == RiskLevel.HIGH
            for action, level in ACTION_RISK_LEVELS.items()
            if action.startswith("execute_")
        )

    def test_custom_risk_table(self) -> None:
        autonomy = InMemorySafeAutonomy({"launch": RiskLevel.HIGH})

        assert autonomy.classify_risk("launch") == RiskLevel.HIGH
        assert autonomy.classify_risk("execute_fund_transfer") == RiskLevel.LOW

    @pytest.mark.asyncio()
    async def test_locked_action_until_approved(self) -> None:
        autonomy = InMemorySafeAutonomy()
        action = await autonomy.create_locked_action(
            "pipeline_execution", "Execute pipeline", RiskLevel.HIGH, {"pipeline_id": "p1"}
        )

        assert (await autonomy.check_approval(action.id)).approved is False

        assert autonomy.approve(action.id) is True
        check = await autonomy.check_approval(action.id)
        assert check.approved is True
        assert check.by == list(HOUSES)

    @pytest.mark.asyncio()
    async def test_unknown_action(self) -> None:
        autonomy = InMemorySafeAutonomy()

        assert autonomy.approve("missing") is False
        assert (await autonomy.check_approval("missing")).approved is False


class TestDocumentRegistry:
    @pytest.mark.asyncio()
    async def test_create_and_publish(self) -> None:
        registry = InMemoryDocumentRegistry()
        document = await registry.create_document(type="DP", title="Decision Packet: X")

        assert document.id.startswith("doc-dp-")
        assert document.state == "draft"

        await registry.publish_document(document.id)

        published = await registry.get_document(document.id)
        assert published is not None
        assert published.state == "published"
        assert published.published_at is not None

    @pytest.mark.asyncio()
    async def test_publish_unknown_raises(self) -> None:
        with pytest.raises(KeyError):
            await InMemoryDocumentRegistry().publish_document("missing")


class TestDualHouse:
    @pytest.mark.asyncio()
    async def test_approval_unlocks_after_both_houses(self) -> None:
        dual_house = InMemoryDualHouse()
        voting = await dual_house.create_voting("p1", "Review", "summary", RiskLevel.HIGH)
        approval = await dual_house.create_high_risk_approval(
            "p1", voting.id, "Execute pipeline", "pipeline_execution"
        )
        assert approval.lock_status == "locked"

        partial = dual_house.approve(approval.id, HOUSES[0])
        assert partial is not None
        assert partial.lock_status == "locked"
        assert (await dual_house.get_voting(voting.id)).status == "open"

        full = dual_house.approve(approval.id, HOUSES[1])
        assert full is not None
        assert full.lock_status == "unlocked"
        assert full.approvers == sorted(HOUSES)
        session = await dual_house.get_voting(voting.id)
        assert session.status == "passed"
        assert sorted(session.houses_passed) == sorted(HOUSES)

    def test_approve_unknown(self) -> None:
        assert InMemoryDualHouse().approve("missing", HOUSES[0]) is None


class TestOrchestrator:
    @pytest.mark.asyncio()
    async def test_workflow_produces_reports(self) -> None:
        documents = InMemoryDocumentRegistry()
        orchestrator = InMemoryOrchestrator(document_registry=documents, reports_per_run=2)
        handle = await orchestrator.create_workflow(Issue(id="i1", title="Budget"), "C")

        assert (await orchestrator.get_workflow_state(handle.id)).state == "created"

        output = await orchestrator.run_workflow(handle.id)

        assert len(output.documents) == 2
        assert all(doc_id in documents.documents for doc_id in output.documents)
        assert (await orchestrator.get_workflow_state(handle.id)).state == "completed"

    @pytest.mark.asyncio()
    async def test_workflow_without_registry_produces_nothing(self) -> None:
        orchestrator = InMemoryOrchestrator()
        handle = await orchestrator.create_workflow(Issue(id="i1", title="Budget"), "A")

        assert (await orchestrator.run_workflow(handle.id)).documents == []
        assert (await orchestrator.get_workflow_state("missing")).state == "unknown"
