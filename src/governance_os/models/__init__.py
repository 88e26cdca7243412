"""Pydantic data model for governance-os."""

from governance_os.models.generation import (
    MAX_FALLBACK_MODELS,
    EmbeddingBatch,
    GenerationResult,
    ModelSelection,
    TokenUsage,
)
from governance_os.models.governance import (
    ApprovalCheck,
    Document,
    HighRiskApproval,
    Issue,
    LockedAction,
    RiskLevel,
    VotingSession,
    WorkflowHandle,
    WorkflowOutput,
    WorkflowState,
    WorkflowType,
)
from governance_os.models.pipeline import (
    STAGE_ORDER,
    STAGE_PAYLOAD_KINDS,
    DocumentProductionPayload,
    ExecutionPayload,
    ExecutionResult,
    IntakePayload,
    IssuePayload,
    ItemVerification,
    PipelineContext,
    PipelineResult,
    PipelineStage,
    PipelineStatus,
    VerificationPayload,
    generate_pipeline_id,
)
from governance_os.models.quality import (
    IssueType,
    QualityCheckResult,
    QualityGateConfig,
    QualityIssue,
    Severity,
)
from governance_os.models.registry import (
    HealthCheckResult,
    ModelEntry,
    ModelProvider,
    ModelStatus,
    Tier,
)
from governance_os.models.task import (
    DIFFICULTY_ORDER,
    Capability,
    Difficulty,
    OutputFormat,
    Task,
    TaskClassification,
    TaskType,
    max_difficulty,
)

__all__ = [
    "DIFFICULTY_ORDER",
    "MAX_FALLBACK_MODELS",
    "STAGE_ORDER",
    "STAGE_PAYLOAD_KINDS",
    "ApprovalCheck",
    "Capability",
    "Difficulty",
    "Document",
    "DocumentProductionPayload",
    "EmbeddingBatch",
    "ExecutionPayload",
    "ExecutionResult",
    "GenerationResult",
    "HealthCheckResult",
    "HighRiskApproval",
    "IntakePayload",
    "Issue",
    "IssuePayload",
    "IssueType",
    "ItemVerification",
    "LockedAction",
    "ModelEntry",
    "ModelProvider",
    "ModelSelection",
    "ModelStatus",
    "OutputFormat",
    "PipelineContext",
    "PipelineResult",
    "PipelineStage",
    "PipelineStatus",
    "QualityCheckResult",
    "QualityGateConfig",
    "QualityIssue",
    "RiskLevel",
    "Severity",
    "Task",
    "TaskClassification",
    "TaskType",
    "Tier",
    "TokenUsage",
    "VerificationPayload",
    "VotingSession",
    "WorkflowHandle",
    "WorkflowOutput",
    "WorkflowState",
    "WorkflowType",
    "generate_pipeline_id",
    "max_difficulty",
]
