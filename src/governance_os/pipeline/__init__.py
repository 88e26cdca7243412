"""Governance pipeline: nine fixed stages with retry, timeout and approval blocking."""

from governance_os.pipeline.engine import GovernancePipeline
from governance_os.pipeline.errors import (
    HandlerNotFoundError,
    PipelineError,
    PipelineRejectedError,
    StageExhaustedError,
    StagePayloadError,
    StageTimeoutError,
)
from governance_os.pipeline.memory import (
    ACTION_RISK_LEVELS,
    InMemoryDocumentRegistry,
    InMemoryDualHouse,
    InMemoryOrchestrator,
    InMemorySafeAutonomy,
)
from governance_os.pipeline.services import (
    DocumentRegistry,
    DualHouse,
    PipelineServices,
    SafeAutonomyService,
    TaskExecutor,
    WorkflowOrchestrator,
)
from governance_os.pipeline.stages import (
    StageHandler,
    get_handler,
    list_handlers,
    register_handler,
    stage_handler,
)
from governance_os.pipeline.store import ContextStore, FileContextStore, InMemoryContextStore

__all__ = [
    "ACTION_RISK_LEVELS",
    "ContextStore",
    "DocumentRegistry",
    "DualHouse",
    "FileContextStore",
    "GovernancePipeline",
    "HandlerNotFoundError",
    "InMemoryContextStore",
    "InMemoryDocumentRegistry",
    "InMemoryDualHouse",
    "InMemoryOrchestrator",
    "InMemorySafeAutonomy",
    "PipelineError",
    "PipelineRejectedError",
    "PipelineServices",
    "SafeAutonomyService",
    "StageExhaustedError",
    "StageHandler",
    "StagePayloadError",
    "StageTimeoutError",
    "TaskExecutor",
    "WorkflowOrchestrator",
    "get_handler",
    "list_handlers",
    "register_handler",
    "stage_handler",
]
