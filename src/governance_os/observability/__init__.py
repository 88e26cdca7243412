"""Observability module for governance-os.

Provides structured logging, the generation JSONL log and the event bus.
"""

from governance_os.observability.events import Event, EventBus, EventName
from governance_os.observability.generation_log import GenerationLogEntry, GenerationLogger
from governance_os.observability.logging import (
    close_file_logging,
    configure_logging,
    get_log_file,
    get_logger,
    log_context,
)

__all__ = [
    "Event",
    "EventBus",
    "EventName",
    "GenerationLogEntry",
    "GenerationLogger",
    "close_file_logging",
    "configure_logging",
    "get_log_file",
    "get_logger",
    "log_context",
]
