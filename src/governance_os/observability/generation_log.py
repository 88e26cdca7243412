"""JSONL logger for router generation attempts.

Writes one structured entry per provider attempt to ``generations.jsonl``.
Content is never truncated; full prompts and responses are preserved.

Only active when a log directory is configured (``--log`` on the CLI).
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path


@dataclass
class GenerationLogEntry:
    """Entry for a single generation attempt."""

    timestamp: str
    task_id: str
    task_type: str
    model: str
    attempt: int

    # Request
    prompt: str
    system_prompt: str | None

    # Response
    content: str
    total_tokens: int
    cost_usd: float
    latency_ms: float
    finish_reason: str

    # Quality gate outcome (None when the gate is disabled)
    quality_passed: bool | None = None
    quality_confidence: float | None = None

    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class GenerationLogger:
    """Append-only JSONL log of generation attempts.

    Attributes:
        log_path: Path to the JSONL log file.
        enabled: Whether logging is enabled.
    """

    def __init__(self, log_dir: Path, enabled: bool = True) -> None:
        self.enabled = enabled
        self.log_path = log_dir / "generations.jsonl"
        if enabled:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, entry: GenerationLogEntry) -> None:
        """Append an entry to the JSONL log."""
        if not self.enabled:
            return

        with self.log_path.open("a") as f:
            f.write(json.dumps(asdict(entry)) + "\n")

    @staticmethod
    def create_entry(
        task_id: str,
        task_type: str,
        model: str,
        attempt: int,
        prompt: str,
        content: str = "",
        system_prompt: str | None = None,
        total_tokens: int = 0,
        cost_usd: float = 0.0,
        latency_ms: float = 0.0,
        finish_reason: str = "",
        quality_passed: bool | None = None,
        quality_confidence: float | None = None,
        error: str | None = None,
        **metadata: Any,
    ) -> GenerationLogEntry:
        """Create a log entry stamped with the current time.

        Args:
            task_id: Routed task id.
            task_type: Task type value.
            model: Model id the attempt was sent to.
            attempt: Zero-based attempt index within the fallback chain.
            prompt: Prompt sent to the provider.
            content: Generated content (empty on failure).
            system_prompt: Optional system prompt.
            total_tokens: Tokens consumed.
            cost_usd: Attempt cost.
            latency_ms: Provider latency.
            finish_reason: Why generation stopped.
            quality_passed: Quality gate verdict, if the gate ran.
            quality_confidence: Quality gate confidence, if the gate ran.
            error: Error message if the attempt failed.
            **metadata: Additional metadata.

        Returns:
            GenerationLogEntry ready for logging.
        """
        return GenerationLogEntry(
            timestamp=datetime.now(UTC).isoformat(),
            task_id=task_id,
            task_type=task_type,
            model=model,
            attempt=attempt,
            prompt=prompt,
            system_prompt=system_prompt,
            content=content,
            total_tokens=total_tokens,
            cost_usd=cost_usd,
            latency_ms=latency_ms,
            finish_reason=finish_reason,
            quality_passed=quality_passed,
            quality_confidence=quality_confidence,
            error=error,
            metadata=dict(metadata),
        )

    def read_entries(self) -> list[GenerationLogEntry]:
        """Read all entries from the log file."""
        if not self.log_path.exists():
            return []

        entries = []
        with self.log_path.open() as f:
            for line in f:
                if line.strip():
                    entries.append(GenerationLogEntry(**json.loads(line)))
        return entries
