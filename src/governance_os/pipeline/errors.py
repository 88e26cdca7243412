"""Exceptions raised inside the governance pipeline."""

from __future__ import annotations


class PipelineError(Exception):
    """Raised when pipeline execution fails."""

    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(f"Pipeline error in stage '{stage}': {message}")


class StageTimeoutError(PipelineError):
    """Raised when one handler attempt exceeds the stage timeout."""

    def __init__(self, stage: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(stage, f"Stage timed out after {timeout_seconds:g}s")


class StageExhaustedError(PipelineError):
    """Raised when a stage failed on every allowed attempt."""

    def __init__(self, stage: str, attempts: int, last_error: BaseException | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(stage, f"Failed after {attempts} attempt(s): {last_error}")


class StagePayloadError(PipelineError):
    """Raised when a handler leaves a payload of the wrong kind on the context."""


class HandlerNotFoundError(PipelineError):
    """Raised when no handler is registered for a stage."""

    def __init__(self, stage: str) -> None:
        super().__init__(stage, f"No handler registered for stage '{stage}'")


class PipelineRejectedError(PipelineError):
    """Raised by a custom handler to end a run as ``rejected``.

    Not retried; the run stops at the raising stage.
    """

    def __init__(self, stage: str, reason: str) -> None:
        self.reason = reason
        super().__init__(stage, f"Rejected: {reason}")
