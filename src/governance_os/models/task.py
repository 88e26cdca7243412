"""Pydantic models for routed tasks and their difficulty classification."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class TaskType(StrEnum):
    """Category of a unit of work submitted to the router."""

    CHATTER = "chatter"
    SCOUTING = "scouting"
    SUMMARIZATION = "summarization"
    TRANSLATION = "translation"
    EMBEDDING = "embedding"
    RERANKING = "reranking"
    DEBATE = "debate"
    RESEARCH = "research"
    CODING = "coding"
    VISION = "vision"
    LANGUAGE_SPECIFIC = "language_specific"
    CORE_DECISION = "core_decision"
    COMPLEX_ANALYSIS = "complex_analysis"


class Capability(StrEnum):
    """Model capability tags."""

    TEXT = "text"
    CODE = "code"
    VISION = "vision"
    EMBEDDING = "embedding"
    RERANK = "rerank"
    FUNCTIONS = "functions"


class Difficulty(StrEnum):
    """Ordered difficulty levels, trivial lowest."""

    TRIVIAL = "trivial"
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Position in the ordering (trivial=0 ... critical=4)."""
        return DIFFICULTY_ORDER.index(self)


DIFFICULTY_ORDER: tuple[Difficulty, ...] = (
    Difficulty.TRIVIAL,
    Difficulty.SIMPLE,
    Difficulty.MODERATE,
    Difficulty.COMPLEX,
    Difficulty.CRITICAL,
)


def max_difficulty(a: Difficulty, b: Difficulty) -> Difficulty:
    """Return the higher of two difficulty levels."""
    return a if a.rank >= b.rank else b


OutputFormat = Literal["text", "json", "markdown"]


class Task(BaseModel):
    """A unit of work routed to an inference model. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Unique task identifier")
    type: TaskType = Field(description="Task category")
    prompt: str = Field(description="User prompt")
    system_prompt: str | None = Field(default=None, description="Optional system prompt")
    max_tokens: int | None = Field(default=None, ge=1, description="Generation token cap")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    required_capabilities: list[Capability] = Field(
        default_factory=list, description="Capabilities the model must have"
    )
    language: str | None = Field(default=None, description="ISO language code of the content")
    output_format: OutputFormat | None = Field(default=None, description="Expected output format")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def new(cls, type: TaskType | str, prompt: str, **kwargs: Any) -> Task:
        """Create a task with a generated ``task-<hex>`` id."""
        return cls(id=f"task-{uuid.uuid4().hex[:12]}", type=TaskType(type), prompt=prompt, **kwargs)


class TaskClassification(BaseModel):
    """Difficulty assessment of a task. Recomputed per task, never persisted."""

    task: Task
    difficulty: Difficulty
    confidence: int = Field(ge=0, le=100, description="Classifier confidence (0-100)")
    reasoning: str
    suggested_tokens: int = Field(ge=1)
    requires_tier2: bool = False
    requires_review: bool = False
