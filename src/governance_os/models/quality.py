"""Pydantic models for quality gate results and configuration."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

IssueType = Literal["format", "content", "safety", "coherence", "completeness", "length", "custom"]
Severity = Literal["low", "medium", "high", "critical"]


class QualityIssue(BaseModel):
    """A single problem found in generated content."""

    type: IssueType
    severity: Severity
    message: str
    location: str | None = None


class QualityCheckResult(BaseModel):
    """Verdict of a quality gate check."""

    passed: bool
    confidence: float = Field(ge=0, le=100)
    issues: list[QualityIssue] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    requires_review: bool = False
    escalated: bool = False

    def has_severity(self, severity: Severity) -> bool:
        """Whether any issue has the given severity."""
        return any(issue.severity == severity for issue in self.issues)


class QualityGateConfig(BaseModel):
    """Per-selection quality gate policy."""

    enabled: bool = True
    min_confidence: float = Field(default=70, ge=0, le=100)
    require_review: bool = False
    escalate_on_failure: bool = False
    validators: list[str] = Field(
        default_factory=list, description="Names of registered validators to run"
    )
