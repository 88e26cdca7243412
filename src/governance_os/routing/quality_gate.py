"""Quality gate for generated content.

Checks run in a fixed order: emptiness (short-circuits), length bounds,
expected format, required keywords, forbidden patterns, a safety sweep that
always runs, then named validators. The result is data; the gate never
raises.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from governance_os.models import QualityCheckResult, QualityIssue
from governance_os.observability.logging import get_logger
from governance_os.routing.validators import (
    BUILTIN_VALIDATORS,
    completeness_validator,
    coherence_validator,
    decision_packet_validator,
    json_validator,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from governance_os.models import OutputFormat, Severity
    from governance_os.routing.validators import Validator

log = get_logger(__name__)

BASE_CONFIDENCE = 85.0
SEVERITY_PENALTY: dict[str, float] = {"critical": 30, "high": 20, "medium": 10, "low": 5}
MIN_SANE_LENGTH = 10

SAFETY_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bpassword\s*[:=]\s*\S+", re.IGNORECASE), "Potential password exposure"),
    (re.compile(r"\bapi[_-]?key\s*[:=]\s*\S+", re.IGNORECASE), "Potential API key exposure"),
    (re.compile(r"\bsecret\s*[:=]\s*\S+", re.IGNORECASE), "Potential secret exposure"),
    (re.compile(r"<script\b[^>]*>[\s\S]*?</script>", re.IGNORECASE), "Script tag detected"),
    (re.compile(r"\b(exec|eval|system)\s*\(", re.IGNORECASE), "Potential code execution"),
)

_MARKDOWN_PATTERNS = (
    re.compile(r"^#+\s", re.MULTILINE),
    re.compile(r"^[*-]\s", re.MULTILINE),
    re.compile(r"^\d+\.\s", re.MULTILINE),
    re.compile(r"\*\*[^*]+\*\*"),
    re.compile(r"`[^`]+`"),
    re.compile(r"\[[^\]]+\]\([^)]+\)"),
)


def has_markdown_structure(content: str) -> bool:
    """Headings, lists, bold, inline code or links."""
    return any(pattern.search(content) for pattern in _MARKDOWN_PATTERNS)


@dataclass
class QualityCheckOptions:
    """Per-call options for :meth:`QualityGate.check`.

    Attributes:
        min_confidence: Overrides the gate's threshold when set.
        validators: Extra validators for this call only (names or callables).
    """

    min_confidence: float | None = None
    require_review: bool | None = None
    escalate_on_failure: bool | None = None
    min_length: int | None = None
    max_length: int | None = None
    expected_format: OutputFormat | None = None
    required_keywords: list[str] = field(default_factory=list)
    forbidden_patterns: list[re.Pattern[str] | str] = field(default_factory=list)
    validators: list[str | Validator] = field(default_factory=list)


class QualityGate:
    """Validate generated content into a pass/fail verdict with confidence."""

    def __init__(
        self,
        min_confidence: float = 70.0,
        require_review: bool = False,
        escalate_on_failure: bool = False,
        validators: dict[str, Validator] | None = None,
    ) -> None:
        self.min_confidence = min_confidence
        self.require_review = require_review
        self.escalate_on_failure = escalate_on_failure
        self._validators: dict[str, Validator] = dict(validators or {})

    def add_validator(self, name: str, validator: Validator) -> None:
        """Register (or replace) a named validator run on every check."""
        self._validators[name] = validator

    def remove_validator(self, name: str) -> bool:
        """Unregister a validator. Returns False when it was not registered."""
        return self._validators.pop(name, None) is not None

    @property
    def validator_names(self) -> list[str]:
        return list(self._validators)

    def check(self, content: str, options: QualityCheckOptions | None = None) -> QualityCheckResult:
        """Check content quality. Never raises."""
        options = options or QualityCheckOptions()
        issues: list[QualityIssue] = []
        suggestions: list[str] = []

        if not content or not content.strip():
            issues.append(QualityIssue(type="content", severity="critical", message="Empty content"))
            return self._build_result(issues, suggestions, 0.0, options)

        self._check_length(content, options, issues, suggestions)
        if options.expected_format:
            self._check_format(content, options.expected_format, issues, suggestions)
        if options.required_keywords:
            self._check_keywords(content, options.required_keywords, issues, suggestions)
        if options.forbidden_patterns:
            self._check_forbidden(content, options.forbidden_patterns, issues)
        self._check_safety(content, issues)

        for name, validator in self._validators.items():
            self._run_validator(name, validator, content, issues)
        for extra in options.validators:
            if isinstance(extra, str):
                resolved = BUILTIN_VALIDATORS.get(extra)
                if resolved is None:
                    log.warning("quality_validator_unknown", validator=extra)
                    continue
                if extra in self._validators:
                    continue
                self._run_validator(extra, resolved, content, issues)
            else:
                self._run_validator(getattr(extra, "__name__", "custom"), extra, content, issues)

        confidence = self._confidence(content, issues)
        return self._build_result(issues, suggestions, confidence, options)

    # -- individual checks -------------------------------------------------------

    def _check_length(
        self,
        content: str,
        options: QualityCheckOptions,
        issues: list[QualityIssue],
        suggestions: list[str],
    ) -> None:
        length = len(content)
        if options.min_length is not None and length < options.min_length:
            issues.append(
                QualityIssue(
                    type="length",
                    severity="medium",
                    message=f"Content too short ({length} chars, minimum {options.min_length})",
                )
            )
            suggestions.append("Expand the response with more detail")
        if options.max_length is not None and length > options.max_length:
            issues.append(
                QualityIssue(
                    type="length",
                    severity="low",
                    message=f"Content too long ({length} chars, maximum {options.max_length})",
                )
            )
            suggestions.append("Consider condensing the response")
        if length < MIN_SANE_LENGTH:
            issues.append(
                QualityIssue(type="length", severity="high", message="Content suspiciously short")
            )

    def _check_format(
        self,
        content: str,
        expected: OutputFormat,
        issues: list[QualityIssue],
        suggestions: list[str],
    ) -> None:
        if expected == "json":
            try:
                json.loads(content)
            except ValueError:
                issues.append(
                    QualityIssue(type="format", severity="high", message="Invalid JSON format")
                )
                suggestions.append("Ensure output is valid JSON")
        elif expected == "markdown" and not has_markdown_structure(content):
            issues.append(
                QualityIssue(type="format", severity="low", message="Missing markdown structure")
            )
            suggestions.append("Add headings or formatting to improve readability")

    def _check_keywords(
        self,
        content: str,
        keywords: Sequence[str],
        issues: list[QualityIssue],
        suggestions: list[str],
    ) -> None:
        lowered = content.lower()
        missing = [keyword for keyword in keywords if keyword.lower() not in lowered]
        for keyword in missing:
            issues.append(
                QualityIssue(
                    type="content",
                    severity="medium",
                    message=f"Missing required keyword: {keyword}",
                )
            )
        if missing:
            suggestions.append(f"Include: {', '.join(missing)}")

    def _check_forbidden(
        self,
        content: str,
        patterns: Sequence[re.Pattern[str] | str],
        issues: list[QualityIssue],
    ) -> None:
        for pattern in patterns:
            try:
                compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
            except re.error as e:
                log.warning("quality_pattern_invalid", pattern=pattern, error=str(e))
                issues.append(
                    QualityIssue(
                        type="custom",
                        severity="medium",
                        message=f"Invalid forbidden pattern '{pattern}': {e}",
                    )
                )
                continue
            if compiled.search(content):
                issues.append(
                    QualityIssue(
                        type="content",
                        severity="high",
                        message=f"Forbidden pattern detected: {compiled.pattern}",
                    )
                )

    def _check_safety(self, content: str, issues: list[QualityIssue]) -> None:
        for pattern, message in SAFETY_PATTERNS:
            if pattern.search(content):
                issues.append(QualityIssue(type="safety", severity="critical", message=message))

    def _run_validator(
        self, name: str, validator: Validator, content: str, issues: list[QualityIssue]
    ) -> None:
        try:
            issue = validator(content)
        except Exception as e:
            log.warning("quality_validator_failed", validator=name, error=str(e))
            issue = QualityIssue(
                type="custom", severity="medium", message=f"Validator '{name}' failed: {e}"
            )
        if issue is not None:
            issues.append(issue)

    # -- scoring -----------------------------------------------------------------

    def _confidence(self, content: str, issues: Sequence[QualityIssue]) -> float:
        confidence = BASE_CONFIDENCE
        for issue in issues:
            confidence -= SEVERITY_PENALTY[issue.severity]
        if len(content) > 100:
            confidence += 5
        if has_markdown_structure(content):
            confidence += 5
        if len(content.split("\n")) > 5:
            confidence += 3
        return max(0.0, min(100.0, confidence))

    def _build_result(
        self,
        issues: list[QualityIssue],
        suggestions: list[str],
        confidence: float,
        options: QualityCheckOptions,
    ) -> QualityCheckResult:
        min_confidence = (
            options.min_confidence if options.min_confidence is not None else self.min_confidence
        )
        require_review = (
            options.require_review if options.require_review is not None else self.require_review
        )
        escalate = (
            options.escalate_on_failure
            if options.escalate_on_failure is not None
            else self.escalate_on_failure
        )
        has_critical = _any_severity(issues, "critical")
        passed = confidence >= min_confidence and not has_critical
        return QualityCheckResult(
            passed=passed,
            confidence=confidence,
            issues=issues,
            suggestions=suggestions,
            requires_review=require_review or _any_severity(issues, "high"),
            escalated=escalate and not passed,
        )


def _any_severity(issues: Sequence[QualityIssue], severity: Severity) -> bool:
    return any(issue.severity == severity for issue in issues)


def create_quality_gate(
    min_confidence: float = 70.0,
    require_review: bool = False,
    escalate_on_failure: bool = False,
) -> QualityGate:
    """Gate preloaded with the coherence, completeness and json validators."""
    gate = QualityGate(min_confidence, require_review, escalate_on_failure)
    gate.add_validator("coherence", coherence_validator)
    gate.add_validator("completeness", completeness_validator)
    gate.add_validator("json", json_validator)
    return gate


def create_decision_packet_gate() -> QualityGate:
    """Strict gate for decision records: min confidence 80, review, escalate."""
    gate = QualityGate(min_confidence=80.0, require_review=True, escalate_on_failure=True)
    gate.add_validator("decision_packet", decision_packet_validator)
    return gate
