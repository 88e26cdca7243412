"""Built-in content validators for the quality gate.

A validator takes generated content and returns a :class:`QualityIssue`
or None. Validators are looked up by name in :data:`BUILTIN_VALIDATORS`.
"""

from __future__ import annotations

import json
import re
from collections import Counter
from collections.abc import Callable

from governance_os.models import QualityIssue

Validator = Callable[[str], QualityIssue | None]

DECISION_PACKET_SECTIONS = ("issue", "options", "recommendation", "risk")

_INCOMPLETE_PATTERNS = (
    re.compile(r"\.\.\.\s*$"),
    re.compile(r"\b(however|but|and|or)\s*$", re.IGNORECASE),
    re.compile(r"\b(to be continued)\b", re.IGNORECASE),
    re.compile(r"\[TODO\]", re.IGNORECASE),
    re.compile(r"\[INCOMPLETE\]", re.IGNORECASE),
)


def coherence_validator(content: str) -> QualityIssue | None:
    """Flag a word (>3 chars) repeated more than 10 times and over 10% of words."""
    words = content.lower().split()
    if not words:
        return None
    counts = Counter(word for word in words if len(word) > 3)
    for word, count in counts.items():
        if count > 10 and count / len(words) > 0.1:
            return QualityIssue(
                type="coherence",
                severity="medium",
                message=f'Repetitive word detected: "{word}" appears {count} times',
            )
    return None


def completeness_validator(content: str) -> QualityIssue | None:
    """Flag trailing ellipses or conjunctions and TODO/INCOMPLETE markers."""
    for pattern in _INCOMPLETE_PATTERNS:
        if pattern.search(content):
            return QualityIssue(
                type="completeness", severity="high", message="Content appears incomplete"
            )
    return None


def json_validator(content: str) -> QualityIssue | None:
    """Content that looks like JSON must parse."""
    trimmed = content.strip()
    if not trimmed.startswith(("{", "[")):
        return None
    try:
        json.loads(trimmed)
    except ValueError:
        return QualityIssue(type="format", severity="high", message="Invalid JSON structure")
    return None


def decision_packet_validator(content: str) -> QualityIssue | None:
    """A decision record must mention issue, options, recommendation and risk."""
    lowered = content.lower()
    missing = [section for section in DECISION_PACKET_SECTIONS if section not in lowered]
    if missing:
        return QualityIssue(
            type="content",
            severity="high",
            message=f"Decision packet missing sections: {', '.join(missing)}",
        )
    return None


BUILTIN_VALIDATORS: dict[str, Validator] = {
    "coherence": coherence_validator,
    "completeness": completeness_validator,
    "json": json_validator,
    "decision_packet": decision_packet_validator,
}
