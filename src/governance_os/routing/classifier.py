"""Task difficulty classifier.

Maps a task to one of five ordered difficulty levels using static rule
tables: a base level per task type, high-stakes and multi-step regexes,
keyword tables, prompt size and the number of required capabilities. The
classifier is pure and never raises; the worst case is a low-confidence
result.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from governance_os.models import (
    DIFFICULTY_ORDER,
    Difficulty,
    Task,
    TaskClassification,
    TaskType,
    max_difficulty,
)
from governance_os.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

log = get_logger(__name__)

# Rough estimate: 1 token ~ 4 characters
CHARS_PER_TOKEN = 4

MIN_CONFIDENCE = 30
MAX_CONFIDENCE = 95


@dataclass(frozen=True)
class DifficultyRule:
    """Generation policy attached to a difficulty level."""

    max_tokens: int
    requires_tier2: bool = False
    requires_review: bool = False


DEFAULT_DIFFICULTY_RULES: dict[Difficulty, DifficultyRule] = {
    Difficulty.TRIVIAL: DifficultyRule(max_tokens=500),
    Difficulty.SIMPLE: DifficultyRule(max_tokens=1000),
    Difficulty.MODERATE: DifficultyRule(max_tokens=2000),
    Difficulty.COMPLEX: DifficultyRule(max_tokens=4000, requires_review=True),
    Difficulty.CRITICAL: DifficultyRule(max_tokens=8000, requires_tier2=True, requires_review=True),
}

TASK_TYPE_BASE_DIFFICULTY: dict[TaskType, Difficulty] = {
    TaskType.CHATTER: Difficulty.TRIVIAL,
    TaskType.EMBEDDING: Difficulty.TRIVIAL,
    TaskType.RERANKING: Difficulty.TRIVIAL,
    TaskType.SCOUTING: Difficulty.SIMPLE,
    TaskType.SUMMARIZATION: Difficulty.SIMPLE,
    TaskType.TRANSLATION: Difficulty.SIMPLE,
    TaskType.DEBATE: Difficulty.MODERATE,
    TaskType.RESEARCH: Difficulty.MODERATE,
    TaskType.CODING: Difficulty.MODERATE,
    TaskType.VISION: Difficulty.MODERATE,
    TaskType.LANGUAGE_SPECIFIC: Difficulty.MODERATE,
    TaskType.CORE_DECISION: Difficulty.COMPLEX,
    TaskType.COMPLEX_ANALYSIS: Difficulty.CRITICAL,
}

DIFFICULTY_KEYWORDS: dict[Difficulty, tuple[str, ...]] = {
    Difficulty.TRIVIAL: ("hello", "hi", "thanks", "status", "check", "ping", "test", "simple", "quick"),
    Difficulty.SIMPLE: ("summarize", "list", "format", "tag", "translate", "short", "brief", "overview"),
    Difficulty.MODERATE: (
        "analyze",
        "compare",
        "research",
        "evaluate",
        "assess",
        "review",
        "investigate",
        "options",
    ),
    Difficulty.COMPLEX: (
        "decision",
        "strategy",
        "deliberate",
        "architecture",
        "design",
        "recommend",
        "proposal",
        "synthesis",
    ),
    Difficulty.CRITICAL: (
        "treasury",
        "partnership",
        "security",
        "audit",
        "critical",
        "high-risk",
        "agreement",
        "contract",
        "fund",
        "allocation",
    ),
}

HIGH_STAKES_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"treasury", re.IGNORECASE),
    re.compile(r"fund\s*(transfer|allocation|disbursement)", re.IGNORECASE),
    re.compile(r"partnership\s*(agreement|proposal)", re.IGNORECASE),
    re.compile(r"security\s*(audit|review|vulnerability)", re.IGNORECASE),
    re.compile(r"contract\s*(deploy|execution)", re.IGNORECASE),
    re.compile(r"high[-\s]?risk", re.IGNORECASE),
    re.compile(r"critical\s*(decision|issue)", re.IGNORECASE),
    re.compile(r"\$\d+[,\d]*[kKmM]?"),
    re.compile(r"\d+\s*(MOC|ETH|BTC|USD)", re.IGNORECASE),
)

MULTI_STEP_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"first.*then.*finally", re.IGNORECASE | re.DOTALL),
    re.compile(r"step\s*\d", re.IGNORECASE),
    re.compile(r"analyze.*evaluate.*recommend", re.IGNORECASE | re.DOTALL),
    re.compile(r"consider.*compare.*decide", re.IGNORECASE | re.DOTALL),
    re.compile(r"research.*synthesize.*propose", re.IGNORECASE | re.DOTALL),
    re.compile(r"multiple\s*(options|approaches|factors)", re.IGNORECASE),
)


def estimate_tokens(text: str) -> int:
    """Estimate the token count of ``text`` (ceil of chars / 4)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def difficulty_from_tokens(tokens: int) -> Difficulty:
    """Map an estimated token count to a difficulty level."""
    if tokens <= 100:
        return Difficulty.TRIVIAL
    if tokens <= 300:
        return Difficulty.SIMPLE
    if tokens <= 800:
        return Difficulty.MODERATE
    if tokens <= 2000:
        return Difficulty.COMPLEX
    return Difficulty.CRITICAL


@dataclass(frozen=True)
class ClassificationCriteria:
    """Signals extracted from a task before the difficulty decision."""

    task_type: TaskType
    estimated_tokens: int
    capability_count: int
    is_high_stakes: bool
    is_multi_step: bool
    is_non_english: bool


class TaskClassifier:
    """Classify tasks by difficulty to drive model and tier selection.

    Keyword tables and difficulty rules are copied per instance, so
    :meth:`add_keywords` and :meth:`set_difficulty_rules` never touch the
    module defaults.
    """

    def __init__(
        self,
        difficulty_rules: dict[Difficulty, DifficultyRule] | None = None,
        custom_keywords: dict[Difficulty, Iterable[str]] | None = None,
    ) -> None:
        self._rules = dict(DEFAULT_DIFFICULTY_RULES)
        if difficulty_rules:
            self._rules.update(difficulty_rules)
        self._keywords: dict[Difficulty, list[str]] = {
            level: list(words) for level, words in DIFFICULTY_KEYWORDS.items()
        }
        for level, words in (custom_keywords or {}).items():
            self._keywords[level] = list(words)

    def classify(self, task: Task) -> TaskClassification:
        """Classify a task. Never raises."""
        base = TASK_TYPE_BASE_DIFFICULTY.get(task.type, Difficulty.MODERATE)
        try:
            criteria = self._extract_criteria(task)
            difficulty = self._determine_difficulty(criteria, task.prompt)
            confidence = self._confidence(criteria, difficulty)
            reasoning = self._reasoning(criteria, difficulty)
        except Exception as e:
            log.warning("classification_fallback", task_id=task.id, error=str(e))
            difficulty = base
            confidence = MIN_CONFIDENCE
            reasoning = f"Classified as {difficulty}: fallback to task type after error ({e})"

        rule = self._rules[difficulty]
        return TaskClassification(
            task=task,
            difficulty=difficulty,
            confidence=confidence,
            reasoning=reasoning,
            suggested_tokens=rule.max_tokens,
            requires_tier2=rule.requires_tier2,
            requires_review=rule.requires_review,
        )

    def classify_batch(self, tasks: Sequence[Task]) -> list[TaskClassification]:
        """Classify several tasks in order."""
        return [self.classify(task) for task in tasks]

    def add_keywords(self, difficulty: Difficulty, keywords: Iterable[str]) -> None:
        """Extend the keyword table for one level."""
        self._keywords.setdefault(difficulty, []).extend(k.lower() for k in keywords)

    def set_difficulty_rules(
        self,
        difficulty: Difficulty,
        *,
        max_tokens: int | None = None,
        requires_tier2: bool | None = None,
        requires_review: bool | None = None,
    ) -> None:
        """Override parts of the rule for one level."""
        current = self._rules[difficulty]
        self._rules[difficulty] = DifficultyRule(
            max_tokens=max_tokens if max_tokens is not None else current.max_tokens,
            requires_tier2=requires_tier2 if requires_tier2 is not None else current.requires_tier2,
            requires_review=(
                requires_review if requires_review is not None else current.requires_review
            ),
        )

    def difficulty_rules(self) -> dict[Difficulty, DifficultyRule]:
        """Copy of the active difficulty rules."""
        return dict(self._rules)

    # -- internals ---------------------------------------------------------------

    def _extract_criteria(self, task: Task) -> ClassificationCriteria:
        text = task.prompt + (task.system_prompt or "")
        return ClassificationCriteria(
            task_type=task.type,
            estimated_tokens=estimate_tokens(text),
            capability_count=len(task.required_capabilities),
            is_high_stakes=any(p.search(text) for p in HIGH_STAKES_PATTERNS),
            is_multi_step=any(p.search(text) for p in MULTI_STEP_PATTERNS),
            is_non_english=task.language is not None and task.language != "en",
        )

    def _determine_difficulty(self, criteria: ClassificationCriteria, prompt: str) -> Difficulty:
        difficulty = TASK_TYPE_BASE_DIFFICULTY[criteria.task_type]

        if criteria.is_high_stakes:
            difficulty = max_difficulty(difficulty, Difficulty.CRITICAL)
        if criteria.is_multi_step and difficulty != Difficulty.CRITICAL:
            difficulty = max_difficulty(difficulty, Difficulty.COMPLEX)

        keyword_level = self._keyword_difficulty(prompt)
        if keyword_level is not None:
            difficulty = max_difficulty(difficulty, keyword_level)

        difficulty = max_difficulty(difficulty, difficulty_from_tokens(criteria.estimated_tokens))

        if criteria.capability_count > 2:
            difficulty = max_difficulty(difficulty, Difficulty.COMPLEX)
        return difficulty

    def _keyword_difficulty(self, prompt: str) -> Difficulty | None:
        lowered = prompt.lower()
        for level in reversed(DIFFICULTY_ORDER):
            if any(keyword in lowered for keyword in self._keywords.get(level, ())):
                return level
        return None

    def _confidence(self, criteria: ClassificationCriteria, difficulty: Difficulty) -> int:
        confidence = 70
        if TASK_TYPE_BASE_DIFFICULTY[criteria.task_type] == difficulty:
            confidence += 15
        if criteria.is_high_stakes and difficulty == Difficulty.CRITICAL:
            confidence += 10
        if criteria.is_multi_step and difficulty == Difficulty.TRIVIAL:
            confidence -= 20
        return min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, confidence))

    def _reasoning(self, criteria: ClassificationCriteria, difficulty: Difficulty) -> str:
        base = TASK_TYPE_BASE_DIFFICULTY[criteria.task_type]
        reasons = [f"Task type '{criteria.task_type}' suggests {base} difficulty"]
        if criteria.is_high_stakes:
            reasons.append("High-stakes indicators detected")
        if criteria.is_multi_step:
            reasons.append("Multi-step reasoning required")
        if criteria.estimated_tokens > 1000:
            reasons.append(f"Large prompt ({criteria.estimated_tokens} estimated tokens)")
        if criteria.capability_count > 1:
            reasons.append(f"Multiple capabilities required ({criteria.capability_count})")
        if criteria.is_non_english:
            reasons.append("Non-English language task")
        return f"Classified as {difficulty}: {'; '.join(reasons)}"


def classification_stats(results: Sequence[TaskClassification]) -> dict[str, Any]:
    """Summarize a batch of classifications.

    Returns:
        Dict with ``by_difficulty`` counts, ``average_confidence``,
        ``requires_tier2_count`` and ``requires_review_count``.
    """
    counts = Counter(result.difficulty for result in results)
    return {
        "by_difficulty": {level.value: counts.get(level, 0) for level in DIFFICULTY_ORDER},
        "average_confidence": (
            sum(result.confidence for result in results) / len(results) if results else 0.0
        ),
        "requires_tier2_count": sum(1 for result in results if result.requires_tier2),
        "requires_review_count": sum(1 for result in results if result.requires_review),
    }


def quick_classify(prompt: str, task_type: TaskType | str = TaskType.CORE_DECISION) -> TaskClassification:
    """Classify a bare prompt with a default classifier."""
    return TaskClassifier().classify(Task.new(task_type, prompt))
