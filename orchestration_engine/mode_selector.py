"""
Mode selection for subtasks.

Ranks the registered execution modes against a subtask description using
two data tables: per-mode keywords (weighted by keyword length) and
regex rules carrying a fixed priority bonus.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .modes import ModeRegistry
from .types import ModeId

KEYWORD_WEIGHT_PER_CHAR = 0.1


@dataclass(frozen=True)
class ModeSelectionRule:
    """Regex pattern that votes for a mode with a fixed bonus."""

    pattern: str
    mode: str
    priority: float


MODE_KEYWORDS: dict[str, list[str]] = {
    ModeId.ARCHITECT.value: [
        "design",
        "architecture",
        "plan",
        "blueprint",
        "structure",
        "schema",
        "strategy",
        "high-level",
        "overview",
        "system design",
        "planning",
    ],
    ModeId.CODE.value: [
        "implement",
        "code",
        "develop",
        "build",
        "create",
        "write",
        "function",
        "method",
        "class",
        "component",
        "feature",
        "api",
        "endpoint",
        "algorithm",
    ],
    ModeId.DEBUG.value: [
        "fix",
        "bug",
        "error",
        "issue",
        "problem",
        "debug",
        "troubleshoot",
        "resolve",
        "investigate",
        "diagnose",
        "repair",
        "performance",
    ],
    ModeId.ASK.value: [
        "explain",
        "how",
        "what",
        "why",
        "when",
        "where",
        "documentation",
        "understand",
        "clarify",
        "describe",
        "help",
        "tell",
        "guide",
    ],
    ModeId.ORCHESTRATOR.value: [
        "complete",
        "entire",
        "full",
        "comprehensive",
        "end-to-end",
        "multiple",
        "several",
        "various",
        "different",
        "across",
        "coordinate",
    ],
}

SELECTION_RULES: list[ModeSelectionRule] = [
    ModeSelectionRule(
        r"\b(design|architecture|plan|blueprint|structure|schema|strategy)\b",
        ModeId.ARCHITECT.value,
        3,
    ),
    ModeSelectionRule(
        r"\b(high-level|overview|system design|architectural)\b", ModeId.ARCHITECT.value, 2
    ),
    ModeSelectionRule(r"\b(implement|code|develop|build|create|write)\b", ModeId.CODE.value, 3),
    ModeSelectionRule(
        r"\b(function|method|class|component|feature|api|endpoint)\b", ModeId.CODE.value, 2
    ),
    ModeSelectionRule(
        r"\b(fix|bug|error|issue|problem|debug|troubleshoot)\b", ModeId.DEBUG.value, 3
    ),
    ModeSelectionRule(
        r"\b(resolve|investigate|diagnose|repair|performance)\b", ModeId.DEBUG.value, 2
    ),
    ModeSelectionRule(
        r"\b(explain|how|what|why|when|where|documentation)\b", ModeId.ASK.value, 4
    ),
    ModeSelectionRule(r"\b(understand|clarify|describe|help me|tell me)\b", ModeId.ASK.value, 3),
    ModeSelectionRule(r"\?", ModeId.ASK.value, 3),
    ModeSelectionRule(
        r"\b(complete|entire|full|comprehensive|end-to-end)\b", ModeId.ORCHESTRATOR.value, 2
    ),
    ModeSelectionRule(
        r"\b(multiple|several|various|different|across)\b", ModeId.ORCHESTRATOR.value, 1
    ),
]


@dataclass
class ModeSelection:
    """Selected mode plus the scores behind the choice."""

    mode: str
    score: float
    scores: dict[str, float]

    @property
    def ranked(self) -> list[tuple[str, float]]:
        """All modes, best first."""
        return sorted(self.scores.items(), key=lambda kv: kv[1], reverse=True)


class ModeSelector:
    """
    Pick the best execution mode for a subtask description.

    Never raises for arbitrary text and always returns a registered mode.
    """

    def __init__(
        self,
        registry: ModeRegistry,
        keywords: dict[str, list[str]] | None = None,
        rules: list[ModeSelectionRule] | None = None,
    ):
        self.registry = registry
        self.keywords = keywords if keywords is not None else MODE_KEYWORDS
        self.rules = list(rules) if rules is not None else list(SELECTION_RULES)
        self._compiled = [
            (re.compile(rule.pattern, re.IGNORECASE), rule) for rule in self.rules
        ]

    def evaluate_mode_match(self, task: str, mode: str) -> float:
        """Aggregate keyword and rule score of one mode for a task."""
        lowered = task.lower()
        score = 0.0

        for keyword in self.keywords.get(mode, []):
            if keyword.lower() in lowered:
                score += len(keyword) * KEYWORD_WEIGHT_PER_CHAR

        for pattern, rule in self._compiled:
            if rule.mode == mode and pattern.search(task):
                score += rule.priority

        return round(score, 4)

    def classify(self, task: str) -> ModeSelection:
        """Score every registered mode and select the best."""
        text = task if isinstance(task, str) else str(task or "")
        scores = {mode.slug: self.evaluate_mode_match(text, mode.slug) for mode in self.registry}

        default = self.registry.default_mode.slug
        best_mode, best_score = default, scores.get(default, 0.0)
        for slug, score in scores.items():
            if score > best_score:
                best_mode, best_score = slug, score

        return ModeSelection(mode=best_mode, score=best_score, scores=scores)

    def select_optimal_mode(self, task: str) -> str:
        """Best mode id for the task; ties go to the default mode."""
        return self.classify(task).mode

    def get_mode_capabilities(self, mode: str) -> list[str]:
        if mode not in self.registry:
            return []
        return list(self.registry.get(mode).capabilities)


__all__ = [
    "MODE_KEYWORDS",
    "ModeSelection",
    "ModeSelectionRule",
    "ModeSelector",
    "SELECTION_RULES",
]
