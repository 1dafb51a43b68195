"""
Task complexity classification.

Scores a free-form task description with keyword and pattern heuristics
(no model calls), derives the modes the task needs and estimates how many
subtasks it decomposes into. The detector tables are plain data so they
can be tested and extended without touching the scoring algorithm.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from .config import ComplexityConfig
from .types import ComplexityFactor, ComplexityFactorKind, ModeId, TaskAnalysis

BASE_COMPLEXITY = 1.0
SIMPLE_BASE_COMPLEXITY = 0.5
MAX_COMPLEXITY = 10.0
# Short descriptions in simple-task vocabulary never leave the "simple" band
SIMPLE_TASK_CEILING = 2.5
SIMPLE_TASK_MAX_LENGTH = 100

SIMPLE_TASK_PATTERNS = [
    r"\bfix(?:ing)?\s+(?:a\s+|the\s+)?typos?\b",
    r"\btypos?\b",
    r"\bminor\b",
    r"\bsmall\b",
    r"\bquick(?:ly)?\b",
    r"\bsimple\b",
    r"\btrivial\b",
    r"\badd\b",
    r"\bupdate\b",
    r"\blog(?:ging)?\b",
]

# (threshold, multiplier): first threshold the length is below wins
LENGTH_MULTIPLIERS: list[tuple[int, float]] = [
    (100, 1.0),
    (300, 1.1),
    (500, 1.2),
]
MAX_LENGTH_MULTIPLIER = 1.3


@dataclass(frozen=True)
class FactorDetector:
    """
    Keyword/pattern detector for one complexity factor.

    A detector fires when the number of pattern hits reaches ``min_hits``.
    ``suppressed_when_simple`` detectors never fire for simple tasks.
    """

    kind: ComplexityFactorKind
    weight: float
    note: str
    patterns: tuple[str, ...]
    min_hits: int = 1
    count_all: bool = False
    suppressed_when_simple: bool = False

    def hits(self, text: str) -> int:
        """Count pattern hits (every occurrence when ``count_all``)."""
        total = 0
        for pattern in self.patterns:
            if self.count_all:
                total += len(re.findall(pattern, text))
            elif re.search(pattern, text):
                total += 1
        return total

    def detect(self, text: str, simple: bool) -> bool:
        if simple and self.suppressed_when_simple:
            return False
        return self.hits(text) >= self.min_hits


def _words(*words: str) -> tuple[str, ...]:
    return tuple(rf"\b{re.escape(w)}" + (r"\b" if w[-1].isalnum() else "") for w in words)


FACTOR_DETECTORS: list[FactorDetector] = [
    FactorDetector(
        kind=ComplexityFactorKind.MULTI_STEP,
        weight=2.5,
        note="Task requires multiple implementation steps",
        patterns=(
            r"\b(?:and|then|also|additionally|furthermore)\b",
            r"\b(?:step|phase|stage)\s*\d+",
            r"\b(?:first|second|third|finally)\b",
            r"(?:^|\n)\s*[•\-\*]\s",
            r"(?:^|\n|\s)\d+[.)]\s",
            r"\w,\s+\w",
        ),
        min_hits=2,
        count_all=True,
    ),
    FactorDetector(
        kind=ComplexityFactorKind.CROSS_DOMAIN,
        weight=2.0,
        note="Task spans multiple knowledge domains",
        patterns=_words(
            "frontend",
            "backend",
            "database",
            "api",
            "ui",
            "ux",
            "testing",
            "deployment",
            "security",
            "ci/cd",
            "pipeline",
            "build",
        ),
        min_hits=2,
    ),
    FactorDetector(
        kind=ComplexityFactorKind.FILE_COMPLEXITY,
        weight=1.5,
        note="Multiple files need modification",
        patterns=(
            r"\bmultiple\s+(?:files|components|modules)",
            r"\bseveral\s+(?:files|components|modules)",
            r"\bacross\s+(?:the\s+)?(?:files|components|modules|codebase)",
            r"\brefactor\s+.*\s+(?:files|codebase)",
        ),
    ),
    FactorDetector(
        kind=ComplexityFactorKind.INTEGRATION_REQUIRED,
        weight=3.0,
        note="Requires integration with external systems",
        patterns=_words(
            "integrate",
            "integration",
            "api",
            "webhook",
            "external",
            "third-party",
            "database",
            "connect",
            "sync",
            "payment",
            "pipeline",
            "ci/cd",
            "deployment",
        ),
        suppressed_when_simple=True,
    ),
    FactorDetector(
        kind=ComplexityFactorKind.SECURITY_SENSITIVE,
        weight=3.5,
        note="Involves security-critical functionality",
        patterns=(
            r"\bauth\w*",
            r"\bsecurity\b",
            r"\bencrypt\w*",
            r"\bjwt\b",
            r"\btokens?\b",
            r"\bpasswords?\b",
            r"\boauth2?\b",
            r"\bpkce\b",
            r"\bpermissions?\b",
            r"\brole-based\b",
            r"\baccess control\b",
        ),
    ),
    FactorDetector(
        kind=ComplexityFactorKind.LEGACY_CODE,
        weight=2.0,
        note="Involves working with legacy code",
        patterns=(
            r"\blegacy\b",
            r"\brefactor\w*",
            r"\bmigrat\w*",
            r"\bmoderni[sz]\w*",
            r"\bupgrad\w*",
        ),
    ),
    FactorDetector(
        kind=ComplexityFactorKind.PERFORMANCE_CRITICAL,
        weight=1.8,
        note="Performance optimization required",
        patterns=(
            r"\bperformance\b",
            r"\boptimi[sz]\w*",
            r"\blatency\b",
            r"\bthroughput\b",
            r"\bcach\w*",
            r"\bmemory\b",
            r"\bcpu\b",
            r"\bscal(?:e|ing|ability)\b",
        ),
    ),
    FactorDetector(
        kind=ComplexityFactorKind.EXTERNAL_DEPENDENCIES,
        weight=1.5,
        note="Depends on external libraries or services",
        patterns=_words(
            "library",
            "libraries",
            "package",
            "packages",
            "npm",
            "pip",
            "dependency",
            "dependencies",
            "third-party",
            "framework",
            "sdk",
        ),
        suppressed_when_simple=True,
    ),
]

# Required-mode scan, independent of the score. Order is the planning order.
MODE_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    (
        ModeId.ARCHITECT.value,
        _words(
            "design",
            "architecture",
            "architect",
            "structure",
            "plan",
            "blueprint",
            "schema",
            "system",
            "high-level",
            "overview",
            "strategy",
            "approach",
        ),
    ),
    (
        ModeId.CODE.value,
        _words(
            "implement",
            "code",
            "develop",
            "build",
            "create",
            "function",
            "class",
            "method",
            "algorithm",
            "feature",
            "component",
            "module",
        ),
    ),
    (
        ModeId.DEBUG.value,
        _words(
            "fix",
            "bug",
            "error",
            "issue",
            "problem",
            "debug",
            "troubleshoot",
            "investigate",
            "diagnose",
            "resolve",
            "repair",
            "crash",
        ),
    ),
    (
        ModeId.ASK.value,
        _words(
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
            "tell me",
        ),
    ),
    (
        ModeId.ORCHESTRATOR.value,
        _words(
            "complete",
            "entire",
            "full",
            "comprehensive",
            "end-to-end",
            "multiple",
            "several",
            "various",
            "across",
        ),
    ),
]

STEP_COUNT_PATTERN = r"\b(?:step|phase|stage)\s*\d+"
BULLET_PATTERN = r"(?:^|\n)\s*[•\-\*]\s"
NUMBERED_PATTERN = r"(?:^|\n)\s*\d+[.)]\s"


def is_simple_task(description: str) -> bool:
    """True if the description uses simple-task vocabulary."""
    lowered = description.lower()
    return any(re.search(p, lowered) for p in SIMPLE_TASK_PATTERNS)


def length_multiplier(description: str) -> float:
    """Multiplier applied to factor weights for long descriptions."""
    length = len(description)
    for threshold, multiplier in LENGTH_MULTIPLIERS:
        if length < threshold:
            return multiplier
    return MAX_LENGTH_MULTIPLIER


class ComplexityScorer:
    """
    Scores task descriptions on a 0-10 scale.

    Example:
        >>> scorer = ComplexityScorer()
        >>> scorer.calculate_complexity("Fix typo in README.md") < 3
        True
    """

    def __init__(self, detectors: list[FactorDetector] | None = None) -> None:
        self.detectors = list(detectors) if detectors is not None else list(FACTOR_DETECTORS)

    def identify_factors(self, description: str) -> list[ComplexityFactor]:
        """Run every detector against the description."""
        if not description or not description.strip():
            return []

        lowered = description.lower()
        simple = is_simple_task(lowered)
        return [
            ComplexityFactor(kind=d.kind, weight=d.weight, note=d.note)
            for d in self.detectors
            if d.detect(lowered, simple)
        ]

    def calculate_complexity(
        self,
        description: str,
        factors: list[ComplexityFactor] | None = None,
    ) -> float:
        """
        Compute the complexity score.

        Args:
            description: Task description
            factors: Pre-computed factors (detected when omitted)

        Returns:
            Score clamped to [0, 10]; 0 for empty input
        """
        if not description or not description.strip():
            return 0.0

        if factors is None:
            factors = self.identify_factors(description)

        simple = is_simple_task(description)
        base = SIMPLE_BASE_COMPLEXITY if simple else BASE_COMPLEXITY
        factor_total = sum(f.weight for f in factors)
        score = base + factor_total * length_multiplier(description)

        if simple and len(description) < SIMPLE_TASK_MAX_LENGTH:
            score = min(score, SIMPLE_TASK_CEILING)

        return round(min(max(score, 0.0), MAX_COMPLEXITY), 4)


def determine_required_modes(description: str) -> list[str]:
    """
    Keyword scan for the modes a task needs.

    Never empty: defaults to ``code`` when nothing matches.
    """
    lowered = (description or "").lower()
    modes = [
        mode
        for mode, patterns in MODE_KEYWORDS
        if any(re.search(p, lowered) for p in patterns)
    ]
    return modes or [ModeId.CODE.value]


def estimate_subtask_count(complexity: float, description: str, max_subtasks: int = 10) -> int:
    """Subtasks implied by the score, raised to any explicit step or list count."""
    subtasks = math.ceil(complexity / 2)

    step_matches = re.findall(STEP_COUNT_PATTERN, description, re.IGNORECASE)
    if step_matches:
        subtasks = max(subtasks, len(step_matches))

    list_matches = re.findall(BULLET_PATTERN, description) or re.findall(
        NUMBERED_PATTERN, description
    )
    if list_matches:
        subtasks = max(subtasks, len(list_matches))

    return min(max(subtasks, 1), max_subtasks)


def suggest_approach(complexity: float, required_modes: list[str], threshold: float = 5.0) -> str:
    """Short human-readable strategy for the task."""
    if complexity == 0:
        return "No task description provided"

    if complexity < 3:
        first = required_modes[0] if required_modes else ModeId.CODE.value
        return f"Simple task that can be completed directly with {first} mode."

    if complexity < threshold:
        return (
            "Moderate complexity task. Consider breaking into 2-3 focused subtasks "
            f"using {' and '.join(required_modes)} modes."
        )

    steps = []
    if ModeId.ARCHITECT.value in required_modes:
        steps.append("Start with architectural design and planning")
    if ModeId.CODE.value in required_modes:
        steps.append("Break implementation into focused, manageable components")
    if ModeId.DEBUG.value in required_modes:
        steps.append("Include systematic testing and debugging phases")
    steps.append("Use orchestration to coordinate between different modes and subtasks")
    return ". ".join(steps) + "."


class TaskAnalyzer:
    """Produces a ``TaskAnalysis`` from a task description."""

    def __init__(
        self,
        config: ComplexityConfig | None = None,
        scorer: ComplexityScorer | None = None,
    ) -> None:
        self.config = config or ComplexityConfig()
        self.scorer = scorer or ComplexityScorer()

    def analyze_task(self, description: str) -> TaskAnalysis:
        """
        Analyze a task description.

        Empty or whitespace-only input yields a zero-complexity analysis
        rather than an error.
        """
        if not description or not description.strip():
            return TaskAnalysis(
                complexity=0.0,
                factors=[],
                required_modes=[ModeId.CODE.value],
                requires_orchestration=False,
                estimated_subtask_count=0,
                suggested_approach="No task description provided",
            )

        factors = self.scorer.identify_factors(description)
        complexity = self.scorer.calculate_complexity(description, factors)
        required_modes = determine_required_modes(description)
        threshold = self.config.orchestration_threshold

        return TaskAnalysis(
            complexity=complexity,
            factors=factors,
            required_modes=required_modes,
            requires_orchestration=complexity >= threshold,
            estimated_subtask_count=estimate_subtask_count(
                complexity, description, self.config.max_subtasks
            ),
            suggested_approach=suggest_approach(complexity, required_modes, threshold),
        )

    def calculate_complexity(self, description: str) -> float:
        return self.scorer.calculate_complexity(description)

    def should_orchestrate(self, analysis: TaskAnalysis) -> bool:
        return analysis.requires_orchestration


__all__ = [
    "ComplexityScorer",
    "FactorDetector",
    "FACTOR_DETECTORS",
    "MODE_KEYWORDS",
    "TaskAnalyzer",
    "determine_required_modes",
    "estimate_subtask_count",
    "is_simple_task",
    "length_multiplier",
    "suggest_approach",
]
