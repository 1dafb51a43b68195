"""
Mode-aware priority scoring for context information.

priority = base(mode, kind) x weighted sum of recency, relevance,
specificity and actionability, clamped to [0, 1].
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from types import MappingProxyType

from .types import DEFAULT_MODE, ModeId


class InformationKind(str, Enum):
    """Categories of context information."""

    DESIGN_DECISION = "design_decision"
    TECHNICAL_DETAIL = "technical_detail"
    DEPENDENCY_INFO = "dependency_info"
    FILE_CHANGE = "file_change"
    ERROR_INFO = "error_info"
    PERFORMANCE_DATA = "performance_data"
    SECURITY_CONCERN = "security_concern"
    TEST_RESULT = "test_result"


KIND_ALIASES: dict[str, str] = {
    "code_change": InformationKind.FILE_CHANGE.value,
    "file_modification": InformationKind.FILE_CHANGE.value,
    "architecture": InformationKind.DESIGN_DECISION.value,
    "design": InformationKind.DESIGN_DECISION.value,
    "bug": InformationKind.ERROR_INFO.value,
    "exception": InformationKind.ERROR_INFO.value,
    "perf": InformationKind.PERFORMANCE_DATA.value,
    "benchmark": InformationKind.PERFORMANCE_DATA.value,
    "security": InformationKind.SECURITY_CONCERN.value,
    "vulnerability": InformationKind.SECURITY_CONCERN.value,
    "test": InformationKind.TEST_RESULT.value,
}

UNKNOWN_KIND_PRIORITY = 0.1


@dataclass(frozen=True)
class ScoringWeights:
    """Weights of the four sub-factors; they sum to 1."""

    recency: float = 0.3
    relevance: float = 0.4
    specificity: float = 0.2
    actionability: float = 0.1


def _profile(values: tuple[float, ...]) -> Mapping[str, float]:
    return MappingProxyType({kind.value: v for kind, v in zip(InformationKind, values)})


# Column order follows InformationKind
MODE_PROFILES: Mapping[str, Mapping[str, float]] = MappingProxyType(
    {
        ModeId.CODE.value: _profile((0.4, 0.9, 0.7, 0.8, 0.8, 0.5, 0.7, 0.6)),
        ModeId.ARCHITECT.value: _profile((0.9, 0.6, 0.8, 0.3, 0.4, 0.7, 0.8, 0.3)),
        ModeId.DEBUG.value: _profile((0.2, 0.7, 0.6, 0.5, 0.9, 0.8, 0.6, 0.7)),
        ModeId.ASK.value: _profile((0.7, 0.8, 0.6, 0.2, 0.3, 0.4, 0.5, 0.4)),
        ModeId.ORCHESTRATOR.value: _profile((0.8, 0.5, 0.9, 0.4, 0.6, 0.6, 0.7, 0.5)),
    }
)

RELEVANCE_KEYWORDS: dict[str, list[str]] = {
    ModeId.CODE.value: ["implement", "function", "class", "method", "algorithm", "code"],
    ModeId.ARCHITECT.value: ["design", "architecture", "pattern", "structure", "system"],
    ModeId.DEBUG.value: ["error", "bug", "exception", "fix", "problem", "issue"],
    ModeId.ASK.value: ["explain", "how", "what", "why", "documentation", "guide"],
    ModeId.ORCHESTRATOR.value: ["coordinate", "manage", "organize", "workflow", "process"],
}

ACTIONABLE_VERBS: dict[str, list[str]] = {
    ModeId.CODE.value: ["todo", "implement", "fix", "update", "create"],
    ModeId.ARCHITECT.value: ["design", "plan", "decide", "choose", "define"],
    ModeId.DEBUG.value: ["investigate", "reproduce", "fix", "test", "verify"],
    ModeId.ASK.value: ["research", "document", "explain", "clarify", "define"],
    ModeId.ORCHESTRATOR.value: ["coordinate", "assign", "delegate", "schedule", "prioritize"],
}

RELEVANCE_PER_HIT = 0.1
BASE_SPECIFICITY = 0.3
BASE_ACTIONABILITY = 0.2
ACTIONABILITY_PER_HIT = 0.2
DEFAULT_RECENCY = 0.5

# (max age in hours, weight); anything older gets STALE_RECENCY
RECENCY_BUCKETS: tuple[tuple[float, float], ...] = ((1, 1.0), (24, 0.8), (168, 0.6))
STALE_RECENCY = 0.3

_NUMBER = re.compile(r"\d")
_FILENAME = re.compile(r"\.[a-z]{2,4}")
_IDENTIFIER_TERM = re.compile(r"\b(function|class|variable|method|component)\b", re.IGNORECASE)


def normalize_kind(kind: str) -> str:
    """Map aliases like "bug" or "benchmark" to their canonical kind."""
    value = kind.value if isinstance(kind, InformationKind) else str(kind)
    return KIND_ALIASES.get(value, value)


@dataclass(frozen=True)
class InformationItem:
    """A piece of information competing for context space."""

    kind: str
    content: str
    timestamp: datetime | None = None


@dataclass(frozen=True)
class RankedItem:
    item: InformationItem
    priority: float


class PriorityRanker:
    """
    Scores information items for a target mode.

    Profiles are read-only; ``with_overrides`` returns a new ranker
    instead of mutating this one.

    Example:
        >>> ranker = PriorityRanker()
        >>> item = InformationItem(kind="error_info", content="TypeError in parser.py")
        >>> 0.0 <= ranker.calculate_priority(item, "debug") <= 1.0
        True
    """

    def __init__(
        self,
        profiles: Mapping[str, Mapping[str, float]] | None = None,
        weights: ScoringWeights | None = None,
    ):
        self._profiles = profiles if profiles is not None else MODE_PROFILES
        self.weights = weights or ScoringWeights()

    def get_mode_priorities(self, mode: str) -> Mapping[str, float]:
        """Profile for a mode; unknown modes use the code profile."""
        return self._profiles.get(mode) or self._profiles[DEFAULT_MODE]

    def with_overrides(self, mode: str, overrides: Mapping[str, float]) -> PriorityRanker:
        """Copy of this ranker with some base priorities of one mode replaced."""
        updated = dict(self.get_mode_priorities(mode))
        updated.update({normalize_kind(k): v for k, v in overrides.items()})
        profiles = dict(self._profiles)
        profiles[mode] = MappingProxyType(updated)
        return PriorityRanker(MappingProxyType(profiles), self.weights)

    def base_priority(self, mode: str, kind: str) -> float:
        return self.get_mode_priorities(mode).get(normalize_kind(kind), UNKNOWN_KIND_PRIORITY)

    def calculate_priority(
        self, item: InformationItem, mode: str, now: datetime | None = None
    ) -> float:
        """
        Priority of one item for a mode.

        Args:
            item: Information to score
            mode: Target mode id
            now: Reference time for recency (defaults to the current time)

        Returns:
            Priority in [0, 1]
        """
        w = self.weights
        weighted = (
            w.recency * self.recency(item.timestamp, now)
            + w.relevance * self.relevance(item.content, mode)
            + w.specificity * self.specificity(item.content)
            + w.actionability * self.actionability(item.content, mode)
        )
        score = self.base_priority(mode, item.kind) * weighted
        return min(max(score, 0.0), 1.0)

    def rank_information_by_priority(
        self, items: list[InformationItem], mode: str, now: datetime | None = None
    ) -> list[RankedItem]:
        """Items with their priorities, highest first (stable for ties)."""
        ranked = [RankedItem(item, self.calculate_priority(item, mode, now)) for item in items]
        return sorted(ranked, key=lambda r: r.priority, reverse=True)

    # Sub-factors

    def recency(self, timestamp: datetime | None, now: datetime | None = None) -> float:
        if timestamp is None:
            return DEFAULT_RECENCY
        now = now or datetime.now(timestamp.tzinfo)
        age_hours = (now - timestamp).total_seconds() / 3600
        for max_age, weight in RECENCY_BUCKETS:
            if age_hours < max_age:
                return weight
        return STALE_RECENCY

    def relevance(self, content: str, mode: str) -> float:
        lowered = (content or "").lower()
        hits = sum(1 for keyword in RELEVANCE_KEYWORDS.get(mode, []) if keyword in lowered)
        return min(hits * RELEVANCE_PER_HIT, 1.0)

    def specificity(self, content: str) -> float:
        content = content or ""
        score = BASE_SPECIFICITY
        if _NUMBER.search(content):
            score += 0.2
        if _FILENAME.search(content):
            score += 0.3
        if _IDENTIFIER_TERM.search(content):
            score += 0.2
        return min(score, 1.0)

    def actionability(self, content: str, mode: str) -> float:
        lowered = (content or "").lower()
        hits = sum(1 for verb in ACTIONABLE_VERBS.get(mode, []) if verb in lowered)
        return min(BASE_ACTIONABILITY + hits * ACTIONABILITY_PER_HIT, 1.0)


__all__ = [
    "ACTIONABLE_VERBS",
    "InformationItem",
    "InformationKind",
    "MODE_PROFILES",
    "PriorityRanker",
    "RELEVANCE_KEYWORDS",
    "RankedItem",
    "ScoringWeights",
    "normalize_kind",
]
