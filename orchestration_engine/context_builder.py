"""
Per-subtask context windows.

Builds the context handed to one subtask: prior results ranked for the
target mode and admitted into a token-budgeted store, a block of
mode-specific hints, and the caller's global context, compressed as a
whole if it still exceeds the budget.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal

from .context_compression import ContentCompressor
from .context_store import ContextBudgetStore
from .priority import InformationItem, InformationKind, PriorityRanker
from .tokenization import TokenEstimator, estimate_tokens
from .types import ModeId

logger = logging.getLogger(__name__)

OptimizationLevel = Literal["aggressive", "balanced", "conservative"]

AGGRESSIVE_BELOW_TOKENS = 1000
BALANCED_BELOW_TOKENS = 3000

# Synthetic age step between consecutive prior results
RESULT_AGE_STEP = timedelta(minutes=1)

# First matching rule wins; anything else is a technical detail
CLASSIFICATION_RULES: list[tuple[InformationKind, list[str]]] = [
    (InformationKind.ERROR_INFO, ["error", "exception", "failed", "bug"]),
    (InformationKind.DESIGN_DECISION, ["design", "architecture", "decided", "plan"]),
    (InformationKind.FILE_CHANGE, ["implemented", "created", "added", "modified", "file"]),
    (InformationKind.PERFORMANCE_DATA, ["performance", "speed", "memory", "cpu", "latency"]),
    (InformationKind.TEST_RESULT, ["test", "spec", "passed", "failed", "coverage"]),
    (InformationKind.SECURITY_CONCERN, ["security", "auth", "permission", "vulnerability"]),
    (InformationKind.DEPENDENCY_INFO, ["dependency", "library", "package", "import"]),
]

MODE_FOCUS: dict[str, dict[str, list[str]]] = {
    ModeId.CODE.value: {
        "focus_areas": ["implementation_details", "file_changes", "technical_requirements"],
        "exclude_types": ["high_level_design", "business_requirements"],
    },
    ModeId.ARCHITECT.value: {
        "focus_areas": ["system_design", "dependencies", "architecture_decisions"],
        "exclude_types": ["implementation_details", "low_level_bugs"],
    },
    ModeId.DEBUG.value: {
        "focus_areas": ["error_information", "performance_data", "system_logs"],
        "exclude_types": ["design_decisions", "future_planning"],
    },
    ModeId.ASK.value: {
        "focus_areas": ["documentation", "explanations", "knowledge_base"],
        "exclude_types": ["implementation_specifics", "error_logs"],
    },
    ModeId.ORCHESTRATOR.value: {
        "focus_areas": ["task_dependencies", "coordination_requirements", "overall_progress"],
        "exclude_types": ["implementation_details"],
    },
}


def classify_information(content: str) -> InformationKind:
    """Information kind of a prior result, by keyword."""
    lowered = content.lower()
    for kind, keywords in CLASSIFICATION_RULES:
        if any(keyword in lowered for keyword in keywords):
            return kind
    return InformationKind.TECHNICAL_DETAIL


def determine_optimization_level(max_tokens: int) -> OptimizationLevel:
    if max_tokens < AGGRESSIVE_BELOW_TOKENS:
        return "aggressive"
    if max_tokens < BALANCED_BELOW_TOKENS:
        return "balanced"
    return "conservative"


@dataclass
class ContextParams:
    """Inputs for building one subtask's context."""

    mode: str
    task_description: str
    previous_results: list[str] = field(default_factory=list)
    global_context: dict[str, Any] = field(default_factory=dict)
    max_tokens: int = 4000
    priority_overrides: dict[str, float] | None = None


@dataclass
class TaskContext:
    """Context window handed to a subtask executor."""

    previous_results: list[str] = field(default_factory=list)
    global_context: dict[str, Any] = field(default_factory=dict)
    mode_specific_context: dict[str, Any] = field(default_factory=dict)
    max_tokens: int = 4000
    tokens: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "previous_results": list(self.previous_results),
            "global_context": dict(self.global_context),
            "mode_specific_context": dict(self.mode_specific_context),
            "max_tokens": self.max_tokens,
            "tokens": self.tokens,
        }


@dataclass(frozen=True)
class OptimizationReport:
    original_tokens: int
    optimized_tokens: int
    reduction_ratio: float
    strategies: tuple[str, ...] = ("prioritization", "token_optimization", "relevance_filtering")

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_tokens": self.original_tokens,
            "optimized_tokens": self.optimized_tokens,
            "reduction_ratio": self.reduction_ratio,
            "strategies": list(self.strategies),
        }


class ContextOptimizer:
    """
    Build token-budgeted context for subtasks.

    Example:
        >>> optimizer = ContextOptimizer()
        >>> ctx = optimizer.create_context_for_subtask(
        ...     ContextParams(mode="debug", task_description="Fix login",
        ...                   previous_results=["Error: token expired"], max_tokens=500)
        ... )
        >>> ctx.mode_specific_context["optimization_level"]
        'aggressive'
    """

    def __init__(
        self,
        ranker: PriorityRanker | None = None,
        compressor: ContentCompressor | None = None,
        estimator: TokenEstimator | None = None,
    ):
        self.ranker = ranker or PriorityRanker()
        self.estimator = estimator
        self.compressor = compressor or ContentCompressor(estimator=estimator)

    def create_context_for_subtask(
        self, params: ContextParams, now: datetime | None = None
    ) -> TaskContext:
        """
        Build the context window for one subtask.

        Args:
            params: Mode, description, prior results, global context and budget
            now: Reference time for result recency

        Returns:
            TaskContext within ``params.max_tokens`` where compression allows
        """
        ranker = self.ranker
        if params.priority_overrides:
            ranker = ranker.with_overrides(params.mode, params.priority_overrides)

        previous = self.extract_relevant_info(
            params.previous_results, params.mode, params.max_tokens, ranker, now
        )
        context: dict[str, Any] = {
            "previous_results": previous,
            "global_context": dict(params.global_context),
            "mode_specific_context": self.create_mode_specific_context(params),
        }

        context = self.optimize_context(context, params.max_tokens)

        return TaskContext(
            previous_results=list(context.get("previous_results") or []),
            global_context=dict(context.get("global_context") or {}),
            mode_specific_context=dict(context.get("mode_specific_context") or {}),
            max_tokens=params.max_tokens,
            tokens=self.calculate_context_tokens(context),
        )

    def extract_relevant_info(
        self,
        previous_results: list[str],
        mode: str,
        max_tokens: int,
        ranker: PriorityRanker | None = None,
        now: datetime | None = None,
    ) -> list[str]:
        """
        Rank prior results for a mode and keep what fits the budget.

        Results are assumed newest first: result ``i`` is treated as ``i``
        minutes old.
        """
        if not previous_results:
            return []

        ranker = ranker or self.ranker
        now = now or datetime.now()
        items = [
            InformationItem(
                kind=classify_information(result).value,
                content=result,
                timestamp=now - index * RESULT_AGE_STEP,
            )
            for index, result in enumerate(previous_results)
        ]
        ranked = ranker.rank_information_by_priority(items, mode, now)

        store = ContextBudgetStore(max_tokens, self.estimator)
        # Least important first, so each admission can only evict weaker items
        for position, entry in reversed(list(enumerate(ranked))):
            value = entry.item.content
            if estimate_tokens(value, self.estimator) > max_tokens:
                value = self.compressor.compress(value, max_tokens).content
            store.put(f"result-{position}", value, priority=entry.priority)

        usage = store.usage()
        logger.debug(
            f"Context for {mode}: kept {store.item_count}/{len(previous_results)} results, "
            f"{usage.current}/{usage.max} tokens"
        )
        return [item.value for item in store.snapshot()]

    def create_mode_specific_context(self, params: ContextParams) -> dict[str, Any]:
        context: dict[str, Any] = {
            "mode": params.mode,
            "task_description": params.task_description,
            "optimization_level": determine_optimization_level(params.max_tokens),
        }
        focus = MODE_FOCUS.get(params.mode)
        if focus:
            context["focus_areas"] = list(focus["focus_areas"])
            context["exclude_types"] = list(focus["exclude_types"])
        return context

    def optimize_context(self, context: dict[str, Any], max_tokens: int) -> dict[str, Any]:
        """Compress the assembled context if its serialized form is over budget."""
        if max_tokens <= 0:
            return context

        total = self.calculate_context_tokens(context)
        if total <= max_tokens:
            return context

        # The compressor counts leaf strings only; leave room for keys and punctuation
        overhead = total - self.compressor.measure(context)
        budget = max(1, max_tokens - overhead)
        result = self.compressor.compress(context, budget)
        logger.info(f"Compressed subtask context {total} -> {result.output_tokens} tokens")
        return result.content

    def calculate_context_tokens(self, context: Any) -> int:
        return estimate_tokens(context, self.estimator)

    def calculate_reduction_ratio(self, original: Any, optimized: Any) -> float:
        original_tokens = self.calculate_context_tokens(original)
        if original_tokens == 0:
            return 0.0
        optimized_tokens = self.calculate_context_tokens(optimized)
        return max(0.0, (original_tokens - optimized_tokens) / original_tokens)

    def generate_optimization_report(self, original: Any, optimized: Any) -> OptimizationReport:
        return OptimizationReport(
            original_tokens=self.calculate_context_tokens(original),
            optimized_tokens=self.calculate_context_tokens(optimized),
            reduction_ratio=self.calculate_reduction_ratio(original, optimized),
        )


__all__ = [
    "CLASSIFICATION_RULES",
    "ContextOptimizer",
    "ContextParams",
    "MODE_FOCUS",
    "OptimizationReport",
    "TaskContext",
    "classify_information",
    "determine_optimization_level",
]
