"""
Content compression for over-budget context.

Strings are compressed extractively: split into sentences, score each
sentence by keyword presence, then keep the best-scoring sentences until
the character budget is spent. Structures are trimmed by priority and
compressed per key. A named strategy pipeline runs afterwards while the
value is still over budget.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

from .config import CompressionConfig
from .tokenization import (
    CHARS_PER_TOKEN,
    TokenEstimator,
    chars_for_tokens,
    estimate_structure_tokens,
)

logger = logging.getLogger(__name__)


KEY_PHRASES = [
    "implement",
    "create",
    "design",
    "fix",
    "error",
    "function",
    "component",
    "service",
    "authentication",
    "database",
    "api",
    "security",
    "performance",
    "test",
    "user",
    "system",
    "jwt",
    "password",
    "token",
    "email",
    "login",
    "secure",
]

# Security and auth phrases count three times
HIGH_WEIGHT_PHRASES = frozenset({"jwt", "authentication", "password", "secure", "token"})
HIGH_WEIGHT_SCORE = 3.0
PHRASE_SCORE = 1.0
NUMBER_BONUS = 0.5
TECHNICAL_TERM_BONUS = 0.8
SHORT_SENTENCE_LENGTH = 20
SHORT_SENTENCE_PENALTY = 0.5

_NUMBER = re.compile(r"\d")
_TECHNICAL_TERM = re.compile(
    r"\b(function|class|method|api|database|component|authentication|jwt|password|token)\b",
    re.IGNORECASE,
)
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+|\n+")


@dataclass(frozen=True)
class CompressionStrategy:
    """A named post-processing step with its own target ratio."""

    name: str
    ratio: float
    preserve_keywords: tuple[str, ...] = ()


STRATEGIES: dict[str, CompressionStrategy] = {
    "deduplicate": CompressionStrategy("deduplicate", 0.9),
    "summarize": CompressionStrategy(
        "summarize", 0.6, ("important", "critical", "key", "main")
    ),
    "extract_key_points": CompressionStrategy(
        "extract_key_points", 0.4, ("error", "exception", "failed", "critical")
    ),
}


@dataclass
class CompressionResult:
    """Result of compression operation."""

    content: Any
    compressed: bool
    input_tokens: int
    output_tokens: int
    stages_applied: list[str] = field(default_factory=list)

    @property
    def compression_ratio(self) -> float:
        """Calculate compression ratio."""
        if self.output_tokens == 0:
            return 0.0
        return self.input_tokens / self.output_tokens

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "content": self.content,
            "compressed": self.compressed,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "compression_ratio": self.compression_ratio,
            "stages_applied": list(self.stages_applied),
        }


@dataclass
class CompressionMetrics:
    """Running totals across compression operations."""

    total_compressions: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    _ratios: list[float] = field(default_factory=list)

    @property
    def average_ratio(self) -> float:
        """Calculate average compression ratio."""
        if not self._ratios:
            return 0.0
        return sum(self._ratios) / len(self._ratios)

    def record_compression(self, input_tokens: int, output_tokens: int) -> None:
        """Record a compression operation."""
        self.total_compressions += 1
        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens
        if output_tokens > 0:
            self._ratios.append(input_tokens / output_tokens)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "total_compressions": self.total_compressions,
            "total_input_tokens": self.total_input_tokens,
            "total_output_tokens": self.total_output_tokens,
            "average_ratio": self.average_ratio,
        }


class SentenceScorer:
    """Keyword-based importance score for a single sentence."""

    def __init__(self, key_phrases: list[str] | None = None):
        self.key_phrases = [p.lower() for p in (key_phrases or KEY_PHRASES)]

    def score(self, sentence: str) -> float:
        lowered = sentence.lower()
        score = 0.0

        for phrase in self.key_phrases:
            if phrase in lowered:
                score += HIGH_WEIGHT_SCORE if phrase in HIGH_WEIGHT_PHRASES else PHRASE_SCORE

        if _NUMBER.search(sentence):
            score += NUMBER_BONUS
        if _TECHNICAL_TERM.search(sentence):
            score += TECHNICAL_TERM_BONUS
        if len(sentence) < SHORT_SENTENCE_LENGTH:
            score *= SHORT_SENTENCE_PENALTY

        return score

    def rank(self, sentences: list[str]) -> list[str]:
        """Sentences by descending score; ties keep their original order."""
        scored = [(self.score(s), i, s) for i, s in enumerate(sentences)]
        scored.sort(key=lambda x: (-x[0], x[1]))
        return [s for _, _, s in scored]


def split_sentences(text: str) -> list[str]:
    """Split on sentence-ending punctuation followed by whitespace, and on newlines."""
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]


class ContentCompressor:
    """
    Reduce a value's token footprint to a ceiling.

    For strings the result never exceeds the ceiling (under the heuristic
    estimator) and is never longer than the input.

    Example:
        >>> compressor = ContentCompressor()
        >>> result = compressor.compress(long_text, max_tokens=100)
        >>> result.output_tokens <= 100
        True
    """

    def __init__(
        self,
        config: CompressionConfig | None = None,
        estimator: TokenEstimator | None = None,
        chars_per_token: int = CHARS_PER_TOKEN,
        scorer: SentenceScorer | None = None,
    ):
        self.config = config or CompressionConfig()
        unknown = [s for s in self.config.strategies if s not in STRATEGIES]
        if unknown:
            raise ValueError(f"Unknown compression strategies: {unknown}")
        self.estimator = estimator
        self.chars_per_token = chars_per_token
        self.scorer = scorer or SentenceScorer()
        self.metrics = CompressionMetrics()

    def measure(self, value: Any) -> int:
        """Token cost of the leaf strings of a value."""
        return estimate_structure_tokens(value, self.estimator)

    def compress(self, content: Any, max_tokens: int) -> CompressionResult:
        """
        Compress content to fit max_tokens.

        Args:
            content: String, list or dict
            max_tokens: Token ceiling

        Returns:
            CompressionResult; ``compressed`` is False when nothing changed
        """
        input_tokens = self.measure(content)
        if not content or input_tokens <= max_tokens:
            return CompressionResult(
                content=content,
                compressed=False,
                input_tokens=input_tokens,
                output_tokens=input_tokens,
            )

        stages: list[str] = []
        value = content

        # 1. Drop low-priority records
        if self._is_prioritized_records(value):
            value = self.remove_low_priority_items(value, max_tokens)
            stages.append("remove_low_priority")

        # 2. Sentence selection for strings, per-key sub-budgets for structures
        if self.measure(value) > max_tokens:
            value = self.compress_verbose(value, max_tokens)
            stages.append("compress_verbose")

        # 3. Named strategies, stopping once under the ceiling
        for name in self.config.strategies:
            if self.measure(value) <= max_tokens:
                break
            value = self.apply_strategy(value, STRATEGIES[name])
            stages.append(name)

        output_tokens = self.measure(value)
        self.metrics.record_compression(input_tokens, output_tokens)
        logger.debug(
            f"Compressed {input_tokens} -> {output_tokens} tokens "
            f"(ceiling {max_tokens}, stages {stages})"
        )

        return CompressionResult(
            content=value,
            compressed=True,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            stages_applied=stages,
        )

    def compress_text(self, text: str, target_ratio: float) -> str:
        """Keep the most important sentences within ``target_ratio`` of the length."""
        if not text or target_ratio >= 1:
            return text
        return self.select_sentences(text, math.floor(len(text) * target_ratio))

    def summarize_to_tokens(self, text: str, max_tokens: int) -> str:
        """Keep the most important sentences within a token ceiling."""
        return self.select_sentences(text, chars_for_tokens(max_tokens, self.chars_per_token))

    def select_sentences(self, text: str, max_chars: int) -> str:
        """
        Greedy selection in importance order.

        Sentences are joined with a single space and the separator counts
        against the budget. If no sentence fits, the top-ranked one is cut
        to the budget.
        """
        if len(text) <= max_chars:
            return text
        if max_chars <= 0:
            return ""

        ranked = self.scorer.rank(split_sentences(text))
        selected: list[str] = []
        length = 0

        for sentence in ranked:
            needed = len(sentence) + (1 if selected else 0)
            if length + needed <= max_chars:
                selected.append(sentence)
                length += needed

        if not selected and ranked:
            return ranked[0][:max_chars].rstrip()
        return " ".join(selected)

    def remove_low_priority_items(self, records: list[dict], max_tokens: int) -> list[dict]:
        """Highest-priority records that fit, in priority order."""
        ordered = sorted(records, key=lambda r: r.get("priority") or 0, reverse=True)
        kept: list[dict] = []
        used = 0
        for record in ordered:
            tokens = self.measure(record)
            if used + tokens <= max_tokens:
                kept.append(record)
                used += tokens
        return kept

    def compress_verbose(self, value: Any, max_tokens: int) -> Any:
        """Compress strings to the ceiling; recurse into containers with a sub-budget."""
        if isinstance(value, str):
            if self.measure(value) > max_tokens:
                return self.summarize_to_tokens(value, max_tokens)
            return value

        sub_budget = math.floor(max_tokens * self.config.nested_budget_ratio)
        if isinstance(value, dict):
            return {k: self.compress_verbose(v, sub_budget) for k, v in value.items()}
        if isinstance(value, list):
            return [self.compress_verbose(v, sub_budget) for v in value]
        return value

    def apply_strategy(self, value: Any, strategy: CompressionStrategy) -> Any:
        if strategy.name == "deduplicate":
            return self.deduplicate(value)
        if strategy.name == "summarize":
            return self._map_strings(value, lambda s: self.compress_text(s, strategy.ratio))
        if strategy.name == "extract_key_points":
            return self._map_strings(value, lambda s: self.extract_key_points(s, strategy))
        return value

    def deduplicate(self, value: Any) -> Any:
        """Drop repeated list items and repeated sentences."""
        if isinstance(value, list):
            seen: set[str] = set()
            unique = []
            for item in value:
                key = json.dumps(item, sort_keys=True, default=str)
                if key not in seen:
                    seen.add(key)
                    unique.append(item)
            return unique
        if isinstance(value, dict):
            return {k: self.deduplicate(v) for k, v in value.items()}
        if isinstance(value, str):
            sentences = split_sentences(value)
            unique_sentences = list(dict.fromkeys(sentences))
            if len(unique_sentences) < len(sentences):
                return " ".join(unique_sentences)
        return value

    def extract_key_points(self, text: str, strategy: CompressionStrategy) -> str:
        """Sentences containing a preserved keyword, capped by the strategy ratio."""
        sentences = split_sentences(text)
        keywords = [k.lower() for k in strategy.preserve_keywords]
        important = [s for s in sentences if any(k in s.lower() for k in keywords)]
        if not important:
            return text
        return " ".join(important[: math.ceil(len(sentences) * strategy.ratio)])

    def _map_strings(self, value: Any, fn: Any) -> Any:
        if isinstance(value, str):
            return fn(value)
        if isinstance(value, dict):
            return {k: self._map_strings(v, fn) for k, v in value.items()}
        if isinstance(value, list):
            return [self._map_strings(v, fn) for v in value]
        return value

    @staticmethod
    def _is_prioritized_records(value: Any) -> bool:
        return (
            isinstance(value, list)
            and bool(value)
            and all(isinstance(item, dict) for item in value)
            and any("priority" in item for item in value)
        )


__all__ = [
    "CompressionMetrics",
    "CompressionResult",
    "CompressionStrategy",
    "ContentCompressor",
    "KEY_PHRASES",
    "STRATEGIES",
    "SentenceScorer",
    "split_sentences",
]
