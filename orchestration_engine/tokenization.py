"""
Token estimation for context budgeting.

Every budget-aware component takes a ``TokenEstimator``. The default
heuristic estimator is deterministic and cheap (~4 characters per
token); ``TiktokenEstimator`` swaps in a real BPE tokenizer without any
change to the budget logic.
"""

from __future__ import annotations

import json
import math
from typing import Any, Protocol, runtime_checkable

CHARS_PER_TOKEN = 4


@runtime_checkable
class TokenEstimator(Protocol):
    """Single-function interface for token cost estimation."""

    def count(self, text: str) -> int:
        """Return the token cost of a string."""
        ...


def serialize_value(value: Any) -> str:
    """
    Render a value as the text a model would see.

    Strings pass through unchanged; anything else is JSON-serialized with
    sorted keys so equal structures always cost the same.
    """
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return str(value)


class HeuristicTokenEstimator:
    """
    Length-based token estimate.

    ``ceil(len(text) / chars_per_token)``; empty text costs zero.
    """

    def __init__(self, chars_per_token: int = CHARS_PER_TOKEN) -> None:
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token

    def count(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)


class TiktokenEstimator:
    """Token counts from tiktoken's ``cl100k_base`` encoding."""

    def __init__(self, encoding_name: str = "cl100k_base") -> None:
        import tiktoken

        self._encoding = tiktoken.get_encoding(encoding_name)

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._encoding.encode(text))


_default_estimator = HeuristicTokenEstimator()


def estimate_tokens(value: Any, estimator: TokenEstimator | None = None) -> int:
    """
    Estimate the token cost of any value.

    Args:
        value: String or JSON-serializable structure
        estimator: Estimator to use (heuristic by default)

    Returns:
        Token count
    """
    return (estimator or _default_estimator).count(serialize_value(value))


def estimate_structure_tokens(value: Any, estimator: TokenEstimator | None = None) -> int:
    """
    Sum the token cost of the leaf strings of a nested structure.

    Unlike ``estimate_tokens`` this ignores JSON punctuation and keys, which
    is what the compressor budgets against when it walks nested content.
    """
    if isinstance(value, str):
        return estimate_tokens(value, estimator)
    if isinstance(value, (list, tuple)):
        return sum(estimate_structure_tokens(item, estimator) for item in value)
    if isinstance(value, dict):
        return sum(estimate_structure_tokens(item, estimator) for item in value.values())
    return 0


def chars_for_tokens(tokens: int, chars_per_token: int = CHARS_PER_TOKEN) -> int:
    """Convert a token budget to a character budget."""
    return max(0, tokens) * chars_per_token
