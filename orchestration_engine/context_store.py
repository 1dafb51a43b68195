"""
Token-budgeted context store.

Holds keyed context snippets, each costed in tokens, and keeps the total
under a fixed ceiling by evicting the lowest-priority, then oldest, items.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

from .tokenization import TokenEstimator, estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4000


@dataclass(frozen=True)
class ContextItem:
    """
    One admitted snippet.

    ``sequence`` is a per-store monotonic counter; it orders items that
    share an ``inserted_at`` timestamp.
    """

    key: str
    value: Any
    tokens: int
    priority: float
    inserted_at: float
    sequence: int


@dataclass(frozen=True)
class TokenUsage:
    """Current usage against the ceiling."""

    current: int
    max: int
    percentage: float

    def to_dict(self) -> dict[str, Any]:
        return {"current": self.current, "max": self.max, "percentage": self.percentage}


class ContextBudgetStore:
    """
    Keyed store with a token ceiling.

    An item that alone exceeds the ceiling is rejected (``put`` returns
    False and nothing changes). Otherwise lower-priority, then older,
    items are evicted until the new item fits.

    Example:
        >>> store = ContextBudgetStore(max_tokens=10)
        >>> store.put("a", "x" * 20, priority=1)
        True
        >>> store.put("b", "y" * 40, priority=2)
        True
        >>> store.contains("a")
        False
    """

    def __init__(
        self,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        estimator: TokenEstimator | None = None,
    ):
        if max_tokens < 0:
            raise ValueError("max_tokens must be non-negative")
        self.max_tokens = max_tokens
        self._estimator = estimator
        self._items: dict[str, ContextItem] = {}
        self._current = 0
        self._sequence = itertools.count()
        self._lock = threading.RLock()

    def put(self, key: str, value: Any, priority: float = 1) -> bool:
        """
        Admit or replace an item.

        Args:
            key: Item key; an existing key is replaced in place
            value: String or JSON-serializable value
            priority: Higher survives eviction longer

        Returns:
            True if the item was admitted
        """
        tokens = estimate_tokens(value, self._estimator)
        if tokens > self.max_tokens:
            logger.warning(
                f"Rejected context item {key!r}: {tokens} tokens exceeds budget {self.max_tokens}"
            )
            return False

        with self._lock:
            existing = self._items.get(key)
            existing_tokens = existing.tokens if existing else 0
            overflow = self._current - existing_tokens + tokens - self.max_tokens
            if overflow > 0:
                self._make_space(overflow, exclude=key)

            if existing is not None:
                del self._items[key]
                self._current -= existing.tokens

            self._items[key] = ContextItem(
                key=key,
                value=value,
                tokens=tokens,
                priority=priority,
                inserted_at=time.time(),
                sequence=next(self._sequence),
            )
            self._current += tokens
            return True

    def _make_space(self, required: int, exclude: str) -> None:
        # Lowest priority first, oldest first among equals
        candidates = sorted(
            (item for item in self._items.values() if item.key != exclude),
            key=lambda item: (item.priority, item.sequence),
        )
        freed = 0
        for item in candidates:
            if freed >= required:
                break
            del self._items[item.key]
            self._current -= item.tokens
            freed += item.tokens
            logger.debug(
                f"Evicted context item {item.key!r} (priority={item.priority}, tokens={item.tokens})"
            )

    def get(self, key: str, default: Any = None) -> Any:
        """Value stored under key."""
        item = self._items.get(key)
        return item.value if item is not None else default

    def get_item(self, key: str) -> ContextItem | None:
        return self._items.get(key)

    def remove(self, key: str) -> bool:
        """Remove an item; returns False if the key was absent."""
        with self._lock:
            item = self._items.pop(key, None)
            if item is None:
                return False
            self._current -= item.tokens
            return True

    def contains(self, key: str) -> bool:
        return key in self._items

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    @property
    def item_count(self) -> int:
        return len(self._items)

    @property
    def current_tokens(self) -> int:
        return self._current

    def snapshot(self) -> list[ContextItem]:
        """
        All items, most important first.

        Sorted by descending priority, then most recently inserted first.
        """
        with self._lock:
            items = list(self._items.values())
        return sorted(items, key=lambda item: (-item.priority, -item.sequence))

    def optimized_context(self) -> dict[str, Any]:
        """Key -> value mapping in snapshot order."""
        return {item.key: item.value for item in self.snapshot()}

    def usage(self) -> TokenUsage:
        current = self._current
        percentage = (current / self.max_tokens) * 100 if self.max_tokens > 0 else 0.0
        return TokenUsage(current=current, max=self.max_tokens, percentage=percentage)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._current = 0


__all__ = [
    "ContextBudgetStore",
    "ContextItem",
    "DEFAULT_MAX_TOKENS",
    "TokenUsage",
]
