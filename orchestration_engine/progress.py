"""
Progress reporting for subtask execution.

The scheduler emits a status transition before a node starts and after it
finishes (pending -> in_progress -> completed | failed). Observers are a
side channel: they never influence results, and an observer that raises
is logged and ignored.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from .types import TaskStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressUpdate:
    """
    Status transition for one subtask.

    ``started_at`` / ``finished_at`` are wall-clock epoch seconds.
    """

    task_id: str
    status: TaskStatus
    percent_complete: float = 0.0
    message: str = ""
    started_at: float | None = None
    finished_at: float | None = None


@dataclass
class ProgressStats:
    """Counters accumulated from observed transitions."""

    started: int = 0
    completed: int = 0
    failed: int = 0
    first_started_at: float | None = None
    last_finished_at: float | None = None

    @property
    def finished(self) -> int:
        return self.completed + self.failed

    @property
    def elapsed_ms(self) -> float:
        if self.first_started_at is None or self.last_finished_at is None:
            return 0.0
        return (self.last_finished_at - self.first_started_at) * 1000


@runtime_checkable
class ProgressObserver(Protocol):
    """
    Protocol for progress observers.

    Implement this to receive status transitions during execution.
    """

    def on_progress(self, update: ProgressUpdate) -> None:
        """
        Called on every status transition.

        Args:
            update: The transition
        """
        ...


class NullProgressObserver:
    """No-op observer for when progress reporting is disabled."""

    def on_progress(self, update: ProgressUpdate) -> None:
        pass


class FunctionProgressObserver:
    """Adapts a plain callable to the observer protocol."""

    def __init__(self, fn: Callable[[ProgressUpdate], None]):
        self._fn = fn

    def on_progress(self, update: ProgressUpdate) -> None:
        self._fn(update)


class RecordingProgressObserver:
    """
    Keeps every transition plus the latest status per task.

    Useful for callers that render progress after the fact, and in tests.
    """

    def __init__(self) -> None:
        self.updates: list[ProgressUpdate] = []
        self.latest: dict[str, TaskStatus] = {}
        self.stats = ProgressStats()

    def on_progress(self, update: ProgressUpdate) -> None:
        self.updates.append(update)
        self.latest[update.task_id] = update.status

        if update.status == TaskStatus.IN_PROGRESS:
            self.stats.started += 1
            if self.stats.first_started_at is None:
                self.stats.first_started_at = update.started_at
        elif update.status in (TaskStatus.COMPLETED, TaskStatus.FAILED):
            if update.status == TaskStatus.COMPLETED:
                self.stats.completed += 1
            else:
                self.stats.failed += 1
            self.stats.last_finished_at = update.finished_at

    def history(self, task_id: str) -> list[TaskStatus]:
        """Statuses seen for one task, in order."""
        return [u.status for u in self.updates if u.task_id == task_id]

    def status_of(self, task_id: str) -> TaskStatus:
        return self.latest.get(task_id, TaskStatus.PENDING)


class CompositeProgressObserver:
    """
    Combines multiple observers.

    Forwards every update to every registered observer; a failing
    observer does not prevent delivery to the others.
    """

    def __init__(
        self,
        observers: list[ProgressObserver | Callable[[ProgressUpdate], None]] | None = None,
    ):
        self._observers: list[ProgressObserver] = []
        for observer in observers or []:
            self.add(observer)

    def add(self, observer: ProgressObserver | Callable[[ProgressUpdate], None]) -> None:
        """Add an observer (plain callables are wrapped)."""
        if not isinstance(observer, ProgressObserver):
            observer = FunctionProgressObserver(observer)
        self._observers.append(observer)

    def remove(self, observer: ProgressObserver) -> None:
        self._observers.remove(observer)

    def __len__(self) -> int:
        return len(self._observers)

    def on_progress(self, update: ProgressUpdate) -> None:
        for observer in self._observers:
            try:
                observer.on_progress(update)
            except Exception as e:
                logger.warning(f"Progress observer failed on {update.task_id}: {e}")


def started(task_id: str, message: str = "") -> ProgressUpdate:
    """Transition into ``in_progress``."""
    return ProgressUpdate(
        task_id=task_id,
        status=TaskStatus.IN_PROGRESS,
        percent_complete=0.0,
        message=message,
        started_at=time.time(),
    )


def finished(task_id: str, success: bool, message: str = "") -> ProgressUpdate:
    """Terminal transition: ``completed`` or ``failed``."""
    return ProgressUpdate(
        task_id=task_id,
        status=TaskStatus.COMPLETED if success else TaskStatus.FAILED,
        percent_complete=100.0 if success else 0.0,
        message=message,
        finished_at=time.time(),
    )


__all__ = [
    "CompositeProgressObserver",
    "FunctionProgressObserver",
    "NullProgressObserver",
    "ProgressObserver",
    "ProgressStats",
    "ProgressUpdate",
    "RecordingProgressObserver",
    "finished",
    "started",
]
