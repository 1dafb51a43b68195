"""
Tests for progress reporting.
"""

from __future__ import annotations

import logging

from orchestration_engine.progress import (
    CompositeProgressObserver,
    FunctionProgressObserver,
    NullProgressObserver,
    ProgressObserver,
    ProgressStats,
    RecordingProgressObserver,
    finished,
    started,
)
from orchestration_engine.types import TaskStatus


class TestTransitions:
    """Tests for the update helpers."""

    def test_started(self):
        update = started("a", "working")
        assert update.status == TaskStatus.IN_PROGRESS
        assert update.percent_complete == 0.0
        assert update.started_at is not None
        assert update.finished_at is None

    def test_finished_success(self):
        update = finished("a", True, "done")
        assert update.status == TaskStatus.COMPLETED
        assert update.percent_complete == 100.0
        assert update.finished_at is not None

    def test_finished_failure(self):
        assert finished("a", False).status == TaskStatus.FAILED


class TestRecordingProgressObserver:
    def test_records_history_and_stats(self):
        observer = RecordingProgressObserver()
        observer.on_progress(started("a"))
        observer.on_progress(started("b"))
        observer.on_progress(finished("a", True))
        observer.on_progress(finished("b", False))

        assert observer.history("a") == [TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED]
        assert observer.status_of("b") == TaskStatus.FAILED
        assert observer.stats.started == 2
        assert observer.stats.completed == 1
        assert observer.stats.failed == 1
        assert observer.stats.finished == 2
        assert observer.stats.elapsed_ms >= 0

    def test_unknown_task_is_pending(self):
        assert RecordingProgressObserver().status_of("zz") == TaskStatus.PENDING

    def test_elapsed_without_events(self):
        assert ProgressStats().elapsed_ms == 0.0


class TestCompositeProgressObserver:
    """Tests for fan-out."""

    def test_forwards_to_all(self):
        first = RecordingProgressObserver()
        second = RecordingProgressObserver()
        composite = CompositeProgressObserver([first, second])

        composite.on_progress(started("a"))

        assert len(first.updates) == 1
        assert len(second.updates) == 1

    def test_callables_are_wrapped(self):
        seen = []
        composite = CompositeProgressObserver()
        composite.add(seen.append)
        composite.on_progress(started("a"))

        assert [u.task_id for u in seen] == ["a"]
        assert len(composite) == 1

    def test_constructor_wraps_callables(self):
        seen = []
        composite = CompositeProgressObserver([seen.append, RecordingProgressObserver()])
        composite.on_progress(started("a"))

        assert [u.task_id for u in seen] == ["a"]
        assert len(composite) == 2

    def test_remove(self):
        observer = NullProgressObserver()
        composite = CompositeProgressObserver([observer])
        composite.remove(observer)
        assert len(composite) == 0

    def test_failing_observer_is_isolated(self, caplog):
        """One broken observer does not stop delivery to the rest."""

        def broken(update):
            raise RuntimeError("nope")

        recorder = RecordingProgressObserver()
        composite = CompositeProgressObserver()
        composite.add(broken)
        composite.add(recorder)

        with caplog.at_level(logging.WARNING, logger="orchestration_engine.progress"):
            composite.on_progress(started("a"))

        assert len(recorder.updates) == 1
        assert "nope" in caplog.text


def test_protocol_conformance():
    assert isinstance(NullProgressObserver(), ProgressObserver)
    assert isinstance(RecordingProgressObserver(), ProgressObserver)
    assert isinstance(FunctionProgressObserver(print), ProgressObserver)
