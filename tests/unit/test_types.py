"""
Tests for shared types and the error taxonomy.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from orchestration_engine.types import (
    CircularDependencyError,
    ComplexityFactor,
    ComplexityFactorKind,
    DependencyGraph,
    ModeNotFoundError,
    OrchestrationError,
    OrchestrationResult,
    SubTask,
    SubtaskExecutionError,
    TaskAnalysis,
    TaskResult,
    ValidationError,
    format_summary,
)


class TestTaskAnalysis:
    """Tests for TaskAnalysis model."""

    def test_complexity_bounds_enforced(self):
        """Complexity outside [0, 10] is rejected."""
        with pytest.raises(PydanticValidationError):
            TaskAnalysis(complexity=10.5)
        with pytest.raises(PydanticValidationError):
            TaskAnalysis(complexity=-1)

    def test_factor_kinds(self):
        """factor_kinds collects detected kinds."""
        analysis = TaskAnalysis(
            complexity=4.0,
            factors=[
                ComplexityFactor(kind=ComplexityFactorKind.SECURITY_SENSITIVE, weight=3.5),
                ComplexityFactor(kind=ComplexityFactorKind.MULTI_STEP, weight=2.5),
            ],
        )
        assert analysis.factor_kinds == {
            ComplexityFactorKind.SECURITY_SENSITIVE,
            ComplexityFactorKind.MULTI_STEP,
        }

    def test_frozen(self):
        """Analyses are immutable."""
        analysis = TaskAnalysis(complexity=1.0)
        with pytest.raises(PydanticValidationError):
            analysis.complexity = 2.0


class TestSubTask:
    """Tests for SubTask dataclass."""

    def test_dependencies_stored_as_tuple(self):
        """List dependencies are normalized to a tuple."""
        task = SubTask(id="b", description="x", mode="code", dependencies=["a"])
        assert task.dependencies == ("a",)

    def test_immutable(self):
        """SubTasks never mutate after creation."""
        task = SubTask(id="a", description="x", mode="code")
        with pytest.raises(AttributeError):
            task.mode = "debug"


class TestDependencyGraph:
    """Tests for DependencyGraph lookups."""

    def test_node_lookup(self):
        """node() finds by id and returns None for unknown ids."""
        graph = DependencyGraph(nodes=[SubTask(id="a", description="x", mode="code")])
        assert graph.node("a").id == "a"
        assert graph.node("missing") is None
        assert graph.node_ids == ["a"]


class TestOrchestrationResult:
    """Tests for the aggregate report."""

    def test_completed_and_failed_partition(self):
        """Results are partitioned by success."""
        ok = TaskResult(task_id="a", success=True, output="done", tokens_used=100)
        bad = TaskResult(task_id="b", success=False, error="Invalid mode: x")
        result = OrchestrationResult(success=False, task_id="t", subtask_results=[ok, bad])

        assert result.completed_subtasks == [ok]
        assert result.failed_subtasks == [bad]
        assert result.partial_success

    def test_to_dict(self):
        """Serialization includes nested results."""
        ok = TaskResult(task_id="a", success=True, output="done")
        result = OrchestrationResult(
            success=True, task_id="t", subtask_results=[ok], summary=format_summary([ok])
        )
        data = result.to_dict()
        assert data["subtask_results"][0]["task_id"] == "a"
        assert data["summary"] == "Completed 1/1 subtasks. 0 failed."


class TestFormatSummary:
    """Tests for the fixed-format summary line."""

    def test_mixed_results(self):
        results = [
            TaskResult(task_id="a", success=True),
            TaskResult(task_id="b", success=False),
            TaskResult(task_id="c", success=True),
        ]
        assert format_summary(results) == "Completed 2/3 subtasks. 1 failed."

    def test_empty(self):
        assert format_summary([]) == "Completed 0/0 subtasks. 0 failed."


class TestErrors:
    """Tests for the error taxonomy."""

    def test_hierarchy(self):
        """All engine errors share a base class."""
        for error in (
            ValidationError("x"),
            CircularDependencyError(["a"]),
            SubtaskExecutionError("a", "failed"),
            ModeNotFoundError("x"),
        ):
            assert isinstance(error, OrchestrationError)

    def test_validation_error_message(self):
        assert str(ValidationError("n1")) == "Node n1 not found"

    def test_circular_dependency_lists_remaining(self):
        """Remaining ids are sorted and included in the message."""
        error = CircularDependencyError(["b", "a"])
        assert error.remaining == ["a", "b"]
        assert str(error) == "Circular dependency detected: a, b"

    def test_circular_dependency_without_ids(self):
        assert str(CircularDependencyError()) == "Circular dependency detected"

    def test_mode_not_found(self):
        error = ModeNotFoundError("wizard")
        assert error.slug == "wizard"
        assert "wizard" in str(error)
