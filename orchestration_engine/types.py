"""
Shared type definitions for the orchestration engine.

Analysis results are pydantic models (validated, frozen); plan and
execution records are frozen dataclasses. Nothing here is mutated after
construction: the scheduler tracks execution state on its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ModeId(str, Enum):
    """Built-in execution modes."""

    CODE = "code"
    ARCHITECT = "architect"
    DEBUG = "debug"
    ASK = "ask"
    ORCHESTRATOR = "orchestrator"


DEFAULT_MODE = ModeId.CODE.value


class ComplexityFactorKind(str, Enum):
    """Signals that raise a task's complexity score."""

    MULTI_STEP = "multi_step"
    CROSS_DOMAIN = "cross_domain"
    FILE_COMPLEXITY = "file_complexity"
    INTEGRATION_REQUIRED = "integration_required"
    PERFORMANCE_CRITICAL = "performance_critical"
    SECURITY_SENSITIVE = "security_sensitive"
    LEGACY_CODE = "legacy_code"
    EXTERNAL_DEPENDENCIES = "external_dependencies"


class TaskStatus(str, Enum):
    """Lifecycle of a scheduled subtask."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ComplexityFactor(BaseModel):
    """One detected complexity signal and its weight."""

    model_config = ConfigDict(frozen=True)

    kind: ComplexityFactorKind
    weight: float
    note: str = ""


class TaskAnalysis(BaseModel):
    """
    Result of analyzing a free-form task description.

    ``required_modes`` is an ordered, duplicate-free list: the planner uses
    the position of each mode as the subtask priority.
    """

    model_config = ConfigDict(frozen=True)

    complexity: float = Field(ge=0.0, le=10.0)
    factors: list[ComplexityFactor] = Field(default_factory=list)
    required_modes: list[str] = Field(default_factory=list)
    requires_orchestration: bool = False
    estimated_subtask_count: int = 0
    suggested_approach: str = ""

    @property
    def factor_kinds(self) -> set[ComplexityFactorKind]:
        """Kinds of all detected factors."""
        return {f.kind for f in self.factors}


@dataclass(frozen=True)
class SubTask:
    """A unit of work produced by the planner."""

    id: str
    description: str
    mode: str
    priority: int = 1
    dependencies: tuple[str, ...] = ()
    estimated_complexity: float = 0.0

    def __post_init__(self) -> None:
        # Accept any iterable for dependencies but store an immutable tuple
        object.__setattr__(self, "dependencies", tuple(self.dependencies))


@dataclass(frozen=True)
class DependencyEdge:
    """A "must complete before" relation between two subtasks."""

    source: str
    target: str
    kind: str = "sequential"


@dataclass(frozen=True)
class DependencyGraph:
    """Subtasks plus the edges induced by their dependencies."""

    nodes: tuple[SubTask, ...] = ()
    edges: tuple[DependencyEdge, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "edges", tuple(self.edges))

    def node(self, node_id: str) -> SubTask | None:
        """Look up a node by id."""
        for candidate in self.nodes:
            if candidate.id == node_id:
                return candidate
        return None

    @property
    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]


@dataclass(frozen=True)
class TaskResult:
    """Terminal outcome of executing one subtask."""

    task_id: str
    success: bool
    output: str | None = None
    error: str | None = None
    duration_ms: float = 0.0
    tokens_used: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "task_id": self.task_id,
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "tokens_used": self.tokens_used,
        }


@dataclass
class OrchestrationResult:
    """Aggregate report for one orchestration request."""

    success: bool
    task_id: str
    subtask_results: list[TaskResult] = field(default_factory=list)
    total_duration_ms: float = 0.0
    total_tokens_used: int = 0
    summary: str = ""
    errors: list[str] = field(default_factory=list)

    @property
    def completed_subtasks(self) -> list[TaskResult]:
        return [r for r in self.subtask_results if r.success]

    @property
    def failed_subtasks(self) -> list[TaskResult]:
        return [r for r in self.subtask_results if not r.success]

    @property
    def partial_success(self) -> bool:
        """True when some, but not all, subtasks succeeded."""
        return bool(self.completed_subtasks) and bool(self.failed_subtasks)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "success": self.success,
            "task_id": self.task_id,
            "subtask_results": [r.to_dict() for r in self.subtask_results],
            "total_duration_ms": self.total_duration_ms,
            "total_tokens_used": self.total_tokens_used,
            "summary": self.summary,
            "errors": list(self.errors),
        }


def format_summary(results: list[TaskResult]) -> str:
    """Fixed-format summary line consumed by the comment renderer."""
    succeeded = sum(1 for r in results if r.success)
    failed = len(results) - succeeded
    return f"Completed {succeeded}/{len(results)} subtasks. {failed} failed."


# Error classes


class OrchestrationError(Exception):
    """Base class for orchestration errors."""

    pass


class ValidationError(OrchestrationError):
    """A subtask id referenced during scheduling does not exist."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node {node_id} not found")


class CircularDependencyError(OrchestrationError):
    """The dependency graph contains a cycle."""

    def __init__(self, remaining: list[str] | None = None):
        self.remaining = sorted(remaining or [])
        detail = f": {', '.join(self.remaining)}" if self.remaining else ""
        super().__init__(f"Circular dependency detected{detail}")


class SubtaskExecutionError(OrchestrationError):
    """Execution of a single subtask failed; never escapes the scheduler."""

    def __init__(self, task_id: str, message: str):
        self.task_id = task_id
        super().__init__(message)


class ModeNotFoundError(OrchestrationError):
    """Lookup of an unknown mode id."""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Mode not found: {slug}")
