"""
Subtask planning.

Turns a TaskAnalysis into subtasks with declared dependencies, the
DependencyGraph the scheduler consumes, and an ExecutionPlan (phases plus
critical path) for reporting.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Literal

from .scheduler import DependencyResolver
from .types import DEFAULT_MODE, DependencyEdge, DependencyGraph, ModeId, SubTask, TaskAnalysis

logger = logging.getLogger(__name__)

SIMPLE_TASK_ID = "simple-task-1"
INTEGRATION_COMPLEXITY = 3.0
PHASE_DURATION_SECONDS = 60

MODE_TASK_TEMPLATES: dict[str, str] = {
    ModeId.ARCHITECT.value: "Design architecture and system structure for: {approach}",
    ModeId.CODE.value: "Implement code solution for: {approach}",
    ModeId.DEBUG.value: "Debug and troubleshoot issues in: {approach}",
    ModeId.ASK.value: "Research and gather information about: {approach}",
    ModeId.ORCHESTRATOR.value: "Coordinate and manage execution of: {approach}",
}
FALLBACK_TASK_TEMPLATE = "Execute task in {mode} mode: {approach}"


@dataclass(frozen=True)
class ExecutionPhase:
    """One dependency level of a plan."""

    phase_id: str
    name: str
    subtasks: tuple[str, ...]
    execution_type: Literal["parallel", "sequential"]
    estimated_duration: int = PHASE_DURATION_SECONDS

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase_id": self.phase_id,
            "name": self.name,
            "subtasks": list(self.subtasks),
            "execution_type": self.execution_type,
            "estimated_duration": self.estimated_duration,
        }


@dataclass(frozen=True)
class ExecutionPlan:
    """Phases, dependency map and critical path for a set of subtasks."""

    phases: tuple[ExecutionPhase, ...] = ()
    dependencies: dict[str, list[str]] = field(default_factory=dict)
    critical_path: tuple[str, ...] = ()
    estimated_total_duration: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "phases": [p.to_dict() for p in self.phases],
            "dependencies": {k: list(v) for k, v in self.dependencies.items()},
            "critical_path": list(self.critical_path),
            "estimated_total_duration": self.estimated_total_duration,
        }


class SubtaskPlanner:
    """
    Decompose an analysis into a chain of per-mode subtasks.

    Example:
        >>> planner = SubtaskPlanner()
        >>> subtasks = planner.generate_subtasks(analysis)
        >>> graph = planner.build_graph(subtasks)
    """

    def __init__(self, resolver: DependencyResolver | None = None):
        self.resolver = resolver or DependencyResolver()

    def generate_subtasks(
        self, analysis: TaskAnalysis, description: str | None = None
    ) -> list[SubTask]:
        """
        Create subtasks for an analysis.

        A task that does not need orchestration becomes exactly one
        subtask. Otherwise there is one subtask per required mode, each
        depending on the previous one, plus a final integration subtask
        when more than one mode is involved.

        Args:
            analysis: Result of TaskAnalyzer.analyze_task
            description: Original task text, used for the single-subtask case

        Returns:
            Subtasks in planning order
        """
        modes = list(analysis.required_modes) or [DEFAULT_MODE]

        if not analysis.requires_orchestration:
            return [
                SubTask(
                    id=SIMPLE_TASK_ID,
                    description=description or "Execute simple task",
                    mode=modes[0],
                    priority=1,
                    estimated_complexity=min(10.0, analysis.complexity),
                )
            ]

        per_mode_complexity = float(min(10, math.floor(analysis.complexity / len(modes))))
        subtasks: list[SubTask] = []
        for index, mode in enumerate(modes):
            subtasks.append(
                SubTask(
                    id=f"subtask-{index + 1}",
                    description=self.describe(mode, analysis),
                    mode=mode,
                    priority=index + 1,
                    dependencies=(f"subtask-{index}",) if index > 0 else (),
                    estimated_complexity=per_mode_complexity,
                )
            )

        if len(modes) > 1:
            subtasks.append(
                SubTask(
                    id=f"integration-{len(modes) + 1}",
                    description="Integrate and test all components",
                    mode=DEFAULT_MODE,
                    priority=len(modes) + 1,
                    dependencies=tuple(t.id for t in subtasks),
                    estimated_complexity=INTEGRATION_COMPLEXITY,
                )
            )

        logger.info(f"Planned {len(subtasks)} subtasks across modes {modes}")
        return subtasks

    def describe(self, mode: str, analysis: TaskAnalysis) -> str:
        """Synthesize a subtask description from the mode and suggested approach."""
        approach = analysis.suggested_approach or "Complete the task"
        template = MODE_TASK_TEMPLATES.get(mode, FALLBACK_TASK_TEMPLATE)
        return template.format(mode=mode, approach=approach)

    def build_graph(self, subtasks: list[SubTask]) -> DependencyGraph:
        """Graph with one sequential edge per declared dependency."""
        edges = [
            DependencyEdge(source=dep, target=task.id)
            for task in subtasks
            for dep in task.dependencies
        ]
        return DependencyGraph(nodes=tuple(subtasks), edges=tuple(edges))

    def plan_execution(self, subtasks: list[SubTask]) -> ExecutionPlan:
        """
        Group subtasks into phases and find the critical path.

        Raises:
            ValidationError: If a dependency refers to an unknown subtask
            CircularDependencyError: If the dependencies contain a cycle
        """
        levels = self.resolver.resolve_dependencies(subtasks)

        phases = tuple(
            ExecutionPhase(
                phase_id=f"phase-{number}",
                name="Initial Phase" if number == 1 else f"Phase {number}",
                subtasks=tuple(t.id for t in level),
                execution_type="parallel" if len(level) > 1 else "sequential",
            )
            for number, level in enumerate(levels, start=1)
        )
        dependencies = {t.id: list(t.dependencies) for t in subtasks if t.dependencies}

        return ExecutionPlan(
            phases=phases,
            dependencies=dependencies,
            critical_path=tuple(self.critical_path(levels)),
            estimated_total_duration=sum(p.estimated_duration for p in phases),
        )

    def critical_path(self, levels: list[list[SubTask]]) -> list[str]:
        """
        Longest dependency chain, weighted by estimated complexity.

        Equal weights prefer the chain with more subtasks, then the subtask
        that appears first.
        """
        # (total complexity, chain length) of the heaviest chain ending at each id
        best: dict[str, tuple[float, int]] = {}
        previous: dict[str, str | None] = {}

        for level in levels:
            for task in level:
                parent = None
                for dep in task.dependencies:
                    if parent is None or best[dep] > best[parent]:
                        parent = dep
                previous[task.id] = parent
                weight, length = best[parent] if parent else (0.0, 0)
                best[task.id] = (weight + task.estimated_complexity, length + 1)

        if not best:
            return []

        end: str | None = None
        for task_id, weight in best.items():
            if end is None or weight > best[end]:
                end = task_id

        path: list[str] = []
        while end is not None:
            path.append(end)
            end = previous[end]
        return list(reversed(path))


__all__ = [
    "ExecutionPhase",
    "ExecutionPlan",
    "MODE_TASK_TEMPLATES",
    "SubtaskPlanner",
]
