"""
Property-based tests for task analysis and graph scheduling.
"""

import asyncio
import sys
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from orchestration_engine.complexity_classifier import (
    SIMPLE_TASK_CEILING,
    TaskAnalyzer,
    determine_required_modes,
)
from orchestration_engine.config import SchedulerConfig
from orchestration_engine.mode_selector import ModeSelector
from orchestration_engine.modes import ModeRegistry
from orchestration_engine.planner import SubtaskPlanner
from orchestration_engine.scheduler import ExecutionOutcome, GraphScheduler
from orchestration_engine.types import DependencyGraph, SubTask

words = st.sampled_from(
    [
        "implement",
        "design",
        "debug",
        "api",
        "database",
        "frontend",
        "backend",
        "security",
        "legacy",
        "then",
        "and",
        "tests",
        "explain",
        "entire",
        "the",
        "module",
        "cache",
    ]
)
descriptions = st.lists(words, max_size=40).map(" ".join)


@st.composite
def dags(draw):
    """Random DAGs: each node may only depend on earlier nodes."""
    size = draw(st.integers(min_value=0, max_value=12))
    nodes = []
    for i in range(size):
        deps = set()
        if i:
            deps = draw(st.sets(st.integers(min_value=0, max_value=i - 1), max_size=3))
        nodes.append(
            SubTask(
                id=f"n{i}",
                description=f"node {i}",
                mode="code",
                dependencies=tuple(f"n{d}" for d in sorted(deps)),
            )
        )
    # Shuffle declaration order so the scheduler cannot rely on it
    order = draw(st.permutations(nodes))
    return DependencyGraph(nodes=tuple(order))


class OrderRecorder:
    def __init__(self):
        self.finished = []
        self.calls = {}

    async def execute(self, subtask, context):
        self.calls[subtask.id] = self.calls.get(subtask.id, 0) + 1
        for dep in subtask.dependencies:
            assert dep in self.finished
        await asyncio.sleep(0)
        self.finished.append(subtask.id)
        return ExecutionOutcome(success=True)


class TestAnalysisProperties:
    """Invariants of the complexity analysis."""

    @given(st.text(max_size=400))
    @settings(max_examples=100)
    def test_analysis_bounds(self, description):
        """Scores are clamped and modes are never empty or repeated."""
        analysis = TaskAnalyzer().analyze_task(description)

        assert 0.0 <= analysis.complexity <= 10.0
        assert analysis.required_modes
        assert len(set(analysis.required_modes)) == len(analysis.required_modes)
        assert analysis.requires_orchestration == (analysis.complexity >= 5.0)

    @given(descriptions)
    @settings(max_examples=100)
    def test_short_simple_tasks_stay_simple(self, tail):
        """Short descriptions in simple-task vocabulary stay in the simple band."""
        description = f"Quick fix {tail}"[:99]
        analysis = TaskAnalyzer().analyze_task(description)

        assert analysis.complexity <= SIMPLE_TASK_CEILING
        assert not analysis.requires_orchestration

    @given(st.text(max_size=200))
    @settings(max_examples=100)
    def test_required_modes_from_known_set(self, description):
        known = set(ModeRegistry.default().slugs())
        assert set(determine_required_modes(description)) <= known

    @given(st.text(max_size=200))
    @settings(max_examples=100)
    def test_selector_always_returns_registered_mode(self, description):
        registry = ModeRegistry.default()
        assert ModeSelector(registry).select_optimal_mode(description) in registry


class TestPlanningProperties:
    @given(descriptions)
    @settings(max_examples=50)
    def test_plans_are_acyclic_and_complete(self, description):
        """Every planned subtask lands in exactly one phase."""
        analyzer = TaskAnalyzer()
        planner = SubtaskPlanner()
        subtasks = planner.generate_subtasks(analyzer.analyze_task(description), description)
        plan = planner.plan_execution(subtasks)

        phased = [task_id for phase in plan.phases for task_id in phase.subtasks]
        assert sorted(phased) == sorted(t.id for t in subtasks)
        assert set(plan.critical_path) <= set(phased)


class TestSchedulerProperties:
    """Graph execution invariants over random DAGs."""

    @given(dags(), st.integers(min_value=1, max_value=4))
    @settings(max_examples=50, deadline=None)
    def test_each_node_once_after_dependencies(self, graph, max_concurrency):
        """Every node runs exactly once and only after its dependencies finished."""
        recorder = OrderRecorder()
        scheduler = GraphScheduler(recorder, SchedulerConfig(max_concurrency=max_concurrency))
        results = asyncio.run(scheduler.execute_dependency_graph(graph))

        assert sorted(r.task_id for r in results) == sorted(graph.node_ids)
        assert all(count == 1 for count in recorder.calls.values())
        assert all(r.success for r in results)
