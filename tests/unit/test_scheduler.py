"""
Tests for dependency-aware scheduling.
"""

from __future__ import annotations

import asyncio

import pytest

from orchestration_engine.config import SchedulerConfig
from orchestration_engine.progress import RecordingProgressObserver
from orchestration_engine.scheduler import (
    DependencyResolver,
    ExecutionOutcome,
    GraphScheduler,
    ModeExecutor,
    ResultAggregator,
    SubtaskExecutor,
)
from orchestration_engine.types import (
    CircularDependencyError,
    DependencyGraph,
    SubTask,
    SubtaskExecutionError,
    TaskResult,
    TaskStatus,
    ValidationError,
)


def task(task_id, deps=(), mode="code"):
    return SubTask(id=task_id, description=f"work {task_id}", mode=mode, dependencies=deps)


class SlowExecutor:
    """Sleeps longer than any reasonable timeout."""

    async def execute(self, subtask, context):
        await asyncio.sleep(5)
        return ExecutionOutcome(success=True)


class ConcurrencyProbe:
    """Tracks how many executions overlap."""

    def __init__(self):
        self.active = 0
        self.peak = 0

    async def execute(self, subtask, context):
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        return ExecutionOutcome(success=True, output=subtask.id)


class TestResultAggregator:
    def test_aggregate_skips_missing(self):
        aggregator = ResultAggregator()
        aggregator.add_result("a", TaskResult(task_id="a", success=True))
        aggregator.add_result("b", TaskResult(task_id="b", success=False, error="x"))

        assert [r.task_id for r in aggregator.aggregate_results(["b", "zz", "a"])] == ["b", "a"]
        assert aggregator.get_result("zz") is None
        assert len(aggregator) == 2


class TestDependencyResolver:
    """Tests for level resolution."""

    def test_diamond_levels(self, diamond_graph):
        levels = DependencyResolver().resolve_dependencies(list(diamond_graph.nodes))
        assert [[t.id for t in level] for level in levels] == [["A"], ["B", "C"], ["D"]]

    def test_cycle_reports_remaining(self, cyclic_graph):
        with pytest.raises(CircularDependencyError) as exc_info:
            DependencyResolver().resolve_dependencies(list(cyclic_graph.nodes))
        assert exc_info.value.remaining == ["A", "B"]
        assert str(exc_info.value) == "Circular dependency detected: A, B"

    def test_unknown_dependency(self):
        with pytest.raises(ValidationError, match="Node ghost not found"):
            DependencyResolver().resolve_dependencies([task("a", ["ghost"])])

    def test_duplicate_ids(self):
        with pytest.raises(ValueError, match="Duplicate"):
            DependencyResolver().validate([task("a"), task("a")])


class TestExecuteDependencyGraph:
    """Tests for graph execution."""

    @pytest.mark.asyncio
    async def test_diamond_ordering(self, diamond_graph, recording_executor):
        """Every node starts only after its dependencies finish."""
        scheduler = GraphScheduler(executor=recording_executor)
        results = await scheduler.execute_dependency_graph(diamond_graph)

        ex = recording_executor
        assert {r.task_id for r in results} == {"A", "B", "C", "D"}
        assert all(r.success for r in results)
        assert ex.index("finish", "A") < ex.index("start", "B")
        assert ex.index("finish", "A") < ex.index("start", "C")
        assert ex.index("finish", "B") < ex.index("start", "D")
        assert ex.index("finish", "C") < ex.index("start", "D")
        assert results[0].task_id == "A"
        assert results[-1].task_id == "D"

    @pytest.mark.asyncio
    async def test_shared_dependency_runs_once(self, diamond_graph, recording_executor):
        scheduler = GraphScheduler(executor=recording_executor)
        results = await scheduler.execute_dependency_graph(diamond_graph)

        assert recording_executor.calls == {"A": 1, "B": 1, "C": 1, "D": 1}
        assert len(results) == 4

    @pytest.mark.asyncio
    async def test_dependency_results_passed(self, diamond_graph, recording_executor):
        scheduler = GraphScheduler(executor=recording_executor)
        await scheduler.execute_dependency_graph(diamond_graph)

        context = recording_executor.contexts["D"]
        assert set(context.dependency_results) == {"B", "C"}
        assert context.dependency_results["B"].output == "done B"
        assert not context.degraded
        assert "A" in {r.task_id for r in context.prior_results}

    @pytest.mark.asyncio
    async def test_cycle_raises_before_execution(self, cyclic_graph, recording_executor):
        scheduler = GraphScheduler(executor=recording_executor)
        with pytest.raises(CircularDependencyError):
            await scheduler.execute_dependency_graph(cyclic_graph)
        assert recording_executor.calls == {}

    @pytest.mark.asyncio
    async def test_unknown_dependency_raises(self, recording_executor):
        graph = DependencyGraph(nodes=(task("a"), task("b", ["missing"])))
        scheduler = GraphScheduler(executor=recording_executor)
        with pytest.raises(ValidationError):
            await scheduler.execute_dependency_graph(graph)
        assert recording_executor.calls == {}

    @pytest.mark.asyncio
    async def test_empty_graph(self):
        assert await GraphScheduler().execute_dependency_graph(DependencyGraph()) == []

    @pytest.mark.asyncio
    async def test_invalid_mode_fails_node_only(self):
        """An unknown mode fails that node; siblings still run."""
        graph = DependencyGraph(nodes=(task("a", mode="wizard"), task("b")))
        results = await GraphScheduler().execute_dependency_graph(graph)
        by_id = {r.task_id: r for r in results}

        assert not by_id["a"].success
        assert by_id["a"].error == "Invalid mode: wizard"
        assert by_id["b"].success
        assert by_id["b"].output == "Executed work b"
        assert by_id["b"].tokens_used == 100

    @pytest.mark.asyncio
    async def test_raising_executor_becomes_failed_result(self, diamond_graph, make_executor):
        executor = make_executor(raise_for={"B"})
        results = await GraphScheduler(executor=executor).execute_dependency_graph(diamond_graph)
        by_id = {r.task_id: r for r in results}

        assert not by_id["B"].success
        assert by_id["B"].error == "boom in B"
        assert by_id["C"].success

    @pytest.mark.asyncio
    async def test_subtask_execution_error(self):
        class Failing:
            async def execute(self, subtask, context):
                raise SubtaskExecutionError(subtask.id, "model refused")

        graph = DependencyGraph(nodes=(task("a"),))
        results = await GraphScheduler(executor=Failing()).execute_dependency_graph(graph)
        assert results[0].error == "model refused"

    @pytest.mark.asyncio
    async def test_timeout(self):
        config = SchedulerConfig(node_timeout_seconds=0.01)
        graph = DependencyGraph(nodes=(task("a"),))
        results = await GraphScheduler(SlowExecutor(), config).execute_dependency_graph(graph)

        assert not results[0].success
        assert results[0].error == "Timed out after 0.01s"

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self):
        probe = ConcurrencyProbe()
        graph = DependencyGraph(nodes=tuple(task(f"t{i}") for i in range(6)))
        config = SchedulerConfig(max_concurrency=2)
        results = await GraphScheduler(probe, config).execute_dependency_graph(graph)

        assert len(results) == 6
        assert probe.peak <= 2

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            GraphScheduler(config=SchedulerConfig(max_concurrency=0))


class TestDependencyFailurePolicy:
    """Behavior of dependents when a dependency fails."""

    @pytest.mark.asyncio
    async def test_run_policy(self, diamond_graph, make_executor):
        """Default: dependents still run and see the failed result."""
        executor = make_executor(fail={"B": "broken"})
        results = await GraphScheduler(executor=executor).execute_dependency_graph(diamond_graph)

        assert executor.calls["D"] == 1
        context = executor.contexts["D"]
        assert context.failed_dependencies == ("B",)
        assert not context.dependency_results["B"].success
        assert {r.task_id for r in results if not r.success} == {"B"}

    @pytest.mark.asyncio
    async def test_degraded_policy(self, diamond_graph, make_executor):
        executor = make_executor(fail={"B": "broken"})
        config = SchedulerConfig(dependency_failure_policy="degraded")
        await GraphScheduler(executor, config).execute_dependency_graph(diamond_graph)

        context = executor.contexts["D"]
        assert context.degraded
        assert set(context.dependency_results) == {"C"}

    @pytest.mark.asyncio
    async def test_skip_policy(self, diamond_graph, make_executor):
        executor = make_executor(fail={"B": "broken"})
        observer = RecordingProgressObserver()
        config = SchedulerConfig(dependency_failure_policy="skip")
        scheduler = GraphScheduler(executor, config, observers=[observer])
        results = await scheduler.execute_dependency_graph(diamond_graph)
        by_id = {r.task_id: r for r in results}

        assert "D" not in executor.calls
        assert not by_id["D"].success
        assert by_id["D"].error == "Skipped: dependency B failed"
        assert observer.history("D") == [TaskStatus.IN_PROGRESS, TaskStatus.FAILED]


class TestProgressEvents:
    @pytest.mark.asyncio
    async def test_transitions_per_node(self, diamond_graph, recording_executor):
        observer = RecordingProgressObserver()
        scheduler = GraphScheduler(executor=recording_executor)
        scheduler.on_progress(observer)
        await scheduler.execute_dependency_graph(diamond_graph)

        for node_id in "ABCD":
            assert observer.history(node_id) == [TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED]
        assert observer.stats.completed == 4

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_break_run(self, diamond_graph, recording_executor):
        def broken(update):
            raise RuntimeError("observer down")

        scheduler = GraphScheduler(executor=recording_executor, observers=[])
        scheduler.on_progress(broken)
        results = await scheduler.execute_dependency_graph(diamond_graph)
        assert all(r.success for r in results)


class TestParallelAndSequential:
    @pytest.mark.asyncio
    async def test_parallel_keeps_input_order(self, recording_executor):
        scheduler = GraphScheduler(executor=recording_executor)
        results = await scheduler.execute_parallel([task("x"), task("y"), task("z")])
        assert [r.task_id for r in results] == ["x", "y", "z"]

    @pytest.mark.asyncio
    async def test_sequential_sees_only_earlier_results(self, recording_executor):
        scheduler = GraphScheduler(executor=recording_executor)
        results = await scheduler.execute_sequential([task("x"), task("y", ["x"]), task("z")])

        assert [r.task_id for r in results] == ["x", "y", "z"]
        ex = recording_executor
        assert ex.index("finish", "x") < ex.index("start", "y") < ex.index("start", "z")
        assert ex.contexts["x"].prior_results == ()
        assert [r.task_id for r in ex.contexts["z"].prior_results] == ["x", "y"]
        assert set(ex.contexts["y"].dependency_results) == {"x"}

    @pytest.mark.asyncio
    async def test_results_reach_shared_aggregator(self, recording_executor):
        scheduler = GraphScheduler(executor=recording_executor)
        await scheduler.execute_sequential([task("x")])
        assert scheduler.aggregator.get_result("x").success

    @pytest.mark.asyncio
    async def test_aggregator_holds_latest_run_only(self, recording_executor):
        scheduler = GraphScheduler(executor=recording_executor)
        await scheduler.execute_sequential([task("x")])
        await scheduler.execute_parallel([task("y")])

        assert scheduler.aggregator.get_result("x") is None
        assert [r.task_id for r in scheduler.aggregator.get_all_results()] == ["y"]


def test_executors_satisfy_protocol(registry):
    assert isinstance(ModeExecutor(registry), SubtaskExecutor)
