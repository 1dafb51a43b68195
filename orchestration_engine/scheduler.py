"""
Dependency-aware subtask scheduling.

Executes a DependencyGraph with bounded concurrency. Each node id maps to
exactly one asyncio task, installed before any dependency walk starts, so
a dependency shared by several dependents runs once and every dependent
awaits the same handle.

Topology errors (unknown node, cycle) are detected before anything runs
and raised. Everything that goes wrong inside a single node becomes a
failed TaskResult.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from .config import SchedulerConfig
from .modes import ModeRegistry
from .progress import CompositeProgressObserver, ProgressObserver, ProgressUpdate, finished, started
from .types import (
    CircularDependencyError,
    DependencyGraph,
    SubTask,
    SubtaskExecutionError,
    TaskResult,
    ValidationError,
)

logger = logging.getLogger(__name__)

SIMULATED_TOKENS_PER_TASK = 100


@dataclass(frozen=True)
class ExecutionOutcome:
    """What an executor reports back for one subtask."""

    success: bool
    output: str | None = None
    error: str | None = None
    tokens_used: int = 0


@dataclass(frozen=True)
class ExecutionContext:
    """
    Everything an executor may look at while running a subtask.

    ``dependency_results`` follows the dependency failure policy: under
    "degraded" it only holds successful results. ``prior_results`` is the
    aggregator content at start time (strictly earlier results).
    """

    subtask: SubTask
    dependency_results: dict[str, TaskResult] = field(default_factory=dict)
    failed_dependencies: tuple[str, ...] = ()
    prior_results: tuple[TaskResult, ...] = ()
    task_context: Any = None

    @property
    def degraded(self) -> bool:
        """True when at least one dependency did not succeed."""
        return bool(self.failed_dependencies)


@runtime_checkable
class SubtaskExecutor(Protocol):
    """Runs a single subtask."""

    async def execute(self, subtask: SubTask, context: ExecutionContext) -> ExecutionOutcome:
        ...


class ModeExecutor:
    """
    Default executor: validates the subtask mode and reports it as done.

    Stands in for a model-backed executor. An unregistered mode is a
    per-node failure, never an exception out of the scheduler.
    """

    def __init__(
        self,
        registry: ModeRegistry | None = None,
        delay_seconds: float = 0.0,
        tokens_per_task: int = SIMULATED_TOKENS_PER_TASK,
    ):
        self.registry = registry or ModeRegistry.default()
        self.delay_seconds = delay_seconds
        self.tokens_per_task = tokens_per_task

    async def execute(self, subtask: SubTask, context: ExecutionContext) -> ExecutionOutcome:
        await asyncio.sleep(self.delay_seconds)

        if subtask.mode not in self.registry:
            message = f"Invalid mode: {subtask.mode}"
            return ExecutionOutcome(success=False, output=message, error=message)

        return ExecutionOutcome(
            success=True,
            output=f"Executed {subtask.description}",
            tokens_used=self.tokens_per_task,
        )


class ResultAggregator:
    """Keyed collection of finished results."""

    def __init__(self) -> None:
        self._results: dict[str, TaskResult] = {}

    def add_result(self, task_id: str, result: TaskResult) -> None:
        self._results[task_id] = result

    def get_result(self, task_id: str) -> TaskResult | None:
        return self._results.get(task_id)

    def get_all_results(self) -> list[TaskResult]:
        """Results in insertion order."""
        return list(self._results.values())

    def aggregate_results(self, task_ids: Iterable[str]) -> list[TaskResult]:
        """Results for the given ids, skipping ids without a result."""
        return [self._results[tid] for tid in task_ids if tid in self._results]

    def __len__(self) -> int:
        return len(self._results)


class DependencyResolver:
    """Groups subtasks into dependency levels."""

    def validate(self, subtasks: list[SubTask]) -> None:
        """
        Check that ids are unique and every dependency refers to a known id.

        Raises:
            ValueError: If two subtasks share an id
            ValidationError: If a dependency id is unknown
        """
        seen: set[str] = set()
        for task in subtasks:
            if task.id in seen:
                raise ValueError(f"Duplicate subtask id: {task.id}")
            seen.add(task.id)
        for task in subtasks:
            for dep in task.dependencies:
                if dep not in seen:
                    raise ValidationError(dep)

    def resolve_dependencies(self, subtasks: list[SubTask]) -> list[list[SubTask]]:
        """
        Level-by-level resolution.

        A subtask joins the current level once all of its dependencies are
        in earlier levels. A round that admits nothing while subtasks remain
        means there is a cycle.

        Raises:
            ValidationError: If a dependency id is unknown
            CircularDependencyError: If the dependencies contain a cycle
        """
        self.validate(subtasks)

        levels: list[list[SubTask]] = []
        processed: set[str] = set()

        while len(processed) < len(subtasks):
            level = [
                task
                for task in subtasks
                if task.id not in processed
                and all(dep in processed for dep in task.dependencies)
            ]
            if not level:
                remaining = [t.id for t in subtasks if t.id not in processed]
                raise CircularDependencyError(remaining)

            levels.append(level)
            processed.update(task.id for task in level)

        return levels


class GraphScheduler:
    """
    Executes subtasks in parallel, in sequence, or as a dependency graph.

    ``aggregator`` holds the results of the most recent run only.

    Example:
        >>> scheduler = GraphScheduler()
        >>> results = await scheduler.execute_dependency_graph(graph)
    """

    def __init__(
        self,
        executor: SubtaskExecutor | None = None,
        config: SchedulerConfig | None = None,
        observers: list[ProgressObserver | Callable[[ProgressUpdate], None]] | None = None,
        registry: ModeRegistry | None = None,
    ):
        self.config = config or SchedulerConfig()
        if self.config.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.executor = executor or ModeExecutor(registry)
        self.resolver = DependencyResolver()
        self.aggregator = ResultAggregator()
        self._observers = CompositeProgressObserver(observers)

    def on_progress(self, observer: ProgressObserver | Callable[[ProgressUpdate], None]) -> None:
        """Register a progress observer (a plain callable also works)."""
        self._observers.add(observer)

    def resolve_execution_order(self, subtasks: list[SubTask]) -> list[list[SubTask]]:
        return self.resolver.resolve_dependencies(subtasks)

    async def execute_parallel(self, subtasks: list[SubTask]) -> list[TaskResult]:
        """
        Run independent subtasks concurrently.

        Results come back in input order; there is no ordering guarantee
        between the executions themselves.
        """
        self.aggregator = ResultAggregator()
        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        results = list(
            await asyncio.gather(
                *[self._run_subtask(task, ExecutionContext(subtask=task), semaphore) for task in subtasks]
            )
        )
        for result in results:
            self.aggregator.add_result(result.task_id, result)
        return results

    async def execute_sequential(self, subtasks: list[SubTask]) -> list[TaskResult]:
        """
        Run subtasks strictly in list order.

        Each subtask sees the results of the subtasks before it, and only
        those.
        """
        self.aggregator = ResultAggregator()
        aggregator = ResultAggregator()
        results: list[TaskResult] = []

        for task in subtasks:
            known = aggregator.aggregate_results(task.dependencies)
            context = ExecutionContext(
                subtask=task,
                dependency_results={r.task_id: r for r in known},
                prior_results=tuple(aggregator.get_all_results()),
            )
            result = await self._run_subtask(task, context)
            results.append(result)
            aggregator.add_result(task.id, result)
            self.aggregator.add_result(task.id, result)

        return results

    async def execute_dependency_graph(self, graph: DependencyGraph) -> list[TaskResult]:
        """
        Execute every node after all of its dependencies have a result.

        Args:
            graph: Nodes and their declared dependencies

        Returns:
            One result per node, in completion order

        Raises:
            ValidationError: If a dependency refers to an unknown node
            CircularDependencyError: If the graph has a cycle (nothing runs)
        """
        nodes = list(graph.nodes)
        levels = self.resolver.resolve_dependencies(nodes)
        self.aggregator = ResultAggregator()
        logger.debug(
            f"Executing graph: {len(nodes)} nodes in {len(levels)} levels "
            f"(max {self.config.max_concurrency} concurrent)"
        )

        by_id = {node.id: node for node in nodes}
        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        inflight: dict[str, asyncio.Task[TaskResult]] = {}
        completed: list[TaskResult] = []
        aggregator = ResultAggregator()

        def ensure_started(node_id: str) -> asyncio.Task[TaskResult]:
            # Install the handle before walking dependencies
            task = inflight.get(node_id)
            if task is None:
                if node_id not in by_id:
                    raise ValidationError(node_id)
                task = asyncio.ensure_future(run_node(by_id[node_id]))
                inflight[node_id] = task
            return task

        async def run_node(node: SubTask) -> TaskResult:
            dep_results: dict[str, TaskResult] = {}
            for dep in node.dependencies:
                dep_results[dep] = await ensure_started(dep)

            result = await self._run_with_dependencies(node, dep_results, aggregator, semaphore)
            completed.append(result)
            aggregator.add_result(node.id, result)
            self.aggregator.add_result(node.id, result)
            return result

        handles = [ensure_started(node.id) for node in nodes]
        await asyncio.gather(*handles)

        return completed

    async def _run_with_dependencies(
        self,
        node: SubTask,
        dep_results: dict[str, TaskResult],
        aggregator: ResultAggregator,
        semaphore: asyncio.Semaphore,
    ) -> TaskResult:
        failed = tuple(dep for dep, r in dep_results.items() if not r.success)
        policy = self.config.dependency_failure_policy

        if failed and policy == "skip":
            logger.warning(f"Skipping {node.id}: dependency {failed[0]} failed")
            message = f"Skipped: dependency {failed[0]} failed"
            self._observers.on_progress(started(node.id, node.description))
            self._observers.on_progress(finished(node.id, False, message))
            return TaskResult(task_id=node.id, success=False, error=message)

        if failed and policy == "degraded":
            dep_results = {dep: r for dep, r in dep_results.items() if r.success}

        context = ExecutionContext(
            subtask=node,
            dependency_results=dep_results,
            failed_dependencies=failed,
            prior_results=tuple(aggregator.get_all_results()),
        )
        return await self._run_subtask(node, context, semaphore)

    async def _run_subtask(
        self,
        subtask: SubTask,
        context: ExecutionContext,
        semaphore: asyncio.Semaphore | None = None,
    ) -> TaskResult:
        if semaphore is None:
            return await self._execute(subtask, context)
        async with semaphore:
            return await self._execute(subtask, context)

    async def _execute(self, subtask: SubTask, context: ExecutionContext) -> TaskResult:
        self._observers.on_progress(started(subtask.id, subtask.description))
        start = time.perf_counter()
        timeout = self.config.node_timeout_seconds

        try:
            if timeout is not None:
                outcome = await asyncio.wait_for(self.executor.execute(subtask, context), timeout)
            else:
                outcome = await self.executor.execute(subtask, context)
        except asyncio.TimeoutError:
            logger.warning(f"Subtask {subtask.id} timed out after {timeout}s")
            outcome = ExecutionOutcome(success=False, error=f"Timed out after {timeout}s")
        except SubtaskExecutionError as e:
            outcome = ExecutionOutcome(success=False, error=str(e))
        except Exception as e:
            logger.debug(f"Subtask {subtask.id} raised {type(e).__name__}: {e}")
            outcome = ExecutionOutcome(success=False, error=str(e) or type(e).__name__)

        duration_ms = (time.perf_counter() - start) * 1000
        result = TaskResult(
            task_id=subtask.id,
            success=outcome.success,
            output=outcome.output,
            error=None if outcome.success else (outcome.error or "Unknown error"),
            duration_ms=duration_ms,
            tokens_used=outcome.tokens_used,
        )

        logger.debug(
            f"Subtask {subtask.id} ({subtask.mode}) "
            f"{'completed' if result.success else 'failed'} in {duration_ms:.1f}ms"
        )
        self._observers.on_progress(
            finished(subtask.id, result.success, result.output or result.error or "")
        )
        return result


__all__ = [
    "DependencyResolver",
    "ExecutionContext",
    "ExecutionOutcome",
    "GraphScheduler",
    "ModeExecutor",
    "ResultAggregator",
    "SubtaskExecutor",
    "SIMULATED_TOKENS_PER_TASK",
]
