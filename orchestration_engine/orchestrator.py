"""
End-to-end task orchestration.

analyze -> plan -> schedule -> aggregate. Simple tasks run as a single
subtask; complex ones are decomposed into a dependency graph and executed
with each subtask receiving a context window built from its dependencies'
results.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from .complexity_classifier import TaskAnalyzer
from .config import EngineConfig
from .context_builder import ContextOptimizer, ContextParams, TaskContext
from .context_compression import ContentCompressor
from .mode_selector import ModeSelector
from .modes import ModeRegistry
from .planner import ExecutionPlan, SubtaskPlanner
from .progress import CompositeProgressObserver, ProgressObserver, ProgressUpdate
from .scheduler import (
    ExecutionContext,
    ExecutionOutcome,
    GraphScheduler,
    ModeExecutor,
    SubtaskExecutor,
)
from .tokenization import HeuristicTokenEstimator
from .types import (
    DependencyGraph,
    OrchestrationError,
    OrchestrationResult,
    SubTask,
    TaskAnalysis,
    TaskResult,
    format_summary,
)

logger = logging.getLogger(__name__)


@dataclass
class TaskPlan:
    """Everything decided before execution starts."""

    description: str
    analysis: TaskAnalysis
    subtasks: list[SubTask]
    graph: DependencyGraph
    plan: ExecutionPlan

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "description": self.description,
            "analysis": self.analysis.model_dump(mode="json"),
            "subtasks": [
                {
                    "id": t.id,
                    "description": t.description,
                    "mode": t.mode,
                    "priority": t.priority,
                    "dependencies": list(t.dependencies),
                    "estimated_complexity": t.estimated_complexity,
                }
                for t in self.subtasks
            ],
            "plan": self.plan.to_dict(),
        }


class ContextWindowExecutor:
    """
    Wraps an executor and attaches a budgeted TaskContext to every call.

    Dependency outputs become the subtask's prior results, most recent
    dependency first. Failed dependencies contribute their error text.
    """

    def __init__(
        self,
        inner: SubtaskExecutor,
        optimizer: ContextOptimizer,
        max_tokens: int,
        global_context: dict[str, Any] | None = None,
    ):
        self.inner = inner
        self.optimizer = optimizer
        self.max_tokens = max_tokens
        self.global_context = global_context or {}

    def build_context(self, subtask: SubTask, context: ExecutionContext) -> TaskContext:
        previous = [
            r.output if r.success else f"{r.task_id} failed: {r.error}"
            for r in reversed(list(context.dependency_results.values()))
            if r.output or r.error
        ]
        return self.optimizer.create_context_for_subtask(
            ContextParams(
                mode=subtask.mode,
                task_description=subtask.description,
                previous_results=previous,
                global_context=self.global_context,
                max_tokens=self.max_tokens,
            )
        )

    async def execute(self, subtask: SubTask, context: ExecutionContext) -> ExecutionOutcome:
        window = self.build_context(subtask, context)
        return await self.inner.execute(subtask, replace(context, task_context=window))


class AutoOrchestrator:
    """
    Analyze, plan and execute a free-form task.

    Example:
        >>> orchestrator = AutoOrchestrator()
        >>> result = await orchestrator.orchestrate_task("Fix typo in README.md")
        >>> result.summary
        'Completed 1/1 subtasks. 0 failed.'
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        registry: ModeRegistry | None = None,
        executor: SubtaskExecutor | None = None,
        observers: list[ProgressObserver | Callable[[ProgressUpdate], None]] | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            config: Engine configuration (defaults if None)
            registry: Mode registry (built-in modes if None)
            executor: Subtask executor (ModeExecutor if None)
            observers: Progress observers (or plain callables) attached to every
                scheduler run
        """
        self.config = config or EngineConfig()
        self.registry = registry or ModeRegistry.default()
        self.analyzer = TaskAnalyzer(self.config.complexity)
        self.planner = SubtaskPlanner()
        self.selector = ModeSelector(self.registry)

        estimator = HeuristicTokenEstimator(self.config.context.chars_per_token)
        self.context_optimizer = ContextOptimizer(
            compressor=ContentCompressor(
                self.config.compression,
                estimator=estimator,
                chars_per_token=self.config.context.chars_per_token,
            ),
            estimator=estimator,
        )
        self.executor = executor or ModeExecutor(self.registry)
        self._observers = CompositeProgressObserver(observers)

    def on_progress(
        self, observer: ProgressObserver | Callable[[ProgressUpdate], None]
    ) -> None:
        """Register a progress observer (a plain callable also works)."""
        self._observers.add(observer)

    def _scheduler(
        self, max_tokens: int, global_context: dict[str, Any] | None = None
    ) -> GraphScheduler:
        executor = ContextWindowExecutor(
            self.executor, self.context_optimizer, max_tokens, global_context
        )
        return GraphScheduler(
            executor=executor,
            config=self.config.scheduler,
            observers=[self._observers],
            registry=self.registry,
        )

    def plan_task(self, description: str) -> TaskPlan:
        """
        Analyze and plan without executing.

        Raises:
            CircularDependencyError: If the planned dependencies contain a cycle
        """
        analysis = self.analyzer.analyze_task(description)
        subtasks = self.planner.generate_subtasks(analysis, description.strip() or None)
        return TaskPlan(
            description=description,
            analysis=analysis,
            subtasks=subtasks,
            graph=self.planner.build_graph(subtasks),
            plan=self.planner.plan_execution(subtasks),
        )

    async def orchestrate_task(
        self, description: str, global_context: dict[str, Any] | None = None
    ) -> OrchestrationResult:
        """
        Run a task end to end.

        Topology errors are reported as a failed result rather than raised.

        Args:
            description: Free-form task text
            global_context: Caller-supplied context passed to every subtask

        Returns:
            Aggregate report; ``success`` is True iff every subtask succeeded
        """
        start = time.perf_counter()
        task_id = f"task-{uuid.uuid4().hex[:12]}"

        try:
            task_plan = self.plan_task(description)
            analysis = task_plan.analysis
            logger.info(
                f"Task {task_id}: complexity={analysis.complexity:.2f} "
                f"modes={analysis.required_modes} orchestrate={analysis.requires_orchestration}"
            )

            if analysis.requires_orchestration:
                logger.info(
                    f"Task {task_id}: {len(task_plan.subtasks)} subtasks in "
                    f"{len(task_plan.plan.phases)} phases, "
                    f"critical path {list(task_plan.plan.critical_path)}"
                )
                scheduler = self._scheduler(self.config.context.max_tokens, global_context)
                results = await scheduler.execute_dependency_graph(task_plan.graph)
            else:
                scheduler = self._scheduler(
                    self.config.context.default_task_max_tokens, global_context
                )
                results = await scheduler.execute_sequential(task_plan.subtasks)
        except OrchestrationError as e:
            logger.warning(f"Task {task_id} aborted: {e}")
            return OrchestrationResult(
                success=False,
                task_id=task_id,
                total_duration_ms=(time.perf_counter() - start) * 1000,
                summary=format_summary([]),
                errors=[str(e)],
            )

        result = self._aggregate(task_id, results, start)
        logger.info(f"Task {task_id}: {result.summary}")
        return result

    async def delegate(
        self,
        task: str,
        target_mode: str | None = None,
        global_context: dict[str, Any] | None = None,
    ) -> TaskResult:
        """
        Run a single task in a named mode.

        Unknown modes fall back to the default mode; with no mode given the
        selector picks one.
        """
        if target_mode:
            mode = self.registry.resolve(target_mode).slug
        else:
            mode = self.selector.select_optimal_mode(task)

        subtask = SubTask(id=f"delegated-{uuid.uuid4().hex[:12]}", description=task, mode=mode)
        scheduler = self._scheduler(self.config.context.max_tokens, global_context)
        results = await scheduler.execute_sequential([subtask])
        return results[0]

    def _aggregate(
        self, task_id: str, results: list[TaskResult], start: float
    ) -> OrchestrationResult:
        return OrchestrationResult(
            success=bool(results) and all(r.success for r in results),
            task_id=task_id,
            subtask_results=list(results),
            total_duration_ms=(time.perf_counter() - start) * 1000,
            total_tokens_used=sum(r.tokens_used for r in results),
            summary=format_summary(results),
            errors=[f"{r.task_id}: {r.error}" for r in results if not r.success],
        )


__all__ = [
    "AutoOrchestrator",
    "ContextWindowExecutor",
    "TaskPlan",
]
