"""
Orchestration Engine: task decomposition and context budgeting.

Routes free-form task descriptions to execution modes and executes them:
- Heuristic complexity scoring and mode assignment
- Subtask decomposition into a dependency graph
- Bounded-concurrency graph scheduling with at-most-once node execution
- Token-budgeted, priority-ranked context windows per subtask
"""

__version__ = "0.1.0"

# Complexity and routing
from .complexity_classifier import ComplexityScorer, TaskAnalyzer, determine_required_modes

# Configuration
from .config import (
    CompressionConfig,
    ComplexityConfig,
    ContextConfig,
    EngineConfig,
    SchedulerConfig,
)

# Context budgeting
from .context_builder import ContextOptimizer, ContextParams, TaskContext
from .context_compression import CompressionResult, ContentCompressor
from .context_store import ContextBudgetStore, ContextItem, TokenUsage
from .mode_selector import ModeSelector
from .modes import BUILT_IN_MODES, ModeDefinition, ModeRegistry

# Orchestration
from .orchestrator import AutoOrchestrator, TaskPlan
from .planner import ExecutionPhase, ExecutionPlan, SubtaskPlanner
from .priority import InformationItem, InformationKind, PriorityRanker

# Progress
from .progress import (
    CompositeProgressObserver,
    ProgressObserver,
    ProgressUpdate,
    RecordingProgressObserver,
)

# Scheduling
from .scheduler import (
    DependencyResolver,
    ExecutionContext,
    ExecutionOutcome,
    GraphScheduler,
    ModeExecutor,
    ResultAggregator,
)
from .tokenization import HeuristicTokenEstimator, TiktokenEstimator, TokenEstimator, estimate_tokens

# Types and errors
from .types import (
    CircularDependencyError,
    ComplexityFactor,
    ComplexityFactorKind,
    DependencyEdge,
    DependencyGraph,
    ModeId,
    ModeNotFoundError,
    OrchestrationError,
    OrchestrationResult,
    SubTask,
    SubtaskExecutionError,
    TaskAnalysis,
    TaskResult,
    TaskStatus,
    ValidationError,
)

__all__ = [
    # Complexity and routing
    "ComplexityScorer",
    "ModeSelector",
    "TaskAnalyzer",
    "determine_required_modes",
    # Configuration
    "ComplexityConfig",
    "CompressionConfig",
    "ContextConfig",
    "EngineConfig",
    "SchedulerConfig",
    # Modes
    "BUILT_IN_MODES",
    "ModeDefinition",
    "ModeRegistry",
    # Planning and scheduling
    "DependencyResolver",
    "ExecutionContext",
    "ExecutionOutcome",
    "ExecutionPhase",
    "ExecutionPlan",
    "GraphScheduler",
    "ModeExecutor",
    "ResultAggregator",
    "SubtaskPlanner",
    # Context budgeting
    "CompressionResult",
    "ContentCompressor",
    "ContextBudgetStore",
    "ContextItem",
    "ContextOptimizer",
    "ContextParams",
    "InformationItem",
    "InformationKind",
    "PriorityRanker",
    "TaskContext",
    "TokenUsage",
    # Tokens
    "HeuristicTokenEstimator",
    "TiktokenEstimator",
    "TokenEstimator",
    "estimate_tokens",
    # Progress
    "CompositeProgressObserver",
    "ProgressObserver",
    "ProgressUpdate",
    "RecordingProgressObserver",
    # Orchestration
    "AutoOrchestrator",
    "TaskPlan",
    # Types and errors
    "CircularDependencyError",
    "ComplexityFactor",
    "ComplexityFactorKind",
    "DependencyEdge",
    "DependencyGraph",
    "ModeId",
    "ModeNotFoundError",
    "OrchestrationError",
    "OrchestrationResult",
    "SubTask",
    "SubtaskExecutionError",
    "TaskAnalysis",
    "TaskResult",
    "TaskStatus",
    "ValidationError",
]
