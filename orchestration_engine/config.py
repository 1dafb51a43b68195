"""
Configuration management for the orchestration engine.

Configuration is plain dataclasses, loadable from a JSON file and
overridable from ``ORCHESTRATION_*`` environment variables (a ``.env``
file in the working directory is honored).
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv

DependencyFailurePolicy = Literal["run", "degraded", "skip"]

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "orchestration-engine" / "config.json"


@dataclass
class ComplexityConfig:
    """Thresholds for complexity scoring."""

    orchestration_threshold: float = 5.0
    max_subtasks: int = 10


@dataclass
class SchedulerConfig:
    """
    Configuration for graph execution.

    Policies for a node whose dependency failed:
    - "run": execute anyway with whatever results exist
    - "degraded": execute with only the successful dependency results
    - "skip": do not execute, report a failed result
    """

    max_concurrency: int = 5
    node_timeout_seconds: float | None = None
    dependency_failure_policy: DependencyFailurePolicy = "run"


@dataclass
class ContextConfig:
    """Token budgets for per-subtask context windows."""

    max_tokens: int = 4000
    default_task_max_tokens: int = 8000
    chars_per_token: int = 4


@dataclass
class CompressionConfig:
    """Configuration for content compression."""

    strategies: list[str] = field(
        default_factory=lambda: ["deduplicate", "summarize", "extract_key_points"]
    )
    nested_budget_ratio: float = 0.3


@dataclass
class EngineConfig:
    """Complete engine configuration."""

    complexity: ComplexityConfig = field(default_factory=ComplexityConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    compression: CompressionConfig = field(default_factory=CompressionConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> EngineConfig:
        """Load configuration from file."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        return cls(
            complexity=ComplexityConfig(**data.get("complexity", {})),
            scheduler=SchedulerConfig(**data.get("scheduler", {})),
            context=ContextConfig(**data.get("context", {})),
            compression=CompressionConfig(**data.get("compression", {})),
        )

    @classmethod
    def from_env(cls, path: Path | None = None, dotenv_path: Path | None = None) -> EngineConfig:
        """
        Load configuration, then apply environment overrides.

        Recognized variables:
            ORCHESTRATION_THRESHOLD, ORCHESTRATION_MAX_CONCURRENCY,
            ORCHESTRATION_NODE_TIMEOUT, ORCHESTRATION_DEPENDENCY_POLICY,
            ORCHESTRATION_MAX_TOKENS
        """
        load_dotenv(dotenv_path)
        config = cls.load(path)

        env = os.environ
        if env.get("ORCHESTRATION_THRESHOLD"):
            config.complexity.orchestration_threshold = float(env["ORCHESTRATION_THRESHOLD"])
        if env.get("ORCHESTRATION_MAX_CONCURRENCY"):
            config.scheduler.max_concurrency = int(env["ORCHESTRATION_MAX_CONCURRENCY"])
        if env.get("ORCHESTRATION_NODE_TIMEOUT"):
            config.scheduler.node_timeout_seconds = float(env["ORCHESTRATION_NODE_TIMEOUT"])
        if env.get("ORCHESTRATION_DEPENDENCY_POLICY"):
            policy = env["ORCHESTRATION_DEPENDENCY_POLICY"]
            if policy not in ("run", "degraded", "skip"):
                raise ValueError(f"Unknown dependency failure policy: {policy}")
            config.scheduler.dependency_failure_policy = policy  # type: ignore[assignment]
        if env.get("ORCHESTRATION_MAX_TOKENS"):
            config.context.max_tokens = int(env["ORCHESTRATION_MAX_TOKENS"])

        return config

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(
                {
                    "complexity": asdict(self.complexity),
                    "scheduler": asdict(self.scheduler),
                    "context": asdict(self.context),
                    "compression": asdict(self.compression),
                },
                f,
                indent=2,
            )
