"""
Pytest configuration and fixtures for orchestration engine tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add project root to path so we can import the package without installing it
sys.path.insert(0, str(Path(__file__).parent.parent))

from orchestration_engine.config import EngineConfig
from orchestration_engine.modes import ModeRegistry
from orchestration_engine.scheduler import ExecutionContext, ExecutionOutcome
from orchestration_engine.types import DependencyGraph, SubTask


AUTH_TASK = (
    "Implement a complete user authentication system with JWT, OAuth, "
    "and role-based permissions across multiple files"
)


class RecordingExecutor:
    """
    Executor that logs start/finish order and can be told to fail.

    ``fail`` maps subtask ids to the error message to report.
    """

    def __init__(self, fail: dict[str, str] | None = None, raise_for: set[str] | None = None):
        self.fail = fail or {}
        self.raise_for = raise_for or set()
        self.events: list[tuple[str, str]] = []
        self.contexts: dict[str, ExecutionContext] = {}
        self.calls: dict[str, int] = {}

    async def execute(self, subtask: SubTask, context: ExecutionContext) -> ExecutionOutcome:
        self.calls[subtask.id] = self.calls.get(subtask.id, 0) + 1
        self.contexts[subtask.id] = context
        self.events.append(("start", subtask.id))
        await asyncio.sleep(0)
        self.events.append(("finish", subtask.id))

        if subtask.id in self.raise_for:
            raise RuntimeError(f"boom in {subtask.id}")
        if subtask.id in self.fail:
            return ExecutionOutcome(success=False, error=self.fail[subtask.id])
        return ExecutionOutcome(success=True, output=f"done {subtask.id}", tokens_used=10)

    def index(self, kind: str, task_id: str) -> int:
        return self.events.index((kind, task_id))


@pytest.fixture
def registry():
    """Built-in mode registry."""
    return ModeRegistry.default()


@pytest.fixture
def engine_config():
    """Default engine configuration."""
    return EngineConfig()


@pytest.fixture
def recording_executor():
    return RecordingExecutor()


@pytest.fixture
def make_executor():
    """Factory for executors with scripted failures."""
    return RecordingExecutor


@pytest.fixture
def diamond_graph():
    """A -> B, A -> C, B -> D, C -> D."""
    nodes = (
        SubTask(id="A", description="design schema", mode="architect"),
        SubTask(id="B", description="implement api", mode="code", dependencies=["A"]),
        SubTask(id="C", description="write tests", mode="code", dependencies=["A"]),
        SubTask(id="D", description="integrate", mode="code", dependencies=["B", "C"]),
    )
    return DependencyGraph(nodes=nodes)


@pytest.fixture
def cyclic_graph():
    """A depends on B, B depends on A."""
    nodes = (
        SubTask(id="A", description="first", mode="code", dependencies=["B"]),
        SubTask(id="B", description="second", mode="code", dependencies=["A"]),
    )
    return DependencyGraph(nodes=nodes)


@pytest.fixture
def auth_task():
    return AUTH_TASK


# Markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "hypothesis: property-based tests"
    )
    config.addinivalue_line(
        "markers", "slow: tests that take >1s"
    )
