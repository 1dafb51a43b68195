"""
Execution mode registry.

A registry is an immutable value built once and handed to every component
that needs mode metadata; there is no process-wide instance.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from types import MappingProxyType

from .types import DEFAULT_MODE, ModeId, ModeNotFoundError

logger = logging.getLogger(__name__)


VALID_GROUPS = frozenset(
    {
        "file_operations",
        "git_operations",
        "code_analysis",
        "testing",
        "read_operations",
        "write_operations",
        "documentation",
        "analysis",
        "diagnostic_tools",
        "logging",
        "search",
        "task_management",
        "mode_switching",
        "context_optimization",
    }
)


@dataclass(frozen=True)
class ModeDefinition:
    """Static description of one execution mode."""

    slug: str
    name: str
    role_definition: str
    groups: frozenset[str]
    custom_instructions: str = ""
    capabilities: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        unknown = set(self.groups) - VALID_GROUPS
        if unknown:
            raise ValueError(f"Mode {self.slug} has unknown groups: {sorted(unknown)}")


BUILT_IN_MODES: tuple[ModeDefinition, ...] = (
    ModeDefinition(
        slug=ModeId.CODE.value,
        name="Code",
        role_definition=(
            "You are an expert software developer focused on implementation details. "
            "Your primary goal is to write clean, efficient, and maintainable code."
        ),
        groups=frozenset({"file_operations", "git_operations", "code_analysis", "testing"}),
        custom_instructions=(
            "- Write idiomatic code for the target language\n"
            "- Include appropriate error handling\n"
            "- Follow existing code patterns in the repository\n"
            "- Write tests when implementing new functionality"
        ),
        capabilities=(
            "implementation",
            "coding",
            "development",
            "feature creation",
            "component building",
            "algorithm implementation",
        ),
    ),
    ModeDefinition(
        slug=ModeId.ARCHITECT.value,
        name="Architect",
        role_definition=(
            "You are a system architect focused on high-level design and planning. "
            "You analyze requirements and make strategic technical decisions."
        ),
        groups=frozenset({"read_operations", "documentation", "analysis"}),
        custom_instructions=(
            "- Focus on system design and architecture\n"
            "- Consider scalability and performance implications\n"
            "- Document architectural decisions and trade-offs"
        ),
        capabilities=(
            "design",
            "planning",
            "architecture",
            "system design",
            "technical specifications",
        ),
    ),
    ModeDefinition(
        slug=ModeId.DEBUG.value,
        name="Debug",
        role_definition=(
            "You are a debugging expert specialized in identifying and fixing issues. "
            "You address root causes, not just symptoms."
        ),
        groups=frozenset({"file_operations", "diagnostic_tools", "logging", "testing"}),
        custom_instructions=(
            "- Systematically isolate the problem\n"
            "- Explain the root cause clearly\n"
            "- Implement fixes that prevent recurrence"
        ),
        capabilities=(
            "troubleshooting",
            "bug fixing",
            "diagnostics",
            "error resolution",
            "performance analysis",
        ),
    ),
    ModeDefinition(
        slug=ModeId.ASK.value,
        name="Ask",
        role_definition=(
            "You are a knowledgeable assistant focused on providing clear, accurate information."
        ),
        groups=frozenset({"read_operations", "documentation", "search"}),
        custom_instructions=(
            "- Provide clear, concise explanations\n"
            "- Reference documentation when appropriate\n"
            "- Admit uncertainty rather than speculate"
        ),
        capabilities=("information", "explanation", "documentation", "clarification"),
    ),
    ModeDefinition(
        slug=ModeId.ORCHESTRATOR.value,
        name="Orchestrator",
        role_definition=(
            "You are a task orchestrator responsible for breaking down complex tasks "
            "and delegating them to the appropriate modes."
        ),
        groups=frozenset({"task_management", "mode_switching", "context_optimization"}),
        custom_instructions=(
            "- Break down tasks into appropriate subtasks\n"
            "- Select the optimal mode for each subtask\n"
            "- Minimize context size while maintaining effectiveness"
        ),
        capabilities=(
            "task coordination",
            "workflow management",
            "delegation",
            "multi-mode coordination",
        ),
    ),
)


class ModeRegistry:
    """
    Closed, read-only set of execution modes keyed by slug.

    Example:
        >>> registry = ModeRegistry.default()
        >>> registry.get("debug").name
        'Debug'
        >>> registry.resolve("unknown").slug
        'code'
    """

    def __init__(self, modes: Iterable[ModeDefinition], default_slug: str = DEFAULT_MODE):
        table: dict[str, ModeDefinition] = {}
        for mode in modes:
            if mode.slug in table:
                raise ValueError(f"Duplicate mode slug: {mode.slug}")
            table[mode.slug] = mode
        if default_slug not in table:
            raise ValueError(f"Default mode {default_slug} is not registered")
        self._modes = MappingProxyType(table)
        self._default_slug = default_slug

    @classmethod
    def default(cls) -> ModeRegistry:
        """Registry of the five built-in modes."""
        return cls(BUILT_IN_MODES)

    @property
    def default_mode(self) -> ModeDefinition:
        return self._modes[self._default_slug]

    def get(self, slug: str) -> ModeDefinition:
        """
        Look up a mode.

        Raises:
            ModeNotFoundError: If the slug is not registered
        """
        try:
            return self._modes[slug]
        except KeyError:
            raise ModeNotFoundError(slug) from None

    def resolve(self, slug: str) -> ModeDefinition:
        """Look up a mode, falling back to the default for unknown slugs."""
        try:
            return self.get(slug)
        except ModeNotFoundError:
            logger.warning(f"Unknown mode {slug!r}, falling back to {self._default_slug}")
            return self.default_mode

    def slugs(self) -> list[str]:
        """Registered slugs in registration order."""
        return list(self._modes)

    def __contains__(self, slug: object) -> bool:
        return slug in self._modes

    def __iter__(self) -> Iterator[ModeDefinition]:
        return iter(self._modes.values())

    def __len__(self) -> int:
        return len(self._modes)
