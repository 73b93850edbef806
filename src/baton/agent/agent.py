"""Agent descriptors — immutable configuration for one agent.

Agents are built in code or loaded from markdown files with YAML
frontmatter:

    ---
    name: ResearchAgent
    description: Finds current information with citations
    model: openai/gpt-4o
    temperature: 0.3
    tools: [web_search]
    handoffs: [ReportAgent]
    ---

    You are an AI research assistant...
"""

from __future__ import annotations

import dataclasses
import logging
import os
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from baton.agent.context import RunContext
from baton.llm.provider import ChatProvider, ModelSettings
from baton.tool.base import FunctionTool, Tool

if TYPE_CHECKING:
    from baton.agent.handoff import Handoff, HandoffInputFilter

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "openai/gpt-4o"


# ---------------------------------------------------------------------------
# Instructions
# ---------------------------------------------------------------------------


@runtime_checkable
class Instructions(Protocol):
    """Produces the system prompt for one turn."""

    def resolve(self, context: RunContext) -> str: ...


@dataclass(frozen=True)
class StaticInstructions:
    text: str = ""

    def resolve(self, context: RunContext) -> str:
        return self.text


@dataclass(frozen=True)
class DynamicInstructions:
    """Instructions computed from the run context on every turn."""

    fn: Callable[[RunContext], str]

    def resolve(self, context: RunContext) -> str:
        return self.fn(context)


def as_instructions(value: str | Callable[[RunContext], str] | Instructions | None) -> Instructions:
    if value is None:
        return StaticInstructions("")
    if isinstance(value, str):
        return StaticInstructions(value)
    if isinstance(value, Instructions):
        return value
    if callable(value):
        return DynamicInstructions(value)
    raise TypeError(f"Unsupported instructions type: {type(value).__name__}")


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class AgentToolParams(BaseModel):
    input: str = Field(description="The input to send to the agent")
    context: dict[str, Any] | None = Field(
        default=None, description="Additional context for the agent"
    )


@dataclass(frozen=True, eq=False)
class Agent:
    """A configured agent.

    Never mutated during a run; ``clone`` produces an independent copy.
    ``handoffs`` may hold plain agents or ``Handoff`` specs; both surface
    to the model as ``transfer_to_<name>`` tools.
    """

    name: str
    instructions: Instructions = StaticInstructions("")
    model: str = DEFAULT_MODEL
    model_settings: ModelSettings = field(default_factory=ModelSettings)
    tools: tuple[Tool, ...] = ()
    handoffs: tuple[Agent | Handoff, ...] = ()
    output_type: type[BaseModel] | None = None
    handoff_input_filter: HandoffInputFilter | None = None
    description: str = ""
    handoff_input_filters: dict[str, HandoffInputFilter] = field(
        default_factory=dict, repr=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "instructions", as_instructions(self.instructions))
        object.__setattr__(self, "tools", tuple(self.tools))
        object.__setattr__(self, "handoffs", tuple(self.handoffs))

    def clone(self, **overrides: Any) -> Agent:
        """Return a new agent with ``overrides`` applied."""
        overrides.setdefault("handoff_input_filters", dict(self.handoff_input_filters))
        return dataclasses.replace(self, **overrides)

    def set_handoff_input_filter(self, target_name: str, input_filter: HandoffInputFilter) -> None:
        """Register a filter used only for handoffs to ``target_name``."""
        from baton.agent.handoff import normalize_agent_name

        self.handoff_input_filters[normalize_agent_name(target_name)] = input_filter

    def as_tool(self, name: str, description: str, provider: ChatProvider) -> FunctionTool:
        """Expose this agent as a regular tool (the caller keeps control)."""

        async def run_as_tool(params: AgentToolParams) -> str:
            from baton.agent.loop import run_agent

            context = RunContext(
                original_query=params.input,
                extra={**(params.context or {}), "is_tool_call": True},
            )
            result = await run_agent(self, params.input, context, provider)
            if not result.success:
                raise RuntimeError(f"Tool {name} failed: {result.error}")
            return result.content

        return FunctionTool(name, description, AgentToolParams, run_as_tool)


# ---------------------------------------------------------------------------
# Markdown definitions
# ---------------------------------------------------------------------------


@dataclass
class AgentDefinition:
    """An agent as declared on disk; names are resolved by the registry."""

    name: str
    instructions: str = ""
    description: str = ""
    model: str | None = None
    temperature: float | None = None
    tools: list[str] = field(default_factory=list)
    handoffs: list[str] = field(default_factory=list)

    @classmethod
    def from_markdown(cls, path: str) -> AgentDefinition:
        """Load an agent definition from a markdown file with YAML frontmatter."""
        with open(path, "r") as f:
            content = f.read()

        config, body = _parse_frontmatter(content)
        known = {f.name for f in dataclasses.fields(cls)} - {"instructions"}
        unknown = set(config) - known
        if unknown:
            logger.warning("Ignoring unknown keys in %s: %s", path, sorted(unknown))
        return cls(
            instructions=body.strip(),
            **{k: v for k, v in config.items() if k in known},
        )


def _parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Parse YAML frontmatter from markdown content.

    Returns (config_dict, body_text).
    """
    import yaml  # lazy import, only needed when loading agents

    pattern = re.compile(r"^---\s*\n(.*?)\n---\s*\n(.*)", re.DOTALL)
    match = pattern.match(content)

    if not match:
        return {}, content

    try:
        config = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        logger.warning("Invalid agent frontmatter: %s", e)
        config = {}

    return config, match.group(2)


def discover_definitions(search_dirs: list[str]) -> list[AgentDefinition]:
    """Find agent definitions in ``*.md`` files.

    Files without a ``name`` in their frontmatter are skipped.
    """
    definitions = []
    for dir_path in search_dirs:
        if not os.path.isdir(dir_path):
            continue
        for fname in sorted(os.listdir(dir_path)):
            if not fname.endswith(".md"):
                continue
            full_path = os.path.join(dir_path, fname)
            try:
                definition = AgentDefinition.from_markdown(full_path)
            except (OSError, TypeError) as e:
                logger.warning("Skipping agent file %s: %s", full_path, e)
                continue
            if definition.name:
                definitions.append(definition)
    return definitions
