"""Handoffs — delegation to another agent, modeled as a tool call.

Every entry in ``Agent.handoffs`` surfaces to the model as a synthesized
tool named ``transfer_to_<normalized name>`` (or an override). When the
model calls one, the router resolves the target, builds the delegation
input, filters it, and re-enters the turn loop on the target.
"""

from __future__ import annotations

import inspect
import logging
import re
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from baton.agent.agent import Agent
from baton.agent.context import AgentResult, RunConfig, RunContext, TurnOutcome
from baton.llm.message import Message, ToolCall
from baton.tracing import handoff_span

logger = logging.getLogger(__name__)

TRANSFER_PREFIX = "transfer_to_"
DEFAULT_HANDOFF_PROMPT = "Please help with this task"

OnHandoff = Callable[[RunContext, Any], "Awaitable[None] | None"]


@dataclass
class HandoffInput:
    """What input filters receive and return: OpenAI-format messages."""

    messages: list[dict[str, Any]] = field(default_factory=list)

    def latest_user_message(self) -> str | None:
        for message in reversed(self.messages):
            if message.get("role") == "user" and message.get("content"):
                return str(message["content"])
        return None


HandoffInputFilter = Callable[[HandoffInput], HandoffInput]


def normalize_agent_name(name: str) -> str:
    """Lowercase and collapse whitespace runs to ``_``."""
    return re.sub(r"\s+", "_", name.strip().lower())


def default_tool_name(agent_name: str) -> str:
    return f"{TRANSFER_PREFIX}{normalize_agent_name(agent_name)}"


def default_tool_description(agent_name: str) -> str:
    return f"Transfer the conversation to the {agent_name} agent"


@dataclass
class Handoff:
    """A handoff target plus how the transfer is presented and filtered."""

    agent: Agent
    tool_name_override: str | None = None
    tool_description_override: str | None = None
    on_handoff: OnHandoff | None = None
    input_filter: HandoffInputFilter | None = None
    input_type: type[BaseModel] | None = None

    @property
    def tool_name(self) -> str:
        return self.tool_name_override or default_tool_name(self.agent.name)

    @property
    def tool_description(self) -> str:
        return self.tool_description_override or default_tool_description(self.agent.name)

    @property
    def key(self) -> str:
        return normalize_agent_name(self.agent.name)

    def to_openai_spec(self) -> dict[str, Any]:
        parameters: dict[str, Any] = {
            "type": "object",
            "properties": {
                "reason": {
                    "type": "string",
                    "description": "Optional reason for the handoff",
                }
            },
        }
        if self.input_type is not None:
            schema = self.input_type.model_json_schema()
            parameters["properties"].update(schema.get("properties", {}))
            if schema.get("required"):
                parameters["required"] = list(schema["required"])
            if "$defs" in schema:
                parameters["$defs"] = schema["$defs"]
        return {
            "type": "function",
            "function": {
                "name": self.tool_name,
                "description": self.tool_description,
                "parameters": parameters,
            },
        }


def handoff(
    agent: Agent,
    *,
    tool_name_override: str | None = None,
    tool_description_override: str | None = None,
    on_handoff: OnHandoff | None = None,
    input_filter: HandoffInputFilter | None = None,
    input_type: type[BaseModel] | None = None,
) -> Handoff:
    """Wrap ``agent`` in a handoff with optional overrides."""
    return Handoff(
        agent=agent,
        tool_name_override=tool_name_override,
        tool_description_override=tool_description_override,
        on_handoff=on_handoff,
        input_filter=input_filter,
        input_type=input_type,
    )


def _as_handoff(item: Agent | Handoff) -> Handoff:
    return item if isinstance(item, Handoff) else Handoff(agent=item)


class HandoffRouter:
    """Resolves handoff tool names against one agent's handoff list.

    Tool descriptors are synthesized from the handoff list on demand, never
    stored as Tool objects.
    """

    def __init__(self, agent: Agent) -> None:
        self.agent = agent
        self.handoffs = [_as_handoff(h) for h in agent.handoffs]

    def tool_specs(self) -> list[dict[str, Any]]:
        return [h.to_openai_spec() for h in self.handoffs]

    def is_handoff(self, tool_name: str) -> bool:
        """True for the ``transfer_to_`` convention or a declared override name."""
        if tool_name.startswith(TRANSFER_PREFIX):
            return True
        return any(h.tool_name_override == tool_name for h in self.handoffs)

    def resolve(self, tool_name: str) -> Handoff | None:
        for h in self.handoffs:
            if h.tool_name_override and h.tool_name_override == tool_name:
                return h

        if not tool_name.startswith(TRANSFER_PREFIX):
            return None
        wanted = normalize_agent_name(tool_name[len(TRANSFER_PREFIX):])
        for h in self.handoffs:
            if h.key == wanted:
                return h
        return None

    def filter_for(
        self, target: Handoff, run_config: RunConfig | None = None
    ) -> HandoffInputFilter | None:
        """Pick the input filter for a transfer.

        Priority: target-specific filter on the source agent, the handoff's
        own filter, the run's global filter, then the source agent's
        default. ``None`` means identity.
        """
        specific = self.agent.handoff_input_filters.get(target.key)
        if specific is not None:
            return specific
        if target.input_filter is not None:
            return target.input_filter
        if run_config is not None and run_config.handoff_input_filter is not None:
            return run_config.handoff_input_filter
        return self.agent.handoff_input_filter


def build_handoff_tools(agent: Agent) -> list[dict[str, Any]]:
    return HandoffRouter(agent).tool_specs()


# ---------------------------------------------------------------------------
# Performing a handoff
# ---------------------------------------------------------------------------


Execute = Callable[[Agent, str, RunContext], Awaitable[AgentResult]]


async def relay_handoff(
    source: Agent,
    router: HandoffRouter,
    target: Handoff,
    call: ToolCall,
    history: list[Message],
    context: RunContext,
    execute: Execute,
) -> AgentResult:
    """Hand the rest of the task to ``target`` and relay its result.

    ``execute`` re-enters the turn loop (buffered or streamed) on the
    target; handoffs are a routing decision, not a separate code path.
    """
    reason = call.arguments.get("reason") or "No reason provided"
    target_agent = target.agent
    logger.info("Handoff %s -> %s (%s)", source.name, target_agent.name, reason)

    with handoff_span(source.name, target_agent.name, reason) as span:
        if history:
            handoff_input = HandoffInput(messages=[m.to_openai_dict() for m in history])
        else:
            handoff_input = HandoffInput(
                messages=[
                    {"role": "user", "content": context.original_query or DEFAULT_HANDOFF_PROMPT}
                ]
            )

        context.handoff_tracker.append(target_agent.name)
        target_context = context.fork(handoff_reason=reason)

        if target.on_handoff is not None:
            await _notify(target, target_context, call)

        input_filter = router.filter_for(target, context.run_config)
        if input_filter is not None:
            handoff_input = input_filter(handoff_input)

        target_input = (
            handoff_input.latest_user_message()
            or context.original_query
            or DEFAULT_HANDOFF_PROMPT
        )
        span.add_data({"input": target_input, "messages": len(handoff_input.messages)})

        result = await execute(target_agent, target_input, target_context)
        span.add_data({"success": result.success})

    metadata = {
        **result.metadata,
        "handoff_occurred": True,
        "handoff_tracker": list(context.handoff_tracker),
    }
    return AgentResult(
        content=result.content,
        success=result.success,
        error=result.error,
        outcome=TurnOutcome.HANDOFF if result.success else result.outcome,
        metadata=metadata,
        last_agent=result.last_agent or target_agent,
    )


async def _notify(target: Handoff, context: RunContext, call: ToolCall) -> None:
    data: Any = None
    if target.input_type is not None:
        try:
            data = target.input_type.model_validate(call.arguments)
        except ValidationError as e:
            logger.warning("Invalid handoff input for %s: %s", target.agent.name, e)
    result = target.on_handoff(context, data)  # type: ignore[misc]
    if inspect.isawaitable(result):
        await result


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

RECOMMENDED_PROMPT_PREFIX = (
    "You are part of a system where tasks can be handed off between specialized agents.\n"
    "If you receive a handoff, it means another agent determined you're the best fit "
    "for this task.\n"
    "Focus on your specialty, and don't hand the task back to the agent that handed it "
    "to you unless absolutely necessary.\n"
)


def prompt_with_handoff_instructions(prompt: str) -> str:
    return f"{RECOMMENDED_PROMPT_PREFIX}\n{prompt}"
