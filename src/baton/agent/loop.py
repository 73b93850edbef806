"""The turn loop — the heart of baton.

One call drives one agent to a terminal result:

1. Resolve instructions and build the request (history + tool and
   handoff specs)
2. Call the model provider
3. Tool calls: dispatch them in order; the first resolvable handoff ends
   the batch and the target's result becomes ours
4. Plain text: done
5. Stop at ``context.max_turns`` with a distinct MAX_TURNS outcome
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from baton.agent.agent import Agent
from baton.agent.context import AgentResult, RunConfig, RunContext, TurnOutcome
from baton.agent.handoff import Handoff, HandoffRouter, relay_handoff
from baton.agent.output import parse_output
from baton.exceptions import MaxTurnsExceeded
from baton.llm.message import Message, ToolCall
from baton.llm.provider import ChatProvider, ModelSettings
from baton.tool.base import format_tool_error
from baton.tool.registry import ToolRegistry
from baton.tracing import agent_span, ensure_trace, function_span, generation_span

logger = logging.getLogger(__name__)

EMPTY_INPUT_ERROR = "Empty query provided. Please provide a valid query."
INVALID_RESPONSE_ERROR = "Invalid response format from model"

OnToolCall = Callable[[str, str, str], None]
OnToolResult = Callable[[str, str, str, bool], None]


@dataclass
class AgentPlan:
    """Everything a turn needs that does not change between turns."""

    agent: Agent
    router: HandoffRouter
    registry: ToolRegistry
    model: str
    settings: ModelSettings
    tool_specs: list[dict[str, Any]] = field(default_factory=list)


def plan_agent(agent: Agent, run_config: RunConfig | None) -> AgentPlan:
    router = HandoffRouter(agent)
    registry = ToolRegistry(agent.tools)
    model = agent.model
    override = None
    if run_config is not None:
        model = run_config.model or agent.model
        override = run_config.model_settings
    return AgentPlan(
        agent=agent,
        router=router,
        registry=registry,
        model=model,
        settings=agent.model_settings.merged(override),
        tool_specs=registry.get_specs() + router.tool_specs(),
    )


def build_messages(instructions: str, history: list[Message]) -> list[dict[str, Any]]:
    messages = [Message.system(instructions).to_openai_dict()] if instructions else []
    messages.extend(m.to_openai_dict() for m in history)
    return messages


def trace_options(run_config: RunConfig | None) -> dict[str, Any]:
    if run_config is None:
        return {}
    return {
        "trace_id": run_config.trace_id,
        "group_id": run_config.group_id,
        "metadata": run_config.trace_metadata,
        "disabled": run_config.tracing_disabled,
        "include_sensitive_data": run_config.trace_include_sensitive_data,
    }


def _log_entry(
    call: ToolCall, output: str | None = None, is_error: bool = False, handoff: bool = False
) -> dict[str, Any]:
    return {
        "id": call.id,
        "name": call.name,
        "arguments": call.raw_arguments,
        "output": output,
        "is_error": is_error,
        "handoff": handoff,
    }


async def dispatch_tool_calls(
    plan: AgentPlan,
    calls: list[ToolCall],
    tool_log: list[dict[str, Any]],
    on_tool_call: OnToolCall | None = None,
    on_tool_result: OnToolResult | None = None,
) -> tuple[list[Message], tuple[Handoff, ToolCall] | None]:
    """Execute one batch of tool calls sequentially, in array order.

    Returns the tool-result messages and, when a handoff was requested and
    resolved, the pending ``(handoff, call)``. Calls after the first
    resolved handoff are never executed. Per-call failures become
    ``Error: ...`` results; nothing here raises for them.
    """
    results: list[Message] = []
    for call in calls:
        if plan.router.is_handoff(call.name):
            target = plan.router.resolve(call.name)
            if target is not None:
                tool_log.append(_log_entry(call, handoff=True))
                return results, (target, call)
            logger.warning("Agent %s: no handoff target for %s", plan.agent.name, call.name)
            if on_tool_call:
                on_tool_call(call.id, call.name, call.raw_arguments)
            content = format_tool_error(f"Target agent not found for handoff: {call.name}")
            is_error = True
        else:
            if on_tool_call:
                on_tool_call(call.id, call.name, call.raw_arguments)
            with function_span(call.name, arguments=call.raw_arguments) as span:
                content, is_error = await plan.registry.dispatch(call)
                span.add_data({"result": content, "is_error": is_error})

        if on_tool_result:
            on_tool_result(call.id, call.name, content, is_error)
        tool_log.append(_log_entry(call, content, is_error))
        results.append(Message.tool_result(call.id, call.name, content, is_error))
    return results, None


def complete_result(
    agent: Agent, text: str, turns: int, context: RunContext, tool_log: list[dict[str, Any]]
) -> AgentResult:
    metadata: dict[str, Any] = {
        "agent": agent.name,
        "turns": turns,
        "handoff_tracker": list(context.handoff_tracker),
        "tool_calls": tool_log,
        "handoff_occurred": False,
    }
    if agent.output_type is not None:
        typed = parse_output(text, agent.output_type)
        if typed is not None:
            metadata["typed_output"] = typed
    return AgentResult(content=text, success=True, metadata=metadata, last_agent=agent)


def failure_result(
    agent: Agent,
    error: str,
    outcome: TurnOutcome,
    turns: int,
    context: RunContext,
    tool_log: list[dict[str, Any]],
) -> AgentResult:
    result = AgentResult.failure(
        error,
        outcome,
        agent=agent.name,
        turns=turns,
        max_turns=context.max_turns,
        handoff_tracker=list(context.handoff_tracker),
        tool_calls=tool_log,
        handoff_occurred=False,
    )
    result.last_agent = agent
    return result


def begin_run(agent: Agent, user_input: str, context: RunContext) -> None:
    """Seed the tracker and original query on the first agent of a chain."""
    if not context.handoff_tracker:
        context.handoff_tracker.append(agent.name)
    if context.original_query is None:
        context.original_query = user_input


async def run_agent(
    agent: Agent,
    user_input: str,
    context: RunContext,
    provider: ChatProvider,
    *,
    on_tool_call: OnToolCall | None = None,
    on_tool_result: OnToolResult | None = None,
) -> AgentResult:
    """Run the turn loop for ``agent`` until it reaches a terminal result.

    Never raises for per-call problems or provider failures; those come
    back as ``AgentResult(success=False)`` with an ``outcome`` saying why.

    Args:
        agent: The agent to run.
        user_input: The user message for this agent.
        context: Per-run state, shared with any handoff targets.
        provider: Model provider.
        on_tool_call: Callback when a tool call is dispatched (id, name, arguments).
        on_tool_result: Callback when a tool result is ready (id, name, content, is_error).
    """
    if not user_input or not user_input.strip():
        logger.warning("Agent %s: empty input, not calling the model", agent.name)
        return failure_result(agent, EMPTY_INPUT_ERROR, TurnOutcome.INVALID_INPUT, 0, context, [])

    begin_run(agent, user_input, context)

    async with ensure_trace(f"{agent.name} run", **trace_options(context.run_config)):
        with agent_span(agent.name, input=user_input) as span:
            result = await _run_turns(
                agent, user_input, context, provider, on_tool_call, on_tool_result, span
            )
            span.add_data(
                {
                    "output": result.content,
                    "success": result.success,
                    "error": result.error,
                    "outcome": result.outcome.value,
                    "turns": result.metadata.get("turns"),
                }
            )
    return result


async def _run_turns(
    agent: Agent,
    user_input: str,
    context: RunContext,
    provider: ChatProvider,
    on_tool_call: OnToolCall | None,
    on_tool_result: OnToolResult | None,
    span: Any,
) -> AgentResult:
    plan = plan_agent(agent, context.run_config)
    history: list[Message] = [Message.user(user_input)]
    tool_log: list[dict[str, Any]] = []
    max_turns = context.max_turns

    for turn in range(1, max_turns + 1):
        logger.info("Agent %s: turn %d/%d", agent.name, turn, max_turns)

        instructions = agent.instructions.resolve(context)
        if turn == 1:
            span.add_data({"instructions": instructions})
        messages = build_messages(instructions, history)

        with generation_span(plan.model, input=messages) as gen:
            try:
                response = await provider.complete(
                    plan.model, messages, plan.tool_specs or None, plan.settings
                )
            except Exception as e:
                logger.error(
                    "Agent %s: provider error at turn %d: %s", agent.name, turn, e, exc_info=True
                )
                gen.add_data({"error": str(e)})
                return failure_result(agent, str(e), TurnOutcome.ERROR, turn, context, tool_log)
            gen.add_data(
                {
                    "output": response.text,
                    "tool_calls": len(response.tool_calls),
                    "finish_reason": response.finish_reason,
                    "usage": {
                        "input_tokens": response.usage.input_tokens,
                        "output_tokens": response.usage.output_tokens,
                    },
                }
            )

        if response.has_tool_calls:
            assistant = Message.assistant(response.text or "", response.tool_calls)
            history.append(assistant)
            results, pending = await dispatch_tool_calls(
                plan, assistant.tool_calls, tool_log, on_tool_call, on_tool_result
            )
            history.extend(results)

            if pending is not None:
                target, call = pending

                async def execute(target_agent: Agent, text: str, ctx: RunContext) -> AgentResult:
                    return await run_agent(
                        target_agent,
                        text,
                        ctx,
                        provider,
                        on_tool_call=on_tool_call,
                        on_tool_result=on_tool_result,
                    )

                relayed = await relay_handoff(
                    agent, plan.router, target, call, history, context, execute
                )
                relayed.metadata["tool_calls"] = tool_log + relayed.metadata.get("tool_calls", [])
                return relayed
            continue

        if response.text:
            logger.info("Agent %s completed after %d turns", agent.name, turn)
            return complete_result(agent, response.text, turn, context, tool_log)

        logger.error("Agent %s: response had neither text nor tool calls", agent.name)
        return failure_result(agent, INVALID_RESPONSE_ERROR, TurnOutcome.ERROR, turn, context, tool_log)

    logger.warning("Agent %s hit max turns (%d)", agent.name, max_turns)
    error = str(MaxTurnsExceeded(max_turns, agent.name))
    return failure_result(agent, error, TurnOutcome.MAX_TURNS, max_turns, context, tool_log)
