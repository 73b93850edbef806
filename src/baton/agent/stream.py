"""Streaming variant of the turn loop.

Consumes ``provider.stream()`` chunks instead of one complete response
and reports progress through callbacks. Suspension happens only while
awaiting the next chunk or a tool; nothing runs in parallel within one
streamed run. A broken stream ends the run: no retry, no further turns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from baton.agent.agent import Agent
from baton.agent.context import AgentResult, RunContext, TurnOutcome
from baton.agent.handoff import relay_handoff
from baton.agent.loop import (
    EMPTY_INPUT_ERROR,
    INVALID_RESPONSE_ERROR,
    begin_run,
    build_messages,
    complete_result,
    dispatch_tool_calls,
    failure_result,
    plan_agent,
    trace_options,
)
from baton.exceptions import AgentsError, MaxTurnsExceeded
from baton.llm.message import Message
from baton.llm.provider import ChatProvider
from baton.llm.streaming import generate
from baton.session.wire import EventType, Wire, WireEvent
from baton.tracing import agent_span, ensure_trace, generation_span

logger = logging.getLogger(__name__)


@dataclass
class StreamCallbacks:
    """Observer hooks for a streamed run. All optional."""

    on_start: Callable[[], None] | None = None
    on_token: Callable[[str], None] | None = None
    on_agent_start: Callable[[str], None] | None = None
    on_handoff: Callable[[str, str], None] | None = None
    on_tool_start: Callable[[str, str, str], None] | None = None
    on_tool_end: Callable[[str, str, str, bool], None] | None = None
    on_error: Callable[[Exception], None] | None = None
    on_complete: Callable[[AgentResult], None] | None = None


class StreamEmitter:
    """Emits callbacks in protocol order.

    ``start`` fires at most once. ``error`` and ``complete`` are mutually
    exclusive terminal events: whichever comes first wins, and nothing is
    emitted after it.
    """

    def __init__(self, callbacks: StreamCallbacks | None = None) -> None:
        self.callbacks = callbacks or StreamCallbacks()
        self._started = False
        self._terminal: str | None = None

    @property
    def finished(self) -> bool:
        return self._terminal is not None

    @property
    def terminal_event(self) -> str | None:
        return self._terminal

    def start(self) -> None:
        if self._started or self.finished:
            return
        self._started = True
        if self.callbacks.on_start:
            self.callbacks.on_start()

    def token(self, text: str) -> None:
        if not self.finished and self.callbacks.on_token:
            self.callbacks.on_token(text)

    def agent_start(self, agent_name: str) -> None:
        if not self.finished and self.callbacks.on_agent_start:
            self.callbacks.on_agent_start(agent_name)

    def handoff(self, source: str, target: str) -> None:
        if not self.finished and self.callbacks.on_handoff:
            self.callbacks.on_handoff(source, target)

    def tool_start(self, call_id: str, name: str, arguments: str) -> None:
        if not self.finished and self.callbacks.on_tool_start:
            self.callbacks.on_tool_start(call_id, name, arguments)

    def tool_end(self, call_id: str, name: str, content: str, is_error: bool) -> None:
        if not self.finished and self.callbacks.on_tool_end:
            self.callbacks.on_tool_end(call_id, name, content, is_error)

    def error(self, error: Exception) -> bool:
        if self.finished:
            logger.debug("Dropping error after %s: %s", self._terminal, error)
            return False
        self._terminal = "error"
        if self.callbacks.on_error:
            self.callbacks.on_error(error)
        return True

    def complete(self, result: AgentResult) -> bool:
        if self.finished:
            logger.debug("Dropping complete after %s", self._terminal)
            return False
        self._terminal = "complete"
        if self.callbacks.on_complete:
            self.callbacks.on_complete(result)
        return True


def error_for(result: AgentResult) -> Exception:
    """The exception a failed result is reported with on ``on_error``."""
    try:
        result.raise_for_outcome()
    except AgentsError as e:
        return e
    return AgentsError(result.error or "Agent run failed")


async def stream_agent(
    agent: Agent,
    user_input: str,
    callbacks: StreamCallbacks | StreamEmitter,
    context: RunContext,
    provider: ChatProvider,
) -> AgentResult:
    """Stream one agent run, ending in exactly one of on_error/on_complete.

    The returned result is the same one handed to ``on_complete`` (or the
    failure reported through ``on_error``).
    """
    emitter = callbacks if isinstance(callbacks, StreamEmitter) else StreamEmitter(callbacks)
    emitter.start()

    if not user_input or not user_input.strip():
        result = failure_result(agent, EMPTY_INPUT_ERROR, TurnOutcome.INVALID_INPUT, 0, context, [])
        emitter.error(error_for(result))
        return result

    begin_run(agent, user_input, context)
    try:
        async with ensure_trace(
            f"{agent.name} run (streaming)", **trace_options(context.run_config)
        ):
            result = await stream_turns(agent, user_input, context, provider, emitter)
    except Exception as e:
        # Hooks (instructions, filters, on_handoff) may raise; the stream still ends
        emitter.error(e)
        raise

    if result.success:
        emitter.complete(result)
    else:
        emitter.error(error_for(result))
    return result


async def stream_turns(
    agent: Agent,
    user_input: str,
    context: RunContext,
    provider: ChatProvider,
    emitter: StreamEmitter,
) -> AgentResult:
    """Stream ``agent`` (and any handoff targets) without emitting a terminal event."""
    emitter.agent_start(agent.name)
    with agent_span(agent.name, input=user_input) as span:
        result = await _stream_turns(agent, user_input, context, provider, emitter, span)
        span.add_data(
            {
                "output": result.content,
                "success": result.success,
                "error": result.error,
                "outcome": result.outcome.value,
                "turns": result.metadata.get("turns"),
                "streamed": True,
            }
        )
    return result


async def _stream_turns(
    agent: Agent,
    user_input: str,
    context: RunContext,
    provider: ChatProvider,
    emitter: StreamEmitter,
    span: Any,
) -> AgentResult:
    plan = plan_agent(agent, context.run_config)
    history: list[Message] = [Message.user(user_input)]
    tool_log: list[dict[str, Any]] = []
    turns_left = context.max_turns
    turn = 0

    while turns_left > 0:
        turn += 1
        logger.info("Agent %s: streamed turn %d/%d", agent.name, turn, context.max_turns)

        instructions = agent.instructions.resolve(context)
        if turn == 1:
            span.add_data({"instructions": instructions})
        messages = build_messages(instructions, history)

        with generation_span(plan.model, input=messages) as gen:
            try:
                generated = await generate(
                    provider,
                    plan.model,
                    messages,
                    plan.tool_specs or None,
                    plan.settings,
                    on_text=emitter.token,
                )
            except Exception as e:
                logger.error(
                    "Agent %s: stream error at turn %d: %s", agent.name, turn, e, exc_info=True
                )
                gen.add_data({"error": str(e)})
                return failure_result(agent, str(e), TurnOutcome.ERROR, turn, context, tool_log)
            gen.add_data(
                {
                    "output": generated.message.text,
                    "tool_calls": len(generated.message.tool_call_parts),
                    "finish_reason": generated.finish_reason,
                    "incomplete_tool_calls": generated.incomplete_tool_calls,
                }
            )

        message = generated.message
        if generated.has_tool_calls:
            history.append(message)
            results, pending = await dispatch_tool_calls(
                plan, message.tool_calls, tool_log, emitter.tool_start, emitter.tool_end
            )
            history.extend(results)

            if pending is not None:
                target, call = pending

                async def execute(target_agent: Agent, text: str, ctx: RunContext) -> AgentResult:
                    emitter.handoff(agent.name, target_agent.name)
                    return await stream_turns(target_agent, text, ctx, provider, emitter)

                relayed = await relay_handoff(
                    agent, plan.router, target, call, history, context, execute
                )
                relayed.metadata["tool_calls"] = tool_log + relayed.metadata.get("tool_calls", [])
                return relayed

            # One completed tool-call batch costs one turn
            turns_left -= 1
            continue

        if message.text:
            return complete_result(agent, message.text, turn, context, tool_log)

        return failure_result(agent, INVALID_RESPONSE_ERROR, TurnOutcome.ERROR, turn, context, tool_log)

    logger.warning("Agent %s hit max turns (%d) while streaming", agent.name, context.max_turns)
    error = str(MaxTurnsExceeded(context.max_turns, agent.name))
    return failure_result(agent, error, TurnOutcome.MAX_TURNS, turn, context, tool_log)


# ---------------------------------------------------------------------------
# Wire bridge
# ---------------------------------------------------------------------------


def wire_callbacks(wire: Wire) -> StreamCallbacks:
    """Publish every stream event on ``wire``; terminal events close it."""

    def on_error(error: Exception) -> None:
        wire.send(WireEvent(EventType.ERROR, {"error": str(error), "kind": type(error).__name__}))
        wire.close()

    def on_complete(result: AgentResult) -> None:
        wire.send(
            WireEvent(
                EventType.COMPLETE,
                {
                    "content": result.content,
                    "success": result.success,
                    "handoff_tracker": result.metadata.get("handoff_tracker", []),
                },
            )
        )
        wire.close()

    return StreamCallbacks(
        on_start=lambda: wire.send(WireEvent(EventType.START)),
        on_token=wire.send_token,
        on_agent_start=lambda name: wire.send(WireEvent(EventType.AGENT_START, {"agent": name})),
        on_handoff=lambda source, target: wire.send(
            WireEvent(EventType.HANDOFF, {"source": source, "target": target})
        ),
        on_tool_start=lambda call_id, name, arguments: wire.send(
            WireEvent(EventType.TOOL_START, {"id": call_id, "name": name, "arguments": arguments})
        ),
        on_tool_end=lambda call_id, name, content, is_error: wire.send(
            WireEvent(
                EventType.TOOL_END,
                {"id": call_id, "name": name, "content": content, "is_error": is_error},
            )
        ),
        on_error=on_error,
        on_complete=on_complete,
    )
