"""Runner — one traced, guarded run of an agent graph.

Each ``run`` / ``run_streamed`` call owns exactly one trace, finished once
on every exit path. Input guardrails transform the query before the agent
sees it; output guardrails transform the final answer. Any guardrail that
raises aborts the run with its own message.
"""

from __future__ import annotations

import enum
import inspect
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from baton.agent.agent import Agent
from baton.agent.context import (
    DEFAULT_MAX_TURNS,
    AgentResult,
    Guardrail,
    RunConfig,
    RunContext,
    TurnOutcome,
)
from baton.agent.factory import default_delegation_agent
from baton.agent.loop import EMPTY_INPUT_ERROR, run_agent
from baton.agent.stream import StreamCallbacks, StreamEmitter, error_for, stream_turns
from baton.exceptions import AgentsError, GuardrailTripped
from baton.llm.provider import ChatProvider, create_provider
from baton.tracing import guardrail_span, start_trace

logger = logging.getLogger(__name__)


class RunItemType(enum.Enum):
    MESSAGE = "message"
    HANDOFF_CALL = "handoff_call"
    TOOL_CALL = "tool_call"
    TOOL_CALL_OUTPUT = "tool_call_output"


@dataclass
class RunItem:
    """Something generated during a run, in order."""

    type: RunItemType
    raw_item: dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass
class GuardrailResult:
    guardrail: str
    original: str
    processed: str


@dataclass
class RunResult:
    success: bool
    output: str
    outcome: TurnOutcome
    last_agent: Agent
    error: str | None = None
    final_output: Any = None
    handoff_path: list[str] = field(default_factory=list)
    execution_time_ms: float = 0.0
    trace_id: str | None = None
    new_items: list[RunItem] = field(default_factory=list)
    input_guardrail_results: list[GuardrailResult] = field(default_factory=list)
    output_guardrail_results: list[GuardrailResult] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    input_items: list[dict[str, Any]] = field(default_factory=list)

    def to_input_list(self) -> list[dict[str, Any]]:
        """The conversation so far, ready to seed a follow-up turn."""
        items = list(self.input_items)
        if self.success:
            items.append({"role": "assistant", "content": self.output})
        return items


class GuardrailAbort(Exception):
    """Raised by ``apply_guardrails``; callers turn it into a failed result."""

    def __init__(self, name: str, error: BaseException) -> None:
        self.name = name
        self.error = error
        super().__init__(str(error) or type(error).__name__)


def _guardrail_name(guardrail: Guardrail) -> str:
    return getattr(guardrail, "__name__", None) or "unnamed_guardrail"


async def apply_guardrails(
    guardrails: list[Guardrail], payload: str, stage: str
) -> tuple[str, list[GuardrailResult]]:
    """Run ``guardrails`` in order, each transforming the previous output."""
    results: list[GuardrailResult] = []
    for guardrail in guardrails:
        name = _guardrail_name(guardrail)
        with guardrail_span(name, stage) as span:
            try:
                processed = guardrail(payload)
                if inspect.isawaitable(processed):
                    processed = await processed
            except Exception as e:
                if isinstance(e, GuardrailTripped) and e.guardrail:
                    name = e.guardrail
                logger.warning("%s guardrail %s rejected the run: %s", stage, name, e)
                span.add_data({"triggered": True, "error": str(e)})
                raise GuardrailAbort(name, e) from e
            span.add_data({"triggered": False, "input": payload, "output": processed})
        results.append(GuardrailResult(guardrail=name, original=payload, processed=str(processed)))
        payload = str(processed)
    return payload, results


def _items_from(query: str, result: AgentResult) -> list[RunItem]:
    items = [RunItem(RunItemType.MESSAGE, {"role": "user", "content": query})]
    for call in result.metadata.get("tool_calls", []):
        kind = RunItemType.HANDOFF_CALL if call.get("handoff") else RunItemType.TOOL_CALL
        items.append(
            RunItem(kind, {"id": call["id"], "name": call["name"], "arguments": call["arguments"]})
        )
        if not call.get("handoff"):
            items.append(
                RunItem(
                    RunItemType.TOOL_CALL_OUTPUT,
                    {"tool_call_id": call["id"], "output": call["output"], "is_error": call["is_error"]},
                )
            )
    if result.success:
        items.append(RunItem(RunItemType.MESSAGE, {"role": "assistant", "content": result.content}))
    return items


class Runner:
    """Runs one agent graph (the default delegation topology when none is given).

    Usage:
        runner = Runner(provider=create_provider())
        result = await runner.run("What is 2+2?")
        print(result.output, result.handoff_path)
    """

    def __init__(self, agent: Agent | None = None, provider: ChatProvider | None = None) -> None:
        self.agent = agent or default_delegation_agent()
        self.provider = provider or create_provider()

    async def run(
        self,
        query: str,
        config: RunConfig | None = None,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> RunResult:
        config = config or RunConfig()
        workflow = config.workflow_name or f"{self.agent.name} run"
        return await self._run(query, config, max_turns, workflow, None)

    async def run_streamed(
        self,
        query: str,
        callbacks: StreamCallbacks,
        config: RunConfig | None = None,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> RunResult:
        """Like ``run`` but streams tokens; ends in one of on_error/on_complete.

        The terminal callback fires after output guardrails, so it always
        carries the final (guarded) answer.
        """
        config = config or RunConfig()
        workflow = config.workflow_name or f"{self.agent.name} run (streaming)"
        emitter = StreamEmitter(callbacks)
        emitter.start()
        try:
            result = await self._run(query, config, max_turns, workflow, emitter)
        except Exception as e:
            emitter.error(e)
            raise
        if result.success:
            emitter.complete(
                AgentResult(
                    content=result.output,
                    metadata={**result.metadata, "handoff_tracker": result.handoff_path},
                    last_agent=result.last_agent,
                )
            )
        else:
            emitter.error(
                error_for(
                    AgentResult(
                        success=False,
                        error=result.error,
                        outcome=result.outcome,
                        metadata=result.metadata,
                    )
                )
            )
        return result

    async def _run(
        self,
        query: str,
        config: RunConfig,
        max_turns: int,
        workflow: str,
        emitter: StreamEmitter | None,
    ) -> RunResult:
        start = time.monotonic()
        handle = start_trace(
            workflow,
            trace_id=config.trace_id,
            group_id=config.group_id,
            metadata=config.trace_metadata,
            disabled=config.tracing_disabled,
            include_sensitive_data=config.trace_include_sensitive_data,
        )
        context = RunContext(
            handoff_tracker=[self.agent.name],
            max_turns=config.max_turns or max_turns,
            original_query=query,
            run_config=config,
        )

        def finish(result: AgentResult, **extra: Any) -> RunResult:
            run_result = RunResult(
                success=result.success,
                output=result.content,
                outcome=result.outcome,
                last_agent=result.last_agent or self.agent,
                error=result.error,
                final_output=result.typed_output if result.typed_output is not None else result.content,
                handoff_path=list(context.handoff_tracker),
                execution_time_ms=(time.monotonic() - start) * 1000,
                trace_id=handle.trace.trace_id,
                metadata=dict(result.metadata),
                input_items=[{"role": "user", "content": query}],
                **extra,
            )
            return run_result

        try:
            if not query or not query.strip():
                logger.warning("Runner: empty query, not calling the model")
                return finish(
                    AgentResult.failure(EMPTY_INPUT_ERROR, TurnOutcome.INVALID_INPUT),
                    new_items=[],
                )

            try:
                processed, input_results = await apply_guardrails(
                    config.input_guardrails, query, "input"
                )
            except GuardrailAbort as abort:
                return finish(
                    AgentResult.failure(
                        str(abort), TurnOutcome.GUARDRAIL, guardrail=abort.name
                    )
                )

            if emitter is None:
                result = await run_agent(self.agent, processed, context, self.provider)
            else:
                result = await stream_turns(self.agent, processed, context, self.provider, emitter)

            output_results: list[GuardrailResult] = []
            if result.success and config.output_guardrails:
                try:
                    guarded, output_results = await apply_guardrails(
                        config.output_guardrails, result.content, "output"
                    )
                except GuardrailAbort as abort:
                    return finish(
                        AgentResult.failure(
                            str(abort), TurnOutcome.GUARDRAIL, guardrail=abort.name
                        ),
                        input_guardrail_results=input_results,
                        new_items=_items_from(processed, result),
                    )
                result.content = guarded

            if not result.success:
                logger.warning("Run failed (%s): %s", result.outcome.value, result.error)
            return finish(
                result,
                new_items=_items_from(processed, result),
                input_guardrail_results=input_results,
                output_guardrail_results=output_results,
            )
        except AgentsError:
            raise
        except Exception as e:
            logger.error("Run error: %s", e, exc_info=True)
            return finish(AgentResult.failure(str(e) or type(e).__name__, TurnOutcome.ERROR))
        finally:
            await handle.finish()

