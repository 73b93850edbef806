"""Orchestrator — a fixed triage → research | report | combined topology.

Unlike the delegation agent, the orchestrator keeps control itself:

1. Validate the query (empty queries never reach the model) and apply
   the run config's input guardrails; output guardrails see the final report
2. Run the triage agent, which records its classification via ``classify_query``
3. Route on the task type: research, report, or combined (research first,
   then a report written over the research notes). Unknown → combined.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from baton.agent.agent import Agent
from baton.agent.context import AgentResult, RunConfig, RunContext, TurnOutcome
from baton.agent.factory import AgentFactory, AgentType
from baton.agent.loop import EMPTY_INPUT_ERROR, run_agent, trace_options
from baton.agent.prompts import TRIAGE_CLASSIFY_INSTRUCTIONS, combined_report_prompt
from baton.agent.runner import GuardrailAbort, apply_guardrails
from baton.agent.stream import StreamCallbacks, StreamEmitter, stream_turns
from baton.agent.triage import TaskType, TriageResult, parse_triage_result
from baton.exceptions import AgentsError, GuardrailTripped, UserError
from baton.llm.provider import ChatProvider, create_provider
from baton.tracing import custom_span, start_trace

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"https?://[^\s\]]+")
_BRACKET_RE = re.compile(r"\[[^\]]+\]")

_TASK_EXPLANATIONS = {
    TaskType.RESEARCH: "research the latest information on this topic",
    TaskType.REPORT: "analyze and summarize this information",
    TaskType.COMBINED: "research and prepare a comprehensive report",
}


@dataclass
class OrchestrationResult:
    success: bool
    report: str
    error: str | None = None
    task_type: TaskType | None = None
    triage: TriageResult | None = None
    handoff_path: list[str] = field(default_factory=list)
    execution_time_ms: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class OrchestrationCallbacks(StreamCallbacks):
    """Stream callbacks plus orchestration milestones."""

    on_triage_complete: Callable[[TriageResult], None] | None = None
    on_research_start: Callable[[], None] | None = None
    on_research_complete: Callable[[str], None] | None = None
    on_report_start: Callable[[], None] | None = None


def count_citations(text: str) -> int:
    """Distinct URLs and bracketed references; at least 1."""
    citations = set(_URL_RE.findall(text)) | set(_BRACKET_RE.findall(text))
    return len(citations) or 1


def task_explanation(task_type: TaskType) -> str:
    return _TASK_EXPLANATIONS.get(task_type, "process this request")


class Orchestrator:
    """Triage, then research and/or report, behind one call."""

    def __init__(
        self,
        provider: ChatProvider | None = None,
        factory: AgentFactory | None = None,
        run_config: RunConfig | None = None,
    ) -> None:
        self.provider = provider or create_provider()
        self.run_config = run_config
        factory = factory or AgentFactory()
        self.triage_agent = factory.create_agent(
            AgentType.TRIAGE, handoffs=(), instructions=TRIAGE_CLASSIFY_INSTRUCTIONS
        )
        self.research_agent = factory.create_agent(AgentType.RESEARCH)
        self.report_agent = factory.create_agent(AgentType.REPORT)

    def _context(self, query: str) -> RunContext:
        context = RunContext(original_query=query, run_config=self.run_config)
        if self.run_config is not None and self.run_config.max_turns:
            context.max_turns = self.run_config.max_turns
        return context

    async def _guard(self, text: str, stage: str) -> str:
        """Apply the configured guardrails for ``stage``; raises GuardrailAbort."""
        if self.run_config is None:
            return text
        guardrails = (
            self.run_config.input_guardrails
            if stage == "input"
            else self.run_config.output_guardrails
        )
        processed, _ = await apply_guardrails(guardrails, text, stage)
        return processed

    async def _run(self, agent: Agent, text: str, path: list[str]) -> AgentResult:
        result = await run_agent(agent, text, self._context(text), self.provider)
        path.extend(result.metadata.get("handoff_tracker") or [agent.name])
        return result

    async def _triage(self, query: str, path: list[str]) -> tuple[AgentResult, TriageResult | None]:
        result = await self._run(self.triage_agent, query, path)
        if not result.success:
            return result, None
        triage = parse_triage_result(result, query)
        logger.info(
            "Triage: %s (confidence %.2f): %s",
            triage.task_type.value,
            triage.confidence,
            triage.reasoning,
        )
        return result, triage

    # ------------------------------------------------------------------
    # Buffered
    # ------------------------------------------------------------------

    async def handle_query(self, query: str) -> OrchestrationResult:
        start = time.monotonic()
        if not query or not query.strip():
            return OrchestrationResult(success=False, report="", error=EMPTY_INPUT_ERROR)

        path: list[str] = []
        async with start_trace("Orchestrator query", **trace_options(self.run_config)):
            try:
                guarded = await self._guard(query, "input")
            except GuardrailAbort as abort:
                return OrchestrationResult(
                    success=False,
                    report="",
                    error=str(abort),
                    execution_time_ms=(time.monotonic() - start) * 1000,
                    metadata={"guardrail": abort.name},
                )

            triage_run, triage = await self._triage(guarded, path)
            if triage is None:
                return OrchestrationResult(
                    success=False,
                    report="",
                    error=f"Triage failed: {triage_run.error}",
                    handoff_path=path,
                    execution_time_ms=(time.monotonic() - start) * 1000,
                )

            processed = triage.modified_query or guarded
            with custom_span("route", {"task_type": triage.task_type.value}):
                if triage.task_type is TaskType.RESEARCH:
                    result, extra = await self._research(processed, path)
                elif triage.task_type is TaskType.REPORT:
                    result, extra = await self._report(processed, path)
                else:
                    result, extra = await self._combined(processed, path)

            if result.success:
                try:
                    result.content = await self._guard(result.content, "output")
                except GuardrailAbort as abort:
                    result = AgentResult.failure(
                        str(abort), TurnOutcome.GUARDRAIL, guardrail=abort.name
                    )
                    extra["guardrail"] = abort.name

        return OrchestrationResult(
            success=result.success,
            report=result.content,
            error=result.error,
            task_type=triage.task_type,
            triage=triage,
            handoff_path=path,
            execution_time_ms=(time.monotonic() - start) * 1000,
            metadata={
                "original_query": query,
                "processed_query": processed,
                "triage_confidence": triage.confidence,
                "triage_reasoning": triage.reasoning,
                **extra,
            },
        )

    async def _research(self, query: str, path: list[str]) -> tuple[AgentResult, dict[str, Any]]:
        result = await self._run(self.research_agent, query, path)
        return result, {"research_success": result.success}

    async def _report(self, query: str, path: list[str]) -> tuple[AgentResult, dict[str, Any]]:
        result = await self._run(self.report_agent, query, path)
        return result, {"report_success": result.success}

    async def _combined(self, query: str, path: list[str]) -> tuple[AgentResult, dict[str, Any]]:
        research = await self._run(self.research_agent, query, path)
        if not research.success:
            failed = AgentResult.failure(f"Research failed: {research.error}", research.outcome)
            return failed, {"research_success": False, "report_success": False}

        report = await self._run(
            self.report_agent, combined_report_prompt(query, research.content), path
        )
        return report, {"research_success": True, "report_success": report.success}

    # ------------------------------------------------------------------
    # Streamed
    # ------------------------------------------------------------------

    async def stream_query(
        self, query: str, callbacks: OrchestrationCallbacks
    ) -> OrchestrationResult:
        """Stream the whole orchestration; ends in exactly one of on_error/on_complete."""
        start = time.monotonic()
        emitter = StreamEmitter(callbacks)

        if not query or not query.strip():
            emitter.error(UserError(EMPTY_INPUT_ERROR))
            return OrchestrationResult(success=False, report="", error=EMPTY_INPUT_ERROR)

        emitter.start()
        try:
            return await self._stream_query(query, callbacks, emitter, start)
        except Exception as e:
            emitter.error(e)
            raise

    async def _stream_query(
        self,
        query: str,
        callbacks: OrchestrationCallbacks,
        emitter: StreamEmitter,
        start: float,
    ) -> OrchestrationResult:
        path: list[str] = []
        async with start_trace("Orchestrator query (streaming)", **trace_options(self.run_config)):
            try:
                guarded = await self._guard(query, "input")
            except GuardrailAbort as abort:
                emitter.error(GuardrailTripped(abort.name, str(abort)))
                return OrchestrationResult(
                    success=False, report="", error=str(abort), metadata={"guardrail": abort.name}
                )

            emitter.token("Analyzing your query...\n\n")
            triage_run, triage = await self._triage(guarded, path)
            if triage is None:
                error = f"Triage failed: {triage_run.error}"
                emitter.error(AgentsError(error))
                return OrchestrationResult(
                    success=False, report="", error=error, handoff_path=path
                )

            processed = triage.modified_query or guarded
            if callbacks.on_triage_complete:
                callbacks.on_triage_complete(triage)
            emitter.token(f"I'll {task_explanation(triage.task_type)} for you.\n\n")

            if triage.task_type is TaskType.RESEARCH:
                if callbacks.on_research_start:
                    callbacks.on_research_start()
                result = await self._stream(self.research_agent, processed, emitter, path)
            elif triage.task_type is TaskType.REPORT:
                if callbacks.on_report_start:
                    callbacks.on_report_start()
                result = await self._stream(self.report_agent, processed, emitter, path)
            else:
                result = await self._stream_combined(processed, callbacks, emitter, path)

            tripped: GuardrailTripped | None = None
            if result.success:
                try:
                    result.content = await self._guard(result.content, "output")
                except GuardrailAbort as abort:
                    tripped = GuardrailTripped(abort.name, str(abort))
                    result = AgentResult.failure(
                        str(abort), TurnOutcome.GUARDRAIL, guardrail=abort.name
                    )

        outcome = OrchestrationResult(
            success=result.success,
            report=result.content,
            error=result.error,
            task_type=triage.task_type,
            triage=triage,
            handoff_path=path,
            execution_time_ms=(time.monotonic() - start) * 1000,
            metadata={"original_query": query, "processed_query": processed},
        )
        if tripped is not None:
            outcome.metadata["guardrail"] = tripped.guardrail
        if result.success:
            emitter.complete(
                AgentResult(
                    content=result.content,
                    metadata={
                        **outcome.metadata,
                        "task_type": triage.task_type.value,
                        "handoff_tracker": path,
                        "execution_time_ms": outcome.execution_time_ms,
                    },
                    last_agent=result.last_agent,
                )
            )
        else:
            emitter.error(tripped or AgentsError(result.error or "Orchestration failed"))
        return outcome

    async def _stream(
        self, agent: Agent, text: str, emitter: StreamEmitter, path: list[str]
    ) -> AgentResult:
        context = self._context(text)
        context.handoff_tracker.append(agent.name)
        result = await stream_turns(agent, text, context, self.provider, emitter)
        path.extend(context.handoff_tracker)
        return result

    async def _stream_combined(
        self,
        query: str,
        callbacks: OrchestrationCallbacks,
        emitter: StreamEmitter,
        path: list[str],
    ) -> AgentResult:
        if callbacks.on_research_start:
            callbacks.on_research_start()
        emitter.token("Researching your query...\n\n")

        # Research tokens are collected, not forwarded
        quiet = StreamEmitter(
            StreamCallbacks(on_tool_start=callbacks.on_tool_start, on_tool_end=callbacks.on_tool_end)
        )
        research = await self._stream(self.research_agent, query, quiet, path)
        if not research.success:
            return AgentResult.failure(
                f"Research failed: {research.error}", research.outcome or TurnOutcome.ERROR
            )

        if callbacks.on_research_complete:
            callbacks.on_research_complete(research.content)
        emitter.token(
            f"Research complete. Found information from "
            f"{count_citations(research.content)} sources.\n\n"
        )

        if callbacks.on_report_start:
            callbacks.on_report_start()
        emitter.token("Generating your report...\n\n")
        report = await self._stream(
            self.report_agent, combined_report_prompt(query, research.content), emitter, path
        )
        if not report.success:
            return AgentResult.failure(f"Report generation failed: {report.error}", report.outcome)
        return report
