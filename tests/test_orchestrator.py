"""Tests for baton.agent.orchestrator (triage routing, buffered and streamed)."""

from __future__ import annotations

import pytest

from conftest import ScriptedProvider, calls, text

from baton.agent.context import RunConfig
from baton.agent.orchestrator import (
    OrchestrationCallbacks,
    Orchestrator,
    count_citations,
    task_explanation,
)
from baton.agent.triage import TaskType
from baton.exceptions import GuardrailTripped

TRIAGE = "task classification AI"
RESEARCH = "AI research assistant"
REPORT = "report-writing assistant"


def _classify(task_type: str, **extra) -> list:
    args = {"task_type": task_type, "confidence": 0.9, "reasoning": "because", **extra}
    return [calls(("classify_query", args)), text("Classified.")]


def _orchestrator(**queues) -> tuple[Orchestrator, ScriptedProvider]:
    provider = ScriptedProvider(by_prompt=queues)
    return Orchestrator(provider=provider), provider


def _system_prompts(provider: ScriptedProvider) -> list[str]:
    return [r["messages"][0]["content"] for r in provider.requests]


def block_secrets(text: str) -> str:
    if "password" in text:
        raise GuardrailTripped("block_secrets", "Sensitive content detected")
    return text


def _guarded(config: RunConfig, **queues) -> tuple[Orchestrator, ScriptedProvider]:
    provider = ScriptedProvider(by_prompt=queues)
    return Orchestrator(provider=provider, run_config=config), provider


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_count_citations(self) -> None:
        body = "See https://a.com and https://a.com and [1] and [Smith 2024]."
        assert count_citations(body) == 3

    def test_count_citations_minimum_one(self) -> None:
        assert count_citations("no sources here") == 1

    def test_task_explanation(self) -> None:
        assert task_explanation(TaskType.RESEARCH) == "research the latest information on this topic"
        assert task_explanation(TaskType.UNKNOWN) == "process this request"


# ---------------------------------------------------------------------------
# handle_query
# ---------------------------------------------------------------------------


class TestHandleQuery:
    async def test_research_route(self, recorder) -> None:
        orch, provider = _orchestrator(
            **{TRIAGE: _classify("research"), RESEARCH: [text("Findings")]}
        )
        result = await orch.handle_query("Latest AI news?")

        assert result.success
        assert result.report == "Findings"
        assert result.task_type is TaskType.RESEARCH
        assert result.handoff_path == ["TriageAgent", "ResearchAgent"]
        assert result.metadata["research_success"] is True
        assert result.metadata["triage_confidence"] == 0.9
        assert not any(REPORT in p for p in _system_prompts(provider))
        assert [t.workflow_name for t in recorder.traces] == ["Orchestrator query"]

    async def test_report_route_uses_modified_query(self, recorder) -> None:
        orch, provider = _orchestrator(
            **{
                TRIAGE: _classify("report", modified_query="Summarize: X"),
                REPORT: [text("# Report")],
            }
        )
        result = await orch.handle_query("summarize x")

        assert result.report == "# Report"
        assert result.metadata["processed_query"] == "Summarize: X"
        assert provider.requests[-1]["messages"][-1]["content"] == "Summarize: X"

    async def test_combined_route_feeds_research_into_report(self, recorder) -> None:
        orch, provider = _orchestrator(
            **{
                TRIAGE: _classify("combined"),
                RESEARCH: [text("Notes https://src.example")],
                REPORT: [text("Final report")],
            }
        )
        result = await orch.handle_query("Research and report on X")

        assert result.success
        assert result.report == "Final report"
        assert result.handoff_path == ["TriageAgent", "ResearchAgent", "ReportAgent"]
        report_prompt = provider.requests[-1]["messages"][-1]["content"]
        assert 'User asked: "Research and report on X"' in report_prompt
        assert "Notes https://src.example" in report_prompt
        assert result.metadata["report_success"] is True

    async def test_unknown_task_type_runs_combined(self, recorder) -> None:
        orch, _ = _orchestrator(
            **{
                TRIAGE: _classify("unknown"),
                RESEARCH: [text("notes")],
                REPORT: [text("report")],
            }
        )
        result = await orch.handle_query("something")
        assert result.task_type is TaskType.UNKNOWN
        assert result.handoff_path[-1] == "ReportAgent"

    async def test_json_in_text_classification(self, recorder) -> None:
        orch, _ = _orchestrator(
            **{
                TRIAGE: [text('{"task_type": "research", "confidence": 0.8, "reasoning": "facts"}')],
                RESEARCH: [text("answer")],
            }
        )
        result = await orch.handle_query("q")
        assert result.task_type is TaskType.RESEARCH
        assert result.triage.reasoning == "facts"

    async def test_unparseable_classification_falls_back_to_combined(self, recorder) -> None:
        orch, _ = _orchestrator(
            **{
                TRIAGE: [text("I think it is research.")],
                RESEARCH: [text("notes")],
                REPORT: [text("report")],
            }
        )
        result = await orch.handle_query("q")
        assert result.task_type is TaskType.COMBINED
        assert result.triage.confidence == 0.5
        assert result.report == "report"

    async def test_triage_failure(self, recorder) -> None:
        orch, _ = _orchestrator(**{TRIAGE: [RuntimeError("model down")]})
        result = await orch.handle_query("q")
        assert result.success is False
        assert result.error == "Triage failed: model down"

    async def test_research_failure_in_combined(self, recorder) -> None:
        orch, provider = _orchestrator(
            **{TRIAGE: _classify("combined"), RESEARCH: [RuntimeError("search broke")]}
        )
        result = await orch.handle_query("q")
        assert result.success is False
        assert result.error == "Research failed: search broke"
        assert not any(REPORT in p for p in _system_prompts(provider))

    async def test_empty_query_never_calls_model(self) -> None:
        orch, provider = _orchestrator()
        result = await orch.handle_query("  ")
        assert result.success is False
        assert provider.call_count == 0


class TestHandleQueryGuardrails:
    async def test_input_rejection_never_calls_model(self, recorder) -> None:
        orch, provider = _guarded(RunConfig(input_guardrails=[block_secrets]))
        result = await orch.handle_query("my password is hunter2")

        assert result.success is False
        assert result.error == "Sensitive content detected"
        assert result.metadata["guardrail"] == "block_secrets"
        assert provider.call_count == 0
        spans = recorder.traces[0].spans
        assert spans[0].kind.value == "guardrail"
        assert spans[0].data["triggered"] is True

    async def test_input_transform_reaches_triage(self, recorder) -> None:
        orch, provider = _guarded(
            RunConfig(input_guardrails=[str.upper]),
            **{TRIAGE: _classify("research"), RESEARCH: [text("Findings")]},
        )
        result = await orch.handle_query("latest ai news?")

        assert result.success
        assert provider.requests[0]["messages"][-1]["content"] == "LATEST AI NEWS?"
        assert result.metadata["original_query"] == "latest ai news?"
        assert result.metadata["processed_query"] == "LATEST AI NEWS?"

    async def test_output_transform_changes_report(self, recorder) -> None:
        orch, _ = _guarded(
            RunConfig(output_guardrails=[lambda s: s + " -- checked"]),
            **{TRIAGE: _classify("research"), RESEARCH: [text("Findings")]},
        )
        result = await orch.handle_query("q")
        assert result.success
        assert result.report == "Findings -- checked"

    async def test_output_rejection_fails_the_query(self, recorder) -> None:
        def reject(_: str) -> str:
            raise ValueError("unsafe output")

        orch, _ = _guarded(
            RunConfig(output_guardrails=[reject]),
            **{TRIAGE: _classify("report"), REPORT: [text("# Report")]},
        )
        result = await orch.handle_query("q")

        assert result.success is False
        assert result.report == ""
        assert result.error == "unsafe output"
        assert result.metadata["guardrail"] == "reject"
        assert result.task_type is TaskType.REPORT


# ---------------------------------------------------------------------------
# stream_query
# ---------------------------------------------------------------------------


class Collector:
    def __init__(self) -> None:
        self.tokens: list[str] = []
        self.terminal: list[tuple[str, object]] = []
        self.milestones: list[str] = []

    def callbacks(self) -> OrchestrationCallbacks:
        return OrchestrationCallbacks(
            on_token=self.tokens.append,
            on_error=lambda e: self.terminal.append(("error", e)),
            on_complete=lambda r: self.terminal.append(("complete", r)),
            on_triage_complete=lambda t: self.milestones.append(f"triage:{t.task_type.value}"),
            on_research_start=lambda: self.milestones.append("research_start"),
            on_research_complete=lambda _: self.milestones.append("research_complete"),
            on_report_start=lambda: self.milestones.append("report_start"),
        )


class TestStreamQuery:
    async def test_combined_hides_research_tokens(self, recorder) -> None:
        orch, _ = _orchestrator(
            **{
                TRIAGE: _classify("combined"),
                RESEARCH: [text("secret research notes [1]")],
                REPORT: [text("The report body")],
            }
        )
        out = Collector()
        result = await orch.stream_query("q", out.callbacks())

        streamed = "".join(out.tokens)
        assert result.success
        assert "secret research notes" not in streamed
        assert streamed.startswith("Analyzing your query...")
        assert "Found information from 1 sources." in streamed
        assert streamed.endswith("The report body")
        assert out.milestones == [
            "triage:combined",
            "research_start",
            "research_complete",
            "report_start",
        ]
        [(kind, final)] = out.terminal
        assert kind == "complete"
        assert final.content == "The report body"
        assert final.metadata["handoff_tracker"] == ["TriageAgent", "ResearchAgent", "ReportAgent"]

    async def test_research_route_streams_answer(self, recorder) -> None:
        orch, _ = _orchestrator(**{TRIAGE: _classify("research"), RESEARCH: [text("Fresh facts")]})
        out = Collector()
        await orch.stream_query("q", out.callbacks())

        assert "".join(out.tokens).endswith("Fresh facts")
        assert out.milestones == ["triage:research", "research_start"]
        assert [k for k, _ in out.terminal] == ["complete"]

    async def test_research_failure_ends_in_single_error(self, recorder) -> None:
        orch, _ = _orchestrator(
            **{TRIAGE: _classify("combined"), RESEARCH: [RuntimeError("search broke")]}
        )
        out = Collector()
        result = await orch.stream_query("q", out.callbacks())

        assert result.success is False
        [(kind, error)] = out.terminal
        assert kind == "error"
        assert str(error).startswith("Research failed:")

    async def test_empty_query(self) -> None:
        orch, provider = _orchestrator()
        out = Collector()
        await orch.stream_query("", out.callbacks())
        assert [k for k, _ in out.terminal] == ["error"]
        assert out.tokens == []
        assert provider.call_count == 0

    async def test_input_rejection_ends_in_guardrail_error(self, recorder) -> None:
        orch, provider = _guarded(RunConfig(input_guardrails=[block_secrets]))
        out = Collector()
        result = await orch.stream_query("my password is hunter2", out.callbacks())

        assert result.success is False
        assert result.metadata["guardrail"] == "block_secrets"
        assert provider.call_count == 0
        assert out.tokens == []
        [(kind, error)] = out.terminal
        assert kind == "error"
        assert isinstance(error, GuardrailTripped)
        assert error.guardrail == "block_secrets"

    async def test_output_guardrail_shapes_the_completion(self, recorder) -> None:
        orch, _ = _guarded(
            RunConfig(output_guardrails=[str.upper]),
            **{TRIAGE: _classify("research"), RESEARCH: [text("Fresh facts")]},
        )
        out = Collector()
        result = await orch.stream_query("q", out.callbacks())

        assert result.report == "FRESH FACTS"
        [(kind, final)] = out.terminal
        assert kind == "complete"
        assert final.content == "FRESH FACTS"

    async def test_output_rejection_ends_in_guardrail_error(self, recorder) -> None:
        def reject(_: str) -> str:
            raise ValueError("unsafe output")

        orch, _ = _guarded(
            RunConfig(output_guardrails=[reject]),
            **{TRIAGE: _classify("research"), RESEARCH: [text("Fresh facts")]},
        )
        out = Collector()
        result = await orch.stream_query("q", out.callbacks())

        assert result.success is False
        [(kind, error)] = out.terminal
        assert kind == "error"
        assert isinstance(error, GuardrailTripped)
        assert error.guardrail == "reject"
        assert str(error) == "unsafe output"
        assert result.metadata["guardrail"] == "reject"

    async def test_raising_callback_still_ends_in_error(self, recorder) -> None:
        def explode(_: object) -> None:
            raise RuntimeError("observer failed")

        orch, _ = _orchestrator(**{TRIAGE: _classify("research"), RESEARCH: [text("x")]})
        out = Collector()
        callbacks = out.callbacks()
        callbacks.on_triage_complete = explode
        with pytest.raises(RuntimeError):
            await orch.stream_query("q", callbacks)
        [(kind, error)] = out.terminal
        assert kind == "error"
        assert isinstance(error, RuntimeError)
        assert len(recorder.traces) == 1
