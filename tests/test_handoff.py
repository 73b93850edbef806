"""Tests for baton.agent.handoff (naming, routing, filters, relay)."""

from __future__ import annotations

from pydantic import BaseModel

from baton.agent.agent import Agent
from baton.agent.context import AgentResult, RunConfig, RunContext, TurnOutcome
from baton.agent.handoff import (
    RECOMMENDED_PROMPT_PREFIX,
    HandoffInput,
    HandoffRouter,
    build_handoff_tools,
    default_tool_name,
    handoff,
    normalize_agent_name,
    prompt_with_handoff_instructions,
    relay_handoff,
)
from baton.agent.handoff_filters import keep_only_last_user_message, remove_all_tools
from baton.llm.message import Message, ToolCall, ToolCallPart


def _tag(label: str):
    def apply(handoff_input: HandoffInput) -> HandoffInput:
        return HandoffInput(messages=[{"role": "user", "content": label}])

    return apply


class Topic(BaseModel):
    topic: str


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


class TestNaming:
    def test_normalize(self) -> None:
        assert normalize_agent_name("  Research   Agent ") == "research_agent"
        assert normalize_agent_name("ReportAgent") == "reportagent"

    def test_default_tool_name(self) -> None:
        assert default_tool_name("Research Agent") == "transfer_to_research_agent"


# ---------------------------------------------------------------------------
# HandoffRouter
# ---------------------------------------------------------------------------


class TestHandoffRouter:
    def test_plain_agents_become_transfer_tools(self) -> None:
        source = Agent(name="Triage", handoffs=[Agent(name="Research Agent")])
        specs = build_handoff_tools(source)
        assert specs[0]["function"]["name"] == "transfer_to_research_agent"
        assert "reason" in specs[0]["function"]["parameters"]["properties"]

    def test_resolve_by_normalized_name(self) -> None:
        target = Agent(name="Research Agent")
        router = HandoffRouter(Agent(name="Triage", handoffs=[target]))
        assert router.is_handoff("transfer_to_research_agent")
        assert router.resolve("transfer_to_research_agent").agent is target

    def test_override_name_resolves(self) -> None:
        report = Agent(name="ReportAgent")
        router = HandoffRouter(
            Agent(name="D", handoffs=[handoff(report, tool_name_override="format_as_report")])
        )
        assert router.is_handoff("format_as_report")
        assert router.resolve("format_as_report").agent is report
        assert [s["function"]["name"] for s in router.tool_specs()] == ["format_as_report"]

    def test_unknown_transfer_target(self) -> None:
        router = HandoffRouter(Agent(name="D", handoffs=[Agent(name="A")]))
        assert router.is_handoff("transfer_to_nobody")
        assert router.resolve("transfer_to_nobody") is None

    def test_regular_tool_is_not_a_handoff(self) -> None:
        router = HandoffRouter(Agent(name="D", handoffs=[Agent(name="A")]))
        assert not router.is_handoff("search")

    def test_input_type_schema_is_merged(self) -> None:
        h = handoff(Agent(name="R"), input_type=Topic)
        params = h.to_openai_spec()["function"]["parameters"]
        assert set(params["properties"]) == {"reason", "topic"}
        assert params["required"] == ["topic"]


class TestFilterPriority:
    def _router(self, **handoff_opts) -> tuple[HandoffRouter, Agent]:
        target = Agent(name="Research Agent")
        source = Agent(
            name="D",
            handoffs=[handoff(target, **handoff_opts)],
            handoff_input_filter=_tag("agent"),
        )
        return HandoffRouter(source), source

    def _label(self, router: HandoffRouter, run_config: RunConfig | None) -> str:
        chosen = router.filter_for(router.handoffs[0], run_config)
        return chosen(HandoffInput()).messages[0]["content"]

    def test_target_specific_wins(self) -> None:
        router, source = self._router(input_filter=_tag("handoff"))
        source.set_handoff_input_filter("research agent", _tag("specific"))
        assert self._label(router, RunConfig(handoff_input_filter=_tag("global"))) == "specific"

    def test_handoff_filter_beats_global(self) -> None:
        router, _ = self._router(input_filter=_tag("handoff"))
        assert self._label(router, RunConfig(handoff_input_filter=_tag("global"))) == "handoff"

    def test_global_beats_agent_default(self) -> None:
        router, _ = self._router()
        assert self._label(router, RunConfig(handoff_input_filter=_tag("global"))) == "global"

    def test_agent_default_last(self) -> None:
        router, _ = self._router()
        assert self._label(router, None) == "agent"

    def test_identity_when_nothing_set(self) -> None:
        router = HandoffRouter(Agent(name="D", handoffs=[Agent(name="A")]))
        assert router.filter_for(router.handoffs[0]) is None


# ---------------------------------------------------------------------------
# Built-in filters
# ---------------------------------------------------------------------------


class TestFilters:
    MESSAGES = [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": None, "tool_calls": [{"id": "c1"}]},
        {"role": "tool", "tool_call_id": "c1", "content": "out"},
        {"role": "assistant", "content": "thinking"},
        {"role": "user", "content": "second"},
    ]

    def test_remove_all_tools(self) -> None:
        out = remove_all_tools(HandoffInput(messages=list(self.MESSAGES)))
        assert [m["content"] for m in out.messages] == ["first", "thinking", "second"]

    def test_keep_only_last_user_message(self) -> None:
        out = keep_only_last_user_message(HandoffInput(messages=list(self.MESSAGES)))
        assert out.messages == [{"role": "user", "content": "second"}]

    def test_keep_only_last_user_message_without_user(self) -> None:
        out = keep_only_last_user_message(HandoffInput(messages=[{"role": "assistant", "content": "x"}]))
        assert out.messages == []

    def test_latest_user_message(self) -> None:
        assert HandoffInput(messages=list(self.MESSAGES)).latest_user_message() == "second"
        assert HandoffInput().latest_user_message() is None


# ---------------------------------------------------------------------------
# relay_handoff
# ---------------------------------------------------------------------------


def _transfer(name: str, arguments: str = '{"reason": "needs facts"}') -> ToolCall:
    return ToolCall.from_part(ToolCallPart(id="c1", name=name, arguments=arguments))


class TestRelayHandoff:
    async def test_relays_target_result(self) -> None:
        target = Agent(name="ResearchAgent")
        source = Agent(name="Triage", handoffs=[target])
        router = HandoffRouter(source)
        context = RunContext(handoff_tracker=["Triage"], original_query="q")
        seen: dict = {}

        async def execute(agent: Agent, text: str, ctx: RunContext) -> AgentResult:
            seen.update(agent=agent, text=text, reason=ctx.handoff_reason, tracker=ctx.handoff_tracker)
            return AgentResult(content="answer", metadata={"agent": agent.name})

        history = [Message.user("what is new?")]
        result = await relay_handoff(
            source, router, router.handoffs[0], _transfer("transfer_to_researchagent"), history, context, execute
        )

        assert seen["agent"] is target
        assert seen["text"] == "what is new?"
        assert seen["reason"] == "needs facts"
        assert seen["tracker"] is context.handoff_tracker
        assert result.content == "answer"
        assert result.outcome is TurnOutcome.HANDOFF
        assert result.metadata["handoff_occurred"] is True
        assert result.metadata["handoff_tracker"] == ["Triage", "ResearchAgent"]
        assert result.last_agent is target

    async def test_failed_target_keeps_its_outcome(self) -> None:
        source = Agent(name="S", handoffs=[Agent(name="T")])
        router = HandoffRouter(source)

        async def execute(agent, text, ctx) -> AgentResult:
            return AgentResult.failure("too long", TurnOutcome.MAX_TURNS)

        result = await relay_handoff(
            source, router, router.handoffs[0], _transfer("transfer_to_t"), [], RunContext(), execute
        )
        assert result.success is False
        assert result.outcome is TurnOutcome.MAX_TURNS
        assert result.metadata["handoff_occurred"] is True

    async def test_empty_history_falls_back_to_original_query(self) -> None:
        source = Agent(name="S", handoffs=[Agent(name="T")])
        router = HandoffRouter(source)
        texts = []

        async def execute(agent, text, ctx) -> AgentResult:
            texts.append(text)
            return AgentResult(content="ok")

        await relay_handoff(
            source, router, router.handoffs[0], _transfer("transfer_to_t", "{}"), [],
            RunContext(original_query="the query"), execute,
        )
        assert texts == ["the query"]

    async def test_filter_without_user_message_uses_default_prompt(self) -> None:
        source = Agent(
            name="S",
            handoffs=[handoff(Agent(name="T"), input_filter=lambda i: HandoffInput(messages=[]))],
        )
        router = HandoffRouter(source)
        texts = []

        async def execute(agent, text, ctx) -> AgentResult:
            texts.append(text)
            return AgentResult(content="ok")

        await relay_handoff(
            source, router, router.handoffs[0], _transfer("transfer_to_t"),
            [Message.user("hi")], RunContext(), execute,
        )
        assert texts == ["Please help with this task"]

    async def test_on_handoff_receives_validated_input(self) -> None:
        received = []
        source = Agent(
            name="S",
            handoffs=[
                handoff(
                    Agent(name="T"),
                    input_type=Topic,
                    on_handoff=lambda ctx, data: received.append((ctx.handoff_tracker[-1], data)),
                )
            ],
        )
        router = HandoffRouter(source)

        async def execute(agent, text, ctx) -> AgentResult:
            return AgentResult(content="ok")

        await relay_handoff(
            source, router, router.handoffs[0], _transfer("transfer_to_t", '{"topic": "AI"}'),
            [Message.user("hi")], RunContext(handoff_tracker=["S"]), execute,
        )
        assert received == [("T", Topic(topic="AI"))]

    async def test_async_on_handoff_with_invalid_input_gets_none(self) -> None:
        received = []

        async def observe(ctx, data) -> None:
            received.append(data)

        source = Agent(name="S", handoffs=[handoff(Agent(name="T"), input_type=Topic, on_handoff=observe)])
        router = HandoffRouter(source)

        async def execute(agent, text, ctx) -> AgentResult:
            return AgentResult(content="ok")

        await relay_handoff(
            source, router, router.handoffs[0], _transfer("transfer_to_t", "{}"),
            [Message.user("hi")], RunContext(), execute,
        )
        assert received == [None]


class TestPrompts:
    def test_prompt_prefix(self) -> None:
        prompt = prompt_with_handoff_instructions("Be helpful.")
        assert prompt.startswith(RECOMMENDED_PROMPT_PREFIX)
        assert prompt.endswith("Be helpful.")
