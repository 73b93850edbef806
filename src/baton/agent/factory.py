"""Agent factory — the built-in agents, the delegation topology and judged workflows."""

from __future__ import annotations

import enum
import json
import logging
from collections.abc import Sequence
from typing import Any, Literal

from pydantic import BaseModel, Field

from baton.agent.agent import DEFAULT_MODEL, Agent
from baton.agent.context import RunContext
from baton.agent.handoff import handoff
from baton.agent.handoff_filters import remove_all_tools
from baton.agent.judge import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MIN_SCORE,
    DEFAULT_TIMEOUT,
    Evaluation,
    SelfImprovingWorkflow,
)
from baton.agent.prompts import (
    DELEGATION_INSTRUCTIONS,
    REPORT_INSTRUCTIONS,
    RESEARCH_INSTRUCTIONS,
    TRIAGE_INSTRUCTIONS,
    WORKFLOW_RUNNER_INSTRUCTIONS,
    judge_instructions,
)
from baton.agent.triage import ClassifyQueryTool
from baton.llm.provider import ChatProvider, ModelSettings
from baton.tool.base import function_tool

logger = logging.getLogger(__name__)


class AgentType(enum.Enum):
    DELEGATION = "delegation"
    TRIAGE = "triage"
    RESEARCH = "research"
    REPORT = "report"
    JUDGE = "judge"
    CUSTOM = "custom"


class ResearchRequest(BaseModel):
    topic: str = Field(description="Research topic to investigate")
    depth: Literal["basic", "detailed", "comprehensive"] = Field(
        description="Depth of research required"
    )


class AnalyzeRequestParams(BaseModel):
    request: str = Field(description="The user request to analyze")
    category: str = Field(description="The category of the request")


async def _analyze_request(params: AnalyzeRequestParams) -> str:
    return json.dumps(params.model_dump())


def _log_handoff(ctx: RunContext, data: ResearchRequest | None) -> None:
    target = ctx.handoff_tracker[-1] if ctx.handoff_tracker else "?"
    if data is not None:
        logger.info("Handoff detected to agent: %s (topic=%r, depth=%s)", target, data.topic, data.depth)
    else:
        logger.info("Handoff detected to agent: %s", target)


class AgentFactory:
    """Builds agents with shared defaults.

    ``create_agent`` always returns a fresh descriptor; overrides are
    applied with ``Agent.clone`` so built-ins are never mutated.
    """

    def __init__(self, model: str = DEFAULT_MODEL, temperature: float | None = 0.7) -> None:
        self.model = model
        self.temperature = temperature

    def set_defaults(self, model: str | None = None, temperature: float | None = None) -> None:
        if model:
            self.model = model
        if temperature is not None:
            self.temperature = temperature

    def _settings(self, temperature: float | None = None) -> ModelSettings:
        return ModelSettings(temperature=temperature if temperature is not None else self.temperature)

    def create_agent(self, agent_type: AgentType, **overrides: Any) -> Agent:
        if agent_type is AgentType.DELEGATION:
            agent = self._delegation_agent()
        elif agent_type is AgentType.TRIAGE:
            agent = self._triage_agent()
        elif agent_type is AgentType.RESEARCH:
            agent = self._research_agent()
        elif agent_type is AgentType.REPORT:
            agent = self._report_agent()
        elif agent_type is AgentType.JUDGE:
            agent = self._judge_agent()
        elif agent_type is AgentType.CUSTOM:
            if not overrides:
                raise ValueError("Config is required for custom agents")
            overrides.setdefault("name", "CustomAgent")
            overrides.setdefault("instructions", "You are a helpful assistant.")
            overrides.setdefault("model", self.model)
            overrides.setdefault("model_settings", self._settings())
            return Agent(**overrides)
        else:
            raise ValueError(f"Unknown agent type: {agent_type}")

        return agent.clone(**overrides) if overrides else agent

    def _research_agent(self) -> Agent:
        return Agent(
            name="ResearchAgent",
            description="Finds current information and answers factual questions",
            instructions=RESEARCH_INSTRUCTIONS,
            model=self.model,
            model_settings=self._settings(),
        )

    def _report_agent(self) -> Agent:
        return Agent(
            name="ReportAgent",
            description="Formats information into structured reports",
            instructions=REPORT_INSTRUCTIONS,
            model=self.model,
            model_settings=self._settings(),
        )

    def _judge_agent(self, criteria: Sequence[str] | None = None) -> Agent:
        return Agent(
            name="JudgeAgent",
            description="Scores responses and explains how to improve them",
            instructions=judge_instructions(criteria) if criteria else judge_instructions(),
            model=self.model,
            model_settings=self._settings(0.3),
            output_type=Evaluation,
        )

    def _triage_agent(self) -> Agent:
        return Agent(
            name="TriageAgent",
            description="Classifies queries and routes them to a specialist",
            instructions=TRIAGE_INSTRUCTIONS,
            model=self.model,
            model_settings=self._settings(0.3),
            tools=(ClassifyQueryTool(),),
            handoffs=(self._research_agent(), self._report_agent()),
        )

    def _delegation_agent(self) -> Agent:
        return Agent(
            name="DelegationAgent",
            description="Delegates requests to specialized agents",
            instructions=DELEGATION_INSTRUCTIONS,
            model=self.model,
            model_settings=self._settings(0.3),
            tools=(
                function_tool(
                    "analyze_request",
                    "Analyze the user request to determine appropriate delegation",
                    AnalyzeRequestParams,
                    _analyze_request,
                ),
            ),
            handoffs=(
                self._triage_agent(),
                handoff(
                    self._research_agent(),
                    on_handoff=_log_handoff,
                    input_type=ResearchRequest,
                ),
                handoff(
                    self._report_agent(),
                    tool_name_override="format_as_report",
                    tool_description_override="Format the information as a structured report",
                ),
            ),
            handoff_input_filter=remove_all_tools,
        )

    def create_delegation_workflow(self, provider: ChatProvider) -> Agent:
        """An agent that keeps control and calls the specialists as tools."""
        triage = self.create_agent(AgentType.TRIAGE, handoffs=())
        research = self.create_agent(AgentType.RESEARCH)
        report = self.create_agent(AgentType.REPORT)
        return Agent(
            name="WorkflowRunner",
            instructions=WORKFLOW_RUNNER_INSTRUCTIONS,
            model=self.model,
            model_settings=self._settings(0.3),
            tools=(
                triage.as_tool("use_triage_agent", "Analyze and categorize the user query", provider),
                research.as_tool(
                    "use_research_agent", "Search for information to answer factual questions", provider
                ),
                report.as_tool(
                    "use_report_agent", "Format information into a structured report", provider
                ),
            ),
        )


    def create_self_improving_workflow(
        self,
        provider: ChatProvider,
        primary_type: AgentType = AgentType.RESEARCH,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        min_score: int = DEFAULT_MIN_SCORE,
        timeout: float | None = DEFAULT_TIMEOUT,
        criteria: Sequence[str] | None = None,
        judge_model: str | None = None,
        judge_temperature: float = 0.3,
        **primary_overrides: Any,
    ) -> SelfImprovingWorkflow:
        """A primary agent whose answers are judged and revised until acceptable."""
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if not 1 <= min_score <= 10:
            raise ValueError("min_score must be between 1 and 10")
        primary = self.create_agent(primary_type, **primary_overrides)
        judge = self._judge_agent(criteria).clone(
            name="QualityJudge",
            model=judge_model or self.model,
            model_settings=self._settings(judge_temperature),
        )
        return SelfImprovingWorkflow(
            primary=primary,
            judge=judge,
            provider=provider,
            max_iterations=max_iterations,
            min_score=min_score,
            timeout=timeout,
        )


def default_delegation_agent() -> Agent:
    return AgentFactory().create_agent(AgentType.DELEGATION)
