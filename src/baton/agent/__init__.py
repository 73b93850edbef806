"""Agent system — descriptors, turn loop, handoffs, runner, orchestrator, judge."""

from baton.agent.agent import Agent, AgentDefinition
from baton.agent.context import AgentResult, RunConfig, RunContext, TurnOutcome
from baton.agent.factory import AgentFactory, AgentType
from baton.agent.handoff import Handoff, HandoffInput, handoff
from baton.agent.judge import Evaluation, ImprovementResult, SelfImprovingWorkflow, improve_with_feedback
from baton.agent.loop import run_agent
from baton.agent.orchestrator import Orchestrator, OrchestrationResult
from baton.agent.registry import AgentRegistry
from baton.agent.runner import RunResult, Runner
from baton.agent.stream import StreamCallbacks, stream_agent

__all__ = [
    "Agent",
    "AgentDefinition",
    "AgentFactory",
    "AgentRegistry",
    "AgentResult",
    "AgentType",
    "Evaluation",
    "Handoff",
    "HandoffInput",
    "ImprovementResult",
    "Orchestrator",
    "OrchestrationResult",
    "RunConfig",
    "RunContext",
    "RunResult",
    "Runner",
    "SelfImprovingWorkflow",
    "StreamCallbacks",
    "TurnOutcome",
    "handoff",
    "improve_with_feedback",
    "run_agent",
    "stream_agent",
]
