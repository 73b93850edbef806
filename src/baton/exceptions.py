"""Exception hierarchy for run-level failures."""

from __future__ import annotations


class AgentsError(Exception):
    """Base class for every error baton raises on purpose."""


class MaxTurnsExceeded(AgentsError):
    """The turn budget ran out before the agent produced a final answer.

    Kept separate from provider failures so callers can retry with a
    larger ``max_turns`` or treat it as a policy violation.
    """

    def __init__(self, max_turns: int, agent_name: str = "") -> None:
        self.max_turns = max_turns
        self.agent_name = agent_name
        where = f" in agent {agent_name}" if agent_name else ""
        super().__init__(f"Maximum number of turns ({max_turns}) exceeded{where}")


class ModelBehaviorError(AgentsError):
    """The model returned something the loop cannot interpret."""


class UserError(AgentsError):
    """Invalid input supplied by the caller (e.g. an empty query)."""


class GuardrailTripped(AgentsError):
    """A guardrail rejected the run input or output."""

    def __init__(self, guardrail: str, message: str) -> None:
        self.guardrail = guardrail
        super().__init__(message)
