"""Per-run state: the run context, run configuration and agent results."""

from __future__ import annotations

import copy
import enum
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from baton.exceptions import (
    AgentsError,
    GuardrailTripped,
    MaxTurnsExceeded,
    ModelBehaviorError,
    UserError,
)
from baton.llm.provider import ModelSettings

if TYPE_CHECKING:
    from baton.agent.agent import Agent
    from baton.agent.handoff import HandoffInputFilter

DEFAULT_MAX_TURNS = 25

Guardrail = Callable[[str], "str | Awaitable[str]"]


class TurnOutcome(enum.Enum):
    """How a turn loop ended."""

    COMPLETE = "complete"  # Final text answer
    HANDOFF = "handoff"  # Answer relayed from a handoff target
    MAX_TURNS = "max_turns"  # Turn budget exhausted
    ERROR = "error"  # Provider failure or malformed response
    INVALID_INPUT = "invalid_input"  # Empty query, never reached the model
    GUARDRAIL = "guardrail"  # Rejected by an input/output guardrail


@dataclass
class RunConfig:
    """Settings for one top-level run."""

    workflow_name: str | None = None
    trace_id: str | None = None
    group_id: str | None = None
    model: str | None = None
    model_settings: ModelSettings | None = None
    input_guardrails: list[Guardrail] = field(default_factory=list)
    output_guardrails: list[Guardrail] = field(default_factory=list)
    handoff_input_filter: HandoffInputFilter | None = None
    tracing_disabled: bool = False
    trace_include_sensitive_data: bool = True
    trace_metadata: dict[str, Any] = field(default_factory=dict)
    max_turns: int | None = None


@dataclass
class RunContext:
    """Mutable state threaded through one call chain.

    ``handoff_tracker`` is append-only and shared by every context forked
    from this one, so it records the whole delegation chain. A context
    must never be shared between concurrent runs.
    """

    handoff_tracker: list[str] = field(default_factory=list)
    max_turns: int = DEFAULT_MAX_TURNS
    original_query: str | None = None
    run_config: RunConfig | None = None
    handoff_reason: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def fork(self, **changes: Any) -> RunContext:
        """Copy for a delegated call; the tracker list is shared, not copied."""
        forked = copy.copy(self)
        forked.extra = dict(self.extra)
        for key, value in changes.items():
            setattr(forked, key, value)
        return forked


_OUTCOME_ERRORS: dict[TurnOutcome, type[AgentsError]] = {
    TurnOutcome.ERROR: ModelBehaviorError,
    TurnOutcome.INVALID_INPUT: UserError,
}


@dataclass
class AgentResult:
    """Terminal value of one turn loop, direct or relayed from a handoff."""

    content: str = ""
    success: bool = True
    error: str | None = None
    outcome: TurnOutcome = TurnOutcome.COMPLETE
    metadata: dict[str, Any] = field(default_factory=dict)
    last_agent: Agent | None = field(default=None, repr=False)

    @classmethod
    def failure(
        cls,
        error: str,
        outcome: TurnOutcome = TurnOutcome.ERROR,
        **metadata: Any,
    ) -> AgentResult:
        return cls(content="", success=False, error=error, outcome=outcome, metadata=metadata)

    @property
    def typed_output(self) -> Any:
        return self.metadata.get("typed_output")

    def raise_for_outcome(self) -> AgentResult:
        """Raise the matching exception for a failed result, else return self."""
        if self.success:
            return self
        if self.outcome is TurnOutcome.MAX_TURNS:
            raise MaxTurnsExceeded(
                self.metadata.get("max_turns", DEFAULT_MAX_TURNS),
                self.metadata.get("agent", ""),
            )
        if self.outcome is TurnOutcome.GUARDRAIL:
            raise GuardrailTripped(self.metadata.get("guardrail", ""), self.error or "")
        raise _OUTCOME_ERRORS.get(self.outcome, AgentsError)(self.error or "Agent run failed")
