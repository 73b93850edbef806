"""Query classification: the triage result and the tool that records it."""

from __future__ import annotations

import enum
import json
import logging
from typing import ClassVar

from pydantic import BaseModel, Field, ValidationError

from baton.agent.context import AgentResult
from baton.agent.output import parse_output
from baton.tool.base import BaseTool, ToolOk, ToolResult

logger = logging.getLogger(__name__)

CLASSIFY_TOOL_NAME = "classify_query"


class TaskType(str, enum.Enum):
    RESEARCH = "research"
    REPORT = "report"
    COMBINED = "combined"  # Research, then a report over the research notes
    UNKNOWN = "unknown"


class TriageResult(BaseModel):
    task_type: TaskType = Field(description="The task type classification")
    confidence: float = Field(ge=0, le=1, description="Confidence score (0-1)")
    reasoning: str = Field(description="Explanation of why this task type was chosen")
    modified_query: str | None = Field(
        default=None, description="Optional improved version of the query"
    )


class ClassifyQueryTool(BaseTool[TriageResult]):
    """Captures the classification; the orchestrator reads it from the call log."""

    name: ClassVar[str] = CLASSIFY_TOOL_NAME
    description: ClassVar[str] = "Classify the user query into the appropriate task type"
    param_model: ClassVar[type[BaseModel]] = TriageResult

    async def execute(self, params: TriageResult) -> ToolResult:
        return ToolOk(output=params.model_dump_json())


def fallback_triage(query: str) -> TriageResult:
    return TriageResult(
        task_type=TaskType.COMBINED,
        confidence=0.5,
        reasoning="Failed to parse the model response. Defaulting to combined task type.",
        modified_query=query,
    )


def parse_triage_result(result: AgentResult, query: str) -> TriageResult:
    """Read the classification from a triage run.

    The last successful ``classify_query`` call wins; otherwise JSON in the
    final text; otherwise fall back to a combined task.
    """
    for call in reversed(result.metadata.get("tool_calls", [])):
        if call.get("name") != CLASSIFY_TOOL_NAME or call.get("is_error"):
            continue
        try:
            return TriageResult.model_validate(json.loads(call.get("arguments") or "{}"))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Unusable classify_query arguments: %s", e)

    parsed = parse_output(result.content, TriageResult)
    if parsed is not None:
        return parsed

    logger.warning("Failed to parse triage response, defaulting to combined")
    return fallback_triage(query)
