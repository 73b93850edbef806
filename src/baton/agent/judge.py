"""Judge agent and the self-improvement loop.

A primary agent answers, a judge scores the answer, and the primary agent
is re-prompted with the judge's feedback until the answer is acceptable
or the iteration budget runs out. When the budget runs out, the
best-scored answer so far is returned.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from baton.agent.agent import Agent
from baton.agent.context import AgentResult, RunConfig, RunContext
from baton.agent.loop import run_agent, trace_options
from baton.agent.prompts import evaluation_prompt, improvement_feedback
from baton.exceptions import ModelBehaviorError
from baton.llm.provider import ChatProvider
from baton.tracing import custom_span, ensure_trace

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 3
DEFAULT_MIN_SCORE = 8
DEFAULT_TIMEOUT = 60.0


class Evaluation(BaseModel):
    score: int = Field(ge=1, le=10, description="Overall score from 1-10")
    strengths: list[str] = Field(default_factory=list, description="Specific strengths of the response")
    weaknesses: list[str] = Field(default_factory=list, description="Areas that need improvement")
    suggestions: list[str] = Field(
        default_factory=list, description="Specific suggestions for improvement"
    )
    is_acceptable: bool = Field(description="Whether the response meets minimum quality standards")
    reasoning: str = Field(default="", description="Brief reasoning for the evaluation")

    def passes(self, min_score: int) -> bool:
        return self.is_acceptable and self.score >= min_score

    def feedback(self) -> str:
        return improvement_feedback(
            self.score, self.strengths, self.weaknesses, self.suggestions, self.reasoning
        )


@dataclass
class ImprovementResult:
    final_response: str
    final_evaluation: Evaluation | None
    iterations: int
    success: bool
    evaluations: list[Evaluation] = field(default_factory=list)
    responses: list[str] = field(default_factory=list)
    feedback: list[str] = field(default_factory=list)
    error: str | None = None


async def evaluate_response(
    judge: Agent,
    query: str,
    response: str,
    provider: ChatProvider,
    run_config: RunConfig | None = None,
) -> Evaluation:
    """Score ``response`` to ``query``; raises ModelBehaviorError without a usable verdict."""
    context = RunContext(original_query=query, run_config=run_config)
    result = await run_agent(judge, evaluation_prompt(query, response), context, provider)
    if not result.success:
        raise ModelBehaviorError(f"Judge failed: {result.error}")
    evaluation = result.typed_output
    if not isinstance(evaluation, Evaluation):
        raise ModelBehaviorError("Judge did not return a valid evaluation")
    return evaluation


async def improve_with_feedback(
    agent: Agent,
    judge: Agent,
    query: str,
    provider: ChatProvider,
    initial_response: str | None = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    min_score: int = DEFAULT_MIN_SCORE,
    timeout: float | None = DEFAULT_TIMEOUT,
    run_config: RunConfig | None = None,
) -> ImprovementResult:
    start = time.monotonic()
    evaluations: list[Evaluation] = []
    responses: list[str] = []
    feedback: list[str] = []
    iterations = 0

    def failed(error: str, current: str = "") -> ImprovementResult:
        logger.warning("Self-improvement stopped: %s", error)
        return ImprovementResult(
            final_response=current,
            final_evaluation=evaluations[-1] if evaluations else None,
            iterations=iterations,
            success=False,
            evaluations=evaluations,
            responses=responses,
            feedback=feedback,
            error=error,
        )

    async def answer(text: str) -> AgentResult:
        context = RunContext(original_query=query, run_config=run_config)
        return await run_agent(agent, text, context, provider)

    if initial_response is None:
        first = await answer(query)
        if not first.success:
            return failed(f"{agent.name} failed to answer: {first.error}")
        current = first.content
    else:
        current = initial_response
    responses.append(current)

    final: str | None = None
    while iterations < max_iterations:
        if timeout is not None and time.monotonic() - start > timeout:
            logger.warning("Self-improvement timed out after %d iteration(s)", iterations)
            break

        try:
            evaluation = await evaluate_response(judge, query, current, provider, run_config)
        except ModelBehaviorError as e:
            return failed(str(e), current)
        evaluations.append(evaluation)
        logger.info(
            "Judge scored %s's answer %d/10 (acceptable=%s)",
            agent.name,
            evaluation.score,
            evaluation.is_acceptable,
        )

        if evaluation.passes(min_score):
            final = current
            break

        iterations += 1
        if iterations >= max_iterations:
            best = max(range(len(evaluations)), key=lambda i: evaluations[i].score)
            final = responses[best]
            break

        notes = evaluation.feedback()
        feedback.append(notes)
        improved = await answer(f"{query}\n\n{notes}")
        if not improved.success:
            return failed(f"{agent.name} failed to improve its answer: {improved.error}", current)
        current = improved.content
        responses.append(current)

    final_evaluation = evaluations[-1] if evaluations else None
    return ImprovementResult(
        final_response=final if final is not None else current,
        final_evaluation=final_evaluation,
        iterations=iterations,
        success=final_evaluation is not None and final_evaluation.passes(min_score),
        evaluations=evaluations,
        responses=responses,
        feedback=feedback,
    )


@dataclass
class SelfImprovingWorkflow:
    """A primary agent paired with a judge, run through ``improve_with_feedback``."""

    primary: Agent
    judge: Agent
    provider: ChatProvider
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    min_score: int = DEFAULT_MIN_SCORE
    timeout: float | None = DEFAULT_TIMEOUT
    run_config: RunConfig | None = None

    async def handle_task(self, query: str) -> ImprovementResult:
        async with ensure_trace(
            f"{self.primary.name} self-improvement", **trace_options(self.run_config)
        ):
            with custom_span(
                "self_improvement", {"max_iterations": self.max_iterations, "min_score": self.min_score}
            ) as span:
                result = await improve_with_feedback(
                    self.primary,
                    self.judge,
                    query,
                    self.provider,
                    max_iterations=self.max_iterations,
                    min_score=self.min_score,
                    timeout=self.timeout,
                    run_config=self.run_config,
                )
                span.add_data(
                    {
                        "iterations": result.iterations,
                        "scores": [e.score for e in result.evaluations],
                        "success": result.success,
                    }
                )
        return result
