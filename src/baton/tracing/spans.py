"""Traces and spans — the recorded shape of one run.

One ``Trace`` exists per top-level run. The trace handle is installed in a
``ContextVar`` so concurrent runs (separate asyncio tasks) each see their
own trace; the open-span stack lives on the trace itself.
"""

from __future__ import annotations

import enum
import logging
import os
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

DISABLE_ENV_VAR = "BATON_DISABLE_TRACING"
SENSITIVE_FIELDS = frozenset({"input", "output", "arguments", "result", "instructions"})
REDACTED = "[redacted]"
TRUTHY_VALUES = frozenset({"1", "true", "yes", "on"})


class SpanKind(enum.Enum):
    AGENT = "agent"
    GENERATION = "generation"
    FUNCTION = "function"
    HANDOFF = "handoff"
    GUARDRAIL = "guardrail"
    CUSTOM = "custom"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def env_flag(value: str | None) -> bool:
    """True for the usual on-values of a boolean env var (1, true, yes, on)."""
    return value is not None and value.strip().lower() in TRUTHY_VALUES


def tracing_disabled_by_env() -> bool:
    return env_flag(os.environ.get(DISABLE_ENV_VAR))


@dataclass
class Span:
    """One timed operation. ``parent_id`` links spans into a tree."""

    span_id: str
    trace_id: str
    name: str
    kind: SpanKind
    data: dict[str, Any] = field(default_factory=dict)
    parent_id: str | None = None
    started_at: datetime = field(default_factory=_now)
    ended_at: datetime | None = None

    @property
    def duration_ms(self) -> float | None:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "span_id": self.span_id,
            "trace_id": self.trace_id,
            "parent_id": self.parent_id,
            "name": self.name,
            "kind": self.kind.value,
            "data": self.data,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


@dataclass
class Trace:
    """All spans of one run, in the order they were opened."""

    workflow_name: str
    trace_id: str = field(default_factory=lambda: f"trace_{uuid.uuid4().hex}")
    group_id: str | None = None
    disabled: bool = False
    include_sensitive_data: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)
    spans: list[Span] = field(default_factory=list)
    started_at: datetime = field(default_factory=_now)
    ended_at: datetime | None = None

    _stack: list[Span] = field(default_factory=list, init=False, repr=False)

    @property
    def finished(self) -> bool:
        return self.ended_at is not None

    @property
    def current_span(self) -> Span | None:
        return self._stack[-1] if self._stack else None

    @property
    def open_spans(self) -> list[Span]:
        return list(self._stack)

    @property
    def duration_ms(self) -> float | None:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_name": self.workflow_name,
            "trace_id": self.trace_id,
            "group_id": self.group_id,
            "metadata": self.metadata,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_ms": self.duration_ms,
            "spans": [s.to_dict() for s in self.spans],
        }


def _redact(data: dict[str, Any], include_sensitive_data: bool) -> dict[str, Any]:
    if include_sensitive_data:
        return dict(data)
    out: dict[str, Any] = {}
    for key, value in data.items():
        if key in SENSITIVE_FIELDS and value is not None:
            out[key] = REDACTED
            out[f"{key}_chars"] = len(str(value))
        else:
            out[key] = value
    return out


class SpanHandle:
    """An open span. Exits must be strictly nested."""

    def __init__(self, trace: Trace, span: Span) -> None:
        self.trace = trace
        self.span: Span | None = span
        self._closed = False

    def __enter__(self) -> SpanHandle:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc is not None:
            self.add_data({"error": str(exc) or exc_type.__name__, "success": False})
        self.exit()

    @property
    def closed(self) -> bool:
        return self._closed

    def enter(self) -> SpanHandle:
        """Spans are pushed when opened; entering again changes nothing."""
        return self

    def exit(self) -> None:
        """Close the span and restore its parent as current.

        Only the top of the stack may exit; any other call is a no-op and
        leaves the stack untouched.
        """
        if self._closed or self.span is None:
            return
        stack = self.trace._stack
        if not stack or stack[-1] is not self.span:
            logger.debug(
                "Ignoring out-of-order exit of span %s (%s)", self.span.name, self.span.span_id
            )
            return
        stack.pop()
        self.span.ended_at = _now()
        self._closed = True

    def add_data(self, partial: dict[str, Any]) -> None:
        if self.span is None:
            return
        self.span.data.update(_redact(partial, self.trace.include_sensitive_data))


class NoopSpanHandle(SpanHandle):
    """Returned when tracing is disabled, absent or already finished."""

    def __init__(self) -> None:
        self.trace = None  # type: ignore[assignment]
        self.span = None
        self._closed = True

    def exit(self) -> None:
        pass

    def add_data(self, partial: dict[str, Any]) -> None:
        pass


_current_trace: ContextVar[TraceHandle | None] = ContextVar("baton_current_trace", default=None)


class TraceHandle:
    """Owns one Trace's lifecycle: start once, finish once."""

    def __init__(self, trace: Trace) -> None:
        self.trace = trace
        self._started = False
        self._finished = False
        self._previous: TraceHandle | None = None

    @property
    def finished(self) -> bool:
        return self._finished

    def start(self) -> Trace:
        if not self._started:
            self._started = True
            self._previous = _current_trace.get()
            _current_trace.set(self)
        return self.trace

    async def finish(self) -> None:
        """Stamp the end time and hand the trace to every processor.

        Safe to call more than once: later calls change nothing.
        """
        if self._finished:
            return
        self._finished = True
        self.trace.ended_at = _now()

        # Spans must not outlive their trace
        for span in reversed(self.trace._stack):
            span.ended_at = self.trace.ended_at
        self.trace._stack.clear()

        if _current_trace.get() is self:
            _current_trace.set(self._previous)

        if self.trace.disabled:
            return

        from baton.tracing.processor import dispatch_trace

        await dispatch_trace(self.trace)

    async def __aenter__(self) -> TraceHandle:
        self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.finish()


# ---------------------------------------------------------------------------
# Process-wide defaults (configuration only, never run state)
# ---------------------------------------------------------------------------

_defaults: dict[str, bool] = {"disabled": False, "include_sensitive_data": True}


def configure_tracing(
    disabled: bool | None = None, include_sensitive_data: bool | None = None
) -> None:
    if disabled is not None:
        _defaults["disabled"] = disabled
    if include_sensitive_data is not None:
        _defaults["include_sensitive_data"] = include_sensitive_data


def start_trace(
    workflow_name: str,
    *,
    trace_id: str | None = None,
    group_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    disabled: bool | None = None,
    include_sensitive_data: bool | None = None,
) -> TraceHandle:
    """Create a trace, make it current for this run, and return its handle."""
    is_disabled = bool(disabled) or _defaults["disabled"] or tracing_disabled_by_env()
    sensitive = (
        include_sensitive_data
        if include_sensitive_data is not None
        else _defaults["include_sensitive_data"]
    )
    trace = Trace(
        workflow_name=workflow_name,
        group_id=group_id,
        disabled=is_disabled,
        include_sensitive_data=sensitive,
        metadata=dict(metadata or {}),
    )
    if trace_id:
        trace.trace_id = trace_id
    handle = TraceHandle(trace)
    handle.start()
    return handle


def get_current_trace() -> Trace | None:
    handle = _current_trace.get()
    return handle.trace if handle is not None else None


def get_current_span() -> Span | None:
    trace = get_current_trace()
    return trace.current_span if trace is not None else None


@asynccontextmanager
async def ensure_trace(workflow_name: str, **options: Any) -> AsyncIterator[Trace]:
    """Join the current run's trace, or own a new one for the duration."""
    handle = _current_trace.get()
    if handle is not None and not handle.finished:
        yield handle.trace
        return

    handle = start_trace(workflow_name, **options)
    try:
        yield handle.trace
    finally:
        await handle.finish()


def open_span(kind: SpanKind, name: str, data: dict[str, Any] | None = None) -> SpanHandle:
    """Open a span as a child of the current span and push it on the stack."""
    handle = _current_trace.get()
    if handle is None or handle.finished or handle.trace.disabled or tracing_disabled_by_env():
        return NoopSpanHandle()

    trace = handle.trace
    parent = trace.current_span
    span = Span(
        span_id=f"span_{uuid.uuid4().hex[:24]}",
        trace_id=trace.trace_id,
        name=name,
        kind=kind,
        data=_redact(data or {}, trace.include_sensitive_data),
        parent_id=parent.span_id if parent else None,
    )
    trace.spans.append(span)
    trace._stack.append(span)
    return SpanHandle(trace, span)


# ---------------------------------------------------------------------------
# Typed helpers
# ---------------------------------------------------------------------------


def agent_span(agent_name: str, instructions: str | None = None, input: str | None = None) -> SpanHandle:
    return open_span(
        SpanKind.AGENT,
        f"{agent_name} execution",
        {"agent_name": agent_name, "instructions": instructions, "input": input},
    )


def generation_span(model: str, input: Any = None) -> SpanHandle:
    return open_span(SpanKind.GENERATION, f"generation {model}", {"model": model, "input": input})


def function_span(function_name: str, arguments: Any = None) -> SpanHandle:
    return open_span(
        SpanKind.FUNCTION,
        function_name,
        {"function_name": function_name, "arguments": arguments},
    )


def handoff_span(source_agent: str, target_agent: str, reason: str | None = None) -> SpanHandle:
    return open_span(
        SpanKind.HANDOFF,
        f"Handoff from {source_agent} to {target_agent}",
        {"source_agent": source_agent, "target_agent": target_agent, "reason": reason},
    )


def guardrail_span(guardrail_name: str, stage: str) -> SpanHandle:
    return open_span(
        SpanKind.GUARDRAIL,
        f"{stage} guardrail {guardrail_name}",
        {"guardrail": guardrail_name, "stage": stage},
    )


def custom_span(name: str, data: dict[str, Any] | None = None) -> SpanHandle:
    return open_span(SpanKind.CUSTOM, name, data)
