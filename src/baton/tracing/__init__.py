"""Per-run tracing: traces, nested spans, and trace processors."""

from baton.tracing.processor import (
    JSONLTraceProcessor,
    LoggingTraceProcessor,
    TraceProcessor,
    add_trace_processor,
    dispatch_trace,
    get_trace_processors,
    set_trace_processors,
)
from baton.tracing.spans import (
    NoopSpanHandle,
    Span,
    SpanHandle,
    SpanKind,
    Trace,
    TraceHandle,
    agent_span,
    configure_tracing,
    custom_span,
    ensure_trace,
    env_flag,
    function_span,
    generation_span,
    get_current_span,
    get_current_trace,
    guardrail_span,
    handoff_span,
    open_span,
    start_trace,
)

__all__ = [
    "JSONLTraceProcessor",
    "LoggingTraceProcessor",
    "NoopSpanHandle",
    "Span",
    "SpanHandle",
    "SpanKind",
    "Trace",
    "TraceHandle",
    "TraceProcessor",
    "add_trace_processor",
    "agent_span",
    "configure_tracing",
    "custom_span",
    "dispatch_trace",
    "ensure_trace",
    "env_flag",
    "function_span",
    "generation_span",
    "get_current_span",
    "get_current_trace",
    "get_trace_processors",
    "guardrail_span",
    "handoff_span",
    "open_span",
    "set_trace_processors",
    "start_trace",
]
