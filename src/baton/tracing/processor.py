"""Trace processors — sinks that receive each finished trace."""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Awaitable
from pathlib import Path
from typing import Protocol, runtime_checkable

import aiofiles

from baton.tracing.spans import Trace

logger = logging.getLogger(__name__)


@runtime_checkable
class TraceProcessor(Protocol):
    """Receives every finished, enabled trace exactly once.

    ``process_trace`` may be sync or async.
    """

    def process_trace(self, trace: Trace) -> Awaitable[None] | None: ...


class LoggingTraceProcessor:
    """Default sink: one log line per trace."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def process_trace(self, trace: Trace) -> None:
        logger.log(
            self.level,
            "Trace %s (%s) group=%s spans=%d duration_ms=%.1f",
            trace.workflow_name,
            trace.trace_id,
            trace.group_id,
            len(trace.spans),
            trace.duration_ms or 0.0,
        )


class JSONLTraceProcessor:
    """Appends each trace as one JSON line."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    async def process_trace(self, trace: Trace) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(trace.to_dict(), ensure_ascii=False, default=str)
        async with aiofiles.open(self.path, "a", encoding="utf-8") as f:
            await f.write(line + "\n")


_processors: list[TraceProcessor] = [LoggingTraceProcessor()]


def add_trace_processor(processor: TraceProcessor) -> None:
    _processors.append(processor)


def set_trace_processors(processors: list[TraceProcessor]) -> None:
    """Replace every registered processor (including the default one)."""
    _processors[:] = list(processors)


def get_trace_processors() -> list[TraceProcessor]:
    return list(_processors)


async def dispatch_trace(trace: Trace) -> None:
    """Hand a trace to each processor. A failing sink is logged and skipped."""
    for processor in list(_processors):
        try:
            result = processor.process_trace(trace)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "Trace processor %s failed: %s", type(processor).__name__, e, exc_info=True
            )
