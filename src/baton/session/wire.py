"""Wire protocol — decouples a streamed run from its consumers.

Stream events flow from the run to subscribers (CLI renderer, an SSE
endpoint, tests). Event order follows the streaming client boundary:
start, token, agent_start, handoff, tool_start/tool_end, then exactly
one of error or complete.
"""

from __future__ import annotations

import asyncio
import enum
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    START = "start"
    TOKEN = "token"
    AGENT_START = "agent_start"
    HANDOFF = "handoff"
    TOOL_START = "tool_start"
    TOOL_END = "tool_end"
    STATUS = "status"
    ERROR = "error"
    COMPLETE = "complete"

    @property
    def terminal(self) -> bool:
        return self in (EventType.ERROR, EventType.COMPLETE)


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def to_sse(self) -> str:
        """Format as one Server-Sent Events frame."""
        payload = json.dumps(self.data, ensure_ascii=False, default=str)
        return f"event: {self.type.value}\ndata: {payload}\n\n"


class Wire:
    """Async message bus: run -> subscribers.

    Single-producer, multi-consumer broadcast.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)

    def send_token(self, text: str) -> None:
        self.send(WireEvent(type=EventType.TOKEN, data={"text": text}))

    def send_status(self, message: str) -> None:
        self.send(WireEvent(type=EventType.STATUS, data={"message": message}))

    def send_error(self, error: str) -> None:
        self.send(WireEvent(type=EventType.ERROR, data={"error": error}))

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)

    async def events(self, q: asyncio.Queue[WireEvent | None]) -> AsyncIterator[WireEvent]:
        """Iterate a subscription until the wire closes."""
        while True:
            event = await q.get()
            if event is None:
                return
            yield event
