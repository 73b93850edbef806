"""Common handoff input filters."""

from __future__ import annotations

from baton.agent.handoff import HandoffInput


def remove_all_tools(handoff_input: HandoffInput) -> HandoffInput:
    """Drop tool-call requests and tool results from the history."""
    return HandoffInput(
        messages=[
            m
            for m in handoff_input.messages
            if not m.get("tool_calls") and m.get("role") != "tool"
        ]
    )


def keep_only_last_user_message(handoff_input: HandoffInput) -> HandoffInput:
    for message in reversed(handoff_input.messages):
        if message.get("role") == "user":
            return HandoffInput(messages=[message])
    return HandoffInput(messages=[])
