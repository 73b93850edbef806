"""Output truncation — bound tool output before it re-enters the conversation."""

from __future__ import annotations

MAX_CHARS = 24_000
HEAD_FRACTION = 0.25


def truncate_output(text: str, max_chars: int = MAX_CHARS) -> str:
    """Keep the head and the tail of oversized tool output.

    The tail gets the larger share since errors and conclusions tend to
    come last. A marker line states how much was elided.
    """
    if not text or len(text) <= max_chars:
        return text

    head_len = int(max_chars * HEAD_FRACTION)
    tail_len = max_chars - head_len
    elided = len(text) - head_len - tail_len
    marker = f"\n\n[... {elided} characters truncated ...]\n\n"
    return text[:head_len] + marker + text[-tail_len:]
