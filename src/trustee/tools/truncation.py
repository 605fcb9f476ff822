"""Tool output truncation with head/tail and tail-only modes."""
from __future__ import annotations

from enum import Enum


class TruncationMode(Enum):
    HEAD_TAIL = "head_tail"
    TAIL = "tail"


def truncate_output(output: str, max_chars: int, mode: TruncationMode = TruncationMode.HEAD_TAIL) -> str:
    """Truncate *output* to roughly *max_chars* characters.

    HEAD_TAIL keeps the first and last halves around a marker; TAIL keeps
    only the end. Returns the original when within the limit.
    """
    if max_chars <= 0 or len(output) <= max_chars:
        return output

    removed = len(output) - max_chars

    if mode == TruncationMode.HEAD_TAIL:
        half = max_chars // 2
        marker = f"\n\n[Output truncated: {removed} characters removed from the middle.]\n\n"
        return output[:half] + marker + output[len(output) - (max_chars - half):]

    marker = f"[Output truncated: first {removed} characters removed.]\n\n"
    return marker + output[-max_chars:]
