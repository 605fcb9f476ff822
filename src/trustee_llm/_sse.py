"""Server-Sent Events parser for streaming HTTP responses."""
from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass


@dataclass
class SSEEvent:
    """One dispatched SSE event."""

    event: str = "message"
    data: str = ""
    id: str = ""


async def parse_sse_lines(lines: AsyncIterator[str]) -> AsyncIterator[SSEEvent]:
    """Parse raw SSE text lines into events.

    Comment lines (leading ``:``) are ignored, a blank line dispatches the
    pending event, and one leading space after the field colon is stripped.
    A final event without a trailing blank line is still dispatched.
    """
    current = SSEEvent()
    data_parts: list[str] = []

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")

        if line.startswith(":"):
            continue

        if line == "":
            if data_parts:
                current.data = "\n".join(data_parts)
                yield current
            current = SSEEvent()
            data_parts = []
            continue

        field_name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field_name == "event":
            current.event = value
        elif field_name == "data":
            data_parts.append(value)
        elif field_name == "id":
            current.id = value

    if data_parts:
        current.data = "\n".join(data_parts)
        yield current
