"""Streaming delta types and the accumulator that folds them into one response."""
from __future__ import annotations

import json
from dataclasses import dataclass, field

from trustee_llm.errors import MalformedToolInputError, StreamStateError
from trustee_llm.types.enums import StreamDeltaType
from trustee_llm.types.response import (
    ContentResponse,
    GenerateResponse,
    ToolCallsResponse,
    Usage,
)
from trustee_llm.types.tools import ToolCall


@dataclass(frozen=True)
class ContentDelta:
    text: str
    type: StreamDeltaType = field(default=StreamDeltaType.CONTENT_DELTA, init=False)


@dataclass(frozen=True)
class ToolCallStart:
    id: str
    name: str
    type: StreamDeltaType = field(default=StreamDeltaType.TOOL_CALL_START, init=False)


@dataclass(frozen=True)
class ToolCallDelta:
    id: str
    partial_input: str
    type: StreamDeltaType = field(default=StreamDeltaType.TOOL_CALL_DELTA, init=False)


@dataclass(frozen=True)
class ToolCallEnd:
    id: str
    type: StreamDeltaType = field(default=StreamDeltaType.TOOL_CALL_END, init=False)


@dataclass(frozen=True)
class Done:
    usage: Usage = field(default_factory=Usage)
    type: StreamDeltaType = field(default=StreamDeltaType.DONE, init=False)


StreamDelta = ContentDelta | ToolCallStart | ToolCallDelta | ToolCallEnd | Done


class StreamAccumulator:
    """Collects delta events from one provider call into a :data:`GenerateResponse`.

    Tool-call input buffers are keyed by id, so interleaved tool-call streams
    are reassembled correctly. One instance serves exactly one provider call.
    """

    def __init__(self) -> None:
        self._text_parts: list[str] = []
        self._order: list[str] = []
        self._names: dict[str, str] = {}
        self._buffers: dict[str, list[str]] = {}
        self._ended: set[str] = set()
        self._result: GenerateResponse | None = None
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def text(self) -> str:
        """Text accumulated so far."""
        return "".join(self._text_parts)

    def process(self, delta: StreamDelta) -> GenerateResponse | None:
        """Fold one delta in. Returns the final response when *delta* is ``Done``."""
        if self._finished:
            raise StreamStateError(f"Received {delta.type} after the stream finished")

        if isinstance(delta, ContentDelta):
            self._text_parts.append(delta.text)

        elif isinstance(delta, ToolCallStart):
            if delta.id in self._buffers:
                raise StreamStateError(f"Tool call {delta.id!r} started twice")
            self._order.append(delta.id)
            self._names[delta.id] = delta.name
            self._buffers[delta.id] = []

        elif isinstance(delta, ToolCallDelta):
            buffer = self._buffer_for(delta.id)
            if delta.id in self._ended:
                raise StreamStateError(f"Input for tool call {delta.id!r} after it ended")
            buffer.append(delta.partial_input)

        elif isinstance(delta, ToolCallEnd):
            self._buffer_for(delta.id)
            if delta.id in self._ended:
                raise StreamStateError(f"Tool call {delta.id!r} ended twice")
            self._ended.add(delta.id)

        elif isinstance(delta, Done):
            self._result = self._build(delta.usage)
            self._finished = True
            return self._result

        else:
            raise StreamStateError(f"Unknown stream delta: {delta!r}")
        return None

    def finish(self) -> GenerateResponse:
        """Return the response built on ``Done``.

        Raises StreamStateError if the stream ended without ``Done``.
        """
        if self._result is None:
            raise StreamStateError("Stream ended without a Done event")
        return self._result

    def _buffer_for(self, call_id: str) -> list[str]:
        try:
            return self._buffers[call_id]
        except KeyError:
            raise StreamStateError(f"Delta for unknown tool call {call_id!r}") from None

    def _build(self, usage: Usage) -> GenerateResponse:
        text = self.text
        if not self._order:
            return ContentResponse(text=text, usage=usage)

        calls = []
        for call_id in self._order:
            raw = "".join(self._buffers[call_id])
            calls.append(ToolCall(
                id=call_id,
                name=self._names[call_id],
                input=parse_tool_input(raw, call_id),
            ))
        return ToolCallsResponse(calls=tuple(calls), text=text, usage=usage)


def parse_tool_input(raw: str, call_id: str = "") -> dict:
    """Parse an accumulated tool input buffer. An empty buffer means no arguments."""
    if not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedToolInputError(
            f"Tool call {call_id!r} input is not valid JSON: {exc}",
            tool_call_id=call_id,
            cause=exc,
        ) from exc
    if not isinstance(value, dict):
        raise MalformedToolInputError(
            f"Tool call {call_id!r} input must be a JSON object, got {type(value).__name__}",
            tool_call_id=call_id,
        )
    return value
