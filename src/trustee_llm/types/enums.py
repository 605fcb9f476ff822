"""Enumeration types for the conversation model."""
from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    """Role of a message participant."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ContentKind(StrEnum):
    """Discriminator for content block types."""

    TEXT = "text"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"


class StreamDeltaType(StrEnum):
    """Types of delta events emitted by a streaming provider call."""

    CONTENT_DELTA = "content_delta"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_DELTA = "tool_call_delta"
    TOOL_CALL_END = "tool_call_end"
    DONE = "done"
