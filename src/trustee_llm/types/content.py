"""Content block types: the tagged variants that make up a message body."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from trustee_llm.types.enums import ContentKind


@dataclass(frozen=True)
class TextBlock:
    """Plain text produced by a participant."""

    text: str
    kind: ContentKind = field(default=ContentKind.TEXT, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind.value, "text": self.text}


@dataclass(frozen=True)
class ToolUseBlock:
    """A tool invocation requested by the assistant."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict, hash=False)
    kind: ContentKind = field(default=ContentKind.TOOL_USE, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "id": self.id,
            "name": self.name,
            "input": self.input,
        }


@dataclass(frozen=True)
class ToolResultBlock:
    """The outcome of a tool invocation, as shown to the model."""

    tool_call_id: str
    content: str = ""
    is_error: bool = False
    kind: ContentKind = field(default=ContentKind.TOOL_RESULT, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "tool_call_id": self.tool_call_id,
            "content": self.content,
            "is_error": self.is_error,
        }


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


def block_from_dict(data: dict[str, Any]) -> ContentBlock:
    """Rebuild a content block from its ``to_dict`` form.

    Raises ValueError on an unknown or incomplete block.
    """
    kind = data.get("type")
    try:
        if kind == ContentKind.TEXT:
            return TextBlock(text=data["text"])
        if kind == ContentKind.TOOL_USE:
            return ToolUseBlock(
                id=data["id"], name=data["name"], input=dict(data.get("input") or {}),
            )
        if kind == ContentKind.TOOL_RESULT:
            return ToolResultBlock(
                tool_call_id=data["tool_call_id"],
                content=data.get("content", ""),
                is_error=bool(data.get("is_error", False)),
            )
    except KeyError as exc:
        raise ValueError(f"Content block of type {kind!r} is missing {exc}") from exc
    raise ValueError(f"Unknown content block type: {kind!r}")
