"""Message model: the canonical conversation representation."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from trustee_llm.types.content import (
    ContentBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    block_from_dict,
)
from trustee_llm.types.enums import Role
from trustee_llm.types.tools import ToolCall, ToolResult


@dataclass(frozen=True)
class Message:
    """A single conversational turn.

    ``content`` is either plain text or an ordered tuple of content blocks.
    Blocks are owned by the message and never shared.
    """

    role: Role
    content: str | tuple[ContentBlock, ...] = ""
    name: str | None = None
    tool_call_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if self.role == Role.TOOL and not self.tool_call_id:
            raise ValueError("A tool message requires a tool_call_id")
        if isinstance(self.content, list):
            object.__setattr__(self, "content", tuple(self.content))

    # --- Factory classmethods ---

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role=Role.SYSTEM, content=text)

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role=Role.USER, content=text)

    @classmethod
    def assistant(
        cls,
        text: str = "",
        tool_calls: Sequence[ToolCall] | None = None,
    ) -> Message:
        """Create an assistant message.

        With tool calls the content is always a block list starting with the
        (possibly empty) text block, so the model's prose is kept verbatim.
        """
        if not tool_calls:
            return cls(role=Role.ASSISTANT, content=text)
        blocks: list[ContentBlock] = [TextBlock(text=text)]
        blocks.extend(
            ToolUseBlock(id=tc.id, name=tc.name, input=dict(tc.input))
            for tc in tool_calls
        )
        return cls(role=Role.ASSISTANT, content=tuple(blocks))

    @classmethod
    def tool(cls, result: ToolResult, name: str | None = None) -> Message:
        """Wrap a tool result as a tool-role message."""
        metadata: dict[str, Any] = {"success": result.success}
        if result.error_kind:
            metadata["error_kind"] = result.error_kind
        return cls(
            role=Role.TOOL,
            content=(
                ToolResultBlock(
                    tool_call_id=result.tool_call_id,
                    content=result.render(),
                    is_error=not result.success,
                ),
            ),
            name=name,
            tool_call_id=result.tool_call_id,
            metadata=metadata,
        )

    # --- Properties ---

    @property
    def blocks(self) -> tuple[ContentBlock, ...]:
        """Content as blocks; plain text is presented as one text block."""
        if isinstance(self.content, str):
            return (TextBlock(text=self.content),) if self.content else ()
        return self.content

    @property
    def text(self) -> str:
        """Concatenate all text. Returns '' if none."""
        if isinstance(self.content, str):
            return self.content
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> tuple[ToolUseBlock, ...]:
        return tuple(b for b in self.blocks if isinstance(b, ToolUseBlock))

    @property
    def tool_calls(self) -> list[ToolCall]:
        return [ToolCall(id=b.id, name=b.name, input=dict(b.input)) for b in self.tool_uses]

    # --- Serialisation ---

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role.value}
        if isinstance(self.content, str):
            data["content"] = self.content
        else:
            data["content"] = [b.to_dict() for b in self.content]
        if self.name is not None:
            data["name"] = self.name
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.metadata:
            data["metadata"] = self.metadata
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        raw = data.get("content", "")
        content: str | tuple[ContentBlock, ...]
        if isinstance(raw, str):
            content = raw
        else:
            content = tuple(block_from_dict(b) for b in raw)
        return cls(
            role=Role(data["role"]),
            content=content,
            name=data.get("name"),
            tool_call_id=data.get("tool_call_id"),
            metadata=dict(data.get("metadata") or {}),
        )


def unanswered_tool_calls(messages: Sequence[Message]) -> list[str]:
    """Return ids of tool calls that have no tool-role reply yet, in emission order."""
    pending: dict[str, None] = {}
    for msg in messages:
        if msg.role == Role.ASSISTANT:
            for use in msg.tool_uses:
                pending[use.id] = None
        elif msg.role == Role.TOOL and msg.tool_call_id is not None:
            pending.pop(msg.tool_call_id, None)
    return list(pending)


def validate_tool_pairing(messages: Sequence[Message]) -> None:
    """Check that every tool message answers an earlier, not-yet-answered tool call.

    Raises ValueError describing the first violation.
    """
    open_calls: set[str] = set()
    answered: set[str] = set()
    for index, msg in enumerate(messages):
        if msg.role == Role.ASSISTANT:
            open_calls.update(use.id for use in msg.tool_uses)
        elif msg.role == Role.TOOL:
            call_id = msg.tool_call_id
            if call_id in answered:
                raise ValueError(f"Message {index}: tool call {call_id!r} answered twice")
            if call_id not in open_calls:
                raise ValueError(
                    f"Message {index}: tool result for unknown tool call {call_id!r}"
                )
            open_calls.discard(call_id)
            answered.add(call_id)
