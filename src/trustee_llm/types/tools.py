"""Tool definitions and tool call/result types."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ToolDefinition:
    """Schema of a tool exposed to the model."""

    name: str
    description: str
    input_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}, hash=False,
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


@dataclass(frozen=True)
class ToolCall:
    """A tool call extracted from an assistant message. Consumed exactly once."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class ToolResult:
    """Normalised outcome of executing one tool call."""

    tool_call_id: str
    success: bool
    content: str = ""
    stdout: str = ""
    stderr: str = ""
    error_kind: str | None = None  # timeout, unknown_tool, invalid_input, execution_error, interrupted

    @classmethod
    def failure(cls, tool_call_id: str, message: str, error_kind: str) -> ToolResult:
        return cls(
            tool_call_id=tool_call_id,
            success=False,
            content=message,
            error_kind=error_kind,
        )

    def render(self) -> str:
        """Text shown to the model for this result."""
        parts = [self.content] if self.content else []
        if self.stdout:
            parts.append(f"[stdout]\n{self.stdout}")
        if self.stderr:
            parts.append(f"[stderr]\n{self.stderr}")
        return "\n".join(parts)
