"""Provider call results."""
from __future__ import annotations

from dataclasses import dataclass, field

from trustee_llm.types.tools import ToolCall


@dataclass(frozen=True)
class Usage:
    """Token usage statistics."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: Usage) -> Usage:
        if not isinstance(other, Usage):
            return NotImplemented
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


@dataclass(frozen=True)
class ContentResponse:
    """The model answered with plain content."""

    text: str
    usage: Usage = field(default_factory=Usage, compare=False)


@dataclass(frozen=True)
class ToolCallsResponse:
    """The model requested one or more tool calls.

    ``text`` holds any prose emitted alongside the calls, possibly empty.
    """

    calls: tuple[ToolCall, ...]
    text: str = ""
    usage: Usage = field(default_factory=Usage, compare=False)

    def __post_init__(self) -> None:
        if not self.calls:
            raise ValueError("ToolCallsResponse requires at least one tool call")
        if isinstance(self.calls, list):
            object.__setattr__(self, "calls", tuple(self.calls))


# One per provider call, consumed immediately by the coordinator.
GenerateResponse = ContentResponse | ToolCallsResponse
