"""Conversation, tool, streaming and configuration types."""

from trustee_llm.types.config import AdapterTimeout, GenerateConfig, RetryPolicy
from trustee_llm.types.content import (
    ContentBlock,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    block_from_dict,
)
from trustee_llm.types.enums import ContentKind, Role, StreamDeltaType
from trustee_llm.types.messages import (
    Message,
    unanswered_tool_calls,
    validate_tool_pairing,
)
from trustee_llm.types.response import (
    ContentResponse,
    GenerateResponse,
    ToolCallsResponse,
    Usage,
)
from trustee_llm.types.streaming import (
    ContentDelta,
    Done,
    StreamAccumulator,
    StreamDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    parse_tool_input,
)
from trustee_llm.types.tools import ToolCall, ToolDefinition, ToolResult

__all__ = [
    "AdapterTimeout",
    "ContentBlock",
    "ContentDelta",
    "ContentKind",
    "ContentResponse",
    "Done",
    "GenerateConfig",
    "GenerateResponse",
    "Message",
    "RetryPolicy",
    "Role",
    "StreamAccumulator",
    "StreamDelta",
    "StreamDeltaType",
    "TextBlock",
    "ToolCall",
    "ToolCallDelta",
    "ToolCallEnd",
    "ToolCallStart",
    "ToolCallsResponse",
    "ToolDefinition",
    "ToolResult",
    "ToolResultBlock",
    "ToolUseBlock",
    "Usage",
    "block_from_dict",
    "parse_tool_input",
    "unanswered_tool_calls",
    "validate_tool_pairing",
]
