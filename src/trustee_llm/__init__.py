"""trustee_llm: conversation model and provider layer for the trustee agent loop."""

from trustee_llm._retry import calculate_delay, with_retry
from trustee_llm.adapter import BaseAdapter, ProviderAdapter, StubAdapter, response_to_deltas
from trustee_llm.errors import (
    AuthenticationError,
    ContentPolicyError,
    ContextLengthError,
    InvalidRequestError,
    LLMError,
    MalformedResponseError,
    MalformedToolInputError,
    NetworkError,
    ProviderError,
    ProviderRejectedError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
    StreamStateError,
    TransportError,
    error_from_status_code,
)
from trustee_llm.stream import collect_stream
from trustee_llm.types import (
    AdapterTimeout,
    ContentBlock,
    ContentDelta,
    ContentKind,
    ContentResponse,
    Done,
    GenerateConfig,
    GenerateResponse,
    Message,
    RetryPolicy,
    Role,
    StreamAccumulator,
    StreamDelta,
    TextBlock,
    ToolCall,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    ToolCallsResponse,
    ToolDefinition,
    ToolResult,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
    unanswered_tool_calls,
    validate_tool_pairing,
)

__all__ = [
    # Message model
    "ContentBlock",
    "ContentKind",
    "Message",
    "Role",
    "TextBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "unanswered_tool_calls",
    "validate_tool_pairing",
    # Tools
    "ToolCall",
    "ToolDefinition",
    "ToolResult",
    # Responses
    "ContentResponse",
    "GenerateResponse",
    "ToolCallsResponse",
    "Usage",
    # Streaming
    "ContentDelta",
    "Done",
    "StreamAccumulator",
    "StreamDelta",
    "ToolCallDelta",
    "ToolCallEnd",
    "ToolCallStart",
    "collect_stream",
    # Adapters
    "BaseAdapter",
    "ProviderAdapter",
    "StubAdapter",
    "response_to_deltas",
    # Config
    "AdapterTimeout",
    "GenerateConfig",
    "RetryPolicy",
    # Retry
    "calculate_delay",
    "with_retry",
    # Errors
    "AuthenticationError",
    "ContentPolicyError",
    "ContextLengthError",
    "InvalidRequestError",
    "LLMError",
    "MalformedResponseError",
    "MalformedToolInputError",
    "NetworkError",
    "ProviderError",
    "ProviderRejectedError",
    "RateLimitError",
    "RequestTimeoutError",
    "ServerError",
    "StreamStateError",
    "TransportError",
    "error_from_status_code",
]
