"""Anthropic Messages API adapter."""
from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from trustee_llm._sse import parse_sse_lines
from trustee_llm.adapter import BaseAdapter
from trustee_llm.errors import (
    ContentPolicyError,
    InvalidRequestError,
    MalformedResponseError,
    MalformedToolInputError,
    NetworkError,
    ProviderError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
    error_from_status_code,
)
from trustee_llm.types.config import AdapterTimeout, GenerateConfig
from trustee_llm.types.content import TextBlock, ToolResultBlock, ToolUseBlock
from trustee_llm.types.enums import Role
from trustee_llm.types.messages import Message
from trustee_llm.types.response import (
    ContentResponse,
    GenerateResponse,
    ToolCallsResponse,
    Usage,
)
from trustee_llm.types.streaming import (
    ContentDelta,
    Done,
    StreamDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
)
from trustee_llm.types.tools import ToolCall

logger = logging.getLogger(__name__)

# Error types reported inside an SSE ``error`` event
_STREAM_ERROR_TYPES: dict[str, type[ProviderError]] = {
    "rate_limit_error": RateLimitError,
    "overloaded_error": ServerError,
    "api_error": ServerError,
    "invalid_request_error": InvalidRequestError,
}


class AnthropicAdapter(BaseAdapter):
    """Adapter for the Anthropic Messages API."""

    ANTHROPIC_VERSION = "2023-06-01"
    DEFAULT_MAX_TOKENS = 4096

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.anthropic.com",
        timeout: AdapterTimeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        t = timeout or AdapterTimeout()
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "x-api-key": api_key,
                "anthropic-version": self.ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            timeout=httpx.Timeout(
                connect=t.connect, read=t.stream_read, write=t.request, pool=t.connect,
            ),
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "anthropic"

    # ------------------------------------------------------------------
    # Request translation
    # ------------------------------------------------------------------

    def build_request_body(
        self, messages: Sequence[Message], config: GenerateConfig
    ) -> dict[str, Any]:
        """Translate our conversation into a Messages API body."""
        system_parts: list[str] = []
        api_messages: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == Role.SYSTEM:
                if msg.text:
                    system_parts.append(msg.text)
                continue
            blocks = self._translate_blocks(msg)
            if not blocks:
                continue
            role = "assistant" if msg.role == Role.ASSISTANT else "user"
            api_messages.append({"role": role, "content": blocks})

        body: dict[str, Any] = {
            "model": config.model,
            "max_tokens": config.max_tokens or self.DEFAULT_MAX_TOKENS,
            "messages": _merge_same_role(api_messages),
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        if config.temperature is not None:
            body["temperature"] = config.temperature
        if config.stop_sequences:
            body["stop_sequences"] = list(config.stop_sequences)
        if config.tools:
            body["tools"] = [t.to_dict() for t in config.tools]

        provider_opts = config.provider_options.get("anthropic", {})
        if provider_opts:
            body.update(provider_opts)
        return body

    def _translate_blocks(self, msg: Message) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for block in msg.blocks:
            if isinstance(block, TextBlock):
                # The API rejects empty text blocks
                if block.text:
                    out.append({"type": "text", "text": block.text})
            elif isinstance(block, ToolUseBlock):
                out.append({
                    "type": "tool_use",
                    "id": block.id,
                    "name": block.name,
                    "input": block.input,
                })
            elif isinstance(block, ToolResultBlock):
                out.append({
                    "type": "tool_result",
                    "tool_use_id": block.tool_call_id,
                    "content": block.content,
                    "is_error": block.is_error,
                })
        return out

    # ------------------------------------------------------------------
    # Response translation
    # ------------------------------------------------------------------

    def parse_response(self, raw: Any) -> GenerateResponse:
        """Parse a non-streaming Messages API response."""
        if not isinstance(raw, dict) or not isinstance(raw.get("content"), list):
            raise MalformedResponseError("Response has no content list")

        if raw.get("stop_reason") == "refusal":
            raise ContentPolicyError("Model refused the request", provider=self.name, raw=raw)

        text_parts: list[str] = []
        calls: list[ToolCall] = []
        for block in raw["content"]:
            btype = block.get("type")
            if btype == "text":
                text_parts.append(block.get("text", ""))
            elif btype == "tool_use":
                tool_input = block.get("input", {})
                if not isinstance(tool_input, dict):
                    raise MalformedToolInputError(
                        f"Tool call {block.get('id')!r} input is not an object",
                        tool_call_id=block.get("id", ""),
                    )
                calls.append(ToolCall(
                    id=block.get("id", ""), name=block.get("name", ""), input=tool_input,
                ))

        usage_raw = raw.get("usage") or {}
        usage = Usage(
            input_tokens=usage_raw.get("input_tokens", 0),
            output_tokens=usage_raw.get("output_tokens", 0),
        )
        text = "".join(text_parts)
        if calls:
            return ToolCallsResponse(calls=tuple(calls), text=text, usage=usage)
        return ContentResponse(text=text, usage=usage)

    def _translate_error(self, response: httpx.Response) -> ProviderError:
        """Translate an HTTP error response to a provider error."""
        body: dict[str, Any] | None
        try:
            body = response.json()
            error_info = body.get("error", {})
            message = error_info.get("message", response.text)
            error_code = error_info.get("type")
        except (ValueError, AttributeError):
            message = response.text
            error_code = None
            body = None

        retry_after = None
        if "retry-after" in response.headers:
            try:
                retry_after = float(response.headers["retry-after"])
            except (ValueError, TypeError):
                pass

        return error_from_status_code(
            status_code=response.status_code,
            message=message,
            provider=self.name,
            error_code=error_code,
            raw=body,
            retry_after=retry_after,
        )

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def generate(
        self, messages: Sequence[Message], config: GenerateConfig
    ) -> GenerateResponse:
        body = self.build_request_body(messages, config)
        try:
            http_response = await self._client.post("/v1/messages", json=body)
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(f"Request timed out: {exc}", cause=exc) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Network error: {exc}", cause=exc) from exc

        if http_response.status_code != 200:
            raise self._translate_error(http_response)

        try:
            raw = http_response.json()
        except ValueError as exc:
            raise MalformedResponseError("Response body is not JSON", cause=exc) from exc
        return self.parse_response(raw)

    async def generate_streaming(
        self, messages: Sequence[Message], config: GenerateConfig
    ) -> AsyncIterator[StreamDelta]:
        body = self.build_request_body(messages, config)
        body["stream"] = True
        try:
            async with self._client.stream("POST", "/v1/messages", json=body) as http_response:
                if http_response.status_code != 200:
                    await http_response.aread()
                    raise self._translate_error(http_response)
                async for delta in self._translate_stream(http_response):
                    yield delta
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(f"Stream timed out: {exc}", cause=exc) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Network error during stream: {exc}", cause=exc) from exc

    async def _translate_stream(
        self, http_response: httpx.Response
    ) -> AsyncIterator[StreamDelta]:
        """Turn Messages API SSE events into delta events."""
        # Block index -> tool call id; input deltas only carry the index
        tool_ids: dict[int, str] = {}
        usage: dict[str, int] = {}

        async for sse in parse_sse_lines(http_response.aiter_lines()):
            if sse.event == "ping" or not sse.data:
                continue
            try:
                data = json.loads(sse.data)
            except json.JSONDecodeError as exc:
                raise MalformedResponseError(
                    f"Unparseable stream event {sse.event!r}", cause=exc,
                ) from exc

            if sse.event == "message_start":
                usage.update(data.get("message", {}).get("usage", {}))

            elif sse.event == "content_block_start":
                block = data.get("content_block", {})
                if block.get("type") == "tool_use":
                    tool_ids[data.get("index", 0)] = block.get("id", "")
                    yield ToolCallStart(id=block.get("id", ""), name=block.get("name", ""))
                elif block.get("type") == "text" and block.get("text"):
                    yield ContentDelta(text=block["text"])

            elif sse.event == "content_block_delta":
                delta = data.get("delta", {})
                if delta.get("type") == "text_delta":
                    yield ContentDelta(text=delta.get("text", ""))
                elif delta.get("type") == "input_json_delta":
                    call_id = tool_ids.get(data.get("index", 0))
                    if call_id is None:
                        raise MalformedResponseError("Input delta for a block that is not a tool call")
                    yield ToolCallDelta(id=call_id, partial_input=delta.get("partial_json", ""))

            elif sse.event == "content_block_stop":
                call_id = tool_ids.get(data.get("index", 0))
                if call_id is not None:
                    yield ToolCallEnd(id=call_id)

            elif sse.event == "message_delta":
                if data.get("delta", {}).get("stop_reason") == "refusal":
                    raise ContentPolicyError("Model refused the request", provider=self.name)
                usage.update(data.get("usage", {}))

            elif sse.event == "message_stop":
                yield Done(usage=Usage(
                    input_tokens=usage.get("input_tokens", 0),
                    output_tokens=usage.get("output_tokens", 0),
                ))
                return

            elif sse.event == "error":
                info = data.get("error", data)
                error_cls = _STREAM_ERROR_TYPES.get(info.get("type", ""), ProviderError)
                raise error_cls(
                    info.get("message", str(info)),
                    provider=self.name,
                    error_code=info.get("type"),
                    raw=data,
                )

    async def aclose(self) -> None:
        await self._client.aclose()


def _merge_same_role(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Merge consecutive same-role messages; the API requires alternation."""
    merged: list[dict[str, Any]] = []
    for msg in messages:
        if merged and merged[-1]["role"] == msg["role"]:
            merged[-1] = {
                "role": msg["role"],
                "content": merged[-1]["content"] + msg["content"],
            }
        else:
            merged.append(msg)
    return merged
