"""Tool dispatcher: runs one tool call and always produces one ToolResult."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from trustee.tools.registry import RawToolResult, ToolRegistry
from trustee.tools.truncation import TruncationMode, truncate_output
from trustee_llm.types.tools import ToolCall, ToolResult

logger = logging.getLogger(__name__)

TIMEOUT = "timeout"
UNKNOWN_TOOL = "unknown_tool"
INVALID_INPUT = "invalid_input"
EXECUTION_ERROR = "execution_error"
INTERRUPTED = "interrupted"


class ToolDispatcher:
    """Resolves tool calls against a registry and enforces a per-call timeout.

    Timeouts, unknown tools and executor exceptions are reported as failed
    results so the model can see them; they are never raised. Cancellation
    of the surrounding task is not absorbed.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        timeout: float = 30.0,
        max_output_chars: int = 30_000,
    ) -> None:
        self.registry = registry
        self.timeout = timeout
        self.max_output_chars = max_output_chars

    async def execute(self, call: ToolCall) -> ToolResult:
        if call.name not in self.registry:
            logger.info("Unknown tool requested: %s", call.name)
            available = ", ".join(self.registry.names()) or "none"
            return ToolResult.failure(
                call.id, f"Unknown tool: {call.name}. Available tools: {available}", UNKNOWN_TOOL,
            )

        if not isinstance(call.input, Mapping):
            return ToolResult.failure(
                call.id, f"Tool input for {call.name} must be an object", INVALID_INPUT,
            )

        try:
            async with asyncio.timeout(self.timeout):
                raw = await self.registry.execute(call.name, dict(call.input))
        except TimeoutError:
            logger.warning("Tool %s (%s) timed out after %.1fs", call.name, call.id, self.timeout)
            return ToolResult.failure(
                call.id, f"Tool {call.name} timed out after {self.timeout:g}s", TIMEOUT,
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.info("Tool %s rejected its input: %s", call.name, exc)
            return ToolResult.failure(
                call.id, f"Tool error ({call.name}): invalid input: {exc}", INVALID_INPUT,
            )
        except Exception as exc:
            logger.exception("Tool %s (%s) raised", call.name, call.id)
            return ToolResult.failure(
                call.id, f"Tool error ({call.name}): {exc}", EXECUTION_ERROR,
            )

        return self._normalise(call, raw)

    def _normalise(self, call: ToolCall, raw: RawToolResult) -> ToolResult:
        if isinstance(raw, ToolResult):
            result = ToolResult(
                tool_call_id=call.id,
                success=raw.success,
                content=raw.content,
                stdout=raw.stdout,
                stderr=raw.stderr,
                error_kind=raw.error_kind,
            )
        elif isinstance(raw, Mapping):
            result = _from_mapping(call.id, raw)
        elif raw is None:
            result = ToolResult(tool_call_id=call.id, success=True)
        else:
            result = ToolResult(tool_call_id=call.id, success=True, content=str(raw))

        return ToolResult(
            tool_call_id=result.tool_call_id,
            success=result.success,
            content=truncate_output(result.content, self.max_output_chars),
            stdout=truncate_output(result.stdout, self.max_output_chars),
            # Errors are reported last; keep the end of stderr
            stderr=truncate_output(result.stderr, self.max_output_chars, TruncationMode.TAIL),
            error_kind=result.error_kind or (None if result.success else EXECUTION_ERROR),
        )


def _from_mapping(call_id: str, raw: Mapping[str, Any]) -> ToolResult:
    content = raw.get("content", "")
    return ToolResult(
        tool_call_id=call_id,
        success=bool(raw.get("success", True)),
        content=content if isinstance(content, str) else str(content),
        stdout=str(raw.get("stdout", "") or ""),
        stderr=str(raw.get("stderr", "") or ""),
        error_kind=raw.get("error_kind"),
    )
