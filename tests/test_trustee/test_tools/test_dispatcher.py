"""Tests for the tool dispatcher."""
from __future__ import annotations

import asyncio
import threading

import pytest

from trustee.tools.dispatcher import (
    EXECUTION_ERROR,
    INVALID_INPUT,
    TIMEOUT,
    UNKNOWN_TOOL,
    ToolDispatcher,
)
from trustee.tools.registry import RegisteredTool, ToolRegistry
from trustee_llm.types.tools import ToolCall, ToolDefinition, ToolResult


def _registry(**executors) -> ToolRegistry:
    return ToolRegistry([
        RegisteredTool(definition=ToolDefinition(name=name, description=name), executor=fn)
        for name, fn in executors.items()
    ])


class TestSuccess:
    @pytest.mark.asyncio
    async def test_string_result(self):
        dispatcher = ToolDispatcher(_registry(echo=lambda args: args["text"]))
        result = await dispatcher.execute(ToolCall(id="1", name="echo", input={"text": "hi"}))
        assert result == ToolResult(tool_call_id="1", success=True, content="hi")

    @pytest.mark.asyncio
    async def test_none_result(self):
        dispatcher = ToolDispatcher(_registry(noop=lambda args: None))
        result = await dispatcher.execute(ToolCall(id="1", name="noop"))
        assert result.success and result.content == ""

    @pytest.mark.asyncio
    async def test_mapping_result(self):
        dispatcher = ToolDispatcher(_registry(
            check=lambda args: {"success": False, "content": "2 failures", "stdout": "F.F"},
        ))
        result = await dispatcher.execute(ToolCall(id="7", name="check"))
        assert result.tool_call_id == "7"
        assert result.success is False
        assert result.stdout == "F.F"
        assert result.error_kind == EXECUTION_ERROR

    @pytest.mark.asyncio
    async def test_tool_result_gets_call_id(self):
        dispatcher = ToolDispatcher(_registry(
            raw=lambda args: ToolResult(tool_call_id="", success=True, content="ok"),
        ))
        result = await dispatcher.execute(ToolCall(id="abc", name="raw"))
        assert result.tool_call_id == "abc"

    @pytest.mark.asyncio
    async def test_output_is_truncated(self):
        dispatcher = ToolDispatcher(_registry(big=lambda args: "x" * 1000), max_output_chars=100)
        result = await dispatcher.execute(ToolCall(id="1", name="big"))
        assert "Output truncated" in result.content
        assert len(result.content) < 1000

    @pytest.mark.asyncio
    async def test_stderr_keeps_its_end(self):
        dispatcher = ToolDispatcher(
            _registry(noisy=lambda args: {"success": False, "stderr": "w" * 500 + "Error: disk full"}),
            max_output_chars=100,
        )
        result = await dispatcher.execute(ToolCall(id="1", name="noisy"))
        assert result.stderr.startswith("[Output truncated: first 416 characters removed.]")
        assert result.stderr.endswith("Error: disk full")


class TestFailures:
    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        dispatcher = ToolDispatcher(_registry(echo=lambda args: ""))
        result = await dispatcher.execute(ToolCall(id="1", name="teleport"))
        assert result.success is False
        assert result.error_kind == UNKNOWN_TOOL
        assert "teleport" in result.content
        assert "echo" in result.content

    @pytest.mark.asyncio
    async def test_timeout_async(self):
        async def slow(args):
            await asyncio.sleep(10)

        dispatcher = ToolDispatcher(_registry(slow=slow), timeout=0.05)
        result = await dispatcher.execute(ToolCall(id="1", name="slow"))
        assert result.success is False
        assert result.error_kind == TIMEOUT
        assert "timed out" in result.content

    @pytest.mark.asyncio
    async def test_timeout_sync(self):
        release = threading.Event()
        dispatcher = ToolDispatcher(_registry(block=lambda args: release.wait(5)), timeout=0.05)
        try:
            result = await dispatcher.execute(ToolCall(id="1", name="block"))
        finally:
            release.set()
        assert result.error_kind == TIMEOUT

    @pytest.mark.asyncio
    async def test_missing_argument_is_invalid_input(self):
        dispatcher = ToolDispatcher(_registry(echo=lambda args: args["text"]))
        result = await dispatcher.execute(ToolCall(id="1", name="echo", input={}))
        assert result.error_kind == INVALID_INPUT
        assert "text" in result.content

    @pytest.mark.asyncio
    async def test_non_object_input(self):
        dispatcher = ToolDispatcher(_registry(echo=lambda args: ""))
        result = await dispatcher.execute(ToolCall(id="1", name="echo", input=["a"]))
        assert result.error_kind == INVALID_INPUT

    @pytest.mark.asyncio
    async def test_executor_exception(self):
        def broken(args):
            raise RuntimeError("disk on fire")

        dispatcher = ToolDispatcher(_registry(broken=broken))
        result = await dispatcher.execute(ToolCall(id="1", name="broken"))
        assert result.success is False
        assert result.error_kind == EXECUTION_ERROR
        assert "disk on fire" in result.content

    @pytest.mark.asyncio
    async def test_cancellation_is_not_absorbed(self):
        started = asyncio.Event()

        async def wait_forever(args):
            started.set()
            await asyncio.Event().wait()

        dispatcher = ToolDispatcher(_registry(wait=wait_forever), timeout=30)
        task = asyncio.create_task(dispatcher.execute(ToolCall(id="1", name="wait")))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
