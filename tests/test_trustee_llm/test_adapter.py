"""Tests for the adapter protocol, the stub adapter and stream collection."""
from __future__ import annotations

import pytest

from trustee_llm.adapter import BaseAdapter, ProviderAdapter, StubAdapter, response_to_deltas
from trustee_llm.errors import ServerError, StreamStateError
from trustee_llm.stream import collect_stream
from trustee_llm.types.config import GenerateConfig
from trustee_llm.types.messages import Message
from trustee_llm.types.response import ContentResponse, ToolCallsResponse, Usage
from trustee_llm.types.streaming import ContentDelta, Done, ToolCallDelta, ToolCallEnd, ToolCallStart
from trustee_llm.types.tools import ToolCall


async def _aiter(items):
    for item in items:
        yield item


def test_stub_satisfies_protocol():
    assert isinstance(StubAdapter(), ProviderAdapter)


def test_response_to_deltas_for_tool_calls():
    response = ToolCallsResponse(
        calls=(ToolCall(id="1", name="read_file", input={"path": "a"}),), text="Reading",
    )
    deltas = response_to_deltas(response)
    assert deltas[0] == ContentDelta(text="Reading")
    assert deltas[1] == ToolCallStart(id="1", name="read_file")
    assert isinstance(deltas[2], ToolCallDelta)
    assert deltas[3] == ToolCallEnd(id="1")
    assert isinstance(deltas[-1], Done)


class TestStubAdapter:
    @pytest.mark.asyncio
    async def test_scripted_responses_in_order_then_repeat(self):
        adapter = StubAdapter([ContentResponse(text="one"), ContentResponse(text="two")])
        config = GenerateConfig()
        texts = [(await adapter.generate([Message.user("hi")], config)).text for _ in range(3)]
        assert texts == ["one", "two", "two"]
        assert adapter.call_count == 3

    @pytest.mark.asyncio
    async def test_raises_scripted_exception(self):
        adapter = StubAdapter([ServerError("down"), ContentResponse(text="ok")])
        with pytest.raises(ServerError):
            await adapter.generate([], GenerateConfig())
        assert (await adapter.generate([], GenerateConfig())).text == "ok"

    @pytest.mark.asyncio
    async def test_records_a_snapshot_of_messages(self):
        adapter = StubAdapter()
        messages = [Message.user("hi")]
        await adapter.generate(messages, GenerateConfig(model="m"))
        messages.append(Message.user("later"))
        recorded, config = adapter.requests[0]
        assert recorded == [Message.user("hi")]
        assert config.model == "m"

    @pytest.mark.asyncio
    async def test_streaming_matches_generate(self):
        response = ToolCallsResponse(calls=(ToolCall(id="1", name="x", input={"a": 1}),))
        adapter = StubAdapter([response])
        assert await collect_stream(adapter.generate_streaming([], GenerateConfig())) == response


class TestCollectStream:
    @pytest.mark.asyncio
    async def test_on_text_receives_deltas(self):
        seen = []
        result = await collect_stream(
            _aiter([ContentDelta("a"), ContentDelta("b"), Done(Usage(1, 1))]), on_text=seen.append,
        )
        assert seen == ["a", "b"]
        assert result == ContentResponse(text="ab")

    @pytest.mark.asyncio
    async def test_stream_without_done(self):
        with pytest.raises(StreamStateError):
            await collect_stream(_aiter([ContentDelta("a")]))


class TestBaseAdapter:
    @pytest.mark.asyncio
    async def test_generate_folds_the_stream(self):
        class OneShot(BaseAdapter):
            name = "one-shot"

            async def generate_streaming(self, messages, config):
                yield ContentDelta("folded")
                yield Done()

        assert (await OneShot().generate([], GenerateConfig())).text == "folded"
