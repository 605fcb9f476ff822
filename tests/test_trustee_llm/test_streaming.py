"""Tests for the streaming accumulator."""
from __future__ import annotations

import pytest

from trustee_llm.errors import MalformedToolInputError, StreamStateError
from trustee_llm.types.response import ContentResponse, ToolCallsResponse, Usage
from trustee_llm.types.streaming import (
    ContentDelta,
    Done,
    StreamAccumulator,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    parse_tool_input,
)
from trustee_llm.types.tools import ToolCall


def _feed(*deltas):
    acc = StreamAccumulator()
    result = None
    for delta in deltas:
        result = acc.process(delta)
    return acc, result


class TestContent:
    def test_text_only(self):
        acc, result = _feed(ContentDelta("Hel"), ContentDelta("lo"), Done(Usage(3, 2)))
        assert result == ContentResponse(text="Hello")
        assert result.usage.total_tokens == 5
        assert acc.finished
        assert acc.finish() is result

    def test_no_deltas_before_done(self):
        _, result = _feed(Done())
        assert result == ContentResponse(text="")

    def test_process_returns_none_until_done(self):
        acc = StreamAccumulator()
        assert acc.process(ContentDelta("x")) is None
        assert acc.text == "x"


class TestToolCalls:
    def test_single_call(self):
        _, result = _feed(
            ToolCallStart(id="1", name="create_file"),
            ToolCallDelta(id="1", partial_input='{"path": "foo.txt", '),
            ToolCallDelta(id="1", partial_input='"content": "hi"}'),
            ToolCallEnd(id="1"),
            Done(),
        )
        assert result == ToolCallsResponse(
            calls=(ToolCall(id="1", name="create_file", input={"path": "foo.txt", "content": "hi"}),),
        )

    def test_interleaved_buffers_keyed_by_id(self):
        _, result = _feed(
            ToolCallStart(id="a", name="first"),
            ToolCallStart(id="b", name="second"),
            ToolCallDelta(id="b", partial_input='{"n": '),
            ToolCallDelta(id="a", partial_input='{"m": '),
            ToolCallDelta(id="a", partial_input="1}"),
            ToolCallDelta(id="b", partial_input="2}"),
            ToolCallEnd(id="b"),
            ToolCallEnd(id="a"),
            Done(),
        )
        assert [c.id for c in result.calls] == ["a", "b"]
        assert result.calls[0].input == {"m": 1}
        assert result.calls[1].input == {"n": 2}

    def test_prose_alongside_calls_is_kept(self):
        _, result = _feed(
            ContentDelta("I'll read it."),
            ToolCallStart(id="1", name="read_file"),
            ToolCallDelta(id="1", partial_input='{"path": "x"}'),
            Done(),
        )
        assert isinstance(result, ToolCallsResponse)
        assert result.text == "I'll read it."

    def test_call_without_input_gets_empty_object(self):
        _, result = _feed(ToolCallStart(id="1", name="list_files"), ToolCallEnd(id="1"), Done())
        assert result.calls[0].input == {}

    def test_malformed_input(self):
        acc = StreamAccumulator()
        acc.process(ToolCallStart(id="1", name="x"))
        acc.process(ToolCallDelta(id="1", partial_input='{"path": '))
        with pytest.raises(MalformedToolInputError) as exc_info:
            acc.process(Done())
        assert exc_info.value.tool_call_id == "1"
        assert exc_info.value.retryable is True


class TestStreamState:
    def test_delta_after_done(self):
        acc, _ = _feed(Done())
        with pytest.raises(StreamStateError):
            acc.process(ContentDelta("late"))

    def test_delta_for_unknown_call(self):
        with pytest.raises(StreamStateError, match="unknown tool call"):
            _feed(ToolCallDelta(id="nope", partial_input="{}"))

    def test_duplicate_start(self):
        with pytest.raises(StreamStateError, match="started twice"):
            _feed(ToolCallStart(id="1", name="x"), ToolCallStart(id="1", name="x"))

    def test_input_after_end(self):
        with pytest.raises(StreamStateError, match="after it ended"):
            _feed(
                ToolCallStart(id="1", name="x"),
                ToolCallDelta(id="1", partial_input="{}"),
                ToolCallEnd(id="1"),
                ToolCallDelta(id="1", partial_input="{\"more\": 1}"),
            )

    def test_duplicate_end(self):
        with pytest.raises(StreamStateError, match="ended twice"):
            _feed(ToolCallStart(id="1", name="x"), ToolCallEnd(id="1"), ToolCallEnd(id="1"))

    def test_other_call_continues_after_one_ends(self):
        _, result = _feed(
            ToolCallStart(id="a", name="x"),
            ToolCallStart(id="b", name="y"),
            ToolCallEnd(id="a"),
            ToolCallDelta(id="b", partial_input="{}"),
            ToolCallEnd(id="b"),
            Done(),
        )
        assert [c.id for c in result.calls] == ["a", "b"]

    def test_finish_without_done(self):
        acc, _ = _feed(ContentDelta("partial"))
        with pytest.raises(StreamStateError, match="without a Done"):
            acc.finish()


class TestParseToolInput:
    def test_whitespace_is_empty(self):
        assert parse_tool_input("  ") == {}

    def test_non_object(self):
        with pytest.raises(MalformedToolInputError, match="JSON object"):
            parse_tool_input("[1, 2]", "c1")
