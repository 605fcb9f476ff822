"""Provider adapter interface."""
from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from typing import Protocol, runtime_checkable

from trustee_llm.stream import collect_stream
from trustee_llm.types.config import GenerateConfig
from trustee_llm.types.messages import Message
from trustee_llm.types.response import ContentResponse, GenerateResponse, ToolCallsResponse
from trustee_llm.types.streaming import (
    ContentDelta,
    Done,
    StreamDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
)


@runtime_checkable
class ProviderAdapter(Protocol):
    """Protocol that every provider backend must satisfy.

    Adapters never mutate the messages they are given.
    """

    @property
    def name(self) -> str:
        """Unique provider name."""
        ...

    async def generate(
        self, messages: Sequence[Message], config: GenerateConfig
    ) -> GenerateResponse:
        """Send a request and return the complete response."""
        ...

    def generate_streaming(
        self, messages: Sequence[Message], config: GenerateConfig
    ) -> AsyncIterator[StreamDelta]:
        """Send a request and yield delta events, ending with ``Done``."""
        ...


class BaseAdapter:
    """Concrete base class with sensible defaults for provider adapters.

    Subclasses implement ``generate_streaming``; ``generate`` folds the stream.
    """

    @property
    def name(self) -> str:
        raise NotImplementedError

    async def generate(
        self, messages: Sequence[Message], config: GenerateConfig
    ) -> GenerateResponse:
        return await collect_stream(self.generate_streaming(messages, config))

    def generate_streaming(
        self, messages: Sequence[Message], config: GenerateConfig
    ) -> AsyncIterator[StreamDelta]:
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release resources. Override if the adapter holds connections."""


def response_to_deltas(response: GenerateResponse) -> list[StreamDelta]:
    """Express a complete response as the delta sequence a stream would produce."""
    deltas: list[StreamDelta] = []
    if response.text:
        deltas.append(ContentDelta(text=response.text))
    if isinstance(response, ToolCallsResponse):
        for call in response.calls:
            deltas.append(ToolCallStart(id=call.id, name=call.name))
            deltas.append(ToolCallDelta(id=call.id, partial_input=json.dumps(call.input)))
            deltas.append(ToolCallEnd(id=call.id))
    deltas.append(Done(usage=response.usage))
    return deltas


class StubAdapter(BaseAdapter):
    """In-memory adapter for testing.

    Returns scripted responses in order; each script entry may also be an
    exception instance, which is raised for that call. When the script is
    exhausted, the last entry repeats. Every call records a snapshot of the
    messages it was given.
    """

    def __init__(
        self,
        responses: Sequence[GenerateResponse | Exception] | None = None,
        name: str = "stub",
    ) -> None:
        self._name = name
        self._responses = list(responses or [ContentResponse(text="Hello! How can I help?")])
        self._index = 0
        self.requests: list[tuple[list[Message], GenerateConfig]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def _next(self, messages: Sequence[Message], config: GenerateConfig) -> GenerateResponse:
        self.requests.append((list(messages), config))
        if self._index < len(self._responses):
            entry = self._responses[self._index]
            self._index += 1
        else:
            entry = self._responses[-1]
        if isinstance(entry, Exception):
            raise entry
        return entry

    async def generate(
        self, messages: Sequence[Message], config: GenerateConfig
    ) -> GenerateResponse:
        return self._next(messages, config)

    async def generate_streaming(
        self, messages: Sequence[Message], config: GenerateConfig
    ) -> AsyncIterator[StreamDelta]:
        for delta in response_to_deltas(self._next(messages, config)):
            yield delta
