"""Helpers for consuming streaming provider output."""
from __future__ import annotations

from collections.abc import AsyncIterator, Callable

from trustee_llm.types.response import GenerateResponse
from trustee_llm.types.streaming import ContentDelta, StreamAccumulator, StreamDelta


async def collect_stream(
    deltas: AsyncIterator[StreamDelta],
    on_text: Callable[[str], None] | None = None,
) -> GenerateResponse:
    """Drain *deltas* through a fresh accumulator and return the final response.

    *on_text* receives each content delta as it arrives. Deltas arriving after
    ``Done`` are rejected by the accumulator.
    """
    acc = StreamAccumulator()
    async for delta in deltas:
        if on_text is not None and isinstance(delta, ContentDelta) and delta.text:
            on_text(delta.text)
        acc.process(delta)
    return acc.finish()
