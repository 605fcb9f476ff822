"""Configuration types."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from trustee_llm.types.tools import ToolDefinition


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for automatic retry of provider calls."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_multiplier: float = 2.0
    jitter: bool = True
    max_malformed_retries: int = 2
    on_retry: Callable[[int, Exception, float], None] | None = field(
        default=None, compare=False, hash=False
    )


@dataclass(frozen=True)
class GenerateConfig:
    """Per-call generation settings handed to a provider adapter."""

    model: str = ""
    temperature: float | None = 0.0
    max_tokens: int | None = 4096
    tools: tuple[ToolDefinition, ...] = ()
    stop_sequences: tuple[str, ...] = ()
    provider_options: dict[str, Any] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class AdapterTimeout:
    """Low-level timeout settings used by HTTP adapters."""

    connect: float = 5.0
    request: float = 120.0
    stream_read: float = 60.0
