"""Event system for the turn loop."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable


# --- Event dataclasses ---


@dataclass(frozen=True)
class SessionStarted:
    session_id: str
    task_description: str
    resumed: bool = False


@dataclass(frozen=True)
class TaskClassified:
    task_type: str
    fallback: bool = False


@dataclass(frozen=True)
class TemplatesLoaded:
    task_type: str
    templates: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProviderCallStarted:
    iteration: int
    attempt: int
    message_count: int


@dataclass(frozen=True)
class ProviderRetry:
    attempt: int
    error: str
    delay: float


@dataclass(frozen=True)
class AssistantTextDelta:
    text: str


@dataclass(frozen=True)
class AssistantMessage:
    text: str
    tool_call_count: int = 0


@dataclass(frozen=True)
class ToolCallStarted:
    tool_call_id: str
    tool_name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolCallFinished:
    tool_call_id: str
    tool_name: str
    success: bool
    content: str = ""
    error_kind: str | None = None


@dataclass(frozen=True)
class IterationCompleted:
    iteration: int


@dataclass(frozen=True)
class CheckpointSaved:
    session_id: str
    sequence: int
    path: str


@dataclass(frozen=True)
class CheckpointFailed:
    session_id: str
    error: str


@dataclass(frozen=True)
class SessionFinished:
    session_id: str
    outcome: str
    iteration: int
    error: str | None = None


class EventEmitter:
    """Synchronous callback-based event emitter.

    Events are dispatched synchronously in registration order.
    """

    def __init__(self) -> None:
        self._listeners: dict[type, list[Callable]] = {}
        self._global_listeners: list[Callable] = []

    def subscribe(self, event_type: type, callback: Callable) -> None:
        """Register a callback for a specific event type."""
        self._listeners.setdefault(event_type, []).append(callback)

    def on_all(self, callback: Callable) -> None:
        """Register a callback that receives every event."""
        self._global_listeners.append(callback)

    def emit(self, event: Any) -> None:
        """Dispatch event to all matching listeners."""
        for cb in self._global_listeners:
            cb(event)
        for cb in self._listeners.get(type(event), []):
            cb(event)
