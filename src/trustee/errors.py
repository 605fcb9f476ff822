"""Session-level error types for the turn loop."""
from __future__ import annotations


class TrusteeError(Exception):
    """Base error for all trustee errors."""


class ConfigError(TrusteeError):
    """Invalid or unreadable configuration."""


class TemplateLoadError(TrusteeError):
    """A prompt template could not be loaded or rendered. Fatal to the session."""

    def __init__(self, message: str, *, template: str = "") -> None:
        super().__init__(message)
        self.template = template


class StateTransitionError(TrusteeError):
    """An illegal workflow step transition, or a mutation after a terminal step."""


class ConversationInvariantError(TrusteeError):
    """The conversation would be sent to the provider with an unanswered tool call."""


class CheckpointError(TrusteeError):
    """Base error for checkpoint persistence."""

    def __init__(self, message: str, *, session_id: str = "", sequence: int | None = None) -> None:
        super().__init__(message)
        self.session_id = session_id
        self.sequence = sequence


class CheckpointWriteError(CheckpointError):
    """A checkpoint could not be written. Logged and retried on the next interval."""


class CheckpointNotFoundError(CheckpointError):
    """No checkpoint exists for the requested session or sequence."""


class CheckpointCorruptError(CheckpointError):
    """A checkpoint or session index could not be decompressed or decoded."""
