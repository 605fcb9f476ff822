"""Trustee: a checkpointed, resumable agent turn loop."""

__version__ = "0.1.0"

from trustee.checkpoint import Checkpoint, CheckpointManager, SessionIndex, SessionStatus
from trustee.config import AppConfig, ProviderConfig, SessionConfig, load_config
from trustee.errors import (
    CheckpointCorruptError,
    CheckpointError,
    CheckpointNotFoundError,
    CheckpointWriteError,
    ConfigError,
    ConversationInvariantError,
    StateTransitionError,
    TemplateLoadError,
    TrusteeError,
)
from trustee.events import EventEmitter
from trustee.lifecycle import Lifecycle, StubLifecycle, TemplateLifecycle
from trustee.session import Session, SessionResult
from trustee.state import AgentMode, SessionOutcome, WorkflowState, WorkflowStep
from trustee.tools import RegisteredTool, ToolDispatcher, ToolRegistry, build_builtin_registry

__all__ = [
    "__version__",
    # Core orchestrator
    "Session",
    "SessionResult",
    "WorkflowState",
    "WorkflowStep",
    "AgentMode",
    "SessionOutcome",
    # Configuration
    "AppConfig",
    "ProviderConfig",
    "SessionConfig",
    "load_config",
    # Checkpoints
    "Checkpoint",
    "CheckpointManager",
    "SessionIndex",
    "SessionStatus",
    # Lifecycle
    "Lifecycle",
    "StubLifecycle",
    "TemplateLifecycle",
    # Tools
    "RegisteredTool",
    "ToolDispatcher",
    "ToolRegistry",
    "build_builtin_registry",
    # Events
    "EventEmitter",
    # Errors
    "TrusteeError",
    "ConfigError",
    "TemplateLoadError",
    "StateTransitionError",
    "ConversationInvariantError",
    "CheckpointError",
    "CheckpointWriteError",
    "CheckpointNotFoundError",
    "CheckpointCorruptError",
]
