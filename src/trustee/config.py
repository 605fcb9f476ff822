"""Configuration for the turn loop and the applications that embed it."""
from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from trustee.errors import ConfigError
from trustee.state import AgentMode
from trustee_llm.types.config import RetryPolicy

DEFAULT_CONTINUATION_PROMPT = (
    "Continue working on the task. When it is finished, call the submit tool "
    "or reply with TASK_COMPLETE."
)


@dataclass(frozen=True)
class SessionConfig:
    """Settings owned by the turn-loop coordinator."""

    max_iterations: int = 50
    checkpoint_interval: int = 1
    mode: AgentMode = AgentMode.AUTO
    model: str = ""
    temperature: float | None = 0.0
    max_tokens: int | None = 4096
    streaming: bool = False
    provider_timeout: float = 120.0  # seconds, per provider attempt
    tool_timeout: float = 30.0  # seconds, per tool call
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    default_task_type: str = "general"
    completion_marker: str | None = "TASK_COMPLETE"
    completion_tools: tuple[str, ...] = ("submit",)
    continuation_prompt: str = DEFAULT_CONTINUATION_PROMPT
    max_tool_output_chars: int = 30_000
    provider_options: dict[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ConfigError("max_iterations must be at least 1")
        if self.checkpoint_interval < 1:
            raise ConfigError("checkpoint_interval must be at least 1")
        if self.provider_timeout <= 0 or self.tool_timeout <= 0:
            raise ConfigError("timeouts must be positive")
        if self.retry.max_retries < 0:
            raise ConfigError("retry.max_retries cannot be negative")
        if isinstance(self.mode, str) and not isinstance(self.mode, AgentMode):
            object.__setattr__(self, "mode", _parse_mode(self.mode))
        if isinstance(self.completion_tools, list):
            object.__setattr__(self, "completion_tools", tuple(self.completion_tools))


@dataclass(frozen=True)
class ProviderConfig:
    """Which backend to build. ``kind`` selects the variant."""

    kind: str = "anthropic"  # "anthropic" | "stub"
    base_url: str = "https://api.anthropic.com"
    api_key_env: str = "ANTHROPIC_API_KEY"
    connect_timeout: float = 5.0
    read_timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.kind not in ("anthropic", "stub"):
            raise ConfigError(f"Unknown provider kind: {self.kind!r}")

    def api_key(self) -> str:
        key = os.environ.get(self.api_key_env, "")
        if not key:
            raise ConfigError(f"Environment variable {self.api_key_env} is not set")
        return key


@dataclass(frozen=True)
class AppConfig:
    """Configuration of the command-line application."""

    session: SessionConfig = field(default_factory=SessionConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    checkpoint_dir: str = ".trustee/sessions"
    checkpoint_keep: int | None = None
    templates_dir: str | None = None
    working_dir: str = "."
    task_types: dict[str, tuple[str, ...]] = field(default_factory=dict, hash=False)
    disabled_tools: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        keep = self.checkpoint_keep
        if keep is not None and (isinstance(keep, bool) or not isinstance(keep, int) or keep < 1):
            raise ConfigError("checkpoint keep must be a positive integer")


def _parse_mode(value: str) -> AgentMode:
    try:
        return AgentMode(value.lower())
    except ValueError:
        choices = ", ".join(m.value for m in AgentMode)
        raise ConfigError(f"Unknown mode {value!r} (expected one of: {choices})") from None


def _build(cls: type, data: dict[str, Any], section: str) -> Any:
    """Instantiate a config dataclass from a TOML table, rejecting unknown keys."""
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in [{section}]: {', '.join(unknown)}")
    try:
        return cls(**data)
    except TypeError as exc:
        raise ConfigError(f"Invalid [{section}] section: {exc}") from exc


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load an AppConfig from a TOML file.

    A missing *path* (or ``None``) yields the defaults. Recognised tables are
    ``[session]`` (with an optional ``[session.retry]``), ``[provider]``,
    ``[checkpoint]``, ``[lifecycle]`` and ``[tools]``.
    """
    if path is None or not Path(path).exists():
        return AppConfig()

    try:
        data = tomllib.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc

    unknown = sorted(set(data) - {"session", "provider", "checkpoint", "lifecycle", "tools"})
    if unknown:
        raise ConfigError(f"Unknown section(s): {', '.join(unknown)}")

    session_data = dict(data.get("session", {}))
    retry_data = session_data.pop("retry", None)
    if retry_data is not None:
        session_data["retry"] = _build(RetryPolicy, retry_data, "session.retry")
    session = _build(SessionConfig, session_data, "session")

    provider = _build(ProviderConfig, dict(data.get("provider", {})), "provider")

    checkpoint = _table(data, "checkpoint", {"dir", "keep"})
    lifecycle = _table(data, "lifecycle", {"templates_dir", "task_types"})
    tools = _table(data, "tools", {"working_dir", "disabled"})

    task_types = lifecycle.get("task_types", {})
    if not isinstance(task_types, dict) or not all(
        _is_str_list(keywords) for keywords in task_types.values()
    ):
        raise ConfigError("[lifecycle] task_types must map task types to lists of keywords")
    disabled = tools.get("disabled", [])
    if not _is_str_list(disabled):
        raise ConfigError("[tools] disabled must be a list of tool names")
    for section, table, key in (
        ("checkpoint", checkpoint, "dir"),
        ("lifecycle", lifecycle, "templates_dir"),
        ("tools", tools, "working_dir"),
    ):
        if key in table and not isinstance(table[key], str):
            raise ConfigError(f"[{section}] {key} must be a string")

    return AppConfig(
        session=session,
        provider=provider,
        checkpoint_dir=checkpoint.get("dir", AppConfig.checkpoint_dir),
        checkpoint_keep=checkpoint.get("keep"),
        templates_dir=lifecycle.get("templates_dir"),
        working_dir=tools.get("working_dir", AppConfig.working_dir),
        task_types={name: tuple(keywords) for name, keywords in task_types.items()},
        disabled_tools=tuple(disabled),
    )


def _table(data: dict[str, Any], section: str, known: set[str]) -> dict[str, Any]:
    table = data.get(section, {})
    if not isinstance(table, dict):
        raise ConfigError(f"[{section}] must be a table")
    unknown = sorted(set(table) - known)
    if unknown:
        raise ConfigError(f"Unknown key(s) in [{section}]: {', '.join(unknown)}")
    return table


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def override(config: AppConfig, **changes: Any) -> AppConfig:
    """Apply command-line overrides; ``None`` values leave the setting unchanged.

    Keys matching a SessionConfig field go to ``config.session``; the rest to
    the AppConfig itself.
    """
    session_keys = {f.name for f in fields(SessionConfig)}
    session_changes = {k: v for k, v in changes.items() if v is not None and k in session_keys}
    app_changes = {k: v for k, v in changes.items() if v is not None and k not in session_keys}
    if "provider" in app_changes and isinstance(app_changes["provider"], str):
        app_changes["provider"] = replace(config.provider, kind=app_changes["provider"])
    session = replace(config.session, **session_changes) if session_changes else config.session
    return replace(config, session=session, **app_changes)
