"""Shared wiring for the CLI commands: config, collaborators and reporting."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

import click

from trustee.checkpoint import CheckpointManager
from trustee.config import AppConfig, load_config, override
from trustee.errors import ConfigError
from trustee.events import (
    AssistantMessage,
    AssistantTextDelta,
    CheckpointFailed,
    EventEmitter,
    ToolCallFinished,
    ToolCallStarted,
)
from trustee.lifecycle import TemplateLifecycle
from trustee.session import Session, SessionResult
from trustee.state import AgentMode, SessionOutcome
from trustee.tools.builtin import build_builtin_registry
from trustee_llm.adapter import ProviderAdapter, StubAdapter
from trustee_llm.providers.anthropic import AnthropicAdapter
from trustee_llm.types.config import AdapterTimeout
from trustee_llm.types.response import ContentResponse

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CHECKPOINT = 2
EXIT_INTERRUPTED = 130

# Project configuration used when --config is not given
DEFAULT_CONFIG_PATH = Path("config") / "trustee.toml"


def load_app_config(config_path: str | None, **overrides: Any) -> AppConfig:
    """Load the TOML config, falling back to config/trustee.toml, then apply CLI flags."""
    if config_path is None and DEFAULT_CONFIG_PATH.is_file():
        config_path = str(DEFAULT_CONFIG_PATH)
    try:
        return override(load_config(config_path), **overrides)
    except ConfigError as exc:
        raise click.ClickException(f"Configuration error: {exc}") from exc


def build_provider(config: AppConfig) -> ProviderAdapter:
    provider = config.provider
    if provider.kind == "stub":
        # Offline dry run: the model declares the task finished straight away
        marker = config.session.completion_marker or ""
        return StubAdapter([ContentResponse(text=f"Nothing to do. {marker}".strip())])

    if not config.session.model:
        raise click.ClickException("A model is required for the anthropic provider (--model)")
    try:
        api_key = provider.api_key()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    return AnthropicAdapter(
        api_key=api_key,
        base_url=provider.base_url,
        timeout=AdapterTimeout(
            connect=provider.connect_timeout,
            request=config.session.provider_timeout,
            stream_read=provider.read_timeout,
        ),
    )


def build_session(config: AppConfig, session_id: str | None = None) -> Session:
    emitter = EventEmitter()
    _attach_console(emitter, streaming=config.session.streaming)

    user_input = _prompt_user if config.session.mode == AgentMode.INTERACTIVE else None
    return Session(
        provider=build_provider(config),
        lifecycle=TemplateLifecycle(
            templates_dir=config.templates_dir,
            task_rules=config.task_types or None,
            default_task_type=config.session.default_task_type,
        ),
        registry=build_builtin_registry(config.working_dir, exclude=set(config.disabled_tools)),
        checkpoints=CheckpointManager(config.checkpoint_dir, keep=config.checkpoint_keep),
        config=config.session,
        event_emitter=emitter,
        session_id=session_id,
        user_input=user_input,
        working_dir=config.working_dir,
    )


async def _prompt_user(assistant_text: str) -> str | None:
    return await asyncio.to_thread(click.prompt, "you", default="", show_default=False)


def _attach_console(emitter: EventEmitter, streaming: bool) -> None:
    if streaming:
        emitter.subscribe(AssistantTextDelta, lambda e: click.echo(e.text, nl=False))
        emitter.subscribe(AssistantMessage, lambda e: click.echo())
    else:
        emitter.subscribe(
            AssistantMessage, lambda e: e.text and click.echo(f"assistant: {e.text}"),
        )
    emitter.subscribe(
        ToolCallStarted, lambda e: click.echo(f"  -> {e.tool_name}({e.tool_call_id})"),
    )
    emitter.subscribe(ToolCallFinished, _echo_tool_result)
    emitter.subscribe(
        CheckpointFailed, lambda e: click.echo(f"Warning: checkpoint failed: {e.error}", err=True),
    )


def _echo_tool_result(event: ToolCallFinished) -> None:
    status = "ok" if event.success else f"failed ({event.error_kind})"
    first_line = event.content.splitlines()[0] if event.content else ""
    click.echo(f"  <- {event.tool_name}: {status} {first_line}".rstrip())


def execute(session: Session, action: Callable[[], Awaitable[SessionResult]]) -> SessionResult:
    """Run *action* on a fresh event loop, exiting 130 on Ctrl-C."""

    async def main() -> SessionResult:
        try:
            return await action()
        finally:
            aclose = getattr(session.provider, "aclose", None)
            if aclose is not None:
                await aclose()

    try:
        return asyncio.run(main())
    except KeyboardInterrupt:
        click.echo(
            f"\nInterrupted. Resume with: trustee resume --session {session.id}", err=True,
        )
        sys.exit(EXIT_INTERRUPTED)


def report(result: SessionResult) -> int:
    """Print the outcome of a run and return the process exit code."""
    iterations = result.state.iteration
    click.echo()
    if result.outcome == SessionOutcome.COMPLETED:
        click.echo(f"Completed after {iterations} iteration(s).")
    elif result.outcome == SessionOutcome.MAX_ITERATIONS_REACHED:
        click.echo(f"Stopped: reached the iteration limit ({iterations}) before the task finished.")
    else:
        click.echo(f"Failed: {result.error}", err=True)

    click.echo(f"Session: {result.session_id}")
    if result.last_checkpoint is not None:
        click.echo(f"Last checkpoint: #{result.last_checkpoint}")
    return EXIT_OK if result.succeeded else EXIT_FAILED
