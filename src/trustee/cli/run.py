"""CLI command: trustee run -- start a new session for a task."""

from __future__ import annotations

import sys

import click

from trustee.checkpoint import CheckpointManager
from trustee.cli._common import build_session, execute, load_app_config, report
from trustee.state import AgentMode


@click.command()
@click.argument("task")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="TOML configuration file (default: config/trustee.toml)")
@click.option("--provider", type=click.Choice(["anthropic", "stub"]), default=None,
              help="Provider backend")
@click.option("--model", default=None, help="Model identifier")
@click.option("--max-iterations", type=click.IntRange(min=1), default=None,
              help="Stop after this many loop iterations")
@click.option("--checkpoint-dir", default=None, help="Directory for session checkpoints")
@click.option("--templates-dir", default=None, help="Directory with prompt templates")
@click.option("--workdir", "working_dir", type=click.Path(file_okay=False), default=None,
              help="Workspace the tools operate in")
@click.option("--mode", type=click.Choice([m.value for m in AgentMode]), default=None,
              help="Agent mode")
@click.option("--stream/--no-stream", "streaming", default=None,
              help="Stream assistant output as it arrives")
@click.option("--session-id", default=None, help="Use this id instead of a generated one")
def run(
    task: str,
    config_path: str | None,
    provider: str | None,
    model: str | None,
    max_iterations: int | None,
    checkpoint_dir: str | None,
    templates_dir: str | None,
    working_dir: str | None,
    mode: str | None,
    streaming: bool | None,
    session_id: str | None,
) -> None:
    """Start a new session for TASK and run it to completion."""
    config = load_app_config(
        config_path,
        provider=provider,
        model=model,
        max_iterations=max_iterations,
        checkpoint_dir=checkpoint_dir,
        templates_dir=templates_dir,
        working_dir=working_dir,
        mode=mode,
        streaming=streaming,
    )
    if session_id is not None and config.checkpoint_dir:
        try:
            exists = CheckpointManager(config.checkpoint_dir).latest_sequence(session_id) is not None
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--session-id") from exc
        if exists:
            raise click.BadParameter(
                f"session {session_id} already exists; use 'trustee resume'",
                param_hint="--session-id",
            )

    session = build_session(config, session_id=session_id)
    click.echo(f"Session {session.id}: {task}")
    result = execute(session, lambda: session.run(task))
    sys.exit(report(result))
