"""CLI command: trustee resume -- continue a session from its checkpoint."""

from __future__ import annotations

import sys

import click

from trustee.cli._common import EXIT_CHECKPOINT, build_session, execute, load_app_config, report
from trustee.errors import CheckpointError, ConversationInvariantError
from trustee.state import AgentMode


@click.command()
@click.option("--session", "session_id", required=True, help="Session id to resume")
@click.option("--sequence", type=click.IntRange(min=1), default=None,
              help="Checkpoint sequence number (default: latest)")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="TOML configuration file (default: config/trustee.toml)")
@click.option("--provider", type=click.Choice(["anthropic", "stub"]), default=None,
              help="Provider backend")
@click.option("--model", default=None, help="Model identifier")
@click.option("--max-iterations", type=click.IntRange(min=1), default=None,
              help="Iteration limit for the resumed session")
@click.option("--checkpoint-dir", default=None, help="Directory for session checkpoints")
@click.option("--workdir", "working_dir", type=click.Path(file_okay=False), default=None,
              help="Workspace the tools operate in")
@click.option("--mode", type=click.Choice([m.value for m in AgentMode]), default=None,
              help="Agent mode")
@click.option("--stream/--no-stream", "streaming", default=None,
              help="Stream assistant output as it arrives")
def resume(
    session_id: str,
    sequence: int | None,
    config_path: str | None,
    provider: str | None,
    model: str | None,
    max_iterations: int | None,
    checkpoint_dir: str | None,
    working_dir: str | None,
    mode: str | None,
    streaming: bool | None,
) -> None:
    """Restore a session from a checkpoint and continue its loop.

    Classification and prompt templates are not repeated; the conversation
    continues exactly where the checkpoint left it.
    """
    config = load_app_config(
        config_path,
        provider=provider,
        model=model,
        max_iterations=max_iterations,
        checkpoint_dir=checkpoint_dir,
        working_dir=working_dir,
        mode=mode,
        streaming=streaming,
    )
    try:
        session = build_session(config, session_id=session_id)
        session.checkpoints.session_dir(session_id)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--session") from exc

    label = f"#{sequence}" if sequence is not None else "latest checkpoint"
    click.echo(f"Resuming session {session_id} from {label}")
    try:
        result = execute(session, lambda: session.resume(sequence))
    except (CheckpointError, ConversationInvariantError) as exc:
        click.echo(f"Cannot resume session {session_id}: {exc}", err=True)
        sys.exit(EXIT_CHECKPOINT)
    sys.exit(report(result))
