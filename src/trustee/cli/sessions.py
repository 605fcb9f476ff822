"""CLI command: trustee sessions -- inspect stored sessions."""

from __future__ import annotations

import sys

import click

from trustee.checkpoint import CheckpointManager
from trustee.cli._common import EXIT_CHECKPOINT, load_app_config
from trustee.errors import CheckpointError


@click.command()
@click.option("--list", "list_all", is_flag=True, help="List all sessions (default)")
@click.option("--show", "show_id", default=None, help="Show one session and its checkpoints")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="TOML configuration file (default: config/trustee.toml)")
@click.option("--checkpoint-dir", default=None, help="Directory for session checkpoints")
def sessions(
    list_all: bool,
    show_id: str | None,
    config_path: str | None,
    checkpoint_dir: str | None,
) -> None:
    """List stored sessions, or show one in detail."""
    config = load_app_config(config_path, checkpoint_dir=checkpoint_dir)
    manager = CheckpointManager(config.checkpoint_dir)

    if show_id is not None and not list_all:
        _show(manager, show_id)
        return

    indexes = manager.list_sessions()
    if not indexes:
        click.echo(f"No sessions in {manager.root}")
        return

    click.echo(f"{'SESSION':<34} {'STATUS':<10} {'SEQ':>5} {'ITER':>5}  UPDATED")
    for index in indexes:
        click.echo(
            f"{index.session_id:<34} {index.status.value:<10} {index.latest_sequence:>5}"
            f" {index.iteration:>5}  {index.updated_at}"
        )


def _show(manager: CheckpointManager, session_id: str) -> None:
    try:
        index = manager.read_index(session_id)
        sequences = manager.list_sequences(session_id)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--show") from exc
    except CheckpointError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(EXIT_CHECKPOINT)

    click.echo(f"Session:     {index.session_id}")
    click.echo(f"Status:      {index.status.value}")
    if index.outcome:
        click.echo(f"Outcome:     {index.outcome}")
    click.echo(f"Task:        {index.task_description}")
    click.echo(f"Task type:   {index.task_type or '-'}")
    click.echo(f"Iteration:   {index.iteration}")
    click.echo(f"Created:     {index.created_at}")
    click.echo(f"Updated:     {index.updated_at}")
    click.echo(f"Checkpoints: {', '.join(str(s) for s in sequences) or 'none'}")
