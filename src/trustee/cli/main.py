"""Trustee CLI entry point: Click group with subcommands."""

import logging

import click

from trustee._version import version_string


def _print_version(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    if not value or ctx.resilient_parsing:
        return
    click.echo(version_string())
    ctx.exit()


@click.group()
@click.option("--version", is_flag=True, expose_value=False, is_eager=True,
              callback=_print_version, help="Show the version with build details and exit.")
@click.option("-v", "--verbose", count=True, help="More log output (repeatable)")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors")
def cli(verbose: int, quiet: bool) -> None:
    """Trustee - checkpointed agent turn loop."""
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


# Import and register subcommands
from trustee.cli.run import run  # noqa: E402
from trustee.cli.resume import resume  # noqa: E402
from trustee.cli.sessions import sessions  # noqa: E402

cli.add_command(run)
cli.add_command(resume)
cli.add_command(sessions)
