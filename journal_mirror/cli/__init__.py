"""Command line interface for journal-mirror."""

import sys

import click

from journal_mirror import __version__

from .base import CLIContext, console
from .check import check
from .hosts import hosts
from .run import run


@click.group(
    context_settings={
        "help_option_names": ["-h", "--help"],
        "auto_envvar_prefix": "JOURNAL_MIRROR",
    }
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output for debugging")
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to the TOML configuration file",
)
@click.version_option(version=__version__, prog_name="journal-mirror")
@click.pass_context
def cli(ctx, verbose, config_file):
    r"""Mirror the systemd journal of fleet hosts into local files.

    \b
    Quick Start:
      1. Check access:   journal-mirror check 10.0.0.5
      2. List hosts:     journal-mirror hosts
      3. Start mirroring: journal-mirror run

    Use 'journal-mirror <command> --help' for detailed command information.
    """
    ctx.obj = CLIContext(verbose=verbose, config_file=config_file)
    ctx.obj.setup_logging()


cli.add_command(check)
cli.add_command(hosts)
cli.add_command(run)


def main():
    """Main entry point."""
    try:
        cli(obj=None)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(1)
