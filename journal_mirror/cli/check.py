"""Check command: verify that a host can be reached and its journal read."""

import sys

import click

from journal_mirror.connection import CappedBuffer, connect
from journal_mirror.services import JournalMirror

from .base import CLIContext, handle_errors
from .helpers import console, create_info_table, display_error, display_success

CHECK_COMMAND = "journalctl --version"


@click.command("check")
@click.argument("address")
@click.option("--port", "-p", type=int, default=None, help="SSH port (default: from config)")
@click.pass_context
@handle_errors
def check(ctx, address, port):
    r"""Check SSH access and journalctl on a single host.

    Connects the same way mirroring does, through the bastion if one is
    configured, and runs journalctl --version.

    \b
    Examples:
      journal-mirror check 10.0.0.5
      journal-mirror check 10.0.0.5 --port 2222
    """
    ctx_obj: CLIContext = ctx.obj
    config = ctx_obj.get_config()
    ctx_obj.setup_logging(config)

    ssh_config = config.get_ssh_config()
    mirror = JournalMirror.from_config(config)
    target = mirror.build_target(address, port or ssh_config.port)

    console.print(f"[cyan]Connecting to {target}...[/cyan]")
    stdout = CappedBuffer()
    stderr = CappedBuffer()
    with connect(target, timeout=ssh_config.connect_timeout) as session:
        outcome = session.run(CHECK_COMMAND, stdout, stderr)

    version = stdout.text().strip().splitlines()
    details = {
        "Target": str(target),
        "Exit status": outcome.exit_status,
        "journalctl": version[0] if version else None,
    }
    if outcome.succeeded:
        display_success("Host is reachable", details)
    else:
        display_error("journalctl check failed", stderr.text().strip() or None)
        console.print(create_info_table(details))
        sys.exit(1)
