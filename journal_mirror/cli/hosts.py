"""Hosts command: list inventory hosts and their local journal files."""

import click
from rich.table import Table

from journal_mirror.services import JournalMirror, load_inventory
from journal_mirror.services.inventory import matches_selector, parse_label_selector

from .base import CLIContext, handle_errors
from .helpers import console, display_warning, format_size


@click.command("hosts")
@click.option("--all", "show_all", is_flag=True, help="Include hosts not matching the label selector")
@click.pass_context
@handle_errors
def hosts(ctx, show_all):
    r"""List inventory hosts with their local journal files.

    \b
    Examples:
      journal-mirror hosts
      journal-mirror hosts --all
    """
    ctx_obj: CLIContext = ctx.obj
    config = ctx_obj.get_config()

    inventory_config = config.get_inventory_config()
    if inventory_config.path is None:
        raise ValueError("INVENTORY_FILE not configured")

    entries = load_inventory(inventory_config.path, config.get_ssh_config().port)
    selector = parse_label_selector(inventory_config.label_selector)
    mirror = JournalMirror.from_config(config)

    table = Table(title="Inventory Hosts", show_header=True)
    table.add_column("Host", style="cyan")
    table.add_column("Address")
    table.add_column("Journal file")
    table.add_column("Size", justify="right")

    shown = 0
    for host in sorted(entries):
        entry = entries[host]
        if not show_all and not matches_selector(entry.labels, selector):
            continue
        journal_path = mirror.local_journal_path(host)
        size = format_size(journal_path.stat().st_size) if journal_path.exists() else "[dim]none[/dim]"
        address = f"{entry.address}:{entry.port}" if entry.address else "[dim]unknown[/dim]"
        table.add_row(str(host), address, journal_path.name, size)
        shown += 1

    if not shown:
        display_warning("No hosts in inventory")
        return
    console.print(table)
