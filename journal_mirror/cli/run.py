"""Run command: mirror journals of all inventory hosts until stopped."""

import signal
import sys
import threading

import click

from journal_mirror.services import (
    ExponentialBackoff,
    HostScheduler,
    InventoryWatcher,
    JournalMirror,
)
from journal_mirror.utils.logging import logger

from .base import CLIContext, handle_errors
from .helpers import display_info, display_success, display_warning


def build_scheduler(config, mirror: JournalMirror) -> HostScheduler:
    """Create the host scheduler from the [scheduler] configuration."""
    scheduler_config = config.get_scheduler_config()
    return HostScheduler(
        mirror.mirror_host,
        max_concurrent=scheduler_config.max_concurrent_attempts,
        backoff=ExponentialBackoff(
            scheduler_config.requeue_base_delay,
            scheduler_config.requeue_max_delay,
        ),
    )


def run_mirror(config, stop_event: threading.Event, mirror: JournalMirror | None = None) -> bool:
    """Mirror journals until ``stop_event`` is set.

    Args:
        config: Loaded ConfigManager
        stop_event: Set to request shutdown
        mirror: Attempt runner; built from config when None

    Returns:
        True if all attempts stopped within the shutdown timeout
    """
    inventory_config = config.get_inventory_config()
    if inventory_config.path is None:
        raise ValueError("INVENTORY_FILE not configured")

    mirror = mirror or JournalMirror.from_config(config)
    scheduler = build_scheduler(config, mirror)
    watcher = InventoryWatcher(
        inventory_config.path,
        scheduler,
        default_port=config.get_ssh_config().port,
        poll_interval=inventory_config.poll_interval,
        label_selector=inventory_config.label_selector,
    )

    scheduler.start()
    try:
        watcher.start()
        while not stop_event.wait(1.0):
            pass
    finally:
        watcher.stop()
        stopped = scheduler.shutdown(config.get_scheduler_config().shutdown_timeout)
    return stopped


def _register_shutdown_handlers(stop_event: threading.Event) -> None:
    """Register signal handlers that request a graceful shutdown."""

    def request_stop(signum, frame):
        logger.info("Received signal {}, shutting down gracefully...", signum)
        stop_event.set()

    # Signals can only be registered in the main thread
    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, request_stop)
        signal.signal(signal.SIGTERM, request_stop)


@click.command("run")
@click.pass_context
@handle_errors
def run(ctx):
    r"""Mirror the journal of every inventory host until interrupted.

    Journals are appended to one file per host in the local journal
    directory. Press Ctrl+C (or send SIGTERM) to stop; running transfers
    are interrupted cleanly.

    \b
    Examples:
      journal-mirror run
      journal-mirror -c /etc/journal-mirror.toml run
    """
    ctx_obj: CLIContext = ctx.obj
    config = ctx_obj.get_config()
    ctx_obj.setup_logging(config)

    journal_config = config.get_journal_config()
    display_info(f"Writing journals to {journal_config.local_directory}")
    if config.get_bastion_config() is not None:
        display_info(f"Connecting through bastion {config.get_bastion_config().host}")

    stop_event = threading.Event()
    _register_shutdown_handlers(stop_event)

    if run_mirror(config, stop_event):
        display_success("Stopped cleanly")
    else:
        display_warning("Some transfers did not stop within the shutdown timeout")
        sys.exit(1)
