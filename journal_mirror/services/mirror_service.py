#!/usr/bin/env python3
"""Per-host journal mirroring attempts.

One attempt connects to the host (directly or through the configured relay),
streams its journal into the host's local journal file, and closes the
session on every exit path.
"""

import threading
from pathlib import Path
from typing import TYPE_CHECKING

from journal_mirror.connection.ssh_manager import (
    DEFAULT_CONNECT_TIMEOUT,
    ConnectCancelled,
    Credentials,
    DirectTarget,
    RelayedTarget,
    connect,
)
from journal_mirror.monitoring.journal_streamer import JournalStreamer
from journal_mirror.services.hosts import HostIdentity, ReachabilityEvent
from journal_mirror.utils.logging import get_host_logger

if TYPE_CHECKING:
    from journal_mirror.config.config_manager import ConfigManager


class JournalMirror:
    """Mirrors the journal of one host per call."""

    def __init__(
        self,
        credentials: Credentials,
        local_directory: Path,
        remote_cursor_path: str,
        relay: DirectTarget | None = None,
        streamer: JournalStreamer | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        keepalive_interval: int = 0,
        connector=connect,
    ):
        """Initialize the mirror.

        Args:
            credentials: Login for the monitored hosts
            local_directory: Directory holding one journal file per host
            remote_cursor_path: Cursor file path on every remote host
            relay: Relay host to tunnel through, or None to connect directly
            streamer: Streaming engine; a default JournalStreamer if None
            connect_timeout: Seconds allowed per connection stage
            keepalive_interval: Seconds between SSH keepalives, 0 to disable
            connector: Function opening a session for a target
        """
        self.credentials = credentials
        self.local_directory = Path(local_directory)
        self.remote_cursor_path = remote_cursor_path
        self.relay = relay
        self.streamer = streamer or JournalStreamer()
        self.connect_timeout = connect_timeout
        self.keepalive_interval = keepalive_interval
        self._connect = connector

    @classmethod
    def from_config(cls, config_manager: "ConfigManager") -> "JournalMirror":
        """Build a mirror from loaded configuration."""
        ssh = config_manager.get_ssh_config()
        journal = config_manager.get_journal_config()
        scheduler = config_manager.get_scheduler_config()
        bastion = config_manager.get_bastion_config()

        relay = None
        if bastion is not None:
            relay = DirectTarget(
                address=bastion.host,
                port=bastion.port,
                credentials=Credentials(bastion.user, str(bastion.private_key)),
            )

        return cls(
            credentials=Credentials(ssh.user, str(ssh.private_key)),
            local_directory=journal.local_directory,
            remote_cursor_path=journal.remote_cursor_file,
            relay=relay,
            streamer=JournalStreamer(
                interrupt_timeout=scheduler.interrupt_timeout,
                use_sudo=journal.use_sudo,
            ),
            connect_timeout=ssh.connect_timeout,
            keepalive_interval=ssh.keepalive_interval,
        )

    def local_journal_path(self, host: HostIdentity) -> Path:
        return self.local_directory / host.journal_filename()

    def build_target(self, address: str, port: int) -> DirectTarget | RelayedTarget:
        target = DirectTarget(address=address, port=port, credentials=self.credentials)
        if self.relay is None:
            return target
        return RelayedTarget(relay=self.relay, target=target)

    def mirror_host(self, event: ReachabilityEvent, cancel_event: threading.Event) -> None:
        """Run one mirroring attempt for a host.

        Returns normally on cancellation or when the remote stream ends
        cleanly; raises on any failure.
        """
        host_logger = get_host_logger(event.host)
        target = self.build_target(event.address, event.port)

        try:
            session = self._connect(
                target,
                cancel_event=cancel_event,
                timeout=self.connect_timeout,
                keepalive_interval=self.keepalive_interval,
            )
        except ConnectCancelled:
            host_logger.info("Connection to {} cancelled", target)
            return

        try:
            self.streamer.stream_from_remote(
                session,
                self.remote_cursor_path,
                self.local_journal_path(event.host),
                cancel_event,
            )
        finally:
            session.close()
