#!/usr/bin/env python3
"""SSH connection management for journal-mirror.

Opens authenticated sessions to monitored hosts, either directly or through
a single relay (bastion) hop, and runs commands on them. Connection setup
observes a cancellation event; failures are surfaced to the caller and never
retried here.
"""

import socket
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import paramiko

from journal_mirror.connection.remote_command import (
    DEFAULT_INTERRUPT_TIMEOUT,
    ChannelCommand,
    CommandOutcome,
)
from journal_mirror.utils.logging import logger

DEFAULT_CONNECT_TIMEOUT = 30.0
_CANCEL_POLL_INTERVAL = 0.1

T = TypeVar("T")


class TransportError(ConnectionError):
    """Connection, handshake, authentication or relay failure."""


class ConnectCancelled(TransportError):
    """Connection setup was cancelled before the session was established."""


class RemoteCommandError(RuntimeError):
    """A remote command exited unsuccessfully or terminated unexpectedly."""

    def __init__(self, command: str, exit_status: int | None, stderr: str = ""):
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr
        if exit_status is None:
            message = f"Command {command!r} terminated without an exit status"
        else:
            message = f"Command {command!r} failed with exit code {exit_status}"
        if stderr.strip():
            message += f": {stderr.strip()}"
        super().__init__(message)


@dataclass(frozen=True)
class Credentials:
    """SSH login credentials."""

    username: str
    key_filename: str


@dataclass(frozen=True)
class DirectTarget:
    """A host reachable with a direct TCP connection."""

    address: str
    port: int
    credentials: Credentials

    def __str__(self) -> str:
        return f"{self.address}:{self.port}"


@dataclass(frozen=True)
class RelayedTarget:
    """A host reachable only through a relay host."""

    relay: DirectTarget
    target: DirectTarget

    def __str__(self) -> str:
        return f"{self.target} via {self.relay}"


class RemoteSession:
    """An open SSH session to exactly one host.

    When the session was tunneled through a relay, the relay client is owned
    by the session too and closed after the inner client.
    """

    def __init__(
        self,
        client: paramiko.SSHClient,
        relay_client: paramiko.SSHClient | None = None,
        description: str = "",
    ):
        self._client = client
        self._relay_client = relay_client
        self.description = description

    def is_active(self) -> bool:
        """Check if the underlying transport is still usable."""
        if self._client is None:
            return False
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    def start(self, command: str, stdout_sink, stderr_sink) -> ChannelCommand:
        """Start a command, pumping its output into the given sinks.

        Args:
            command: Shell command to execute on the remote host
            stdout_sink: Object with write()/flush() receiving stdout bytes
            stderr_sink: Object with write() receiving stderr bytes

        Returns:
            The running command

        Raises:
            TransportError: If no channel could be opened
        """
        if not self.is_active():
            raise TransportError(f"SSH session to {self.description} is not active")

        try:
            channel = self._client.get_transport().open_session()
        except paramiko.SSHException as e:
            raise TransportError(f"Failed to open channel to {self.description}: {e}") from e

        remote = ChannelCommand(channel, command, stdout_sink, stderr_sink)
        try:
            remote.start()
        except (paramiko.SSHException, OSError) as e:
            remote.close()
            raise TransportError(f"Failed to run {command!r} on {self.description}: {e}") from e

        logger.debug("Started command on {}: {}", self.description, command)
        return remote

    def run(
        self,
        command: str,
        stdout_sink,
        stderr_sink,
        cancel_event: threading.Event | None = None,
        interrupt_timeout: float = DEFAULT_INTERRUPT_TIMEOUT,
    ) -> CommandOutcome:
        """Run a command to completion, or until cancelled.

        Returns:
            CommandOutcome of the command
        """
        remote = self.start(command, stdout_sink, stderr_sink)
        try:
            return remote.wait(cancel_event, interrupt_timeout)
        finally:
            remote.close()

    def close(self) -> None:
        """Close the session. Errors are logged, never raised."""
        for client in (self._client, self._relay_client):
            if client is None:
                continue
            try:
                client.close()
            except Exception as e:
                logger.warning("Failed to close SSH client for {}: {}", self.description, e)
        self._client = None
        self._relay_client = None
        logger.debug("SSH session to {} closed", self.description)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _run_cancellable(
    func: Callable[[], T],
    cancel_event: threading.Event | None,
    on_cancel: Callable[[], None],
    description: str,
) -> T:
    """Run a blocking setup step on a helper thread, observing cancellation.

    If the step finishes first its result is returned (or its exception
    re-raised), even if the cancel event is set afterwards. If the cancel
    event is set first, ``on_cancel`` releases whatever the step holds and
    ConnectCancelled is raised.
    """
    outcome: dict = {}
    done = threading.Event()

    def step():
        try:
            outcome["result"] = func()
        except Exception as e:
            outcome["error"] = e
        finally:
            done.set()

    thread = threading.Thread(target=step, daemon=True, name=f"connect-{description}")
    thread.start()

    while not done.wait(_CANCEL_POLL_INTERVAL):
        if cancel_event is not None and cancel_event.is_set():
            if done.is_set():
                break
            on_cancel()
            raise ConnectCancelled(f"Connection to {description} cancelled")

    if "error" in outcome:
        raise outcome["error"]
    return outcome["result"]


def _open_client(
    hop: DirectTarget,
    sock,
    timeout: float,
    cancel_event: threading.Event | None,
) -> paramiko.SSHClient:
    """Dial and authenticate one SSH hop.

    Args:
        hop: Host, port and credentials of the hop
        sock: Already-connected socket-like object (a relay channel), or
            None to dial the hop directly
        timeout: Seconds allowed for the TCP dial, banner and auth stages
        cancel_event: Aborts the setup when set
    """
    client = paramiko.SSHClient()
    # Fleet members are ephemeral; there is no stable known_hosts to check against
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    held = {"sock": sock}
    aborted = threading.Event()

    def abort():
        aborted.set()
        client.close()
        if held["sock"] is not None:
            held["sock"].close()

    def handshake():
        if held["sock"] is None:
            held["sock"] = socket.create_connection((hop.address, hop.port), timeout=timeout)
            if aborted.is_set():
                held["sock"].close()
                raise ConnectCancelled(f"Connection to {hop} cancelled")
        client.connect(
            hostname=hop.address,
            port=hop.port,
            username=hop.credentials.username,
            key_filename=hop.credentials.key_filename,
            sock=held["sock"],
            timeout=timeout,
            banner_timeout=timeout,
            auth_timeout=timeout,
            allow_agent=False,
            look_for_keys=False,
        )
        return client

    try:
        return _run_cancellable(handshake, cancel_event, abort, str(hop))
    except ConnectCancelled:
        raise
    except (paramiko.SSHException, OSError) as e:
        abort()
        raise TransportError(f"SSH connection to {hop} failed: {e}") from e


def _open_relay_channel(
    relay_client: paramiko.SSHClient,
    target: DirectTarget,
    timeout: float,
    cancel_event: threading.Event | None,
) -> paramiko.Channel:
    """Open a direct-tcpip channel from the relay to the target."""
    transport = relay_client.get_transport()
    if transport is None or not transport.is_active():
        raise TransportError("Relay SSH session is not active")

    def open_channel():
        return transport.open_channel(
            "direct-tcpip",
            dest_addr=(target.address, target.port),
            src_addr=("127.0.0.1", 0),
            timeout=timeout,
        )

    try:
        # Closing the relay client (done by the caller) releases a pending channel
        return _run_cancellable(open_channel, cancel_event, lambda: None, f"{target} (relay)")
    except ConnectCancelled:
        raise
    except (paramiko.SSHException, OSError) as e:
        raise TransportError(f"Relay could not reach {target}: {e}") from e


def connect(
    target: DirectTarget | RelayedTarget,
    cancel_event: threading.Event | None = None,
    timeout: float = DEFAULT_CONNECT_TIMEOUT,
    keepalive_interval: int = 0,
) -> RemoteSession:
    """Open an SSH session to a target host.

    Args:
        target: DirectTarget, or RelayedTarget to tunnel through a relay
        cancel_event: When set before the session is established, setup is
            abandoned and ConnectCancelled is raised
        timeout: Seconds allowed for each dial/handshake stage
        keepalive_interval: Seconds between SSH keepalives, 0 to disable

    Returns:
        An established RemoteSession

    Raises:
        ConnectCancelled: If cancelled during setup
        TransportError: If any hop fails to connect or authenticate
    """
    if isinstance(target, RelayedTarget):
        logger.debug("Connecting to {} via relay {}", target.target, target.relay)
        relay_client = _open_client(target.relay, None, timeout, cancel_event)
        try:
            channel = _open_relay_channel(relay_client, target.target, timeout, cancel_event)
            client = _open_client(target.target, channel, timeout, cancel_event)
        except BaseException:
            relay_client.close()
            raise
        session = RemoteSession(client, relay_client, description=str(target))
        clients = [client, relay_client]
    elif isinstance(target, DirectTarget):
        logger.debug("Connecting to {}", target)
        client = _open_client(target, None, timeout, cancel_event)
        session = RemoteSession(client, description=str(target))
        clients = [client]
    else:
        raise TypeError(f"Unsupported target type: {type(target).__name__}")

    if keepalive_interval > 0:
        for ssh_client in clients:
            ssh_client.get_transport().set_keepalive(keepalive_interval)

    logger.info("SSH connection to {} established", target)
    return session
