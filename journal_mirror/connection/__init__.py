"""SSH transport for reaching monitored hosts."""

from journal_mirror.connection.remote_command import (
    CappedBuffer,
    ChannelCommand,
    CommandOutcome,
    CommandState,
    RemoteCommand,
)
from journal_mirror.connection.ssh_manager import (
    ConnectCancelled,
    Credentials,
    DirectTarget,
    RelayedTarget,
    RemoteCommandError,
    RemoteSession,
    TransportError,
    connect,
)

__all__ = [
    "CappedBuffer",
    "ChannelCommand",
    "CommandOutcome",
    "CommandState",
    "ConnectCancelled",
    "Credentials",
    "DirectTarget",
    "RelayedTarget",
    "RemoteCommand",
    "RemoteCommandError",
    "RemoteSession",
    "TransportError",
    "connect",
]
