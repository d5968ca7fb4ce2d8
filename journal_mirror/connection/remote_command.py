#!/usr/bin/env python3
"""Remote command execution with interruption support.

A remote command moves through an explicit sequence of states:
RUNNING -> INTERRUPT_REQUESTED -> STOPPED. Waiting on a command races its
completion against a cancellation event; on cancellation the remote process
is signalled, and if signalling fails (or the process ignores it for longer
than the interrupt timeout) the channel is closed forcibly.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum

import paramiko
from paramiko.common import cMSG_CHANNEL_REQUEST
from paramiko.message import Message

from journal_mirror.utils.logging import logger

DEFAULT_INTERRUPT_TIMEOUT = 10.0
DEFAULT_STDERR_LIMIT = 64 * 1024


class CommandState(Enum):
    """Lifecycle of a remote command."""

    RUNNING = "running"
    INTERRUPT_REQUESTED = "interrupt_requested"
    STOPPED = "stopped"


@dataclass(frozen=True)
class CommandOutcome:
    """Result of waiting for a remote command.

    exit_status is None when the command ended without reporting one,
    e.g. because the channel was closed or the connection dropped.
    """

    exit_status: int | None
    interrupted: bool = False
    forced: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_status == 0


class CappedBuffer:
    """Byte sink that keeps only the most recent ``limit`` bytes."""

    def __init__(self, limit: int = DEFAULT_STDERR_LIMIT):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self.truncated = False
        self._data = bytearray()
        self._lock = threading.Lock()

    def write(self, data: bytes) -> int:
        with self._lock:
            self._data.extend(data)
            overflow = len(self._data) - self.limit
            if overflow > 0:
                del self._data[:overflow]
                self.truncated = True
        return len(data)

    def flush(self) -> None:
        pass

    def getvalue(self) -> bytes:
        with self._lock:
            return bytes(self._data)

    def text(self) -> str:
        return self.getvalue().decode("utf-8", errors="replace")


class RemoteCommand:
    """A command running on a remote host.

    Subclasses provide the transport-specific primitives: sending the
    interrupt, force-closing, reporting the exit status, and joining the
    output pump. The waiting logic lives here so it can be exercised
    independently of any transport.
    """

    poll_interval = 0.1

    def __init__(self, command: str):
        self.command = command
        self.state = CommandState.RUNNING
        self._finished = threading.Event()

    @property
    def exit_status(self) -> int | None:
        raise NotImplementedError

    def is_finished(self) -> bool:
        return self._finished.is_set()

    def _mark_finished(self) -> None:
        self._finished.set()

    def _send_interrupt(self) -> None:
        raise NotImplementedError

    def _force_close(self) -> None:
        raise NotImplementedError

    def _join_output(self, timeout: float | None) -> None:
        """Block until no more output will be written to the sinks."""

    def interrupt(self) -> None:
        """Request termination of the remote process.

        Raises:
            Exception: Whatever the transport raises when the request
                cannot be delivered.
        """
        self.state = CommandState.INTERRUPT_REQUESTED
        self._send_interrupt()

    def close(self) -> None:
        """Release the command's channel. Safe to call more than once."""
        self._force_close()

    def wait(
        self,
        cancel_event: threading.Event | None = None,
        interrupt_timeout: float = DEFAULT_INTERRUPT_TIMEOUT,
    ) -> CommandOutcome:
        """Wait until the command finishes or the cancel event is set.

        On cancellation the remote process is interrupted and this method
        keeps waiting for it to actually stop, so the caller never has two
        writers on the same sink. If the interrupt cannot be sent, or the
        process is still running ``interrupt_timeout`` seconds later, the
        channel is closed forcibly.

        Args:
            cancel_event: Event signalling that the caller wants to stop
            interrupt_timeout: Seconds to wait after interrupting before
                falling back to a forced close

        Returns:
            CommandOutcome describing how the command ended
        """
        cancelled = False
        while not self._finished.wait(self.poll_interval):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break

        interrupted = False
        forced = False
        if cancelled and not self._finished.is_set():
            interrupted = True
            logger.debug("Interrupting remote command: {}", self.command)
            try:
                self.interrupt()
            except Exception as e:
                logger.error("Failed to interrupt remote command {!r}: {}", self.command, e)
                forced = True
            else:
                if not self._finished.wait(interrupt_timeout):
                    logger.warning(
                        "Remote command {!r} still running {}s after interrupt",
                        self.command,
                        interrupt_timeout,
                    )
                    forced = True

            if forced:
                logger.warning("Force-closing channel for {!r}", self.command)
                self._force_close()
                if not self._finished.wait(interrupt_timeout):
                    logger.error("Output pump for {!r} did not stop after force-close", self.command)

        self._join_output(interrupt_timeout)
        self.state = CommandState.STOPPED
        return CommandOutcome(
            exit_status=self.exit_status,
            interrupted=interrupted,
            forced=forced,
        )


class ChannelCommand(RemoteCommand):
    """Remote command executed on a paramiko channel.

    Output is pumped from the channel into the sinks on a background thread.
    """

    pump_interval = 0.02

    def __init__(
        self,
        channel: paramiko.Channel,
        command: str,
        stdout_sink,
        stderr_sink,
        buffer_size: int = 32768,
        interrupt_signal: str = "TERM",
    ):
        super().__init__(command)
        self._channel = channel
        self._stdout_sink = stdout_sink
        self._stderr_sink = stderr_sink
        self._buffer_size = buffer_size
        self._interrupt_signal = interrupt_signal
        self.error: Exception | None = None
        self._pump_thread = threading.Thread(
            target=self._pump,
            daemon=True,
            name=f"channel-pump-{channel.get_id()}",
        )

    def start(self) -> None:
        """Execute the command and start pumping its output."""
        self._channel.exec_command(self.command)
        self._pump_thread.start()

    @property
    def exit_status(self) -> int | None:
        if self._channel.exit_status_ready():
            return self._channel.exit_status
        return None

    def _pump(self) -> None:
        channel = self._channel
        try:
            while True:
                progressed = False
                if channel.recv_ready():
                    data = channel.recv(self._buffer_size)
                    if data:
                        self._stdout_sink.write(data)
                        self._stdout_sink.flush()
                        progressed = True
                if channel.recv_stderr_ready():
                    data = channel.recv_stderr(self._buffer_size)
                    if data:
                        self._stderr_sink.write(data)
                        progressed = True

                drained = not channel.recv_ready() and not channel.recv_stderr_ready()
                if drained and (channel.exit_status_ready() or channel.closed):
                    break
                if not progressed:
                    time.sleep(self.pump_interval)
        except Exception as e:
            self.error = e
            logger.warning("Output pump for {!r} stopped: {}", self.command, e)
        finally:
            self._mark_finished()

    def _send_interrupt(self) -> None:
        # paramiko has no public API for the RFC 4254 "signal" channel request
        channel = self._channel
        transport = channel.get_transport()
        if channel.closed or transport is None or not transport.is_active():
            raise paramiko.SSHException("channel is closed")
        message = Message()
        message.add_byte(cMSG_CHANNEL_REQUEST)
        message.add_int(channel.remote_chanid)
        message.add_string("signal")
        message.add_boolean(False)
        message.add_string(self._interrupt_signal)
        transport._send_user_message(message)

    def _force_close(self) -> None:
        try:
            self._channel.close()
        except Exception as e:
            logger.warning("Failed to close channel for {!r}: {}", self.command, e)

    def _join_output(self, timeout: float | None) -> None:
        if self._pump_thread.is_alive():
            self._pump_thread.join(timeout)
