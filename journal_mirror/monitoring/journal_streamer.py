#!/usr/bin/env python3
"""Remote journal streaming with cursor-file position tracking.

The remote journalctl process records the last delivered entry in a cursor
file on the remote host and resumes from it on the next run, so entries
already appended to the local file are not streamed again. The local file
and the remote cursor must move in lockstep: when the local file is missing,
the remote cursor is deleted first so the new file receives the entire
journal instead of only the entries after a stale cursor.
"""

import threading
from pathlib import Path

from journal_mirror.connection.remote_command import (
    DEFAULT_INTERRUPT_TIMEOUT,
    DEFAULT_STDERR_LIMIT,
    CappedBuffer,
)
from journal_mirror.connection.ssh_manager import RemoteCommandError, TransportError
from journal_mirror.utils.logging import logger


class CursorResetError(RuntimeError):
    """The remote cursor file could not be removed."""


class LocalIOError(OSError):
    """The local journal file could not be opened or written."""


def follow_command(cursor_file_path: str, use_sudo: bool = True) -> str:
    """Build the command streaming the journal from the cursor, continuously."""
    command = f"journalctl --follow --no-tail --cursor-file={cursor_file_path}"
    if use_sudo:
        command = f"sudo {command}"
    return command


def remove_cursor_command(cursor_file_path: str) -> str:
    # --force so that the command succeeds even if the file does not exist
    return f"rm --force {cursor_file_path}"


class JournalStreamer:
    """Stream a remote journal into an append-only local file."""

    def __init__(
        self,
        interrupt_timeout: float = DEFAULT_INTERRUPT_TIMEOUT,
        stderr_limit: int = DEFAULT_STDERR_LIMIT,
        use_sudo: bool = True,
    ):
        """Initialize the journal streamer.

        Args:
            interrupt_timeout: Seconds to wait for the remote command to stop
                after interrupting it, before force-closing its channel
            stderr_limit: Bytes of remote stderr kept for diagnostics
            use_sudo: Run journalctl through sudo (needed to read the full
                system journal as an unprivileged user)
        """
        self.interrupt_timeout = interrupt_timeout
        self.stderr_limit = stderr_limit
        self.use_sudo = use_sudo

    def stream_from_remote(
        self,
        session,
        remote_cursor_path: str,
        local_journal_path: Path,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Stream the remote journal to the local journal file.

        Returns when the remote command exits, the connection fails, or the
        cancel event is set. On cancellation the remote command is
        interrupted and this method waits for it to stop before returning.

        Args:
            session: RemoteSession to the host
            remote_cursor_path: Cursor file path on the remote host; may be
                relative to the remote environment, e.g. $HOME/...
            local_journal_path: Local file to append journal output to
            cancel_event: Event requesting the stream to stop

        Raises:
            CursorResetError: If the local file is missing and the remote
                cursor could not be removed; nothing is streamed
            LocalIOError: If the local journal file cannot be opened
            RemoteCommandError: If journalctl ended unexpectedly
            TransportError: If the command could not be started
        """
        local_journal_path = Path(local_journal_path)
        cancel_event = cancel_event or threading.Event()

        if not local_journal_path.exists():
            logger.debug(
                "Local journal file {} does not exist, removing remote cursor file {}",
                local_journal_path,
                remote_cursor_path,
            )
            self._reset_cursor(session, remote_cursor_path, cancel_event)
            if cancel_event.is_set():
                logger.info("Cancelled before streaming to {}", local_journal_path)
                return

        self._stream(session, remote_cursor_path, local_journal_path, cancel_event)

    def _reset_cursor(self, session, remote_cursor_path: str, cancel_event) -> None:
        command = remove_cursor_command(remote_cursor_path)
        stderr = CappedBuffer(self.stderr_limit)
        logger.debug("Running command on remote host: {}", command)
        try:
            outcome = session.run(
                command,
                CappedBuffer(self.stderr_limit),
                stderr,
                cancel_event=cancel_event,
                interrupt_timeout=self.interrupt_timeout,
            )
        except TransportError as e:
            raise CursorResetError(f"Failed to reset journal cursor file: {e}") from e

        if outcome.interrupted:
            return
        if not outcome.succeeded:
            error = RemoteCommandError(command, outcome.exit_status, stderr.text())
            raise CursorResetError(f"Failed to reset journal cursor file: {error}") from error

    def _stream(
        self,
        session,
        remote_cursor_path: str,
        local_journal_path: Path,
        cancel_event: threading.Event,
    ) -> None:
        # We only ever append to the local journal file
        try:
            local_journal_path.parent.mkdir(parents=True, exist_ok=True)
            journal_file = open(local_journal_path, "ab")
        except OSError as e:
            raise LocalIOError(f"Failed to open local journal file {local_journal_path}: {e}") from e

        stderr = CappedBuffer(self.stderr_limit)
        command = follow_command(remote_cursor_path, self.use_sudo)
        logger.debug("Running command on remote host: {}", command)

        remote = None
        try:
            remote = session.start(command, journal_file, stderr)
            outcome = remote.wait(cancel_event, self.interrupt_timeout)
        finally:
            if remote is not None:
                remote.close()
            try:
                journal_file.close()
            except OSError as e:
                logger.error("Failed to close local journal file {}: {}", local_journal_path, e)

        if cancel_event.is_set():
            # An interrupted journalctl exits with an error, which is expected here
            logger.info("Stopped streaming journal to {}", local_journal_path)
            return
        pump_error = getattr(remote, "error", None)
        if isinstance(pump_error, OSError):
            raise LocalIOError(
                f"Failed to append to local journal file {local_journal_path}: {pump_error}"
            ) from pump_error
        if not outcome.succeeded:
            raise RemoteCommandError(command, outcome.exit_status, stderr.text())
        logger.info("Remote journal stream to {} ended", local_journal_path)
