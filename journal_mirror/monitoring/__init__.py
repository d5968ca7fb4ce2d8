"""Journal streaming components for journal-mirror."""

from journal_mirror.monitoring.journal_streamer import (
    CursorResetError,
    JournalStreamer,
    LocalIOError,
    follow_command,
    remove_cursor_command,
)

__all__ = [
    "CursorResetError",
    "JournalStreamer",
    "LocalIOError",
    "follow_command",
    "remove_cursor_command",
]
