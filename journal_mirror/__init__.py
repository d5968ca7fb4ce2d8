"""Mirror the systemd journal of fleet hosts into local append-only files."""

__version__ = "0.1.0"
