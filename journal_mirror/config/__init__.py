"""Configuration loading for journal-mirror."""

from journal_mirror.config.config_manager import (
    BastionConfig,
    ConfigManager,
    InventoryConfig,
    JournalConfig,
    SchedulerConfig,
    SSHConfig,
)

__all__ = [
    "BastionConfig",
    "ConfigManager",
    "InventoryConfig",
    "JournalConfig",
    "SSHConfig",
    "SchedulerConfig",
]
