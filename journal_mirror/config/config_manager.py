#!/usr/bin/env python3
"""Configuration manager for journal-mirror.

Loads configuration from TOML files with environment variable overrides.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import toml


@dataclass
class SSHConfig:
    """SSH settings for the monitored hosts."""

    user: str
    port: int
    private_key: Path
    connect_timeout: float
    keepalive_interval: int


@dataclass
class BastionConfig:
    """Relay host that monitored hosts are reached through."""

    host: str
    port: int
    user: str
    private_key: Path


@dataclass
class JournalConfig:
    """Local and remote journal locations."""

    local_directory: Path
    remote_cursor_file: str
    use_sudo: bool


@dataclass
class SchedulerConfig:
    """Attempt scheduling settings."""

    max_concurrent_attempts: int
    requeue_base_delay: float
    requeue_max_delay: float
    interrupt_timeout: float
    shutdown_timeout: float


@dataclass
class InventoryConfig:
    """Inventory file watched for reachability changes."""

    path: Path | None
    poll_interval: float
    label_selector: str


_DEFAULTS: dict[str, dict[str, Any]] = {
    "ssh": {
        "user": "",
        "port": 22,
        "private_key": "",
        "connect_timeout": 30.0,
        "keepalive_interval": 30,
    },
    "bastion": {"host": "", "port": 22, "user": "", "private_key": ""},
    "journal": {
        "local_directory": ".",
        "remote_cursor_file": "$HOME/journal-mirror.cursor",
        "use_sudo": True,
    },
    "scheduler": {
        "max_concurrent_attempts": 10,
        "requeue_base_delay": 10.0,
        "requeue_max_delay": 120.0,
        "interrupt_timeout": 10.0,
        "shutdown_timeout": 30.0,
    },
    "inventory": {"path": "", "poll_interval": 5.0, "label_selector": ""},
    "logging": {"level": "", "file": ""},
}

# (environment variable, section, key, converter)
_ENV_OVERRIDES = [
    ("SSH_USER", "ssh", "user", str),
    ("SSH_PORT", "ssh", "port", int),
    ("SSH_KEY", "ssh", "private_key", str),
    ("BASTION_HOST", "bastion", "host", str),
    ("BASTION_PORT", "bastion", "port", int),
    ("BASTION_USER", "bastion", "user", str),
    ("BASTION_SSH_KEY", "bastion", "private_key", str),
    ("LOCAL_JOURNAL_DIR", "journal", "local_directory", str),
    ("REMOTE_CURSOR_FILE", "journal", "remote_cursor_file", str),
    ("MAX_CONCURRENT_ATTEMPTS", "scheduler", "max_concurrent_attempts", int),
    ("INVENTORY_FILE", "inventory", "path", str),
    ("LABEL_SELECTOR", "inventory", "label_selector", str),
]


class ConfigManager:
    """Manages configuration loading from TOML files with environment variable overrides."""

    def __init__(self, config_file: str | None = None):
        """Initialize the ConfigManager.

        Args:
            config_file: Path to the TOML configuration file. If None, uses default location.

        Raises:
            FileNotFoundError: If the configuration file doesn't exist.
        """
        if config_file is None:
            self.config_file = Path(__file__).parent / "config.toml"
        else:
            self.config_file = Path(config_file)
        self._config_data: dict[str, Any] | None = None
        self._ssh_config: SSHConfig | None = None
        self._bastion_config: BastionConfig | None = None
        self._journal_config: JournalConfig | None = None
        self._scheduler_config: SchedulerConfig | None = None
        self._inventory_config: InventoryConfig | None = None

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from TOML file with environment variable overrides.

        Raises:
            toml.TomlDecodeError: If the TOML file is malformed.
            ValueError: If required configuration values are missing or invalid.
            FileNotFoundError: If a key file or the journal directory doesn't exist.
        """
        with open(self.config_file) as f:
            loaded = toml.load(f)

        self._config_data = {
            section: {**defaults, **loaded.get(section, {})}
            for section, defaults in _DEFAULTS.items()
        }

        self._apply_environment_overrides()
        self._validate_config()
        self._create_config_objects()

    def _apply_environment_overrides(self) -> None:
        """Apply environment variable overrides to configuration."""
        for env_var, section, key, convert in _ENV_OVERRIDES:
            if env_var in os.environ:
                try:
                    self._config_data[section][key] = convert(os.environ[env_var])
                except ValueError as e:
                    raise ValueError(f"Invalid value for {env_var}: {e}") from e

    def _validate_config(self) -> None:
        """Validate that required configuration values are present.

        Raises:
            ValueError: If required configuration values are missing or invalid.
            FileNotFoundError: If a key file or the journal directory doesn't exist.
        """
        ssh = self._config_data["ssh"]
        bastion = self._config_data["bastion"]
        journal = self._config_data["journal"]
        scheduler = self._config_data["scheduler"]
        inventory = self._config_data["inventory"]

        if not ssh["user"]:
            raise ValueError("SSH_USER not configured")
        if not ssh["private_key"]:
            raise ValueError("SSH_KEY not configured")
        self._check_key_file(ssh["private_key"])

        if bastion["host"]:
            if not bastion["user"]:
                raise ValueError("BASTION_USER not configured")
            if not bastion["private_key"]:
                raise ValueError("BASTION_SSH_KEY not configured")
            self._check_key_file(bastion["private_key"])

        journal_dir = Path(journal["local_directory"]).expanduser()
        if not journal_dir.exists():
            raise FileNotFoundError(f"Local journal directory not found: {journal_dir}")
        if not journal_dir.is_dir():
            raise ValueError(f"Local journal directory is not a directory: {journal_dir}")
        if not journal["remote_cursor_file"]:
            raise ValueError("REMOTE_CURSOR_FILE not configured")

        if int(scheduler["max_concurrent_attempts"]) < 1:
            raise ValueError("max_concurrent_attempts must be at least 1")
        if float(scheduler["requeue_base_delay"]) <= 0:
            raise ValueError("requeue_base_delay must be positive")
        if float(scheduler["requeue_max_delay"]) < float(scheduler["requeue_base_delay"]):
            raise ValueError("requeue_max_delay must not be smaller than requeue_base_delay")
        if float(scheduler["interrupt_timeout"]) <= 0:
            raise ValueError("interrupt_timeout must be positive")
        if float(scheduler["shutdown_timeout"]) <= 0:
            raise ValueError("shutdown_timeout must be positive")
        if float(inventory["poll_interval"]) <= 0:
            raise ValueError("poll_interval must be positive")

    @staticmethod
    def _check_key_file(key_file: str) -> None:
        key_path = Path(key_file).expanduser()
        if not key_path.exists():
            raise FileNotFoundError(f"SSH key file not found: {key_path}")

    def _create_config_objects(self) -> None:
        """Create configuration objects from loaded data."""
        ssh = self._config_data["ssh"]
        bastion = self._config_data["bastion"]
        journal = self._config_data["journal"]
        scheduler = self._config_data["scheduler"]
        inventory = self._config_data["inventory"]

        self._ssh_config = SSHConfig(
            user=ssh["user"],
            port=int(ssh["port"]),
            private_key=Path(ssh["private_key"]).expanduser(),
            connect_timeout=float(ssh["connect_timeout"]),
            keepalive_interval=int(ssh["keepalive_interval"]),
        )

        self._bastion_config = None
        if bastion["host"]:
            self._bastion_config = BastionConfig(
                host=bastion["host"],
                port=int(bastion["port"]),
                user=bastion["user"],
                private_key=Path(bastion["private_key"]).expanduser(),
            )

        self._journal_config = JournalConfig(
            local_directory=Path(journal["local_directory"]).expanduser(),
            remote_cursor_file=journal["remote_cursor_file"],
            use_sudo=bool(journal["use_sudo"]),
        )

        self._scheduler_config = SchedulerConfig(
            max_concurrent_attempts=int(scheduler["max_concurrent_attempts"]),
            requeue_base_delay=float(scheduler["requeue_base_delay"]),
            requeue_max_delay=float(scheduler["requeue_max_delay"]),
            interrupt_timeout=float(scheduler["interrupt_timeout"]),
            shutdown_timeout=float(scheduler["shutdown_timeout"]),
        )

        self._inventory_config = InventoryConfig(
            path=Path(inventory["path"]).expanduser() if inventory["path"] else None,
            poll_interval=float(inventory["poll_interval"]),
            label_selector=inventory["label_selector"],
        )

    def get_ssh_config(self) -> SSHConfig:
        """Get SSH configuration for the monitored hosts.

        Raises:
            RuntimeError: If configuration hasn't been loaded.
        """
        if not self._ssh_config:
            raise RuntimeError("Configuration not loaded")
        return self._ssh_config

    def get_bastion_config(self) -> BastionConfig | None:
        """Get the relay host configuration, or None when hosts are reached directly."""
        return self._bastion_config

    def get_journal_config(self) -> JournalConfig:
        if not self._journal_config:
            raise RuntimeError("Configuration not loaded")
        return self._journal_config

    def get_scheduler_config(self) -> SchedulerConfig:
        if not self._scheduler_config:
            raise RuntimeError("Configuration not loaded")
        return self._scheduler_config

    def get_inventory_config(self) -> InventoryConfig:
        if not self._inventory_config:
            raise RuntimeError("Configuration not loaded")
        return self._inventory_config

    def get_config_section(self, section: str) -> dict[str, Any]:
        """Get a specific configuration section.

        Args:
            section: The configuration section name (e.g., 'ssh', 'journal', 'logging')

        Returns:
            Dictionary containing the configuration section, or empty dict if not found.
        """
        return self._config_data.get(section, {})

    def reload_config(self) -> None:
        """Reload configuration from file and reapply environment variable overrides."""
        self._load_config()
