#!/usr/bin/env python3
"""Inventory file watcher producing reachability events.

The inventory is a TOML file listing fleet members::

    [[hosts]]
    namespace = "default"
    name = "worker-1"
    address = "10.0.0.5"
    port = 22
    labels = { role = "worker" }

Hosts whose address appears or changes are submitted to the scheduler,
hosts without an address are ignored until one is known, and hosts that
disappear from the file are retired.
"""

import threading
from dataclasses import dataclass, field
from pathlib import Path

import toml

from journal_mirror.services.hosts import HostIdentity, ReachabilityEvent
from journal_mirror.utils.logging import logger


@dataclass(frozen=True)
class InventoryHost:
    """One host entry of the inventory."""

    host: HostIdentity
    address: str | None
    port: int
    labels: dict[str, str] = field(default_factory=dict)


def parse_label_selector(selector: str | None) -> dict[str, str]:
    """Parse ``key=value`` pairs separated by commas.

    Raises:
        ValueError: If a pair is malformed
    """
    if not selector or not selector.strip():
        return {}

    requirements = {}
    for pair in selector.split(","):
        key, sep, value = pair.partition("=")
        key = key.strip()
        value = value.strip()
        if not sep or not key or "=" in value:
            raise ValueError(f"Invalid label selector requirement: {pair.strip()!r}")
        requirements[key] = value
    return requirements


def matches_selector(labels: dict[str, str], selector: dict[str, str]) -> bool:
    return all(labels.get(key) == value for key, value in selector.items())


def load_inventory(path: Path, default_port: int = 22) -> dict[HostIdentity, InventoryHost]:
    """Load the inventory file.

    Raises:
        toml.TomlDecodeError: If the file is malformed
        ValueError: If an entry is invalid
    """
    with open(path) as f:
        data = toml.load(f)

    entries = data.get("hosts", [])
    if not isinstance(entries, list):
        raise ValueError("'hosts' must be an array of tables")

    hosts: dict[HostIdentity, InventoryHost] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValueError(f"Inventory entry must be a table: {entry!r}")
        if "name" not in entry:
            raise ValueError(f"Inventory entry without a name: {entry}")
        raw_labels = entry.get("labels", {})
        if not isinstance(raw_labels, dict):
            raise ValueError(f"Labels of {entry['name']} must be a table: {raw_labels!r}")
        host = HostIdentity(str(entry.get("namespace", "default")), str(entry["name"]))
        address = entry.get("address") or None
        labels = {str(k): str(v) for k, v in raw_labels.items()}

        if host in hosts:
            logger.warning("Duplicate inventory entry for {}, using the last one", host)
        hosts[host] = InventoryHost(
            host=host,
            address=str(address) if address else None,
            port=int(entry.get("port", default_port)),
            labels=labels,
        )
    return hosts


class InventoryWatcher:
    """Polls the inventory file and feeds changes to the scheduler."""

    def __init__(
        self,
        path: Path,
        scheduler,
        default_port: int = 22,
        poll_interval: float = 5.0,
        label_selector: str | None = None,
    ):
        self.path = Path(path)
        self.scheduler = scheduler
        self.default_port = default_port
        self.poll_interval = poll_interval
        self.selector = parse_label_selector(label_selector)

        self._known: dict[HostIdentity, InventoryHost] = {}
        self._signature = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def hosts(self) -> dict[HostIdentity, InventoryHost]:
        return dict(self._known)

    def poll(self) -> bool:
        """Reload the inventory if the file changed.

        Returns:
            True if a new version of the inventory was applied
        """
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            logger.warning("Inventory file {} not found, keeping previous hosts", self.path)
            return False

        signature = (stat.st_mtime_ns, stat.st_size)
        if signature == self._signature:
            return False

        try:
            hosts = load_inventory(self.path, self.default_port)
        except (toml.TomlDecodeError, ValueError, TypeError) as e:
            logger.error("Failed to load inventory {}: {}", self.path, e)
            return False

        self._signature = signature
        self._apply(hosts)
        return True

    def _apply(self, hosts: dict[HostIdentity, InventoryHost]) -> None:
        selected = {
            host: entry
            for host, entry in hosts.items()
            if matches_selector(entry.labels, self.selector)
        }

        for host, entry in selected.items():
            if entry.address is None:
                # Nothing to do until the host has an address
                continue
            previous = self._known.get(host)
            if previous is None or (previous.address, previous.port) != (entry.address, entry.port):
                self.scheduler.submit(ReachabilityEvent(host, entry.address, entry.port))

        for host in self._known.keys() - selected.keys():
            self.scheduler.retire(host)

        logger.debug("Inventory applied: {} hosts selected", len(selected))
        self._known = selected

    def start(self) -> None:
        """Poll once, then keep polling on a background thread."""
        self.poll()
        self._stop.clear()
        self._thread = threading.Thread(target=self._watch_loop, daemon=True, name="InventoryWatcher")
        self._thread.start()
        logger.info("Watching inventory {} every {}s", self.path, self.poll_interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _watch_loop(self) -> None:
        while not self._stop.wait(self.poll_interval):
            try:
                self.poll()
            except Exception as e:
                logger.error("Error while polling inventory: {}", e)
