"""Scheduling and orchestration services for journal-mirror."""

from journal_mirror.services.backoff import ExponentialBackoff
from journal_mirror.services.host_scheduler import HostScheduler, HostState
from journal_mirror.services.hosts import HostIdentity, ReachabilityEvent
from journal_mirror.services.inventory import InventoryHost, InventoryWatcher, load_inventory
from journal_mirror.services.mirror_service import JournalMirror

__all__ = [
    "ExponentialBackoff",
    "HostIdentity",
    "HostScheduler",
    "HostState",
    "InventoryHost",
    "InventoryWatcher",
    "JournalMirror",
    "ReachabilityEvent",
    "load_inventory",
]
