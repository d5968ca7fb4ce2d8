#!/usr/bin/env python3
"""Per-host work scheduler for journal mirroring attempts.

Reachability events are keyed by host identity. The scheduler admits a
bounded number of concurrent attempts, runs at most one attempt per host at
a time, and reschedules a failed host after an exponentially increasing
delay. A newer event for a host cancels its in-flight attempt; the new
attempt starts only after the old one has released its session and local
file.
"""

import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass, field
from enum import Enum

from journal_mirror.services.backoff import ExponentialBackoff
from journal_mirror.services.hosts import HostIdentity, ReachabilityEvent
from journal_mirror.utils.logging import get_host_logger, logger

_IDLE_WAIT = 1.0

AttemptFunc = Callable[[ReachabilityEvent, threading.Event], None]


class HostState(Enum):
    """Scheduling state of a host."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"


@dataclass
class Attempt:
    """One execution of the attempt function for one host."""

    event: ReachabilityEvent
    generation: int
    cancel_event: threading.Event = field(default_factory=threading.Event)
    future: Future | None = None


@dataclass
class WorkItem:
    """Bookkeeping for one host."""

    host: HostIdentity
    event: ReachabilityEvent
    generation: int = 0
    scheduled: bool = False
    ready_at: float = 0.0
    active: Attempt | None = None
    retired: bool = False

    @property
    def state(self) -> HostState:
        if self.active is not None:
            return HostState.RUNNING
        if self.scheduled:
            return HostState.SCHEDULED
        return HostState.IDLE


class HostScheduler:
    """Schedules mirroring attempts across many hosts.

    The attempt function is called as ``attempt(event, cancel_event)`` on a
    worker thread. Raising means failure and triggers a backoff retry;
    returning means benign completion and the host waits for its next event.
    """

    def __init__(
        self,
        attempt: AttemptFunc,
        max_concurrent: int = 10,
        backoff: ExponentialBackoff | None = None,
    ):
        """Initialize the scheduler.

        Args:
            attempt: Function running one attempt for a host
            max_concurrent: Maximum number of attempts running at once
            backoff: Failure backoff; defaults to 10s doubling up to 120s
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self._attempt = attempt
        self.max_concurrent = max_concurrent
        self.backoff = backoff or ExponentialBackoff(10.0, 120.0)

        self._condition = threading.Condition()
        self._items: dict[HostIdentity, WorkItem] = {}
        self._running = 0
        self._stopping = False
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent, thread_name_prefix="MirrorAttempt"
        )
        self._dispatcher: threading.Thread | None = None

    def start(self) -> None:
        """Start the dispatcher thread."""
        with self._condition:
            if self._stopping:
                raise RuntimeError("Scheduler has been shut down")
            if self._dispatcher and self._dispatcher.is_alive():
                logger.warning("Scheduler already running (thread: {})", self._dispatcher.name)
                return

            self._dispatcher = threading.Thread(
                target=self._dispatch_loop, daemon=True, name="HostScheduler"
            )
            self._dispatcher.start()
        logger.info("Host scheduler started (max concurrent attempts: {})", self.max_concurrent)

    def submit(self, event: ReachabilityEvent) -> None:
        """Schedule an attempt for the event's host to start immediately.

        A running attempt for the same host is cancelled first. Failure
        backoff of the host is preserved. Does nothing after shutdown.
        """
        with self._condition:
            if self._stopping:
                logger.debug("Scheduler is shut down, ignoring event for {}", event.host)
                return

            item = self._items.get(event.host)
            if item is None:
                item = WorkItem(host=event.host, event=event)
                self._items[event.host] = item

            item.event = event
            item.generation += 1
            item.retired = False
            item.scheduled = True
            item.ready_at = time.monotonic()
            if item.active is not None:
                logger.info("Superseding running attempt for {}", event.host)
                item.active.cancel_event.set()

            logger.debug(
                "Scheduled {} at {}:{} (generation {})",
                event.host,
                event.address,
                event.port,
                item.generation,
            )
            self._condition.notify_all()

    def retire(self, host: HostIdentity) -> None:
        """Stop mirroring a host that left the fleet."""
        with self._condition:
            item = self._items.get(host)
            if item is None:
                return

            logger.info("Retiring {}", host)
            if item.active is None:
                del self._items[host]
                self.backoff.reset(host)
            else:
                item.retired = True
                item.scheduled = False
                item.active.cancel_event.set()
            self._condition.notify_all()

    def shutdown(self, timeout: float = 30.0) -> bool:
        """Cancel all running attempts and stop admitting new ones.

        Args:
            timeout: Seconds to wait for running attempts to stop

        Returns:
            True if every attempt stopped within the timeout
        """
        with self._condition:
            self._stopping = True
            futures = []
            for item in self._items.values():
                item.scheduled = False
                if item.active is not None:
                    item.active.cancel_event.set()
                    futures.append(item.active.future)
            self._condition.notify_all()

        logger.info("Shutting down host scheduler, waiting for {} attempts", len(futures))
        _, not_done = wait_futures(futures, timeout=timeout)
        self._executor.shutdown(wait=False)

        if self._dispatcher is not None:
            self._dispatcher.join(timeout=_IDLE_WAIT * 2)

        if not_done:
            logger.warning("{} attempts did not stop within {}s", len(not_done), timeout)
            return False
        logger.info("Host scheduler stopped")
        return True

    def running_count(self) -> int:
        with self._condition:
            return self._running

    def snapshot(self) -> dict[HostIdentity, HostState]:
        """Current state of every known host."""
        with self._condition:
            return {host: item.state for host, item in self._items.items()}

    def _dispatch_loop(self) -> None:
        logger.debug("Scheduler dispatch loop started")
        with self._condition:
            while not self._stopping:
                now = time.monotonic()
                next_ready = None
                for item in list(self._items.values()):
                    if self._running >= self.max_concurrent:
                        break
                    if not item.scheduled or item.active is not None:
                        continue
                    if item.ready_at <= now:
                        self._launch(item)
                    elif next_ready is None or item.ready_at < next_ready:
                        next_ready = item.ready_at

                timeout = _IDLE_WAIT if next_ready is None else min(next_ready - now, _IDLE_WAIT)
                self._condition.wait(max(timeout, 0.0))
        logger.debug("Scheduler dispatch loop stopped")

    def _launch(self, item: WorkItem) -> None:
        # Caller holds the condition
        attempt = Attempt(event=item.event, generation=item.generation)
        item.active = attempt
        item.scheduled = False
        self._running += 1
        attempt.future = self._executor.submit(self._run_attempt, attempt)

    def _run_attempt(self, attempt: Attempt) -> None:
        event = attempt.event
        host_logger = get_host_logger(event.host)
        error = None
        try:
            if attempt.cancel_event.is_set():
                # Superseded or shut down before the attempt got going
                return
            host_logger.info(
                "Mirroring journal of {} from {}:{}", event.host, event.address, event.port
            )
            self._attempt(event, attempt.cancel_event)
        except Exception as e:
            error = e
            host_logger.error("Attempt for {} failed: {}", event.host, e)
        finally:
            self._finish(attempt, error)

    def _finish(self, attempt: Attempt, error: Exception | None) -> None:
        host = attempt.event.host
        with self._condition:
            self._running -= 1
            item = self._items.get(host)
            if item is not None and item.active is attempt:
                item.active = None

            if item is None:
                pass
            elif item.retired:
                del self._items[host]
                self.backoff.reset(host)
            elif error is None:
                self.backoff.reset(host)
                logger.debug("Attempt for {} completed", host)
            elif item.generation != attempt.generation:
                logger.debug("Failed attempt for {} was superseded, not retrying", host)
            elif not self._stopping:
                delay = self.backoff.next_delay(host)
                item.scheduled = True
                item.ready_at = time.monotonic() + delay
                logger.info(
                    "Retrying {} in {:.1f}s (consecutive failures: {})",
                    host,
                    delay,
                    self.backoff.failures(host),
                )
            self._condition.notify_all()
