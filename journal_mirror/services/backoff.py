#!/usr/bin/env python3
"""Per-key exponential failure backoff."""

import random
import threading
from collections.abc import Hashable


class ExponentialBackoff:
    """Exponential backoff tracked per key.

    The delay starts at ``base_delay`` and doubles on each consecutive
    failure for the same key, capped at ``max_delay``. ``reset`` forgets the
    failures of a key.
    """

    def __init__(self, base_delay: float, max_delay: float, jitter: float = 0.0):
        """Initialize the backoff.

        Args:
            base_delay: Delay in seconds after the first failure
            max_delay: Upper bound for any delay
            jitter: Fraction of the delay (0.0 to 1.0) randomly subtracted,
                0.0 for deterministic delays

        Raises:
            ValueError: If the delays or jitter are out of range
        """
        if base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if max_delay < base_delay:
            raise ValueError("max_delay must not be smaller than base_delay")
        if not 0.0 <= jitter <= 1.0:
            raise ValueError("jitter must be between 0.0 and 1.0")

        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._failures: dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def next_delay(self, key: Hashable) -> float:
        """Record a failure for ``key`` and return the delay before retrying."""
        with self._lock:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1

        # Cap the exponent so the float math cannot overflow
        delay = min(self.base_delay * (2 ** min(failures, 64)), self.max_delay)
        if self.jitter:
            delay -= delay * self.jitter * random.random()
        return delay

    def failures(self, key: Hashable) -> int:
        with self._lock:
            return self._failures.get(key, 0)

    def reset(self, key: Hashable) -> None:
        with self._lock:
            self._failures.pop(key, None)
