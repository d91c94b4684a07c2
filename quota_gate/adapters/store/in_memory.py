"""In-memory counting store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: a single lock guards both keyspaces.
- Expired entries are kept until touched or swept, so every read checks
  expiry against the clock instead of trusting the stored TTL.
- Writes sweep expired entries at most once per counter TTL, and only once
  the store holds ``sweep_threshold`` entries, so identifiers seen once do
  not accumulate.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from quota_gate.adapters.store.base import (
    COUNTER_TTL_SECONDS,
    NOT_BLOCKED,
    AbstractCountingStore,
    BlockStatus,
    block_key,
)


@dataclass
class _Entry:
    value: int
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class InMemoryCountingStore(AbstractCountingStore):
    """Counting store backed by a dict of expiring entries.

    Counters and block markers share one dict; block markers are stored under
    ``block:<identifier>`` exactly as the Redis store lays them out.
    """

    def __init__(
        self,
        *,
        counter_ttl_seconds: float = COUNTER_TTL_SECONDS,
        sweep_threshold: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the store.

        Args:
            counter_ttl_seconds: Lifetime of a window counter.
            sweep_threshold: Entry count from which writes sweep expired entries.
            clock: Time source in seconds; only differences are used.

        Raises:
            ValueError: If counter_ttl_seconds or sweep_threshold is not positive.
        """
        if counter_ttl_seconds <= 0:
            raise ValueError("counter_ttl_seconds must be > 0")
        if sweep_threshold < 1:
            raise ValueError("sweep_threshold must be >= 1")

        self._counter_ttl = counter_ttl_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}
        self._sweep_threshold = sweep_threshold
        self._last_sweep = clock()

    def increment(self, identifier: str) -> int:
        now = self._clock()
        with self._lock:
            self._sweep_expired_locked(now)
            entry = self._entries.get(identifier)
            if entry is None or entry.is_expired(now):
                entry = _Entry(value=0, expires_at=now + self._counter_ttl)
                self._entries[identifier] = entry
            entry.value += 1
            return entry.value

    def block(self, identifier: str, duration_seconds: float) -> None:
        if duration_seconds < 0:
            raise ValueError("duration_seconds must be >= 0")

        now = self._clock()
        with self._lock:
            self._sweep_expired_locked(now)
            self._entries[block_key(identifier)] = _Entry(
                value=1, expires_at=now + duration_seconds
            )

    def is_blocked(self, identifier: str) -> BlockStatus:
        key = block_key(identifier)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return NOT_BLOCKED
            if entry.is_expired(now):
                del self._entries[key]
                return NOT_BLOCKED
            return BlockStatus(blocked=True, remaining_seconds=entry.expires_at - now)

    def expire_counter(self, identifier: str) -> None:
        """Drop the window counter for ``identifier`` as if its TTL had elapsed.

        Block markers are untouched. Intended for tests that simulate the
        counter's independent expiry.
        """

        with self._lock:
            self._entries.pop(identifier, None)

    def counter_value(self, identifier: str) -> int:
        """Return the live counter value for ``identifier`` (0 when absent or expired)."""

        now = self._clock()
        with self._lock:
            entry = self._entries.get(identifier)
            if entry is None or entry.is_expired(now):
                return 0
            return entry.value

    def entry_count(self) -> int:
        """Number of stored entries, expired ones included until swept."""

        with self._lock:
            return len(self._entries)

    def _sweep_expired_locked(self, now: float) -> None:
        if len(self._entries) < self._sweep_threshold:
            return
        if now - self._last_sweep < self._counter_ttl:
            return

        expired_keys = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired_keys:
            del self._entries[key]
        self._last_sweep = now
