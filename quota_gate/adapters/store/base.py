"""Counting store interface.

Window counters are keyed by the raw identifier; block markers live under
``block:<identifier>``. The two keyspaces are disjoint so a counter expiring
never clears an active block.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

COUNTER_TTL_SECONDS = 1.0
BLOCK_KEY_PREFIX = "block:"


def block_key(identifier: str) -> str:
    """Return the store key of the block marker for ``identifier``."""

    return BLOCK_KEY_PREFIX + identifier


@dataclass(frozen=True)
class BlockStatus:
    """Result of a block marker lookup.

    Attributes:
        blocked: Whether an unexpired block marker exists.
        remaining_seconds: Time left until the marker expires (0 when not blocked).
    """

    blocked: bool
    remaining_seconds: float = 0.0


NOT_BLOCKED = BlockStatus(blocked=False, remaining_seconds=0.0)


class AbstractCountingStore(ABC):
    """Interface for shared counting stores.

    Every method raises ``StoreUnavailableError`` when the backend cannot be
    reached; no other exception type may escape an implementation.
    """

    @abstractmethod
    def increment(self, identifier: str) -> int:
        """Atomically increment the window counter for ``identifier``.

        The counter is created with a 1-second TTL when absent or expired.
        Concurrent callers never observe the same pre-increment value.

        Args:
            identifier: Rate limit identifier (address or token).

        Returns:
            The post-increment count.
        """
        raise NotImplementedError

    @abstractmethod
    def block(self, identifier: str, duration_seconds: float) -> None:
        """Set the block marker for ``identifier``, replacing any existing one.

        Args:
            identifier: Rate limit identifier.
            duration_seconds: Marker TTL; 0 leaves the identifier unblocked.
        """
        raise NotImplementedError

    @abstractmethod
    def is_blocked(self, identifier: str) -> BlockStatus:
        """Report whether an unexpired block marker exists for ``identifier``.

        Absent and expired markers are both reported as not blocked.
        """
        raise NotImplementedError
