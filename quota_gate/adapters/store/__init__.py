"""Counting store adapters.

The admission decider depends only on ``AbstractCountingStore``. The
in-memory store serves tests and single-process deployments; the Redis store
is the shared backend used when several instances enforce one quota.
"""

from quota_gate.adapters.store.base import (
    BLOCK_KEY_PREFIX,
    COUNTER_TTL_SECONDS,
    AbstractCountingStore,
    BlockStatus,
    block_key,
)

__all__ = [
    "BLOCK_KEY_PREFIX",
    "COUNTER_TTL_SECONDS",
    "AbstractCountingStore",
    "BlockStatus",
    "block_key",
]
