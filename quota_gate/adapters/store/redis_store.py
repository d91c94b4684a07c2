"""Redis-backed counting store.

Increment runs as a Lua script so the counter and its TTL are created in one
atomic step; a plain INCR followed by EXPIRE could leave a counter without
expiry if the connection dropped in between.

Every redis-py exception is translated into ``StoreUnavailableError``.
Retries and timeouts are configured on the client, never in the decider.
"""

from __future__ import annotations

import logging
from typing import Any

import redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from quota_gate.adapters.store.base import (
    COUNTER_TTL_SECONDS,
    NOT_BLOCKED,
    AbstractCountingStore,
    BlockStatus,
    block_key,
)
from quota_gate.core.config import RedisSettings
from quota_gate.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

# KEYS[1] = counter key, ARGV[1] = TTL in milliseconds.
# The PTTL check also repairs a counter that somehow lost its expiry.
INCREMENT_SCRIPT = """
    local count = redis.call('INCR', KEYS[1])
    if count == 1 or redis.call('PTTL', KEYS[1]) == -1 then
        redis.call('PEXPIRE', KEYS[1], ARGV[1])
    end
    return count
"""

BLOCK_MARKER_VALUE = "blocked"

# PTTL sentinels
_PTTL_MISSING = -2
_PTTL_NO_EXPIRY = -1


def _to_millis(seconds: float) -> int:
    return int(round(seconds * 1000))


def parse_redis_addr(addr: str) -> tuple[str, int]:
    """Split a ``host:port`` address; the port defaults to 6379.

    Examples:
        >>> parse_redis_addr("cache:6380")
        ('cache', 6380)
        >>> parse_redis_addr("localhost")
        ('localhost', 6379)
    """

    host, sep, port = addr.rpartition(":")
    if not sep:
        return addr, 6379
    return host or "localhost", int(port)


def create_redis_client(redis_settings: RedisSettings) -> redis.Redis:
    """Build a redis-py client with timeouts and retry policy from settings."""

    host, port = parse_redis_addr(redis_settings.addr)
    return redis.Redis(
        host=host,
        port=port,
        db=redis_settings.db,
        password=redis_settings.password or None,
        socket_timeout=redis_settings.socket_timeout_seconds,
        socket_connect_timeout=redis_settings.socket_timeout_seconds,
        retry=Retry(ExponentialBackoff(cap=0.2, base=0.01), redis_settings.max_retries),
        retry_on_error=[RedisConnectionError, RedisTimeoutError],
        decode_responses=True,
    )


class RedisCountingStore(AbstractCountingStore):
    """Counting store shared by every instance connected to the same Redis."""

    def __init__(
        self,
        client: Any,
        *,
        counter_ttl_seconds: float = COUNTER_TTL_SECONDS,
    ) -> None:
        """Initialize the store.

        Args:
            client: A ``redis.Redis`` instance (or compatible test double).
            counter_ttl_seconds: Lifetime of a window counter.
        """
        if counter_ttl_seconds <= 0:
            raise ValueError("counter_ttl_seconds must be > 0")

        self._client = client
        self._counter_ttl_ms = _to_millis(counter_ttl_seconds)
        self._increment = client.register_script(INCREMENT_SCRIPT)

    @classmethod
    def from_settings(cls, redis_settings: RedisSettings) -> "RedisCountingStore":
        return cls(create_redis_client(redis_settings))

    def _unavailable(self, operation: str, exc: RedisError) -> StoreUnavailableError:
        logger.warning(
            "store.redis_error",
            extra={
                "operation": operation,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        return StoreUnavailableError(
            code="store_unavailable",
            message=f"Redis {operation} failed: {exc}",
            details={"backend": "redis", "operation": operation},
        )

    def increment(self, identifier: str) -> int:
        try:
            count = self._increment(keys=[identifier], args=[self._counter_ttl_ms])
        except RedisError as exc:
            raise self._unavailable("increment", exc) from exc
        return int(count)

    def block(self, identifier: str, duration_seconds: float) -> None:
        if duration_seconds < 0:
            raise ValueError("duration_seconds must be >= 0")

        key = block_key(identifier)
        ttl_ms = _to_millis(duration_seconds)
        try:
            if ttl_ms > 0:
                self._client.set(key, BLOCK_MARKER_VALUE, px=ttl_ms)
            else:
                # SET rejects a zero expiry; an already-expired marker is an absent one
                self._client.delete(key)
        except RedisError as exc:
            raise self._unavailable("block", exc) from exc

    def is_blocked(self, identifier: str) -> BlockStatus:
        try:
            ttl_ms = int(self._client.pttl(block_key(identifier)))
        except RedisError as exc:
            raise self._unavailable("is_blocked", exc) from exc

        if ttl_ms == _PTTL_MISSING or ttl_ms == 0:
            return NOT_BLOCKED
        if ttl_ms == _PTTL_NO_EXPIRY:
            # Only written by hand; honour it as an open-ended block
            return BlockStatus(blocked=True, remaining_seconds=0.0)
        return BlockStatus(blocked=True, remaining_seconds=ttl_ms / 1000)

