"""Quota configuration: the default quota plus per-token overrides.

The table is built once at startup and never mutated afterwards. Overrides
come from environment variables of the form::

    TOKEN_LIMIT_<token>=<requests per second>,<block minutes>

A malformed override is skipped with a warning; it never aborts loading the
remaining entries.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from quota_gate.core.config import Settings
from quota_gate.core.errors import ValidationAppError
from quota_gate.core.logging import hash_identifier

logger = logging.getLogger(__name__)

SECONDS_PER_MINUTE = 60

# Environment name of LimiterSettings.token_override_prefix; never a token
PREFIX_SETTING_VARIABLE = "TOKEN_OVERRIDE_PREFIX"


@dataclass(frozen=True)
class Quota:
    """Requests allowed per 1-second window and the penalty for exceeding them.

    Attributes:
        limit: Maximum requests per window (>= 1).
        block_seconds: How long the identifier is blocked after overflowing (>= 0).
    """

    limit: int
    block_seconds: float

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValidationAppError(
                code="invalid_quota_limit",
                message="Quota limit must be a positive integer",
                details={"hint": f"got limit={self.limit}"},
            )
        if self.block_seconds < 0:
            raise ValidationAppError(
                code="invalid_quota_block",
                message="Quota block duration must not be negative",
                details={"hint": f"got block_seconds={self.block_seconds}"},
            )


@dataclass(frozen=True)
class QuotaTable:
    """Immutable default quota plus identifier-specific overrides."""

    default: Quota
    overrides: Mapping[str, Quota] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Copy so later changes to the caller's dict can't leak in
        object.__setattr__(self, "overrides", MappingProxyType(dict(self.overrides)))

    def resolve(self, identifier: str) -> Quota:
        """Return the override for ``identifier`` if one exists, else the default."""

        return self.overrides.get(identifier, self.default)


def parse_token_limit(value: str) -> Quota:
    """Parse a ``"<limit>,<block minutes>"`` override value.

    Raises:
        ValidationAppError: If the value is not two integers in range.

    Examples:
        >>> parse_token_limit("100,5")
        Quota(limit=100, block_seconds=300)
    """

    parts = [part.strip() for part in value.split(",")]
    if len(parts) != 2:
        raise ValidationAppError(
            code="invalid_token_limit",
            message="Token limit must be '<limit>,<block minutes>'",
        )
    try:
        limit, minutes = int(parts[0]), int(parts[1])
    except ValueError as exc:
        raise ValidationAppError(
            code="invalid_token_limit",
            message="Token limit values must be integers",
        ) from exc
    return Quota(limit=limit, block_seconds=minutes * SECONDS_PER_MINUTE)


def parse_token_limits(
    environ: Mapping[str, str],
    prefix: str = "TOKEN_LIMIT_",
) -> dict[str, Quota]:
    """Collect every ``<prefix><token>`` override from ``environ``.

    Args:
        environ: Environment mapping (usually ``os.environ``).
        prefix: Variable name prefix; the remainder of the name is the token.

    Returns:
        Mapping of token to its quota. Malformed entries are left out.
    """

    overrides: dict[str, Quota] = {}
    for key, value in environ.items():
        if not key.startswith(prefix) or key.upper() == PREFIX_SETTING_VARIABLE:
            continue
        token = key[len(prefix):]
        if not token:
            continue
        try:
            overrides[token] = parse_token_limit(value)
        except ValidationAppError as exc:
            logger.warning(
                "config.token_limit_skipped",
                extra={
                    "token_hash": hash_identifier(token),
                    "reason": exc.code,
                    "error_message": exc.message,
                },
            )
            continue
        logger.info(
            "config.token_limit_loaded",
            extra={
                "token_hash": hash_identifier(token),
                "limit": overrides[token].limit,
                "block_s": overrides[token].block_seconds,
            },
        )
    return overrides


def build_quota_table(
    settings: Settings,
    environ: Mapping[str, str] | None = None,
) -> QuotaTable:
    """Build the quota table from settings and token overrides in the environment."""

    limiter = settings.limiter
    default = Quota(
        limit=limiter.ip_requests_per_second,
        block_seconds=limiter.ip_block_duration_minutes * SECONDS_PER_MINUTE,
    )
    overrides = parse_token_limits(
        os.environ if environ is None else environ,
        prefix=limiter.token_override_prefix,
    )
    return QuotaTable(default=default, overrides=overrides)
