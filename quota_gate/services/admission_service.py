"""Admission decisions: fixed 1-second windows plus a one-time block penalty.

The service keeps no per-identifier state of its own. Everything mutable
lives in the counting store, which is responsible for atomic increments, so
``allow`` can be called concurrently without locking.

Any store failure denies the request (fail closed).
"""

from __future__ import annotations

import logging

from quota_gate.adapters.store.base import AbstractCountingStore, BlockStatus
from quota_gate.core.errors import StoreUnavailableError
from quota_gate.core.logging import hash_identifier
from quota_gate.core.quotas import Quota, QuotaTable

logger = logging.getLogger(__name__)


class AdmissionService:
    """Decide per request whether an identifier is still within its quota."""

    def __init__(self, *, quotas: QuotaTable, store: AbstractCountingStore) -> None:
        self._quotas = quotas
        self._store = store

    @property
    def quotas(self) -> QuotaTable:
        return self._quotas

    @property
    def store(self) -> AbstractCountingStore:
        return self._store

    def resolve_quota(self, identifier: str) -> Quota:
        """Return the quota governing ``identifier`` (override first, then default)."""

        return self._quotas.resolve(identifier)

    def allow(self, identifier: str) -> bool:
        """Admit or reject one request for ``identifier``.

        The request that pushes the window count over the limit is itself
        counted and denied, and it is the only place a block is created. While
        the block is active, requests are denied without touching the counter.

        Args:
            identifier: Token or client address the request is limited under.

        Returns:
            True if the request may proceed.
        """

        id_hash = hash_identifier(identifier)

        try:
            status = self._store.is_blocked(identifier)
        except StoreUnavailableError as exc:
            self._log_store_failure("is_blocked", id_hash, exc)
            return False

        if status.blocked:
            logger.info(
                "admission.denied",
                extra={
                    "identifier_hash": id_hash,
                    "reason": "blocked",
                    "block_remaining_s": round(status.remaining_seconds, 3),
                },
            )
            return False

        quota = self.resolve_quota(identifier)

        try:
            count = self._store.increment(identifier)
        except StoreUnavailableError as exc:
            self._log_store_failure("increment", id_hash, exc)
            return False

        if count <= quota.limit:
            return True

        # Until a block write succeeds, later requests in this window overflow
        # again, stay denied and retry the block.
        try:
            self._store.block(identifier, quota.block_seconds)
        except StoreUnavailableError as exc:
            self._log_store_failure("block", id_hash, exc)
        else:
            logger.warning(
                "admission.blocked",
                extra={
                    "identifier_hash": id_hash,
                    "count": count,
                    "limit": quota.limit,
                    "block_s": quota.block_seconds,
                },
            )
        return False

    def block_status(self, identifier: str) -> BlockStatus:
        """Return the current block status, treating store failures as not blocked.

        Used only to decorate denials (``Retry-After``); never for admission.
        """

        try:
            return self._store.is_blocked(identifier)
        except StoreUnavailableError:
            return BlockStatus(blocked=False)

    @staticmethod
    def _log_store_failure(operation: str, id_hash: str, exc: StoreUnavailableError) -> None:
        logger.error(
            "store.unavailable",
            extra={
                "operation": operation,
                "identifier_hash": id_hash,
                "error_code": exc.code,
                "error_message": exc.message,
            },
        )
