"""Rate limiting dependency for FastAPI routes.

This module wires the admission service into the HTTP layer.

Identifier selection:
- The token header (``API_KEY`` by default) when present and non-empty.
- Otherwise the client address.

Tokens and addresses share one namespace, so a token configured with an
override is limited by that override and never by the default quota.
"""

from __future__ import annotations

import logging
import math

from fastapi import HTTPException, Request, status

from quota_gate.adapters.store.base import AbstractCountingStore
from quota_gate.adapters.store.in_memory import InMemoryCountingStore
from quota_gate.adapters.store.redis_store import RedisCountingStore
from quota_gate.core.config import Settings, settings
from quota_gate.core.logging import hash_identifier
from quota_gate.core.quotas import build_quota_table
from quota_gate.services.admission_service import AdmissionService

logger = logging.getLogger(__name__)

DENIAL_MESSAGE = (
    "you have reached the maximum number of requests or actions allowed "
    "within a certain time frame"
)

_service: AdmissionService | None = None


def create_store(cfg: Settings) -> AbstractCountingStore:
    """Instantiate the counting store selected by ``STORE_BACKEND``."""

    if cfg.store.backend == "memory":
        return InMemoryCountingStore()
    return RedisCountingStore.from_settings(cfg.redis)


def create_admission_service(cfg: Settings) -> AdmissionService:
    quotas = build_quota_table(cfg)
    store = create_store(cfg)
    logger.info(
        "rate_limit.configured",
        extra={
            "backend": cfg.store.backend,
            "default_limit": quotas.default.limit,
            "default_block_s": quotas.default.block_seconds,
            "token_overrides": len(quotas.overrides),
        },
    )
    return AdmissionService(quotas=quotas, store=store)


def get_admission_service() -> AdmissionService:
    """Return the process-wide admission service, building it on first use."""

    global _service

    if _service is None:
        _service = create_admission_service(settings)
    return _service


def reset_admission_service() -> None:
    """Drop the cached service so the next request rebuilds it from settings."""

    global _service
    _service = None


def resolve_identifier(request: Request) -> str:
    """Pick the identifier a request is limited under: token, else client host."""

    token = request.headers.get(settings.limiter.token_header)
    if token:
        return token
    return request.client.host if request.client else "unknown"


def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing the per-identifier quota.

    Declared as a plain function so FastAPI runs it in the threadpool; the
    store call may block on network I/O.

    Raises:
        HTTPException: 429 Too Many Requests when the request is denied.
    """

    service = get_admission_service()
    identifier = resolve_identifier(request)

    if service.allow(identifier):
        return

    key_type = "token" if identifier in service.quotas.overrides else "default"
    headers: dict[str, str] = {}
    block = service.block_status(identifier)
    if block.blocked and block.remaining_seconds > 0:
        headers["Retry-After"] = str(math.ceil(block.remaining_seconds))

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "identifier_hash": hash_identifier(identifier),
            "quota_type": key_type,
            "path": request.url.path,
            "retry_after_s": headers.get("Retry-After"),
        },
    )

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=DENIAL_MESSAGE,
        headers=headers or None,
    )
