from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from quota_gate.core.rate_limit import enforce_rate_limit

router = APIRouter(tags=["Root"])

WELCOME_MESSAGE = "Welcome! Request allowed.\n"


@router.get(
    "/",
    response_class=PlainTextResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
def index() -> str:
    """Rate-limited landing endpoint."""

    return WELCOME_MESSAGE
